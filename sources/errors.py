"""Error taxonomy for the Kwollect source"""


class KwollectError(Exception):
    """Base class for errors that abort a single poll."""

    kind = "error"


class TransportError(KwollectError):
    """
    Remote API call failed.

    Attributes:
        status: HTTP status code, or None when no response was received.
        body: Excerpt of the response body (may be empty).
    """

    kind = "transport"

    def __init__(self, message: str, status: int | None = None, body: str = ""):
        self.status = status
        self.body = body
        super().__init__(message)


class AuthError(TransportError):
    """Credentials rejected (401/403). Fails every poll until config changes."""

    kind = "auth"


class TransientError(TransportError):
    """Timeout, connection failure or non-auth error status. Retry on next poll."""

    kind = "transient"


class DecodeError(KwollectError):
    """Response body is not JSON or not an array of records."""

    kind = "decode"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class RecordRejected(KwollectError):
    """A single record failed validation. Skipped and counted, never fatal."""

    kind = "rejected"

    def __init__(self, field: str, reason: str = "missing or invalid"):
        self.field = field
        super().__init__(f"{field}: {reason}")
