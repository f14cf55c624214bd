"""Kwollect metrics API client - fetches raw measurement records via HTTP"""
import json
import logging
from datetime import datetime, timezone

import httpx

from sources.config import KwollectConfig
from sources.errors import AuthError, DecodeError, TransientError

logger = logging.getLogger(__name__)

# Longest response body excerpt kept on errors
BODY_EXCERPT = 200


def format_api_time(moment: datetime) -> str:
    """Render a window bound as ISO-8601 in UTC with explicit offset."""
    if moment.tzinfo is None:
        raise ValueError("window bounds must be timezone-aware")
    return moment.astimezone(timezone.utc).isoformat()


class KwollectClient:
    """
    Grid'5000 Kwollect metrics API client.

    Pure I/O boundary: one authenticated GET per fetch(), returning the
    decoded JSON array as-is. Filtering, parsing and retry policy belong
    to the polling source.
    """

    def __init__(self, config: KwollectConfig, transport: httpx.AsyncBaseTransport | None = None):
        """
        Initialize the client.

        Args:
            config: Source configuration (site, node, credentials, timeout).
            transport: Optional httpx transport, used by tests to mock the API.
        """
        self.config = config
        self.url = config.metrics_url
        self._transport = transport
        self.client = None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def connect(self) -> None:
        """Create the persistent HTTP client with keep-alive."""
        if self.client is not None:
            return

        self.client = httpx.AsyncClient(
            timeout=self.config.timeout,
            auth=(self.config.login, self.config.password),
            headers={"Accept": "application/json"},
            limits=httpx.Limits(max_keepalive_connections=1),
            transport=self._transport,
        )
        logger.debug(f"Kwollect: HTTP client ready for {self.url}")

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()
            self.client = None
            logger.debug("Kwollect: HTTP client closed")

    def build_params(self, start: datetime, end: datetime) -> dict[str, str]:
        """Query parameters for the window [start, end)."""
        if start > end:
            raise ValueError(f"window start {start} is after end {end}")

        params = {"nodes": self.config.hostname}
        if self.config.metrics:
            params["metrics"] = self.config.metrics
        params["start_time"] = format_api_time(start)
        params["end_time"] = format_api_time(end)
        return params

    async def fetch(self, start: datetime, end: datetime) -> list:
        """
        Fetch raw measurement records for the window [start, end).

        Returns:
            The decoded JSON array, unmodified.

        Raises:
            AuthError: Credentials rejected (401/403).
            TransientError: Timeout, connection failure or other error status.
            DecodeError: Body is not JSON or not an array.
        """
        params = self.build_params(start, end)
        await self.connect()

        logger.debug(
            f"Kwollect: GET {self.url} node={params['nodes']} "
            f"window=[{params['start_time']}, {params['end_time']})"
        )

        try:
            response = await self.client.get(self.url, params=params)
        except httpx.TimeoutException as e:
            raise TransientError(f"Timeout after {self.config.timeout}s: {e}") from e
        except httpx.RequestError as e:
            raise TransientError(f"Cannot reach {self.url}: {e}") from e

        if not response.is_success:
            body = response.text[:BODY_EXCERPT]
            status = response.status_code
            if status in (401, 403):
                raise AuthError(
                    f"HTTP {status}: credentials rejected for {self.config.login!r}",
                    status=status,
                    body=body,
                )
            raise TransientError(f"HTTP {status}: {body}", status=status, body=body)

        try:
            data = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DecodeError(f"Response is not valid JSON: {e}") from e

        if not isinstance(data, list):
            raise DecodeError(f"Expected a JSON array, got {type(data).__name__}")

        return data
