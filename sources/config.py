"""Kwollect source configuration - immutable settings passed in by the host"""
import os
from dataclasses import dataclass, field


DEFAULT_BASE_URL = "https://api.grid5000.fr/stable"


@dataclass(frozen=True)
class KwollectConfig:
    """
    Settings for one Kwollect source instance (one site, one node).

    Attributes:
        site: Grid'5000 site hosting the node (e.g. "lyon").
        hostname: Node to query (e.g. "taurus-7").
        metrics: Metric filter sent to the API. Empty means all metrics.
        login: Grid'5000 account login (HTTP Basic auth).
        password: Grid'5000 account password.
        allowed_metrics: Metric ids accepted from the API. Empty means
            accept only `metrics` when set, anything otherwise.
        timeout: Per-request HTTP timeout in seconds.
        backfill: Seconds of history fetched by the first poll.
        overlap: Seconds re-queried before the watermark on every poll.
        max_retries: Extra fetch attempts within one poll on transient errors.
        retry_ceiling: Upper bound in seconds for one retry delay.
        shutdown_timeout: Seconds stop() waits for an aborted fetch.
        base_url: API root, without trailing slash.
    """
    site: str = "lyon"
    hostname: str = "taurus-7"
    metrics: str = "wattmetre_power_watt"
    login: str = ""
    password: str = ""
    allowed_metrics: tuple[str, ...] = field(default=())
    timeout: float = 10.0
    backfill: float = 0.0
    overlap: float = 0.0
    max_retries: int = 0
    retry_ceiling: float = 30.0
    shutdown_timeout: float = 5.0
    base_url: str = DEFAULT_BASE_URL

    def __post_init__(self):
        if not self.site:
            raise ValueError("site must not be empty")
        if not self.hostname:
            raise ValueError("hostname must not be empty")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        for name in ("backfill", "overlap", "retry_ceiling", "shutdown_timeout"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative")

    @property
    def metric_allow_list(self) -> frozenset[str]:
        """Metric ids the parser accepts. Empty set accepts every metric."""
        if self.allowed_metrics:
            return frozenset(self.allowed_metrics)
        if self.metrics:
            return frozenset([self.metrics])
        return frozenset()

    @property
    def metrics_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/sites/{self.site}/metrics"

    @classmethod
    def from_env(cls, environ=None) -> "KwollectConfig":
        """
        Build a config from KWOLLECT_* environment variables.

        Unset variables fall back to the dataclass defaults.
        Raises ValueError on unparsable or invalid values.
        """
        env = os.environ if environ is None else environ
        kwargs = {}

        for name in ("site", "hostname", "metrics", "login", "password", "base_url"):
            value = env.get(f"KWOLLECT_{name.upper()}")
            if value is not None:
                kwargs[name] = value.strip()

        allowed = env.get("KWOLLECT_ALLOWED_METRICS")
        if allowed:
            kwargs["allowed_metrics"] = tuple(
                m.strip() for m in allowed.split(",") if m.strip()
            )

        for name in ("timeout", "backfill", "overlap", "retry_ceiling", "shutdown_timeout"):
            value = env.get(f"KWOLLECT_{name.upper()}")
            if value:
                try:
                    kwargs[name] = float(value)
                except ValueError:
                    raise ValueError(f"KWOLLECT_{name.upper()} is not a number: {value!r}")

        retries = env.get("KWOLLECT_MAX_RETRIES")
        if retries:
            try:
                kwargs["max_retries"] = int(retries)
            except ValueError:
                raise ValueError(f"KWOLLECT_MAX_RETRIES is not an integer: {retries!r}")

        return cls(**kwargs)
