"""Kwollect polling source - pulls wattmeter measurements from Grid'5000"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from sources.base import MeasurementPoint, PointSink
from sources.config import KwollectConfig
from sources.errors import KwollectError, TransientError
from sources.kwollect_client import KwollectClient
from sources.kwollect_parser import parse_records

logger = logging.getLogger(__name__)

# First in-poll retry delay (seconds), doubled on each attempt
RETRY_BASE_DELAY = 1.0


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PollWatermark:
    """Last successfully consumed timestamp. Never moves backwards."""

    def __init__(self, value: datetime):
        self.value = value

    def advance(self, moment: datetime) -> bool:
        """Move forward to `moment`. Returns False if it would move back."""
        if moment <= self.value:
            return False
        self.value = moment
        return True

    def __repr__(self):
        return f"PollWatermark({self.value.isoformat()})"


@dataclass
class PollOutcome:
    """
    Result of one poll, reported to the host.

    kind is "ok" on success, "skipped" when the trigger was dropped,
    "cancelled" when stop() aborted the poll, "sink" when the sink refused
    the batch, otherwise the failing error's kind ("auth", "transient",
    "transport", "decode").
    """
    kind: str
    message: str = ""
    window: tuple[datetime, datetime] | None = None
    emitted: int = 0
    rejected: int = 0
    duplicates: int = 0
    deferred: int = 0

    @property
    def ok(self) -> bool:
        return self.kind == "ok"


class KwollectSource:
    """
    Kwollect (Grid'5000 metrics) polling source for one site/node.

    Each poll() fetches [watermark, now), converts the records to
    MeasurementPoint and pushes them to the sink. The watermark only moves
    once the sink accepted the batch, so a failed poll is retried with the
    same window on the next call.
    """

    def __init__(
        self,
        config: KwollectConfig,
        sink: PointSink,
        client: KwollectClient | None = None,
        clock: Callable[[], datetime] = utc_now,
        on_event: Callable[[PollOutcome], None] | None = None,
    ):
        """
        Initialize the source.

        Args:
            config: Immutable source configuration.
            sink: Async callable receiving each batch of points.
            client: API client (default: built from config).
            clock: Returns the current aware time. Drives the window bounds.
            on_event: Optional callback receiving every PollOutcome.
        """
        self.config = config
        self.sink = sink
        self.client = client or KwollectClient(config)
        self.clock = clock
        self.on_event = on_event

        self.watermark: PollWatermark | None = None
        self.rejected_total = 0
        # (device, metric, timestamp) already emitted inside the re-queried span
        self._emitted: set[tuple[str, str, datetime]] = set()
        self._gate = asyncio.Lock()
        self._fetch_task: asyncio.Task | None = None
        self._stopping = False

    async def start(self) -> None:
        """Initialize the watermark and open the HTTP client."""
        self._stopping = False
        self.watermark = PollWatermark(
            self.clock() - timedelta(seconds=self.config.backfill)
        )
        await self.client.connect()
        logger.info(
            f"Kwollect: Polling {self.config.hostname}@{self.config.site} "
            f"(metrics: {self.config.metrics or 'all'}, since {self.watermark.value.isoformat()})"
        )

    async def stop(self) -> None:
        """Abort any in-flight fetch (bounded wait) and close the client."""
        self._stopping = True
        task = self._fetch_task
        if task is not None and not task.done():
            task.cancel()
            done, _ = await asyncio.wait({task}, timeout=self.config.shutdown_timeout)
            if not done:
                logger.warning(
                    f"Kwollect: Fetch did not stop within {self.config.shutdown_timeout}s"
                )
        await self.client.close()
        logger.info("Kwollect: Source stopped")

    def query_window(self, now: datetime) -> tuple[datetime, datetime]:
        """Window [start, end) for a poll closing at `now`."""
        end = max(now, self.watermark.value)
        start = self.watermark.value - timedelta(seconds=self.config.overlap)
        return start, end

    async def poll(self) -> PollOutcome:
        """
        Run one fetch-parse-emit cycle.

        Never raises for fetch, decode or sink failures: they come back as
        a PollOutcome with the watermark left untouched.
        """
        if self.watermark is None:
            raise RuntimeError("poll() called before start()")

        if self._stopping:
            outcome = PollOutcome("skipped", "source stopped")
        elif self._gate.locked():
            outcome = PollOutcome("skipped", "previous poll still running")
        else:
            async with self._gate:
                outcome = await self._poll_once()

        self._report(outcome)
        return outcome

    async def _poll_once(self) -> PollOutcome:
        window = self.query_window(self.clock())
        start, end = window

        # Fetching
        self._fetch_task = asyncio.create_task(self._fetch(start, end))
        try:
            records = await self._fetch_task
        except asyncio.CancelledError:
            if not self._stopping:
                raise
            return PollOutcome("cancelled", "poll aborted by stop()", window)
        except KwollectError as e:
            return PollOutcome(e.kind, str(e), window)
        finally:
            self._fetch_task = None

        # Parsing
        points, rejected = parse_records(
            records, self.config.metric_allow_list, self.config.hostname
        )
        self.rejected_total += rejected

        fresh = []
        duplicates = deferred = 0
        for point in points:
            if point.timestamp >= end:
                deferred += 1
                continue
            if self._key(point) in self._emitted:
                duplicates += 1
                continue
            fresh.append(point)

        # Emitting
        if fresh:
            try:
                await self.sink(fresh)
            except Exception as e:
                return PollOutcome(
                    "sink", f"Sink refused batch: {e}", window,
                    rejected=rejected, duplicates=duplicates, deferred=deferred,
                )

        self.watermark.advance(end)
        self._emitted.update(self._key(point) for point in fresh)
        horizon = self.watermark.value - timedelta(seconds=self.config.overlap)
        self._emitted = {key for key in self._emitted if key[2] >= horizon}

        return PollOutcome(
            "ok", window=window, emitted=len(fresh),
            rejected=rejected, duplicates=duplicates, deferred=deferred,
        )

    async def _fetch(self, start: datetime, end: datetime) -> list:
        """Client fetch with bounded exponential backoff on transient errors."""
        attempt = 0
        while True:
            try:
                return await self.client.fetch(start, end)
            except TransientError as e:
                attempt += 1
                if attempt > self.config.max_retries:
                    raise
                delay = min(RETRY_BASE_DELAY * (2 ** (attempt - 1)), self.config.retry_ceiling)
                logger.warning(
                    f"Kwollect: {e}. Retrying in {delay:.1f}s... "
                    f"({attempt}/{self.config.max_retries})"
                )
                await asyncio.sleep(delay)

    @staticmethod
    def _key(point: MeasurementPoint) -> tuple[str, str, datetime]:
        return point.resource[1], point.metric_id, point.timestamp

    def _report(self, outcome: PollOutcome) -> None:
        if outcome.ok:
            logger.info(
                f"Kwollect: Emitted {outcome.emitted} point(s), "
                f"rejected {outcome.rejected}, watermark {self.watermark.value.isoformat()}"
            )
        elif outcome.kind == "auth":
            logger.error(f"Kwollect: Authentication failed: {outcome.message}")
        elif outcome.kind in ("skipped", "cancelled"):
            logger.debug(f"Kwollect: Poll {outcome.kind}: {outcome.message}")
        else:
            logger.warning(f"Kwollect: Poll failed ({outcome.kind}): {outcome.message}")

        if self.on_event is not None:
            self.on_event(outcome)
