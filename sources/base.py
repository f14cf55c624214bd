"""Base definitions for measurement sources - data contracts and protocols"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from sources.kwollect import PollOutcome


@dataclass
class MeasurementPoint:
    """
    Normalized measurement emitted by a polling source.

    Attributes:
        timestamp: Timezone-aware time of the sample.
        metric_id: Kind of measurement (e.g. "wattmetre_power_watt").
        value: Measured value. Watts for power metrics.
        resource: (resource_type, resource_id) of the measured subject.
        consumer: (consumer_type, consumer_id) of the sub-device that
            produced the reading, or None when the API omits it.
        labels: Extra metadata from the API, label -> list of values.
    """
    timestamp: datetime
    metric_id: str
    value: float
    resource: tuple[str, str]
    consumer: tuple[str, str] | None = None
    labels: dict[str, list[str]] = field(default_factory=dict)


class PointSink(Protocol):
    """
    Downstream receiver of measurement points (host pipeline, display, file).

    Called once per successful poll with the points in source order.
    Raising an exception means the batch was not accepted.
    """

    async def __call__(self, points: list[MeasurementPoint]) -> None:
        ...


class PollingSource(Protocol):
    """
    Lifecycle contract between a host and a polling source.

    The host owns the cadence: it calls start() once, poll() on its
    schedule and stop() on shutdown.
    """

    async def start(self) -> None:
        ...

    async def poll(self) -> "PollOutcome":
        """Run one fetch-parse-emit cycle and return its outcome."""
        ...

    async def stop(self) -> None:
        ...
