"""Conversion between raw Kwollect records and MeasurementPoint"""
import logging
import math
from datetime import datetime, timezone
from typing import Iterable

from sources.base import MeasurementPoint
from sources.errors import RecordRejected

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "device_id"
CONSUMER_TYPE = "device_origin"
# Label carrying the wattmeter port that produced the reading
CONSUMER_LABEL = "_device_orig"


def parse_timestamp(raw) -> datetime:
    """
    Parse an ISO-8601 string or epoch seconds into an aware datetime.

    Naive ISO strings are taken as UTC.
    """
    if isinstance(raw, bool):
        raise RecordRejected("timestamp", "not a time")

    if isinstance(raw, (int, float)):
        try:
            return datetime.fromtimestamp(raw, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            raise RecordRejected("timestamp", f"epoch out of range: {raw}")

    if isinstance(raw, str):
        try:
            moment = datetime.fromisoformat(raw.strip())
        except ValueError:
            raise RecordRejected("timestamp", f"not ISO-8601: {raw!r}")
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment

    raise RecordRejected("timestamp")


def _label_text(value) -> str | None:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    return None


def parse_labels(raw) -> dict[str, list[str]]:
    """Normalize API labels to label -> list of strings, keeping order."""
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise RecordRejected("labels", "not an object")

    labels = {}
    for key, value in raw.items():
        items = value if isinstance(value, list) else [value]
        texts = [t for t in map(_label_text, items) if t is not None]
        if texts:
            labels[str(key)] = texts
    return labels


def parse_record(
    record,
    allowed_metrics: Iterable[str] = (),
    default_device: str | None = None,
) -> MeasurementPoint:
    """
    Convert one raw API record into a MeasurementPoint.

    Args:
        record: Decoded JSON object from the API.
        allowed_metrics: Accepted metric ids. Empty accepts any metric.
        default_device: Resource id used when the record has no device_id.

    Raises:
        RecordRejected: A mandatory field is missing or invalid.
    """
    if not isinstance(record, dict):
        raise RecordRejected("record", "not an object")

    if "timestamp" not in record:
        raise RecordRejected("timestamp", "missing")
    timestamp = parse_timestamp(record["timestamp"])

    metric_id = record.get("metric_id")
    if not isinstance(metric_id, str) or not metric_id:
        raise RecordRejected("metric_id")
    allowed = frozenset(allowed_metrics)
    if allowed and metric_id not in allowed:
        raise RecordRejected("metric_id", f"{metric_id!r} not allowed")

    value = record.get("value")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RecordRejected("value")
    try:
        value = float(value)
    except OverflowError:
        raise RecordRejected("value", "out of range")
    if not math.isfinite(value):
        raise RecordRejected("value", "not finite")

    device_id = record.get("device_id")
    if not isinstance(device_id, str) or not device_id:
        if not default_device:
            raise RecordRejected("device_id")
        device_id = default_device

    labels = parse_labels(record.get("labels"))
    origin = labels.get(CONSUMER_LABEL)
    consumer = (CONSUMER_TYPE, origin[0]) if origin else None

    return MeasurementPoint(
        timestamp=timestamp,
        metric_id=metric_id,
        value=value,
        resource=(RESOURCE_TYPE, device_id),
        consumer=consumer,
        labels=labels,
    )


def parse_records(
    records: Iterable,
    allowed_metrics: Iterable[str] = (),
    default_device: str | None = None,
) -> tuple[list[MeasurementPoint], int]:
    """
    Parse a batch, skipping bad records.

    Returns:
        (points in source order, number of rejected records)
    """
    allowed = frozenset(allowed_metrics)
    points = []
    rejected = 0

    for index, record in enumerate(records):
        try:
            points.append(parse_record(record, allowed, default_device))
        except RecordRejected as e:
            rejected += 1
            logger.debug(f"Kwollect: Rejected record #{index} ({e})")

    return points, rejected


def to_record(point: MeasurementPoint, epoch: bool = False) -> dict:
    """
    Serialize a MeasurementPoint back to the Kwollect record shape.

    Timestamps are normalized: ISO-8601 with explicit offset (a "Z" suffix
    comes back as "+00:00"), or float epoch seconds when `epoch` is set,
    whatever form the record arrived in.
    """
    timestamp = point.timestamp.timestamp() if epoch else point.timestamp.isoformat()
    return {
        "timestamp": timestamp,
        "metric_id": point.metric_id,
        "device_id": point.resource[1],
        "value": point.value,
        "labels": {key: list(values) for key, values in point.labels.items()},
    }
