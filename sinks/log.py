"""Logging egress module - logs every point"""
import logging

from sources.base import MeasurementPoint

logger = logging.getLogger(__name__)


async def log_points(points: list[MeasurementPoint]) -> None:
    for point in points:
        origin = point.consumer[1] if point.consumer else "-"
        logger.info(
            f"[{point.timestamp.isoformat()}] {point.resource[1]}/{origin} "
            f"{point.metric_id}={point.value}"
        )
