"""LaMetric Time egress module - shows the latest wattage of each batch"""
import asyncio
import logging
import os

import requests

from sources.base import MeasurementPoint

logger = logging.getLogger(__name__)

ICON_POWER = 26337  # Drawing power
ICON_STALE = 1059   # Lightning bolt with red slash (no data)


def build_frame(watts: float) -> dict:
    """LaMetric frame for a wattage, switching to kW from 10000 W."""
    power = round(watts)
    if abs(power) >= 10000:
        text = f"{power / 1000:.1f} kW"
    else:
        text = f"{power} W"
    return {"frames": [{"text": text, "icon": ICON_POWER, "index": 0}]}


def build_stale_frame() -> dict:
    return {"frames": [{"text": "-- W", "icon": ICON_STALE, "index": 0}]}


class LaMetricSink:
    """
    Point sink pushing the newest sample of a batch to a LaMetric Time.

    The HTTP push is blocking (requests) and runs in a worker thread.
    Push failures are raised so the source keeps its watermark.
    """

    def __init__(self, url: str | None = None, api_key: str | None = None, timeout: float = 2.0):
        self.url = url if url is not None else os.environ.get("LAMETRIC_URL")
        self.api_key = api_key if api_key is not None else os.environ.get("LAMETRIC_API_KEY")
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.url and self.api_key)

    def _post(self, payload: dict) -> None:
        response = requests.post(
            self.url,
            json=payload,
            auth=("dev", self.api_key),
            timeout=self.timeout,
        )
        response.raise_for_status()

    async def push(self, payload: dict) -> None:
        if not self.configured:
            logger.warning("LaMetric: configuration missing. Skipping push.")
            return
        await asyncio.to_thread(self._post, payload)

    async def __call__(self, points: list[MeasurementPoint]) -> None:
        if not points:
            return
        latest = max(points, key=lambda p: p.timestamp)
        await self.push(build_frame(latest.value))

    async def push_stale(self) -> None:
        """Show "-- W" when polls keep failing."""
        try:
            await self.push(build_stale_frame())
        except requests.RequestException as e:
            logger.warning(f"LaMetric: Failed stale push: {e}")
