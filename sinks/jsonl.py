"""JSON lines egress module - writes points in the Kwollect record shape"""
import json
import sys
from typing import TextIO

from sources.base import MeasurementPoint
from sources.kwollect_parser import to_record


class JsonLinesSink:
    """Writes one JSON object per point to a text stream (stdout by default)."""

    def __init__(self, stream: TextIO | None = None):
        self.stream = stream or sys.stdout

    async def __call__(self, points: list[MeasurementPoint]) -> None:
        for point in points:
            self.stream.write(json.dumps(to_record(point)) + "\n")
        self.stream.flush()
