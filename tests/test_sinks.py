import io
import json
import logging
from datetime import datetime, timezone

import pytest

from sinks.jsonl import JsonLinesSink
from sinks.log import log_points
from sources.base import MeasurementPoint

POINT = MeasurementPoint(
    timestamp=datetime(2024, 6, 20, 14, 15, 21, tzinfo=timezone.utc),
    metric_id="wattmetre_power_watt",
    value=129.69,
    resource=("device_id", "taurus-7"),
    consumer=("device_origin", "wattmetre1-port6"),
    labels={"_device_orig": ["wattmetre1-port6"]},
)


@pytest.mark.asyncio
async def test_jsonl_sink_writes_kwollect_records():
    stream = io.StringIO()

    await JsonLinesSink(stream)([POINT, POINT])

    lines = stream.getvalue().splitlines()
    assert len(lines) == 2
    assert json.loads(lines[0]) == {
        "timestamp": "2024-06-20T14:15:21+00:00",
        "metric_id": "wattmetre_power_watt",
        "device_id": "taurus-7",
        "value": 129.69,
        "labels": {"_device_orig": ["wattmetre1-port6"]},
    }


@pytest.mark.asyncio
async def test_log_sink_logs_each_point(caplog):
    with caplog.at_level(logging.INFO, logger="sinks.log"):
        await log_points([POINT])

    assert "taurus-7/wattmetre1-port6" in caplog.text
    assert "wattmetre_power_watt=129.69" in caplog.text
