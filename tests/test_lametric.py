from datetime import datetime, timedelta, timezone

import pytest
import requests

from sinks.lametric import LaMetricSink, build_frame
from sources.base import MeasurementPoint

T0 = datetime(2024, 6, 20, 14, 15, 20, tzinfo=timezone.utc)


def make_point(seconds, watts):
    return MeasurementPoint(
        timestamp=T0 + timedelta(seconds=seconds),
        metric_id="wattmetre_power_watt",
        value=watts,
        resource=("device_id", "taurus-7"),
    )


def test_build_frame_rounds_watts():
    assert build_frame(180.7) == {"frames": [{"text": "181 W", "icon": 26337, "index": 0}]}


def test_build_frame_kilowatts():
    assert build_frame(10500)["frames"][0]["text"] == "10.5 kW"


@pytest.mark.asyncio
async def test_sink_pushes_latest_sample(mocker):
    """Test that only the newest point of a batch reaches the display"""
    sink = LaMetricSink(url="http://lametric.local/api", api_key="key")
    mock_push = mocker.patch.object(sink, "push")

    await sink([make_point(5, 131.7), make_point(9, 140.2), make_point(1, 129.69)])

    mock_push.assert_called_once_with(build_frame(140.2))


@pytest.mark.asyncio
async def test_sink_ignores_empty_batch(mocker):
    sink = LaMetricSink(url="http://lametric.local/api", api_key="key")
    mock_push = mocker.patch.object(sink, "push")

    await sink([])

    mock_push.assert_not_called()


@pytest.mark.asyncio
async def test_push_posts_with_basic_auth(mocker):
    mock_post = mocker.patch('sinks.lametric.requests.post')
    sink = LaMetricSink(url="http://lametric.local/api", api_key="key")

    await sink([make_point(1, 129.69)])

    mock_post.assert_called_once_with(
        "http://lametric.local/api",
        json=build_frame(129.69),
        auth=("dev", "key"),
        timeout=2.0,
    )


@pytest.mark.asyncio
async def test_push_failure_propagates(mocker):
    """Test a failed push is raised so the batch is not acknowledged"""
    mocker.patch('sinks.lametric.requests.post', side_effect=requests.ConnectionError("down"))
    sink = LaMetricSink(url="http://lametric.local/api", api_key="key")

    with pytest.raises(requests.ConnectionError):
        await sink([make_point(1, 129.69)])


@pytest.mark.asyncio
async def test_push_skipped_without_configuration(mocker, monkeypatch):
    monkeypatch.delenv("LAMETRIC_URL", raising=False)
    monkeypatch.delenv("LAMETRIC_API_KEY", raising=False)
    mock_post = mocker.patch('sinks.lametric.requests.post')

    sink = LaMetricSink()
    await sink([make_point(1, 129.69)])

    assert not sink.configured
    mock_post.assert_not_called()


@pytest.mark.asyncio
async def test_push_stale_swallows_errors(mocker):
    mock_post = mocker.patch(
        'sinks.lametric.requests.post', side_effect=requests.ConnectionError("down")
    )
    sink = LaMetricSink(url="http://lametric.local/api", api_key="key")

    await sink.push_stale()

    assert mock_post.call_args[1]["json"]["frames"][0]["text"] == "-- W"
