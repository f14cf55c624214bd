import argparse
import asyncio
import logging
import sys

from dotenv import load_dotenv

# Load configuration from single .env file
load_dotenv("kwollect-bridge.env")

from sources.config import KwollectConfig
from sources.kwollect import KwollectSource
from sinks.jsonl import JsonLinesSink
from sinks.lametric import LaMetricSink
from sinks.log import log_points

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(levelname)s - %(message)s',
    datefmt='%H:%M:%S'
)
logger = logging.getLogger(__name__)

# Consecutive authentication failures before giving up
AUTH_FAILURE_LIMIT = 3

SINKS = ["log", "jsonl", "lametric"]


def get_config() -> KwollectConfig:
    """Load source settings from the environment with hard fail on misconfiguration"""
    try:
        config = KwollectConfig.from_env()
    except ValueError as e:
        logger.error(f"Kwollect: invalid configuration in kwollect-bridge.env: {e}")
        sys.exit(1)

    if not config.login or not config.password:
        logger.error("Kwollect: KWOLLECT_LOGIN / KWOLLECT_PASSWORD not configured in kwollect-bridge.env")
        sys.exit(1)

    return config


def get_sink(sink_name: str):
    """Initialize the selected point sink"""
    if sink_name == "log":
        return log_points
    elif sink_name == "jsonl":
        return JsonLinesSink()
    elif sink_name == "lametric":
        sink = LaMetricSink()
        if not sink.configured:
            logger.error("LaMetric: LAMETRIC_URL / LAMETRIC_API_KEY not configured in kwollect-bridge.env")
            sys.exit(1)
        return sink
    else:
        logger.error(f"Unknown sink: {sink_name}")
        sys.exit(1)


async def run(source: KwollectSource, interval: float, once: bool = False, stale_alert=None) -> int:
    """
    Drive the source: start, poll every `interval` seconds, stop.

    Returns the process exit code.
    """
    await source.start()
    auth_failures = 0
    stale_alert_sent = False

    try:
        while True:
            outcome = await source.poll()

            if outcome.kind == "auth":
                auth_failures += 1
                if auth_failures >= AUTH_FAILURE_LIMIT:
                    logger.error(
                        f"Kwollect: {auth_failures} consecutive authentication failures, "
                        "check KWOLLECT_LOGIN / KWOLLECT_PASSWORD"
                    )
                    return 1
            else:
                auth_failures = 0

            if outcome.ok:
                stale_alert_sent = False
            elif outcome.kind != "skipped" and stale_alert and not stale_alert_sent:
                await stale_alert()
                stale_alert_sent = True

            if once:
                return 0 if outcome.ok else 1

            await asyncio.sleep(interval)
    finally:
        await source.stop()


async def main(sink_name: str, interval: float, once: bool) -> int:
    config = get_config()
    sink = get_sink(sink_name)
    source = KwollectSource(config, sink)

    stale_alert = sink.push_stale if isinstance(sink, LaMetricSink) else None
    return await run(source, interval, once=once, stale_alert=stale_alert)


if __name__ == "__main__":
    # Parse command line arguments
    parser = argparse.ArgumentParser(description="Kwollect Power Bridge")
    parser.add_argument(
        "--sink",
        type=str,
        default="log",
        choices=SINKS,
        help="Where to send measurements (default: log)"
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=60.0,
        help="Seconds between polls (default: 60)"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Poll a single time and exit"
    )
    args = parser.parse_args()

    try:
        sys.exit(asyncio.run(main(args.sink, args.interval, args.once)))
    except KeyboardInterrupt:
        logger.info("Script stopped by user.")
