#!/usr/bin/env python3
"""
Stream Probe Script
===================

Standalone script to exercise a live streaming connection.

This script:
    1. Starts a sample or filter stream with the configured credentials
    2. Runs for a configurable duration
    3. Logs consumer stats every report interval
    4. Reports a final summary

Prerequisites:
    - Credentials in chirpstream.yaml or CHIRPSTREAM_BEARER_TOKEN
    - Install the package: pip install -e .

Usage:
    python scripts/stream_probe.py --duration 120
    python scripts/stream_probe.py --track python --track asyncio
    python scripts/stream_probe.py --language en --config ./chirpstream.yaml
"""

import argparse
import logging
import sys
import time

from chirpstream import (
    ConnectionLifecycleListener,
    FilterQuery,
    StatusAdapter,
    StreamClient,
)
from chirpstream.config import load_config, setup_logging


logger = logging.getLogger("stream_probe")


class ProbeListener(StatusAdapter):
    """Counts what arrives; logs stall warnings and failures."""

    def __init__(self) -> None:
        self.statuses = 0
        self.deletions = 0
        self.limited = 0
        self.raw_messages = 0
        self.failures = 0

    def on_message(self, raw_json):
        self.raw_messages += 1

    def on_status(self, status):
        self.statuses += 1

    def on_deletion_notice(self, notice):
        self.deletions += 1

    def on_track_limitation_notice(self, notice):
        self.limited = notice.number_of_limited_statuses

    def on_stall_warning(self, warning):
        logger.warning(f"Stall warning {warning.code}: {warning.percent_full}% full")

    def on_exception(self, error):
        self.failures += 1
        logger.warning(f"Stream failure: {error}")


class ProbeLifecycle(ConnectionLifecycleListener):
    def on_connect(self):
        logger.info("Connected")

    def on_disconnect(self):
        logger.info("Disconnected")

    def on_clean_up(self):
        logger.info("Cleaned up")


def run_probe(
    config_path,
    track,
    language,
    duration: int,
    report_interval: int,
) -> dict:
    """
    Run the probe.

    Args:
        config_path: YAML config file (None = search defaults)
        track: Keywords for the filter stream (empty = sample stream)
        language: Language restriction
        duration: Probe duration in seconds
        report_interval: Seconds between progress reports

    Returns:
        Final metrics dict
    """
    settings = load_config(config_path)
    setup_logging(settings)

    listener = ProbeListener()
    client = StreamClient(settings)
    client.add_listener(listener)
    client.add_connection_lifecycle_listener(ProbeLifecycle())

    logger.info("=" * 60)
    logger.info("Stream Probe")
    logger.info("=" * 60)
    logger.info(f"Base URL: {settings.stream.base_url}")
    logger.info(f"Mode: {'filter ' + ','.join(track) if track else 'sample'}")
    logger.info(f"Duration: {duration} seconds")
    logger.info("=" * 60)

    if track:
        client.filter(FilterQuery(track=track, language=[language] if language else []))
    else:
        client.sample(language)
    consumer = client.current_session

    start_time = time.time()
    last_report_time = start_time
    last_status_count = 0

    try:
        while time.time() - start_time < duration:
            time_since_report = time.time() - last_report_time
            if time_since_report >= report_interval:
                metrics = consumer.metrics
                rate = (listener.statuses - last_status_count) / time_since_report

                logger.info("-" * 40)
                logger.info(f"Progress Report (elapsed: {time.time() - start_time:.0f}s)")
                logger.info(f"  State: {consumer.state.value}")
                logger.info(f"  Frames received: {metrics.frames_received}")
                logger.info(f"  Statuses/s: {rate:.1f}")
                logger.info(f"  Keep-alives: {metrics.keep_alives}")
                logger.info(f"  Reconnects: {metrics.reconnect_count}")
                logger.info(f"  Last wait: {metrics.last_wait_ms} ms")

                last_report_time = time.time()
                last_status_count = listener.statuses

            time.sleep(0.5)

    except KeyboardInterrupt:
        logger.info("Probe interrupted by user")
    finally:
        client.shutdown()
        consumer.join(timeout=5.0)

    total_time = time.time() - start_time
    metrics = consumer.metrics

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Total runtime: {total_time:.1f} seconds")
    logger.info(f"Frames received: {metrics.frames_received}")
    logger.info(f"Statuses: {listener.statuses}")
    logger.info(f"Deletion notices: {listener.deletions}")
    logger.info(f"Limited statuses: {listener.limited}")
    logger.info(f"Failures: {listener.failures}")
    logger.info(f"Reconnections: {metrics.reconnect_count}")
    logger.info("=" * 60)

    return {
        "duration": total_time,
        "frames_received": metrics.frames_received,
        "statuses": listener.statuses,
        "failures": listener.failures,
        "reconnections": metrics.reconnect_count,
    }


def main():
    parser = argparse.ArgumentParser(
        description="Probe a streaming endpoint and report consumer stats"
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to chirpstream.yaml",
    )
    parser.add_argument(
        "--track",
        action="append",
        default=[],
        help="Keyword to filter on (repeatable); sample stream when omitted",
    )
    parser.add_argument(
        "--language",
        type=str,
        default=None,
        help="Language restriction (e.g. en)",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=120,
        help="Probe duration in seconds (default: 120)",
    )
    parser.add_argument(
        "--report-interval",
        type=int,
        default=10,
        help="Seconds between progress reports (default: 10)",
    )

    args = parser.parse_args()

    result = run_probe(
        config_path=args.config,
        track=args.track,
        language=args.language,
        duration=args.duration,
        report_interval=args.report_interval,
    )

    sys.exit(0 if result["frames_received"] > 0 else 1)


if __name__ == "__main__":
    main()
