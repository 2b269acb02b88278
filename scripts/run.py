#!/usr/bin/env python3
"""Service entrypoint: connects to the stock-alert stream and serves the feed.

Usage::

    # Run with default config
    python scripts/run.py

    # Custom config file
    python scripts/run.py --config config/settings.yaml

    # Override log level
    python scripts/run.py --log-level DEBUG
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

import structlog
from aiohttp import web

from src.alerts.api import start_api
from src.alerts.factory import create_alert_stack
from src.core.config import load_settings
from src.core.logging import setup_logging

logger = structlog.get_logger(__name__)


async def run(args: argparse.Namespace) -> int:
    """Start the pipeline and run until interrupted."""
    settings = load_settings(args.config)
    setup_logging(level=args.log_level)

    if not settings.stream.ws_url:
        logger.error("stream_url_not_configured")
        print(
            "No stream URL configured. Set stream.ws_url in config/settings.yaml "
            "or the STOCK_ALERTS_WS_URL environment variable.",
            file=sys.stderr,
        )
        return 1

    logger.info(
        "service_starting",
        url=settings.stream.ws_url,
        topics=settings.stream.topics,
        dedup_window_secs=settings.alerts.dedup_window_secs,
    )

    stack = create_alert_stack(settings)
    await stack.start()

    # ── Notification API ─────────────────────────────────────────
    api_runner: web.AppRunner | None = None
    if settings.api.enabled:
        api_runner = await start_api(
            feed=stack.feed,
            stream=stack.stream,
            host=settings.api.host,
            port=settings.api.port,
            username=settings.api.username or None,
            password=settings.api.password.get_secret_value() or None,
        )
        logger.info(
            "api_started",
            host=settings.api.host,
            port=settings.api.port,
            auth="enabled" if settings.api.username else "disabled",
        )

    # ── Wait for shutdown signal ─────────────────────────────────
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("shutdown_signal_received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows: signal handlers not supported on ProactorEventLoop
            pass

    try:
        await stop_event.wait()
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt")

    # ── Graceful shutdown ────────────────────────────────────────
    logger.info("service_shutting_down")

    if api_runner is not None:
        await api_runner.cleanup()
        logger.info("api_stopped")

    await stack.close()

    logger.info(
        "service_stopped",
        notifications=len(stack.feed),
        unread=stack.feed.unread_count(),
        accepted=stack.classifier.accepted_count,
        duplicates=stack.classifier.duplicate_count,
        sessions=stack.stream.session_count,
    )
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Stock-alert notification service")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to YAML config file (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override log level (DEBUG, INFO, WARNING, ERROR)",
    )
    args = parser.parse_args()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
