#!/usr/bin/env python3
"""Relay entrypoint — loads config, starts the HTTP server, runs until stopped.

Usage::

    # Run with default config
    python scripts/run.py

    # Custom config file
    python scripts/run.py --config config/settings.yaml

    # Override log level and listen port
    python scripts/run.py --log-level DEBUG --port 5002
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

import structlog

from alert_relay.core.config import load_settings
from alert_relay.core.logging import setup_logging
from alert_relay.notify.factory import create_notification_service
from alert_relay.notify.web import start_web_server

logger = structlog.get_logger(__name__)


async def run(args: argparse.Namespace) -> int:
    """Start the relay and serve until interrupted."""
    settings = load_settings(args.config)
    setup_logging(level=args.log_level)

    service = create_notification_service(settings)
    config = service.get_config()
    logger.info(
        "relay_starting",
        notifications_enabled=config.enabled,
        channels=[kind.value for kind in config.enabled_kinds()],
        config_path=str(settings.notifications_path),
    )

    host = args.host or settings.server.host
    port = args.port or settings.server.port
    try:
        runner = await start_web_server(service, host=host, port=port)
    except OSError as exc:
        logger.error("server_start_failed", host=host, port=port, error=str(exc))
        await service.close()
        return 1

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

    # Runner cleanup closes the service through the app's on_cleanup hook.
    logger.info("relay_shutting_down")
    await runner.cleanup()
    logger.info("relay_stopped")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Run the multi-channel alert notification relay.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    parser.add_argument("--host", default=None, help="Listen address override")
    parser.add_argument("--port", type=int, default=None, help="Listen port override")
    args = parser.parse_args()

    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
