"""
Command line entry point - runs the mock API until interrupted.

Usage:
    mock-api --config mock-api.json
    mock-api --config mock-api.json --port 4567 --port 4568 --quiet
    MOCK_API_CONFIG=mock-api.json python -m mock_api
"""
from __future__ import annotations

import argparse
import asyncio
import signal
from typing import List, Optional

from dotenv import load_dotenv

from mock_api.config import MockApiConfig, get_settings, load_mock_api_config
from mock_api.errors import ConfigurationError, LifecycleError
from mock_api.logging import configure_logging, get_logger
from mock_api.server import close, start

logger = get_logger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="mock-api",
        description="Serve recorded production API responses from local fixtures"
    )
    parser.add_argument("--config", help="JSON config file (or set MOCK_API_CONFIG)")
    parser.add_argument("--port", type=int, action="append", dest="ports",
                        help="Port to listen on; repeat for several (replaces config ports)")
    parser.add_argument("--quiet", action="store_true", default=None, help="Suppress informational logging")
    parser.add_argument("--no-save", action="store_false", dest="save_fixtures", default=None,
                        help="Don't persist responses fetched from production")
    parser.add_argument("--latency", type=float, help="Delay every request by this many milliseconds")
    parser.add_argument("--log-level", help="Log level (or set MOCK_API_LOG_LEVEL)")
    return parser.parse_args(argv)


def apply_cli_options(config: MockApiConfig, args: argparse.Namespace) -> MockApiConfig:
    """Command line options take precedence over the config file."""
    updates = {
        key: getattr(args, key)
        for key in ("ports", "quiet", "save_fixtures", "latency")
        if getattr(args, key) is not None
    }
    if updates.get("latency", 0) < 0:
        raise ConfigurationError("--latency must not be negative")
    return config.model_copy(update=updates)


async def serve(config: MockApiConfig) -> None:
    """Start listening and block until SIGINT or SIGTERM, then close every listener."""
    mock_api = await start(config)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    try:
        await stop.wait()
    finally:
        await close(mock_api.registry)


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = parse_args(argv)
    settings = get_settings()
    configure_logging(args.log_level or settings.mock_api_log_level)

    config_path = args.config or settings.mock_api_config
    if not config_path:
        logger.error("No config file given; use --config or set MOCK_API_CONFIG")
        return 1

    try:
        config = apply_cli_options(load_mock_api_config(config_path), args)
        asyncio.run(serve(config))
    except (ConfigurationError, LifecycleError) as e:
        logger.error(f"{e}")
        return 1
    return 0
