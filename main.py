#!/usr/bin/env python3
"""
SessionBridge - HTTP bridge for asynchronous browser automation sessions.

Main entry point for the application.
"""

import argparse
import asyncio
import logging
import sys

from dotenv import load_dotenv
from pydantic import ValidationError as SettingsValidationError

from sessionbridge.core.config.settings import BridgeSettings, get_settings
from sessionbridge.core.exceptions import ConfigurationError
from sessionbridge.core.logger import setup_structured_logging


async def run_server(settings: BridgeSettings, host: str, port: int) -> None:
    """
    Serve the API until uvicorn receives SIGINT/SIGTERM.

    Uvicorn runs the application lifespan, so timers are stopped and every
    session is released before this coroutine returns.
    """
    import uvicorn

    from web.app import create_app

    app = create_app(settings=settings)
    config_uvicorn = uvicorn.Config(
        app, host=host, port=port, log_level=settings.log_level.lower(), log_config=None
    )
    server = uvicorn.Server(config_uvicorn)
    await server.serve()


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="SessionBridge - automation session bridge for polling clients"
    )
    parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    parser.add_argument("--port", type=int, default=8000, help="Bind port")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (overrides LOG_LEVEL)",
    )

    args = parser.parse_args()

    # Make .env visible to driver factories that read their own variables
    load_dotenv()

    try:
        settings = get_settings()
    except SettingsValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    level = args.log_level or settings.log_level
    setup_structured_logging(
        level,
        json_format=settings.log_json,
        logs_dir=settings.log_dir or None,
        diagnose=settings.is_development(),
    )
    logger = logging.getLogger(__name__)

    try:
        asyncio.run(run_server(settings, args.host, args.port))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e.message}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
