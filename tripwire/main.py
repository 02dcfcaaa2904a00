"""Main entry point for Tripwire."""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any

import structlog

from tripwire import __version__
from tripwire.config.features import FeatureFlags
from tripwire.config.settings import Settings
from tripwire.context import AppContext, build_context
from tripwire.exceptions import ConfigurationError
from tripwire.utils.constants import APP_DESCRIPTION, APP_NAME


def setup_logging(debug: bool = False) -> None:
    """Configure structured logging."""
    level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(message)s",
        stream=sys.stdout,
    )

    # Third-party chatter only shows up with --debug.
    noisy_loggers = (
        "httpx",
        "httpcore",
        "telegram",
        "apscheduler",
        "aiosqlite",
        "uvicorn.access",
    )
    noisy_level = logging.DEBUG if debug else logging.WARNING
    for logger_name in noisy_loggers:
        logging.getLogger(logger_name).setLevel(noisy_level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            (
                structlog.processors.JSONRenderer()
                if not debug
                else structlog.dev.ConsoleRenderer()
            ),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description=f"{APP_NAME}: {APP_DESCRIPTION}",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version", action="version", version=f"{APP_NAME} {__version__}"
    )

    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    parser.add_argument("--config-file", type=Path, help="Path to configuration file")

    return parser.parse_args()


async def create_application(config: Settings) -> AppContext:
    """Create and configure the application components."""
    logger = structlog.get_logger()
    logger.info("Creating application components")

    context = await build_context(config)

    logger.info("Application components created successfully")
    return context


async def run_application(context: AppContext) -> None:
    """Run the application with graceful shutdown handling."""
    logger = structlog.get_logger()
    config = context.settings
    features = context.features

    shutdown_event = asyncio.Event()

    def signal_handler(signum: int, frame: Any) -> None:
        logger.info("Shutdown signal received", signal=signum)
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        logger.info("Starting Tripwire")
        await context.start()

        tasks = []

        if features.api_server_enabled:
            from tripwire.api.server import run_api_server

            api_task = asyncio.create_task(
                run_api_server(context.event_bus, context.directory, config),
                name="api_server",
            )
            tasks.append(api_task)
            logger.info(
                "API server enabled",
                host=config.api_server_host,
                port=config.api_server_port,
            )

        shutdown_task = asyncio.create_task(shutdown_event.wait(), name="shutdown")
        tasks.append(shutdown_task)

        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)

        for task in done:
            if task.cancelled():
                continue
            exc = task.exception()
            if exc is not None:
                logger.error(
                    "Task failed",
                    task=task.get_name(),
                    error=str(exc),
                    error_type=type(exc).__name__,
                )

        for task in pending:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    except Exception as e:
        logger.error("Application error", error=str(e))
        raise
    finally:
        logger.info("Shutting down application")
        try:
            await context.stop()
        except Exception as e:
            logger.error("Error during shutdown", error=str(e))
        logger.info("Application shutdown complete")


async def main() -> None:
    """Main application entry point."""
    args = parse_args()
    setup_logging(debug=args.debug)

    logger = structlog.get_logger()
    logger.info("Starting Tripwire", version=__version__)

    try:
        from tripwire.config import load_config

        config = load_config(config_file=args.config_file)
        if not args.debug and config.log_level != "INFO":
            logging.getLogger().setLevel(config.log_level)
        features = FeatureFlags(config)

        logger.info(
            "Configuration loaded",
            environment="production" if config.is_production else "development",
            enabled_features=features.get_enabled_features(),
            debug=config.debug,
        )

        context = await create_application(config)
        await run_application(context)

    except ConfigurationError as e:
        logger.error("Configuration error", error=str(e))
        sys.exit(1)
    except Exception as e:
        logger.exception("Unexpected error", error=str(e))
        sys.exit(1)


def run() -> None:
    """Synchronous entry point for setuptools."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nShutdown requested by user")
        sys.exit(0)


if __name__ == "__main__":
    run()
