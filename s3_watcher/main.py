"""
Main module for the S3 Data Watcher Service.

This module serves as the entry point for the watcher service, which subscribes
to bucket notifications on the message bus and runs the external jobs whose
filters match each event.
"""

import asyncio
import signal
import sys

import structlog
from pydantic import ValidationError

from s3_watcher import __version__
from s3_watcher.core.config import Settings, ensure_data_root
from s3_watcher.service import S3DataWatcherService
from s3_watcher.utils.logging import configure_logging

logger = structlog.get_logger(__name__)


async def run_service(settings: Settings) -> None:
    """
    Run the watcher service until SIGINT or SIGTERM.

    Args:
        settings: Validated application settings
    """
    service = S3DataWatcherService(settings)

    # Set up signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()
    for signal_name in ("SIGINT", "SIGTERM"):
        try:
            loop.add_signal_handler(getattr(signal, signal_name), service.stop)
        except (NotImplementedError, AttributeError):
            # Signal handling is not available on Windows
            pass

    try:
        await service.run()
    except asyncio.CancelledError:
        logger.info("Service cancelled")
    finally:
        await service.release()


def main() -> None:
    """Entry point for the service."""
    try:
        settings = Settings()
    except ValidationError as e:
        # logging is not configured yet; fall back to defaults for this message
        configure_logging(Settings.model_construct())
        logger.error("Invalid configuration", error=str(e))
        sys.exit(1)

    configure_logging(settings)
    logger.info("s3-data-watcher starting", version=__version__)

    try:
        ensure_data_root(settings.DATA_ROOT_PATH)
    except (OSError, ValueError) as e:
        logger.error("Invalid configuration", error=str(e))
        sys.exit(1)

    try:
        asyncio.run(run_service(settings))
    except KeyboardInterrupt:
        logger.info("Service interrupted")


if __name__ == "__main__":
    main()
