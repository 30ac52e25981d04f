"""
S3 Data Watcher service.

This module wires the watcher together: bus messages delivered by the
ConnectionManager are converted to event records, matched against the job
table and handed to job processes. A supervision loop keeps the bus
connection alive.
"""

import asyncio
from typing import Any, Optional

from s3_watcher.converter.event_converter import EventConverter
from s3_watcher.consumer.connection_manager import ConnectionManager
from s3_watcher.core.config import Settings
from s3_watcher.core.exceptions import (
    MalformedMessageError,
    ServiceNotReadyError,
    TransportError,
)
from s3_watcher.jobs.dispatcher import Dispatcher
from s3_watcher.jobs.job_table import JobTableLoader
from s3_watcher.jobs.runner import JobRunner
from s3_watcher.utils.decorators import contain_errors
from s3_watcher.utils.logging import get_component_logger


class S3DataWatcherService:
    """Service running jobs for object-store change notifications."""

    def __init__(
            self,
            settings: Settings,
            converter: Optional[EventConverter] = None,
            dispatcher: Optional[Dispatcher] = None,
            connection_manager: Optional[ConnectionManager] = None,
            logger: Optional[Any] = None,
    ) -> None:
        """
        Initialize the watcher service.

        Components not given are built from ``settings``.

        Args:
            settings: Validated application settings
            converter: Converter for bus payloads
            dispatcher: Dispatcher for event records
            connection_manager: Manager for the bus connection
            logger: Logger to use (defaults to one tagged ``S3DataWatcherService``)
        """
        self.settings = settings
        self._logger = logger or get_component_logger("S3DataWatcherService")

        self.converter = converter or EventConverter()
        self.dispatcher = dispatcher or Dispatcher(
            loader=JobTableLoader(settings.JOB_FILE_PATH),
            runner=JobRunner(),
        )
        self.connection_manager = connection_manager or ConnectionManager(
            url=settings.BUS_URL,
            subject=settings.BUS_SUBJECT,
            handler=self.handle_message,
            exchange=settings.BUS_EXCHANGE,
            queue=settings.BUS_QUEUE,
            max_reconnects=settings.BUS_MAX_RECONNECTS,
            reconnect_wait=settings.BUS_RECONNECT_WAIT,
            request_timeout=settings.BUS_REQUEST_TIMEOUT,
            reconnect_interval=settings.RECONNECT_INTERVAL,
        )

        self._stop_event = asyncio.Event()

        self._logger.info(
            "Initialized watcher service",
            subject=settings.BUS_SUBJECT,
            job_file=str(settings.JOB_FILE_PATH),
        )

    @contain_errors("handle_message", default=0)
    def handle_message(self, payload: bytes) -> int:
        """
        Process one bus message.

        Args:
            payload: Raw message body

        Returns:
            Number of job processes started for the message
        """
        try:
            records = self.converter.convert(payload)
        except MalformedMessageError as e:
            self._logger.error("Failed to convert message to S3 event, dropping", operation="handle_message", error=str(e))
            return 0

        return self.dispatcher.dispatch(records)

    async def start(self) -> None:
        """Make the initial, failure-tolerant connection attempt."""
        self._logger.info("Starting watcher service")
        self._stop_event.clear()
        await self.connection_manager.start()

    @contain_errors("check_connection")
    async def check_connection(self) -> None:
        """Run one supervision step, reconnecting if the bus went away."""
        try:
            await self.connection_manager.ensure_connected()
        except ServiceNotReadyError as e:
            self._logger.debug("Reconnect deferred", operation="check_connection", reason=str(e))
        except TransportError as e:
            self._logger.warning("Reconnect failed, will retry again", operation="check_connection", error=str(e))

    async def run(self) -> None:
        """Start the service and supervise the connection until stopped."""
        await self.start()

        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=self.settings.HEALTH_CHECK_INTERVAL
                )
            except asyncio.TimeoutError:
                await self.check_connection()

    def stop(self) -> None:
        """Ask the supervision loop to finish."""
        self._logger.info("Stopping watcher service")
        self._stop_event.set()

    @contain_errors("release")
    async def release(self) -> None:
        """Release the bus connection. Messages are no longer dispatched afterwards."""
        self._logger.info("Releasing watcher service")
        await self.connection_manager.release()
