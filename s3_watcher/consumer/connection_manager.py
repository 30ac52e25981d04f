"""
Connection manager for the message bus.

This module owns the AMQP connection and the subscription that receives
bucket notifications. Connecting is lazy and rate-limited: a new attempt is
only made once the reconnect interval has passed since the previous one,
and callers that arrive while another attempt is running are turned away
with ServiceNotReadyError instead of waiting.

A robust connection reconnects on its own after a broker outage. With a
positive ``max_reconnects`` the outage is bounded: once it has lasted
longer than ``max_reconnects`` reconnect waits, the connection is closed
and the interval-gated reconnect takes over.
"""

import asyncio
import enum
import inspect
import time
from typing import Any, Callable, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import aio_pika
from aio_pika.abc import (
    AbstractChannel,
    AbstractConnection,
    AbstractIncomingMessage,
    AbstractQueue,
)

from s3_watcher.core.exceptions import ServiceNotReadyError, TransportError
from s3_watcher.utils.decorators import contain_errors
from s3_watcher.utils.logging import get_component_logger

MessageHandler = Callable[[bytes], Any]

# aio-pika waits this long between transparent reconnects unless told otherwise
DEFAULT_RECONNECT_WAIT = 5.0


class ConnectionState(str, enum.Enum):
    """Lifecycle state of the bus connection."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def redact_url(url: str) -> str:
    """Hide the password part of a bus URL for logging."""
    parts = urlsplit(url)
    if parts.password is None:
        return url
    netloc = parts.netloc.replace(f":{parts.password}@", ":***@", 1)
    return urlunsplit(parts._replace(netloc=netloc))


class ConnectionManager:
    """Manages the bus connection, its subscription and reconnects."""

    def __init__(
            self,
            url: str,
            subject: str,
            handler: MessageHandler,
            exchange: str = "",
            queue: str = "",
            max_reconnects: int = -1,
            reconnect_wait: float = -1,
            request_timeout: float = -1,
            reconnect_interval: float = 60.0,
            clock: Callable[[], float] = time.monotonic,
            logger: Optional[Any] = None,
    ) -> None:
        """
        Initialize the connection manager. No network I/O happens here.

        Args:
            url: AMQP URL of the bus
            subject: Routing key to bind, or the queue to consume when no
                exchange is given
            handler: Called with the body of every delivered message
            exchange: Existing exchange the notifications are published to
            queue: Queue to bind; empty for a server-named exclusive queue
            max_reconnects: Transparent reconnect attempts allowed during one
                outage before the connection is given up (-1 unlimited, 0 none)
            reconnect_wait: Seconds between transparent reconnects (-1 default)
            request_timeout: Seconds allowed per bus request (-1 default)
            reconnect_interval: Minimum seconds between connect attempts
            clock: Monotonic time source
            logger: Logger to use (defaults to one tagged ``ConnectionManager``)
        """
        self.url = url
        self.subject = subject
        self.exchange_name = exchange
        self.queue_name = queue
        self.max_reconnects = max_reconnects
        self.reconnect_wait = reconnect_wait
        self.request_timeout = request_timeout
        self.reconnect_interval = reconnect_interval

        self._handler = handler
        self._clock = clock
        self._logger = logger or get_component_logger("ConnectionManager")

        self._lock = asyncio.Lock()
        self._state = ConnectionState.DISCONNECTED
        self._last_attempt: Optional[float] = None
        self._accepting = False
        self._reconnects = 0
        self._down_since: Optional[float] = None

        self._connection: Optional[AbstractConnection] = None
        self._channel: Optional[AbstractChannel] = None
        self._queue: Optional[AbstractQueue] = None
        self._consumer_tag: Optional[str] = None

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Whether the subscription is up and the transport reports itself open."""
        return (
            self._state is ConnectionState.CONNECTED
            and self._connection is not None
            and not self._connection.is_closed
        )

    async def start(self) -> None:
        """
        Make the initial connection attempt.

        Failure is not fatal: the manager stays disconnected and later
        ``ensure_connected`` calls retry.
        """
        try:
            await self.ensure_connected()
        except (ServiceNotReadyError, TransportError) as e:
            self._logger.warning("Initial connection failed, will retry again", operation="start", error=str(e))

    async def ensure_connected(self) -> None:
        """
        Make sure the connection and subscription are up.

        Raises:
            ServiceNotReadyError: If another attempt is running, or the
                reconnect interval has not passed since the last attempt
            TransportError: If connecting or subscribing fails
        """
        if self._lock.locked():
            raise ServiceNotReadyError("ignore reconnect request. another connect or release is in progress")

        async with self._lock:
            if self._state is ConnectionState.CONNECTED:
                if self._connection is not None and not self._connection.is_closed:
                    if not self._outage_exceeded(self._connection):
                        return
                    self._logger.warning(
                        "Exceeded max reconnects, closing connection",
                        operation="ensure_connected",
                        max_reconnects=self.max_reconnects,
                    )
                    await self._close_quietly(self._connection)
                else:
                    self._logger.info("Connection closed by transport", operation="ensure_connected")
                self._clear()

            now = self._clock()
            if self._last_attempt is not None and now - self._last_attempt < self.reconnect_interval:
                raise ServiceNotReadyError(
                    f"ignore reconnect request. will try after {self.reconnect_interval} seconds from last trial"
                )

            await self._connect()

    async def _connect(self) -> None:
        logger = self._logger.bind(operation="connect", url=redact_url(self.url), subject=self.subject)
        logger.info("Connecting to message bus")

        self._last_attempt = self._clock()
        self._state = ConnectionState.CONNECTING
        self._reconnects = 0

        if not self.subject:
            self._clear()
            logger.error("Failed to subscribe an empty subject")
            raise TransportError("failed to subscribe an empty subject")

        try:
            connection = await self._open_connection()
        except Exception as e:
            self._clear()
            logger.error("Failed to connect to message bus", error=str(e))
            raise TransportError(f"failed to connect to {redact_url(self.url)}: {e}") from e
        except BaseException:
            self._clear()
            raise

        self._connection = connection

        try:
            await self._subscribe(connection)
        except Exception as e:
            logger.error("Failed to subscribe, closing connection", error=str(e))
            await self._close_quietly(connection)
            self._clear()
            raise TransportError(f"failed to subscribe to {self.subject}: {e}") from e
        except BaseException:
            logger.warning("Connect interrupted, closing connection")
            await self._close_quietly(connection)
            self._clear()
            raise

        self._state = ConnectionState.CONNECTED
        logger.info("Established a connection to message bus")

    async def _open_connection(self) -> AbstractConnection:
        timeout = self._timeout()

        if self.max_reconnects == 0:
            return await aio_pika.connect(self.url, timeout=timeout)

        connection = await aio_pika.connect_robust(self._robust_url(), timeout=timeout)
        connection.reconnect_callbacks.add(self._on_reconnect)
        return connection

    def _outage_exceeded(self, connection: AbstractConnection) -> bool:
        """
        Whether a robust connection has been down for longer than its
        transparent reconnect attempts may take.
        """
        if self.max_reconnects <= 0:
            return False

        if connection.connected.is_set():
            self._down_since = None
            return False

        now = self._clock()
        if self._down_since is None:
            self._down_since = now
            self._logger.info("Connection lost, reconnecting transparently", operation="ensure_connected")
            return False

        return now - self._down_since >= self.max_reconnects * self._reconnect_wait()

    async def _subscribe(self, connection: AbstractConnection) -> None:
        timeout = self._timeout()

        channel = await connection.channel()
        self._channel = channel

        if self.exchange_name:
            exchange = await channel.get_exchange(self.exchange_name)
            if self.queue_name:
                queue = await channel.declare_queue(self.queue_name, durable=True, timeout=timeout)
            else:
                queue = await channel.declare_queue(exclusive=True, auto_delete=True, timeout=timeout)
            await queue.bind(exchange, routing_key=self.subject, timeout=timeout)
        else:
            queue = await channel.declare_queue(self.subject, durable=True, timeout=timeout)

        self._queue = queue
        self._accepting = True
        # no_ack: a delivered message is processed at most once; basic.qos does
        # not apply to such consumers
        self._consumer_tag = await queue.consume(self._on_message, no_ack=True, timeout=timeout)

    async def release(self) -> None:
        """
        Cancel the subscription and close the connection.

        Safe to call more than once, and when never connected.
        """
        logger = self._logger.bind(operation="release", url=redact_url(self.url))

        async with self._lock:
            self._accepting = False

            if self._connection is None:
                self._clear()
                return

            logger.info("Disconnecting from message bus")

            if self._queue is not None and self._consumer_tag is not None:
                try:
                    await self._queue.cancel(self._consumer_tag)
                except Exception as e:
                    logger.warning("Failed to cancel subscription", error=str(e))

            await self._close_quietly(self._connection)
            self._clear()

    @contain_errors("on_message")
    async def _on_message(self, message: AbstractIncomingMessage) -> None:
        if not self._accepting:
            return

        result = self._handler(message.body)
        if inspect.isawaitable(result):
            await result

    def _on_reconnect(self, sender: Any, *args: Any) -> None:
        self._reconnects += 1
        self._down_since = None
        self._logger.info("Reconnected to message bus", operation="reconnect", reconnects=self._reconnects)

    async def _close_quietly(self, connection: AbstractConnection) -> None:
        if connection.is_closed:
            return
        try:
            await connection.close()
        except Exception as e:
            self._logger.warning("Error closing connection", operation="close", error=str(e))

    def _clear(self) -> None:
        self._accepting = False
        self._connection = None
        self._channel = None
        self._queue = None
        self._consumer_tag = None
        self._down_since = None
        self._state = ConnectionState.DISCONNECTED

    def _timeout(self) -> Optional[float]:
        if self.request_timeout < 0:
            return None
        return self.request_timeout

    def _robust_url(self) -> str:
        """Add the transparent reconnect wait to the URL query."""
        if self.reconnect_wait < 0:
            return self.url

        parts = urlsplit(self.url)
        query = dict(parse_qsl(parts.query))
        query["reconnect_interval"] = str(self.reconnect_wait)
        return urlunsplit(parts._replace(query=urlencode(query)))

    def _reconnect_wait(self) -> float:
        if self.reconnect_wait < 0:
            return DEFAULT_RECONNECT_WAIT
        return self.reconnect_wait
