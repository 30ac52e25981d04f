"""
Exception types for the S3 Data Watcher Service.

Every failure the watcher reports belongs to one of a small set of
categories, each handled differently by the caller.
"""


class WatcherError(Exception):
    """Base class for all errors raised by the watcher service."""


class ServiceNotReadyError(WatcherError):
    """
    Raised when a reconnect is requested before it is allowed.

    Either the reconnect interval has not elapsed since the last attempt,
    or another caller is currently connecting or releasing. The caller
    should simply try again later.
    """


class TransportError(WatcherError):
    """Raised when connecting or subscribing to the message bus fails."""


class MalformedError(WatcherError):
    """Base class for content that cannot be parsed."""


class MalformedMessageError(MalformedError):
    """Raised when a bus message is not a valid event notification."""


class JobTableError(MalformedError):
    """Raised when the job table cannot be read or is invalid."""


class SpawnError(WatcherError):
    """Raised when a job process cannot be started or written to."""
