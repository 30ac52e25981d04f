"""
Decorators for fault containment at public entry points.

The watcher runs unattended: a failure while handling one message or one
supervision step must be logged and absorbed, never unwind into the bus
client's delivery loop.
"""

import functools
import inspect
from typing import Any, Callable, Optional, TypeVar, cast

import structlog

F = TypeVar('F', bound=Callable[..., Any])

_fallback_logger = structlog.get_logger("s3_watcher")


def _logger_for(instance: Any) -> Any:
    return getattr(instance, "_logger", None) or _fallback_logger


def contain_errors(operation: str, default: Optional[Any] = None) -> Callable[[F], F]:
    """
    Log and absorb unexpected exceptions raised by a method.

    Works for both plain and ``async`` methods. The owning instance's
    ``_logger`` is used when present. ``asyncio.CancelledError`` and other
    ``BaseException`` subclasses are not caught.

    Args:
        operation: Operation name recorded with the log entry
        default: Value returned when an exception was absorbed

    Returns:
        Decorated method with fault containment
    """

    def decorator(func: F) -> F:
        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
                try:
                    return await func(self, *args, **kwargs)
                except Exception as e:
                    _logger_for(self).error(
                        "Unexpected error", operation=operation, error=str(e), exc_info=True
                    )
                    return default

            return cast(F, async_wrapper)

        @functools.wraps(func)
        def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            try:
                return func(self, *args, **kwargs)
            except Exception as e:
                _logger_for(self).error(
                    "Unexpected error", operation=operation, error=str(e), exc_info=True
                )
                return default

        return cast(F, wrapper)

    return decorator
