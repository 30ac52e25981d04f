"""
Logging configuration for the S3 Data Watcher Service.

This module provides utilities for configuring logging with structlog and
for building the component-tagged loggers injected into each part of the
watcher.
"""

import logging
import sys
import time
from typing import Any, Dict

import structlog
from structlog.stdlib import LoggerFactory
from structlog.types import Processor

from s3_watcher.core.config import Environment, Settings


def configure_logging(settings: Settings) -> None:
    """
    Configure structured logging for the application.

    This function sets up structlog with appropriate processors
    for the current environment.

    Args:
        settings: Application settings providing level and environment
    """
    # Set up standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=settings.log_level,
    )

    def timestamper(logger: Any, name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        """Add ISO-8601 formatted timestamp to the event dict."""
        event_dict["timestamp"] = time.strftime(
            "%Y-%m-%dT%H:%M:%S", time.gmtime()
        )
        return event_dict

    def add_service_info(logger: Any, name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        """Add service information to the event dict."""
        event_dict["service"] = settings.PROJECT_NAME
        event_dict["version"] = settings.VERSION
        return event_dict

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        timestamper,
        add_service_info,
    ]

    if settings.ENVIRONMENT == Environment.DEVELOPMENT:
        # Pretty output for development, including rendered tracebacks
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.extend([
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ])

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_component_logger(component: str) -> Any:
    """
    Build a logger tagged with a component name.

    Args:
        component: Name of the component the logger is injected into

    Returns:
        A structlog logger bound with ``component``
    """
    return structlog.get_logger("s3_watcher").bind(component=component)
