"""
Structured Logging with Structlog.

Provides JSON-formatted logs with correlation tokens and context.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from iap_manager.config import settings


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add application-level context to all log entries."""
    event_dict["service"] = settings.service_name
    event_dict["version"] = settings.service_version
    return event_dict


def setup_logging() -> None:
    """
    Configure structured logging with structlog.

    Logs are formatted as JSON for machine parsing with the following structure:
    {
        "event": "purchase_succeeded",
        "level": "info",
        "timestamp": "2026-01-08T12:00:00.123456Z",
        "logger": "iap_manager.services.engine",
        "service": "iap-manager",
        "version": "0.1.0",
        "token": "5f0c...",
        ...additional context
    }
    """
    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper()),
    )

    # Processors for structlog
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    # Add exception info
    if settings.log_level.upper() == "DEBUG":
        processors.append(structlog.processors.ExceptionRenderer())
    else:
        processors.append(structlog.processors.format_exc_info)

    # Choose renderer based on format
    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("purchase_submitted", product_id=product_id, token=token)
    """
    return structlog.get_logger(name)  # type: ignore[no-any-return]


# Context manager for adding transaction context
class log_context:
    """
    Context manager for adding structured logging context.

    Usage:
        with log_context(token="5f0c...", product_id="DigitalSodaPop"):
            logger.info("purchase_submitted")
            # All logs within this context will include token and product_id
    """

    def __init__(self, **kwargs: Any) -> None:
        self.context = kwargs
        self.previous: dict[str, Any] = {}

    def __enter__(self) -> None:
        """Enter context - bind context variables."""
        current = structlog.contextvars.get_contextvars()
        self.previous = {k: current[k] for k in self.context if k in current}
        structlog.contextvars.bind_contextvars(**self.context)

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit context - clear context variables, restoring any outer values."""
        structlog.contextvars.unbind_contextvars(*self.context.keys())
        if self.previous:
            structlog.contextvars.bind_contextvars(**self.previous)
