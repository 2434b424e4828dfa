"""
Structured logging configuration using structlog.

Provides JSON-formatted logs for production (searchable/aggregatable)
and human-readable colored output for development.

Usage:
    from snoozeplus.core.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("message sent", message_id="3f1c...", conversation_id=123)

Output in production (JSON):
    {"event": "message sent", "message_id": "3f1c...", "conversation_id": 123,
     "timestamp": "2024-01-01T12:00:00Z", "level": "info"}

Output in development (colored):
    2024-01-01 12:00:00 [info     ] message sent    message_id=3f1c... conversation_id=123
"""

import logging
import sys
from typing import Any

import structlog

from snoozeplus.core.config import settings

IS_PRODUCTION = settings.is_production
IS_TEST = "pytest" in sys.modules


def configure_logging() -> None:
    """Configure structlog with appropriate processors for the environment."""

    # Shared processors for all environments
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if IS_PRODUCTION:
        # Production: JSON output for log aggregation
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        # Development: colored, human-readable output
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=not IS_TEST),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG if not IS_PRODUCTION else logging.INFO),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Route standard logging (uvicorn, sqlalchemy, apscheduler) to stdout
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=logging.INFO,
    )

    # Reduce noise from chatty libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    # APScheduler logs every job addition and execution at INFO
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        A structlog bound logger with JSON/console output based on environment
    """
    return structlog.get_logger(name)


# Configure on import
configure_logging()
