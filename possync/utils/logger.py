"""
Structured logging configuration using structlog.
"""
import logging

import structlog

from possync.config import settings

SERVICE_NAME = "possync"


def configure_logging(level: str | None = None):
    """
    Configure structured logging for the sync service, API and worker alike.
    JSON lines in production, colored console output elsewhere.

    Args:
        level: Overrides settings.log_level (e.g. "DEBUG" from a script).
    """
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]

    if settings.app_environment == "production":
        # JSON needs tracebacks rendered into a field
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    level_no = logging.getLevelName((level or settings.log_level).upper())
    if not isinstance(level_no, int):
        level_no = logging.INFO
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_no),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
    structlog.contextvars.bind_contextvars(
        service=SERVICE_NAME,
        environment=settings.app_environment,
    )
