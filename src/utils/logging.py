"""Shared logging utilities for structured logging across the application.

This module provides a centralized logging configuration using structlog for
structured logs. JSON output is the default; the CLI switches to the console
renderer for readable terminal output.
"""

import logging
import os
import sys

import structlog

_configured = False


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Configure structlog and the standard library root logger.

    Args:
        level: Log level name. Defaults to LOG_LEVEL or INFO.
        fmt: "json" or "console". Defaults to LOG_FORMAT or json.
    """
    global _configured

    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    renderer_name = (fmt or os.getenv("LOG_FORMAT", "json")).lower()

    renderer = (
        structlog.dev.ConsoleRenderer()
        if renderer_name == "console"
        else structlog.processors.JSONRenderer()
    )

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
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name, logging.INFO),
        force=True,
    )
    _configured = True


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a configured structured logger instance.

    Args:
        name: Logger name (typically __name__ from the calling module).

    Returns:
        Configured structlog logger instance ready for use.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("job_submitted", content_id="dQw4w9WgXcQ")
        >>> logger.exception("job_failed", content_id="dQw4w9WgXcQ")
    """
    if not _configured:
        configure_logging()

    return structlog.get_logger(name)
