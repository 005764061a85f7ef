"""Logging configuration with correlation ID and structured context support."""

import logging
import sys
from typing import Any

from faultline.core.context import correlation_id_var


class CorrelationIdFilter(logging.Filter):
    """Logging filter that adds correlation ID to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add correlation_id to the log record."""
        record.correlation_id = correlation_id_var.get("")
        return True


def setup_logging(log_level: str = "INFO") -> None:
    """Configure application logging with correlation ID support.

    Args:
        log_level: The logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(correlation_id)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(CorrelationIdFilter())
    root_logger.addHandler(console_handler)

    # Set third-party loggers to WARNING to reduce noise
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name.

    Args:
        name: The logger name (typically __name__).

    Returns:
        A configured logger instance.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, CorrelationIdFilter) for f in logger.filters):
        logger.addFilter(CorrelationIdFilter())
    return logger


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    **context: Any,
) -> None:
    """Log a message with structured context fields.

    Fields are appended to the message as ``key=value`` pairs and attached
    to the record as ``record.context`` for handlers that want them raw.

    Args:
        logger: The logger to use.
        level: The logging level.
        message: The log message.
        **context: Additional context to include in the log.
    """
    if not logger.isEnabledFor(level):
        return
    if context:
        context_str = " | ".join(f"{k}={v}" for k, v in context.items())
        message = f"{message} | {context_str}"
    # Percent signs in field values must not be treated as format directives
    logger.log(level, "%s", message, extra={"context": context})
