"""Diagnostics logging for reqlog itself.

Example:
    from reqlog.observability import get_logger, LogContext

    logger = get_logger(__name__)

    with LogContext(uri="/login"):
        logger.warning("Dropped details", error="circular reference")
"""

from reqlog.observability.logging import (
    JSONFormatter,
    LogContext,
    StructuredLogger,
    TextFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)

__all__ = [
    "JSONFormatter",
    "LogContext",
    "StructuredLogger",
    "TextFormatter",
    "configure_logging",
    "get_logger",
    "reset_logging",
]
