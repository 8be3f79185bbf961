"""Structured diagnostics logging for reqlog.

reqlog emits two very different streams:

- The request log itself: one JSON document per request, written to a
  LineSink by the middleware (see ``reqlog.sink``).
- Diagnostics about reqlog's own behaviour (degraded serialization,
  last-resort output, failures while forcing an error response). Those go
  through the ``reqlog`` logger configured here and never into the sink.

This module builds on the standard logging module with:
- Keyword arguments as structured data (``logger.warning("msg", key=val)``)
- ``LogContext`` for request-scoped values, backed by contextvars so each
  asyncio task sees its own context
- Human-readable and JSON formatters

Example:
    logger = get_logger(__name__)

    with LogContext(uri="/login", method="POST"):
        logger.warning("Dropped details", error="circular reference")
        # ... | uri=/login method=POST error="circular reference"

    # NDJSON for log aggregation
    configure_logging(json_format=True, force=True)
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import threading
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, cast

ROOT_LOGGER_NAME = "reqlog"

_log_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "reqlog_log_context", default={}
)


# =============================================================================
# Logger
# =============================================================================


class StructuredLogger(logging.Logger):
    """Logger that turns keyword arguments into structured data.

    The standard level methods (``info``, ``warning``, ...) forward their
    keyword arguments to ``_log``; everything that isn't a standard logging
    keyword ends up in ``record.structured_data`` merged over the active
    LogContext.

    Usage:
        logger = get_logger("reqlog.middleware")
        logger.error("Sink write failed", sink="stdout")
    """

    def _log(
        self,
        level: int,
        msg: object,
        args: Any,
        exc_info: Any = None,
        extra: Mapping[str, object] | None = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        **kwargs: Any,
    ) -> None:
        structured_data = {**_log_context.get(), **kwargs}
        merged_extra = dict(extra) if extra else {}
        merged_extra["structured_data"] = structured_data

        super()._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=merged_extra,
            stack_info=stack_info,
            stacklevel=stacklevel + 1,
        )


# =============================================================================
# Formatters
# =============================================================================


class TextFormatter(logging.Formatter):
    """Human-readable formatter.

    Format: timestamp - name - level - message | key=value key=value
    """

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        include_structured: bool = True,
    ) -> None:
        if fmt is None:
            fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        super().__init__(fmt, datefmt)
        self.include_structured = include_structured

    def format(self, record: logging.LogRecord) -> str:
        """Format with the base pattern, then append ``key=value`` pairs."""
        base = super().format(record)
        if not self.include_structured:
            return base

        structured = getattr(record, "structured_data", {})
        if not structured:
            return base

        pairs = " ".join(f"{k}={_format_value(v)}" for k, v in structured.items())
        return f"{base} | {pairs}"


class JSONFormatter(logging.Formatter):
    """Single-line JSON formatter (NDJSON).

    Emits timestamp, level, logger and message, then every structured key
    at top level, then ``exception`` when exc_info is set. Values that
    json can't encode are rendered with ``str()``.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Render ``record`` as one JSON object on a single line."""
        log_dict: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_dict.update(getattr(record, "structured_data", {}))

        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_dict, default=str)


def _format_value(value: Any) -> str:
    """Render one structured value for TextFormatter.

    None becomes ``null``, strings with spaces are quoted, dicts and lists
    are JSON-encoded, everything else goes through ``str()``.
    """
    if value is None:
        return "null"
    if isinstance(value, str):
        if " " in value:
            return f'"{value}"'
        return value
    if isinstance(value, dict | list):
        return json.dumps(value, default=str)
    return str(value)


# =============================================================================
# Context
# =============================================================================


class LogContext:
    """Bind key-value pairs to every diagnostic logged inside the block.

    Nested contexts merge, inner values win. The previous context is
    restored on exit even when the block raises.

    Usage:
        with LogContext(uri=record.uri, method=record.method):
            await app(scope, receive, send)
    """

    def __init__(self, **kwargs: Any) -> None:
        self._kwargs = kwargs
        self._token: contextvars.Token[dict[str, Any]] | None = None

    def __enter__(self) -> LogContext:
        self._token = _log_context.set({**_log_context.get(), **self._kwargs})
        return self

    def __exit__(self, *args: Any) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None


# =============================================================================
# Configuration
# =============================================================================

_configured = False
_config_lock = threading.Lock()


def configure_logging(
    level: int | str = logging.INFO,
    json_format: bool = False,
    stream: Any = None,
    include_structured: bool = True,
    force: bool = False,
) -> None:
    """Configure the ``reqlog`` diagnostics logger.

    Idempotent: later calls are ignored unless ``force`` is True, in which
    case existing handlers are closed and replaced. Safe to call from
    several threads.

    Args:
        level: Minimum level, as int or name ('DEBUG', 'INFO', ...).
        json_format: Use JSONFormatter instead of TextFormatter.
        stream: Destination stream. Default: sys.stderr.
        include_structured: Append key=value pairs in text mode.
        force: Reconfigure even if already configured.

    Example:
        >>> configure_logging(level="DEBUG", json_format=True, force=True)
    """
    with _config_lock:
        if force:
            _reset_logging_impl()
        _configure_logging_impl(level, json_format, stream, include_structured)


def _configure_logging_impl(
    level: int | str = logging.INFO,
    json_format: bool = False,
    stream: Any = None,
    include_structured: bool = True,
) -> None:
    """Internal implementation of configure_logging (assumes lock is held)."""
    global _configured

    if _configured:
        return

    logging.setLoggerClass(StructuredLogger)

    if stream is None:
        stream = sys.stderr
    handler = logging.StreamHandler(stream)

    formatter: logging.Formatter
    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = TextFormatter(include_structured=include_structured)
    handler.setFormatter(formatter)

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)
    root.addHandler(handler)
    root.propagate = False

    _configured = True


def _reset_logging_impl() -> None:
    """Internal implementation of reset_logging (assumes lock is held)."""
    global _configured

    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    _configured = False


def reset_logging() -> None:
    """Remove reqlog's handlers and mark logging unconfigured (for tests)."""
    with _config_lock:
        _reset_logging_impl()


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger, configuring defaults on first use.

    Args:
        name: Logger name, normally ``__name__`` of a reqlog module.

    Returns:
        StructuredLogger accepting structured keyword arguments.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.warning("Dropped details", uri="/login")
    """
    if not _configured:
        with _config_lock:
            if not _configured:  # pragma: no branch
                _configure_logging_impl()

    logger = logging.getLogger(name)
    if not isinstance(logger, StructuredLogger):
        # Created before setLoggerClass ran (e.g. by a third party).
        # Swap the class so structured kwargs keep working.
        logger.__class__ = StructuredLogger
    return cast(StructuredLogger, logger)
