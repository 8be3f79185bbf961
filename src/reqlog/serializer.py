"""JSON encoding of request logs with a degraded retry.

Handlers control what goes into ``details`` and can't be trusted to keep
it encodable: a self-referencing dict, a set, a NaN or an ORM object is
enough to break ``json.dumps``. Losing the whole line over one bad value
would also lose the status, timing and URI, so encoding falls back in
stages:

1. Encode the full record.
2. Drop ``details`` entirely, note the drop in ``logs`` and retry once.
3. Give up with SerializationError; the caller writes the one-field
   ``{"jlog": ...}`` line from ``last_resort_line`` instead.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from reqlog.errors import SerializationError
from reqlog.observability import get_logger
from reqlog.record import RequestLog

logger = get_logger(__name__)

DEFAULT_INDENT = 4
DETAILS_DROPPED_NOTE = (
    "reqlog: failed to marshal due to problem with something in details object"
)


def _message(error: BaseException) -> str:
    """``str(error)``, or the type name when ``__str__`` itself raises."""
    try:
        return str(error)
    except Exception:
        return type(error).__name__


def describe_error(error: BaseException) -> str:
    """Render ``error`` as ``"Type: message"``.

    Falls back to the bare type name when the message is empty or
    ``__str__`` raises.
    """
    name = type(error).__name__
    message = _message(error)
    return f"{name}: {message}" if message else name


def _encode_default(value: Any) -> Any:
    """json ``default`` hook: datetimes and exceptions only."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, BaseException):
        return describe_error(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _encode(log: RequestLog, indent: int | None) -> bytes:
    text = json.dumps(
        log.to_dict(),
        indent=indent,
        allow_nan=False,
        ensure_ascii=False,
        default=_encode_default,
    )
    return text.encode("utf-8")


def serialize(log: RequestLog, *, indent: int | None = DEFAULT_INDENT) -> bytes:
    """Encode a request log as UTF-8 JSON, dropping details if they break it.

    When the first attempt fails the record is modified in place:
    ``details`` is cleared and ``DETAILS_DROPPED_NOTE`` is appended to
    ``logs``, so the emitted document never contains a partial details
    object.

    Args:
        log: Finalized request log.
        indent: Indentation passed to json.dumps; None for a single line.

    Returns:
        The encoded document, without a trailing newline.

    Any exception raised while encoding counts as a failure, including
    one raised by a detail's own ``__str__`` or ``__iter__``.

    Raises:
        SerializationError: If encoding fails even without details.

    Example:
        >>> record.set_detail("loop", record.details)
        >>> json.loads(serialize(record))["logs"][-1]
        'reqlog: failed to marshal due to problem with something in details object'
    """
    try:
        return _encode(log, indent)
    except Exception as exc:
        logger.warning(
            "Dropping unserializable details from request log",
            uri=log.uri,
            method=log.method,
            error=describe_error(exc),
        )
        log.details.clear()
        log.append_log(DETAILS_DROPPED_NOTE)

    try:
        return _encode(log, indent)
    except Exception as exc:
        raise SerializationError(_message(exc)) from exc


def last_resort_line(message: str, error: BaseException) -> str:
    """Build the one-field document written when serialize() gave up.

    Example:
        >>> last_resort_line("Could not marshal request log", err)
        '{"jlog": "Could not marshal request log: Out of range float values..."}'
    """
    return json.dumps({"jlog": f"{message}: {_message(error)}"})


__all__ = ["DETAILS_DROPPED_NOTE", "describe_error", "last_resort_line", "serialize"]
