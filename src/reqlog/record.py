"""Request-scoped log record.

A RequestLog is created by the middleware when a request arrives,
handed to every handler through the request state, and serialized once
when the request finishes. Handlers annotate it with two kinds of data:

- Free-text progress notes via ``append_log``. The ordered list of notes
  reads like a narrative of the route the request took through the code.
- Structured facts via ``set_detail``. Details are emitted as a JSON
  object and are the better choice for anything that will be queried
  later (auth decisions, intermediate results, identifiers).

Example:
    >>> record = get_request_log(request)
    >>> record.append_log("loaded %d items from cart", len(items))
    >>> record.set_detail("authReason", "token expired")

Records are owned by a single request task and are not thread-safe.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from reqlog.errors import RequestLogError


@dataclass(frozen=True)
class PanicDetails:
    """What the panic guard learned about an unhandled exception.

    Attributes:
        descriptor: Raw payload the handler failed with. For
            ``reqlog.errors.Panic`` this is the payload it carries, for any
            other exception it is the exception instance.
        prior_status: Response status already set when the exception hit,
            or the default status when nothing had been sent yet.
        stack_trace: Formatted traceback captured at interception.
    """

    descriptor: Any
    prior_status: int
    stack_trace: str

    def to_dict(self) -> dict[str, Any]:
        """Return the ``error`` object of the emitted document.

        Returns:
            Dict with ``desc``, ``oldStatus`` and ``stackTrace`` keys.
        """
        return {
            "desc": self.descriptor,
            "oldStatus": self.prior_status,
            "stackTrace": self.stack_trace,
        }


@dataclass
class RequestLog:
    """Mutable record of one request and how it was resolved.

    Attributes:
        uri: Request path, without the query string.
        method: HTTP method.
        client_ip: Resolved client address, empty when unknown.
        request_time: Wall-clock arrival time (UTC).
        response_status: Final status, set by ``finalize``.
        duration_ms: Elapsed milliseconds, set by ``finalize``.
        logs: Progress notes in the order they were appended.
        details: Structured key/value facts. Values may be anything; the
            serializer drops the whole mapping if any value can't be encoded.
        panic: Set by the panic guard when the request crashed.
        started_at: Monotonic clock reading the duration is measured from.
    """

    uri: str
    method: str
    client_ip: str = ""
    request_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    response_status: int = 0
    duration_ms: int = 0
    logs: list[str] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)
    panic: PanicDetails | None = None
    started_at: float = field(default_factory=time.monotonic, repr=False, compare=False)
    _finalized: bool = field(default=False, init=False, repr=False, compare=False)

    def append_log(self, fmt: object, *args: Any) -> None:
        """Append a printf-style formatted note to ``logs``.

        Formatting follows the standard logging module: ``fmt % args`` when
        args are given, ``fmt`` verbatim otherwise. A format that doesn't
        match its args never raises; the literal format and the repr of the
        args are appended instead so the note is not lost.

        Args:
            fmt: Format string (non-strings are converted with ``str()``).
            *args: Values substituted into ``fmt``.

        Example:
            >>> record.append_log("user %s denied", "bob")
            >>> record.logs[-1]
            'user bob denied'
        """
        text = str(fmt)
        if args:
            try:
                text = text % args
            except (TypeError, ValueError, KeyError):
                text = f"{text} {args!r}"
        self.logs.append(text)

    def set_detail(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key`` in ``details``, replacing any old value.

        Serializability is not checked here; a bad value only costs the
        details object at emission time.
        """
        self.details[key] = value

    @property
    def finalized(self) -> bool:
        """True once finalize() has recorded the status and duration."""
        return self._finalized

    def finalize(self, status: int, now: float | None = None) -> None:
        """Record the final status and the elapsed time.

        Args:
            status: Response status to report.
            now: Monotonic timestamp of completion (default: now).

        Raises:
            RequestLogError: If the record was already finalized.
        """
        if self._finalized:
            raise RequestLogError(
                f"request log for {self.method} {self.uri} already finalized"
            )
        if now is None:
            now = time.monotonic()
        self.response_status = status
        self.duration_ms = max(0, int((now - self.started_at) * 1000))
        self._finalized = True

    def attach_panic(self, details: PanicDetails) -> None:
        """Attach panic details. Only valid once per record."""
        if self.panic is not None:
            raise RequestLogError(
                f"request log for {self.method} {self.uri} already has panic details"
            )
        self.panic = details

    def to_dict(self) -> dict[str, Any]:
        """Build the JSON-shaped mapping emitted for this record.

        Empty ``logs`` and ``details`` and an absent panic are omitted.
        Values are not converted; ``request_time`` is left as a datetime for
        the serializer to render.
        """
        data: dict[str, Any] = {
            "uri": self.uri,
            "method": self.method,
            "status": self.response_status,
            "time": self.request_time,
            "duration": self.duration_ms,
            "ip": self.client_ip,
        }
        if self.logs:
            data["logs"] = list(self.logs)
        if self.details:
            data["details"] = self.details
        if self.panic is not None:
            data["error"] = self.panic.to_dict()
        return data


__all__ = ["PanicDetails", "RequestLog"]
