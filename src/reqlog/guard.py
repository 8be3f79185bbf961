"""Panic containment around the downstream handler chain.

PanicGuard is the single recovery boundary of a request. Whatever a
handler raises, at any depth, unwinds to this guard, which:

1. captures the traceback,
2. remembers the status the app had already sent (if any),
3. forces a generic error response so the client never sees internals,
4. finalizes the RequestLog with the error status and the panic details,
5. hands the record to ``emit``.

The exception is then suppressed; the handler is never retried.
BaseExceptions that are not Exceptions (asyncio.CancelledError,
KeyboardInterrupt, SystemExit) propagate untouched and no line is
emitted for them.
"""

from __future__ import annotations

import time
import traceback
from collections.abc import Mapping
from enum import Enum
from types import TracebackType
from typing import Any, Protocol

from reqlog.errors import Panic, RequestLogError
from reqlog.observability import get_logger
from reqlog.record import PanicDetails, RequestLog
from reqlog.serializer import describe_error

logger = get_logger(__name__)


class GuardState(Enum):
    """Lifecycle of a PanicGuard."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    PANICKED = "panicked"


class ResponseControl(Protocol):
    """What the guard needs from the transport's response."""

    @property
    def status(self) -> int | None:
        """Status already sent by the app, None if nothing was sent."""
        ...  # pragma: no cover

    async def abort_with_json(self, status: int, payload: Mapping[str, Any]) -> None:
        """Replace the response with ``status`` and a JSON ``payload``."""
        ...  # pragma: no cover


class EmitCallback(Protocol):
    """Receives the finalized record once the guard has handled a crash."""

    def __call__(self, record: RequestLog, panicked: bool = False) -> None:
        ...  # pragma: no cover


def panic_descriptor(exc: BaseException) -> Any:
    """Return the payload to report for ``exc``.

    ``Panic`` carries an explicit payload; any other exception is its own
    descriptor.
    """
    if isinstance(exc, Panic):
        return exc.payload
    return exc


class PanicGuard:
    """Async context manager containing crashes of one request.

    Args:
        record: The request's log record.
        response: Control over the outgoing response.
        emit: ``emit(record, panicked=True)`` is called after a crash.
        error_status: Status forced on the response and reported in the log.
        error_body: Generic JSON body sent to the client.
        default_status: Reported as the prior status when the app had not
            sent anything yet.

    Example:
        >>> guard = PanicGuard(record, tracker, emit)
        >>> async with guard:
        ...     await app(scope, receive, tracker.send)
        >>> guard.state
        <GuardState.PANICKED: 'panicked'>
    """

    def __init__(
        self,
        record: RequestLog,
        response: ResponseControl,
        emit: EmitCallback,
        *,
        error_status: int = 500,
        error_body: Mapping[str, Any] | None = None,
        default_status: int = 200,
    ) -> None:
        self.record = record
        self.response = response
        self.emit = emit
        self.error_status = error_status
        self.error_body = error_body if error_body is not None else {"error": "Internal error"}
        self.default_status = default_status
        self.state = GuardState.PENDING

    async def __aenter__(self) -> PanicGuard:
        if self.state is not GuardState.PENDING:
            raise RequestLogError(f"panic guard already used (state={self.state.value})")
        self.state = GuardState.RUNNING
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        if exc is None:
            self.state = GuardState.COMPLETED
            return False
        if not isinstance(exc, Exception):
            return False

        self.state = GuardState.PANICKED
        await self._recover(exc)
        return True

    async def _recover(self, exc: Exception) -> None:
        stack_trace = "".join(traceback.format_exception(exc))
        finished = time.monotonic()

        prior_status = self.response.status
        if prior_status is None:
            prior_status = self.default_status

        try:
            await self.response.abort_with_json(self.error_status, self.error_body)
        except Exception as send_exc:
            # The client is likely gone; the log line still has to go out.
            logger.warning(
                "Could not send error response",
                error=describe_error(send_exc),
            )

        self.record.finalize(self.error_status, now=finished)
        self.record.attach_panic(
            PanicDetails(
                descriptor=panic_descriptor(exc),
                prior_status=prior_status,
                stack_trace=stack_trace,
            )
        )
        self.emit(self.record, panicked=True)


__all__ = ["EmitCallback", "GuardState", "PanicGuard", "ResponseControl", "panic_descriptor"]
