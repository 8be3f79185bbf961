"""ASGI middleware that logs every request as one JSON document.

Installation:
    app = FastAPI()
    app.add_middleware(RequestLogMiddleware)

Inside a handler:
    @app.post("/login")
    async def login(request: Request):
        record = get_request_log(request)
        record.append_log("checking credentials for %s", username)
        record.set_detail("authReason", "bad password")

For each HTTP request the middleware creates a RequestLog, publishes it
in the request state (``request.state.jrl`` by default), runs the rest
of the app inside a PanicGuard and writes exactly one document to the
sink: after the app returns, or from the guard when the app crashed.
"""

from __future__ import annotations

import json
import time
from collections.abc import Mapping, MutableMapping
from typing import Any

from starlette.datastructures import Headers
from starlette.requests import HTTPConnection
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from reqlog.config import DEFAULT_STATE_KEY, ReqlogConfig
from reqlog.errors import RequestLogError
from reqlog.guard import GuardState, PanicGuard
from reqlog.observability import LogContext, get_logger
from reqlog.record import RequestLog
from reqlog.serializer import describe_error, last_resort_line, serialize
from reqlog.sink import LineSink, StreamSink

logger = get_logger(__name__)

#: Scope key recording which state attribute holds the record.
STATE_KEY_SCOPE_ENTRY = "reqlog.state_key"


class ResponseTracker:
    """Wraps the ASGI ``send`` callable to observe the response.

    Tracks the status the app sent and whether the response has started
    or completed, and can replace the response with a JSON error.
    """

    def __init__(self, send: Send) -> None:
        self._send = send
        self.status: int | None = None
        self.started = False
        self.completed = False

    async def send(self, message: Message) -> None:
        """Forward ``message`` downstream, noting status and completion.

        Args:
            message: ASGI message sent by the wrapped app.
        """
        if message["type"] == "http.response.start":
            self.status = message["status"]
            self.started = True
        elif message["type"] == "http.response.body" and not message.get(
            "more_body", False
        ):
            self.completed = True
        await self._send(message)

    async def abort_with_json(self, status: int, payload: Mapping[str, Any]) -> None:
        """Send ``status`` with a JSON body, or close a response already under way.

        Once headers are out the status can't change any more; the body is
        terminated so the client isn't left waiting.
        """
        if self.completed:
            return
        if self.started:
            self.completed = True
            await self._send({"type": "http.response.body", "body": b"", "more_body": False})
            return

        body = json.dumps(dict(payload)).encode("utf-8")
        self.started = True
        self.completed = True
        await self._send(
            {
                "type": "http.response.start",
                "status": status,
                "headers": [
                    (b"content-type", b"application/json"),
                    (b"content-length", str(len(body)).encode("latin-1")),
                ],
            }
        )
        await self._send({"type": "http.response.body", "body": body})


def resolve_client_ip(scope: Scope, trust_forwarded: bool = False) -> str:
    """Return the client address for a request scope.

    With ``trust_forwarded`` the first X-Forwarded-For entry wins, then
    X-Real-IP; otherwise (and as a fallback) the socket peer is used.
    """
    if trust_forwarded:
        headers = Headers(scope=scope)
        forwarded = headers.get("x-forwarded-for", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
        real_ip = headers.get("x-real-ip", "").strip()
        if real_ip:
            return real_ip

    client = scope.get("client")
    if client:
        return str(client[0])
    return ""


def get_request_log(
    source: HTTPConnection | MutableMapping[str, Any], key: str | None = None
) -> RequestLog:
    """Return the RequestLog the middleware published for a request.

    Args:
        source: A Starlette/FastAPI Request (or any HTTPConnection), or the
            raw ASGI scope.
        key: State attribute to read. Default: the key the middleware used.

    Raises:
        RequestLogError: If no record is present, i.e. the middleware is
            not installed in front of this handler.

    Example:
        >>> record = get_request_log(request)
        >>> record.set_detail("userId", user.id)
    """
    scope = source.scope if isinstance(source, HTTPConnection) else source
    if key is None:
        key = scope.get(STATE_KEY_SCOPE_ENTRY, DEFAULT_STATE_KEY)

    record = scope.get("state", {}).get(key)
    if not isinstance(record, RequestLog):
        raise RequestLogError(
            f"no request log under state key {key!r}; is RequestLogMiddleware installed?"
        )
    return record


class RequestLogMiddleware:
    """Pure ASGI middleware creating, guarding and emitting request logs.

    Args:
        app: The downstream ASGI app.
        config: Settings; defaults to ``ReqlogConfig()``.
        sink: Destination of emitted documents; defaults to a StreamSink
            on stdout.
        **overrides: ReqlogConfig fields overriding ``config``
            (e.g. ``indent=None``).

    Example:
        >>> app.add_middleware(RequestLogMiddleware, sink=StreamSink(buffer), indent=None)
    """

    def __init__(
        self,
        app: ASGIApp,
        config: ReqlogConfig | None = None,
        sink: LineSink | None = None,
        **overrides: Any,
    ) -> None:
        self.app = app
        self.config = (config or ReqlogConfig()).with_overrides(**overrides)
        self.sink = sink if sink is not None else StreamSink()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        started = time.monotonic()
        record = RequestLog(
            uri=scope.get("path", ""),
            method=scope.get("method", ""),
            client_ip=resolve_client_ip(scope, self.config.trust_forwarded),
            started_at=started,
        )

        scope.setdefault("state", {})[self.config.state_key] = record
        scope[STATE_KEY_SCOPE_ENTRY] = self.config.state_key

        tracker = ResponseTracker(send)
        guard = PanicGuard(
            record,
            tracker,
            self.emit,
            error_status=self.config.error_status,
            error_body=self.config.error_body,
            default_status=self.config.default_status,
        )

        with LogContext(uri=record.uri, method=record.method):
            async with guard:
                await self.app(scope, receive, tracker.send)

            if guard.state is GuardState.COMPLETED:
                status = tracker.status
                if status is None:
                    status = self.config.default_status
                record.finalize(status)
                self.emit(record)

    def emit(self, record: RequestLog, panicked: bool = False) -> None:
        """Serialize ``record`` and write it to the sink.

        Falls back to the one-field ``{"jlog": ...}`` document when even the
        degraded encoding fails, whatever the failure raised. Sink errors
        propagate.
        """
        try:
            line = serialize(record, indent=self.config.indent).decode("utf-8")
        except Exception as exc:
            message = "Could not marshal request log"
            if panicked:
                message += " during panic"
            logger.error(message, error=describe_error(exc))
            line = last_resort_line(message, exc)
        self.sink.write_line(line)


__all__ = [
    "RequestLogMiddleware",
    "ResponseTracker",
    "get_request_log",
    "resolve_client_ip",
]
