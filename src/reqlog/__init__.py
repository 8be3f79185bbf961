"""reqlog - per-request JSON logging and crash containment for ASGI apps.

Every request gets a RequestLog that handlers annotate; when the request
finishes, normally or by crashing, the record is written as one JSON
document.

Example:
    from fastapi import FastAPI
    from reqlog import RequestLogMiddleware, RequestLogDep

    app = FastAPI()
    app.add_middleware(RequestLogMiddleware)

    @app.post("/login")
    async def login(record: RequestLogDep) -> dict:
        record.append_log("checking credentials")
        record.set_detail("authReason", "password ok")
        return {"ok": True}
"""

from reqlog.config import ReqlogConfig
from reqlog.dependencies import RequestLogDep
from reqlog.errors import Panic, ReqlogError, RequestLogError, SerializationError
from reqlog.guard import GuardState, PanicGuard
from reqlog.middleware import RequestLogMiddleware, get_request_log
from reqlog.record import PanicDetails, RequestLog
from reqlog.serializer import last_resort_line, serialize
from reqlog.sink import LineSink, LoggerSink, StreamSink

__version__ = "0.1.0"

__all__ = [
    # Record
    "PanicDetails",
    "RequestLog",
    # Middleware
    "RequestLogDep",
    "RequestLogMiddleware",
    "ReqlogConfig",
    "get_request_log",
    # Crash handling
    "GuardState",
    "Panic",
    "PanicGuard",
    # Output
    "LineSink",
    "LoggerSink",
    "StreamSink",
    "last_resort_line",
    "serialize",
    # Errors
    "ReqlogError",
    "RequestLogError",
    "SerializationError",
]
