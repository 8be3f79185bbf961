"""Exception types raised by reqlog."""

from __future__ import annotations

from typing import Any


class ReqlogError(Exception):
    """Base class for all reqlog errors."""


class RequestLogError(ReqlogError):
    """A RequestLog was used outside its lifecycle.

    Raised when a record is finalized twice, when panic details are
    attached twice, or when a handler asks for the request log of a
    request the middleware never saw.
    """


class SerializationError(ReqlogError):
    """The request log could not be encoded, even without details."""


class Panic(ReqlogError):
    """Abort the current request with an arbitrary payload.

    Handlers raise Panic when they want to give up on a request and
    attach a structured descriptor to the log line. The payload is
    reported verbatim as ``error.desc``; the client only ever sees the
    generic error response.

    Example:
        >>> raise Panic({"reason": "inventory out of sync", "sku": 42})
    """

    def __init__(self, payload: Any) -> None:
        super().__init__(payload)
        self.payload = payload

    def __str__(self) -> str:
        return str(self.payload)


__all__ = ["Panic", "ReqlogError", "RequestLogError", "SerializationError"]
