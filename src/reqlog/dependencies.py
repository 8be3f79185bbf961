"""FastAPI dependency injection for the request log.

Example:
    @app.get("/orders/{order_id}")
    async def get_order(order_id: int, record: RequestLogDep) -> dict:
        record.set_detail("orderId", order_id)
        ...
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from reqlog.middleware import get_request_log
from reqlog.record import RequestLog


def request_log(request: Request) -> RequestLog:
    """Dependency returning the current request's RequestLog."""
    return get_request_log(request)


RequestLogDep = Annotated[RequestLog, Depends(request_log)]

__all__ = ["RequestLogDep", "request_log"]
