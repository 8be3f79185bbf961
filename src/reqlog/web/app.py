"""Demo FastAPI application wired with RequestLogMiddleware.

Shows the three paths a request log can take: a normal line, a line
with a recovered crash, and a degraded line whose details were dropped.

Run with:
    reqlog serve --port 8000
"""

from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from reqlog.config import ReqlogConfig
from reqlog.dependencies import RequestLogDep
from reqlog.errors import Panic
from reqlog.middleware import RequestLogMiddleware
from reqlog.observability import get_logger
from reqlog.sink import LineSink

logger = get_logger(__name__)

# Credentials accepted by the demo /login route
DEMO_USERS = {"admin": "correct horse battery staple"}


class LoginRequest(BaseModel):
    username: str
    password: str


def create_app(config: ReqlogConfig | None = None, sink: LineSink | None = None) -> FastAPI:
    """Create the demo application.

    Args:
        config: Middleware settings. Default: ``ReqlogConfig.from_env()``.
        sink: Where request logs go. Default: stdout.

    Returns:
        FastAPI app with RequestLogMiddleware installed.

    Example:
        >>> app = create_app(ReqlogConfig(indent=None))
        >>> uvicorn.run(app, host="127.0.0.1", port=8000)
    """
    if config is None:
        config = ReqlogConfig.from_env()

    app = FastAPI(
        title="reqlog demo",
        description="Request logging and crash containment demo",
        version="0.1.0",
    )
    app.add_middleware(RequestLogMiddleware, config=config, sink=sink)

    @app.get("/api/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/login")
    async def login_form() -> dict[str, str]:
        return {"login": "POST username and password as JSON"}

    @app.post("/login")
    async def login(credentials: LoginRequest, record: RequestLogDep) -> dict[str, str]:
        """Check demo credentials, recording the decision in the request log."""
        record.append_log("login attempt for %s", credentials.username)

        expected = DEMO_USERS.get(credentials.username)
        if expected is None:
            record.set_detail("authReason", "unknown user")
            raise HTTPException(status_code=401, detail="Invalid credentials")
        if credentials.password != expected:
            record.set_detail("authReason", "bad password")
            raise HTTPException(status_code=401, detail="Invalid credentials")

        record.set_detail("authReason", "password ok")
        record.set_detail("user", credentials.username)
        return {"user": credentials.username}

    @app.get("/panic")
    async def panic(record: RequestLogDep, reason: str = "nil pointer") -> dict[str, str]:
        """Crash on purpose; the client gets a generic 500."""
        record.append_log("about to fail")
        record.set_detail("authReason", "bad password")
        raise Panic(reason)

    @app.get("/cyclic")
    async def cyclic(record: RequestLogDep) -> dict[str, str]:
        """Attach a self-referencing detail, forcing the degraded encoding."""
        node: dict[str, Any] = {"name": "loop"}
        node["self"] = node
        record.set_detail("graph", node)
        return {"status": "ok"}

    logger.debug("Demo app created", indent=config.indent, state_key=config.state_key)
    return app
