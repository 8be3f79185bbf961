"""Integration tests for the demo FastAPI application.

Exercises the demo routes through TestClient with a recording sink,
covering a plain request, an auth decision, a recovered crash and a
degraded document.
"""

import pytest
from fastapi.testclient import TestClient

from reqlog.config import ReqlogConfig
from reqlog.serializer import DETAILS_DROPPED_NOTE
from reqlog.web.app import DEMO_USERS, create_app


@pytest.fixture
def client(recording_sink):
    """TestClient for the demo app with documents captured in memory.

    Yields:
        TestClient bound to create_app(ReqlogConfig(indent=None), recording_sink).
    """
    app = create_app(ReqlogConfig(indent=None), sink=recording_sink)
    with TestClient(app) as test_client:
        yield test_client


class TestHealth:
    def test_health(self, client, recording_sink):
        response = client.get("/api/health")

        assert response.json() == {"status": "ok"}
        assert recording_sink.only()["uri"] == "/api/health"


class TestLogin:
    """Tests for the demo login routes."""

    def test_get_login_is_plain(self, client, recording_sink):
        client.get("/login")

        doc = recording_sink.only()
        assert (doc["uri"], doc["method"], doc["status"]) == ("/login", "GET", 200)
        assert "error" not in doc

    def test_successful_login(self, client, recording_sink):
        response = client.post(
            "/login", json={"username": "admin", "password": DEMO_USERS["admin"]}
        )

        assert response.status_code == 200
        doc = recording_sink.only()
        assert doc["method"] == "POST"
        assert doc["logs"] == ["login attempt for admin"]
        assert doc["details"] == {"authReason": "password ok", "user": "admin"}

    def test_bad_password(self, client, recording_sink):
        """Verifies a rejected login is logged with its reason.

        Arrangement:
        1. Known user, wrong password.

        Action:
        POST /login.

        Assertion Strategy:
        - Client gets 401.
        - Document status 401 with authReason "bad password" and no error.
        """
        response = client.post("/login", json={"username": "admin", "password": "nope"})

        assert response.status_code == 401
        doc = recording_sink.only()
        assert doc["status"] == 401
        assert doc["details"]["authReason"] == "bad password"
        assert "error" not in doc

    def test_unknown_user(self, client, recording_sink):
        client.post("/login", json={"username": "mallory", "password": "x"})
        assert recording_sink.only()["details"]["authReason"] == "unknown user"

    def test_validation_error_logged(self, client, recording_sink):
        response = client.post("/login", json={"username": "admin"})

        assert response.status_code == 422
        assert recording_sink.only()["status"] == 422


class TestPanicRoute:
    def test_panic_scenario(self, client, recording_sink):
        response = client.get("/panic")

        assert response.status_code == 500
        assert response.json() == {"error": "Internal error"}

        doc = recording_sink.only()
        assert doc["status"] == 500
        assert doc["error"]["desc"] == "nil pointer"
        assert doc["error"]["oldStatus"] == 200
        assert doc["details"]["authReason"] == "bad password"
        assert doc["logs"] == ["about to fail"]

    def test_custom_reason(self, client, recording_sink):
        client.get("/panic", params={"reason": "disk full"})
        assert recording_sink.only()["error"]["desc"] == "disk full"


class TestCyclicRoute:
    def test_details_dropped(self, client, recording_sink):
        response = client.get("/cyclic")

        assert response.status_code == 200
        doc = recording_sink.only()
        assert "details" not in doc
        assert doc["logs"] == [DETAILS_DROPPED_NOTE]


class TestConfigFromEnvironment:
    def test_env_config_used_by_default(self, monkeypatch, recording_sink):
        monkeypatch.setenv("REQLOG_TRUST_FORWARDED", "1")
        app = create_app(sink=recording_sink)

        with TestClient(app) as client:
            client.get("/api/health", headers={"X-Forwarded-For": "203.0.113.9"})

        assert recording_sink.only()["ip"] == "203.0.113.9"
