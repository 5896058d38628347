"""Tests for the HTTP API."""

import time

import pytest
from fastapi.testclient import TestClient

from sessionbridge.core.exceptions import DriverError
from sessionbridge.services.bridge_service import BridgeService
from sessionbridge.services.session.models import PendingInputKind
from web.app import create_app

from conftest import FakeDriverFactory

SMS_MESSAGE = "Никому не говорите код 4399. Вход в личный кабинет"


@pytest.fixture
def sms_factory() -> FakeDriverFactory:
    return FakeDriverFactory(pending=PendingInputKind.SMS)


@pytest.fixture
def service(test_settings, sms_factory, clock, rng) -> BridgeService:
    return BridgeService(settings=test_settings, driver_factory=sms_factory, clock=clock, rng=rng)


@pytest.fixture
def client(service):
    """Test client; the context manager runs the application lifespan."""
    with TestClient(create_app(service=service)) as test_client:
        yield test_client


def _login(client, username="alice") -> str:
    response = client.post("/auth/login", json={"username": username, "phone": "+79991234567"})
    assert response.status_code == 202
    return response.json()["sessionId"]


def _wait_authenticated(client, session_id: str) -> dict:
    for _ in range(100):
        data = client.get("/auth/pending-input", params={"sessionId": session_id}).json()
        if data["authenticated"]:
            return data
        time.sleep(0.02)
    raise AssertionError("session never authenticated")


class TestAuthRoutes:
    """Tests for /auth endpoints."""

    def test_login_returns_session_id(self, client):
        response = client.post(
            "/auth/login", json={"username": "alice", "phone": "+79991234567"}
        )

        assert response.status_code == 202
        data = response.json()
        assert data["success"] is True
        assert len(data["sessionId"]) == 64

    def test_login_missing_username(self, client):
        response = client.post("/auth/login", json={"phone": "+79991234567"})

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert response.json()["type"] == "ValidationError"

    def test_sms_login_flow(self, client, sms_factory):
        session_id = _login(client)

        pending = client.get("/auth/pending-input", params={"sessionId": session_id})
        assert pending.status_code == 200
        assert pending.json()["pendingType"] == "sms"
        assert pending.json()["authenticated"] is False

        notified = client.post(
            "/auth/notify-code", json={"message": SMS_MESSAGE, "username": "alice"}
        )
        assert notified.status_code == 200
        assert notified.json()["delivered"] is True
        assert notified.json()["sessionId"] == session_id

        data = _wait_authenticated(client, session_id)
        assert data["pendingType"] is None
        assert sms_factory.latest().submitted == ["4399"]

    def test_code_queued_before_poll(self, client, sms_factory):
        notified = client.post("/auth/notify-code", json={"message": SMS_MESSAGE})
        assert notified.json()["queued"] is True

        session_id = _login(client)
        _wait_authenticated(client, session_id)

        assert sms_factory.latest().submitted == ["4399"]

    def test_duplicate_notification(self, client):
        session_id = _login(client)
        client.get("/auth/pending-input", params={"sessionId": session_id})
        client.post("/auth/notify-code", json={"message": SMS_MESSAGE, "username": "alice"})

        again = client.post(
            "/auth/notify-code", json={"message": SMS_MESSAGE, "username": "alice"}
        )

        assert again.status_code == 200
        assert again.json()["duplicate"] is True

    def test_notify_code_without_code(self, client):
        response = client.post("/auth/notify-code", json={"message": "Hello!"})

        assert response.status_code == 400
        assert response.json()["type"] == "CodeExtractionError"

    def test_notify_code_unknown_source(self, client):
        response = client.post(
            "/auth/notify-code", json={"message": SMS_MESSAGE, "source": "fax"}
        )
        assert response.status_code == 400

    def test_submit_input(self, client, sms_factory):
        session_id = _login(client)

        response = client.post(
            "/auth/submit-input", json={"sessionId": session_id, "value": "4399"}
        )

        assert response.status_code == 200
        assert response.json()["success"] is True
        _wait_authenticated(client, session_id)

    def test_submit_input_when_nothing_expected(self, client):
        session_id = _login(client)
        client.post("/auth/submit-input", json={"sessionId": session_id, "value": "4399"})
        _wait_authenticated(client, session_id)

        response = client.post(
            "/auth/submit-input", json={"sessionId": session_id, "value": "0000"}
        )

        assert response.status_code == 400
        assert response.json()["error"] == "No input is currently expected"

    def test_pending_input_unknown_session(self, client):
        response = client.get("/auth/pending-input", params={"sessionId": "nope"})

        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "error": "Session not found",
            "type": "SessionNotFoundError",
        }

    def test_pending_input_missing_session_id(self, client):
        response = client.get("/auth/pending-input")
        assert response.status_code == 400

    def test_logout(self, client, sms_factory):
        session_id = _login(client)

        response = client.post(
            "/auth/logout", json={"sessionId": session_id, "deleteData": True}
        )

        assert response.status_code == 200
        assert response.json()["message"] == "Logged out"
        assert sms_factory.latest().close_calls == [True]

        again = client.post("/auth/logout", json={"sessionId": session_id})
        assert again.status_code == 200
        assert again.json()["message"] == "Session already closed"

    def test_relogin_keeps_saved_session_unless_asked(self, client, sms_factory):
        _login(client)
        _login(client)
        assert sms_factory.drivers[0].close_calls == [False]

        response = client.post(
            "/auth/login",
            json={"username": "alice", "phone": "+79991234567", "deleteData": True},
        )

        assert response.status_code == 202
        assert sms_factory.drivers[1].close_calls == [True]

    def test_login_without_driver_factory(self, test_settings, clock):
        service = BridgeService(settings=test_settings, clock=clock)
        with TestClient(create_app(service=service)) as client:
            response = client.post(
                "/auth/login", json={"username": "alice", "phone": "+79991234567"}
            )

        assert response.status_code == 503
        assert response.json()["type"] == "ConfigurationError"


class TestSessionRoutes:
    """Tests for /session endpoints."""

    def test_stats(self, client):
        session_id = _login(client)

        response = client.get("/session/stats", params={"sessionId": session_id})

        assert response.status_code == 200
        assert response.json()["stats"]["lifetimeMinutes"] == 0

    def test_info(self, client):
        session_id = _login(client)

        response = client.get("/session/info", params={"sessionId": session_id})

        session = response.json()["session"]
        assert session["username"] == "alice"
        assert session["sessionId"] == session_id
        assert "driver" not in session

    def test_unknown_session(self, client):
        assert client.get("/session/stats", params={"sessionId": "x"}).status_code == 404


class TestOperationRoutes:
    """Tests for on-demand driver operations."""

    def _authenticated_session(self, client) -> str:
        session_id = _login(client)
        client.post("/auth/notify-code", json={"message": SMS_MESSAGE, "username": "alice"})
        _wait_authenticated(client, session_id)
        return session_id

    def test_run_operation(self, client, sms_factory):
        session_id = self._authenticated_session(client)

        response = client.post(
            "/session/operation", json={"sessionId": session_id, "operation": "balance"}
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "error": None, "data": {"balance": 100}}
        assert sms_factory.latest().executed == ["balance"]

    def test_requires_authenticated_session(self, client, sms_factory):
        session_id = _login(client)

        response = client.post(
            "/session/operation", json={"sessionId": session_id, "operation": "balance"}
        )

        assert response.status_code == 401
        assert response.json()["success"] is False
        assert response.json()["type"] == "AuthenticationError"
        assert sms_factory.latest().executed == []

    def test_missing_operation(self, client):
        session_id = _login(client)

        response = client.post("/session/operation", json={"sessionId": session_id})

        assert response.status_code == 400

    def test_unknown_session(self, client):
        response = client.post(
            "/session/operation", json={"sessionId": "missing", "operation": "balance"}
        )
        assert response.status_code == 404

    def test_fatal_driver_error_closes_session(self, client, sms_factory):
        session_id = self._authenticated_session(client)
        sms_factory.latest().execute_error = DriverError("browser crashed", fatal=True)

        response = client.post(
            "/session/operation", json={"sessionId": session_id, "operation": "balance"}
        )

        assert response.status_code == 502
        assert response.json()["type"] == "DriverError"
        assert sms_factory.latest().closed
        pending = client.get("/auth/pending-input", params={"sessionId": session_id})
        assert pending.status_code == 404


class TestScheduleRoutes:
    """Tests for /schedule endpoints."""

    def test_set_and_list_tasks(self, client):
        session_id = _login(client)

        response = client.put(
            "/schedule/tasks",
            json={
                "sessionId": session_id,
                "tasks": [
                    {"name": "evening", "operation": "transfer", "targetLocalTime": 0.75},
                    {
                        "name": "morning",
                        "operation": "balance",
                        "targetLocalTime": "9:05",
                        "timezone": "Europe/Berlin",
                        "jitterMin": 0,
                        "jitterMax": 0,
                    },
                ],
            },
        )

        assert response.status_code == 200
        tasks = {t["name"]: t for t in response.json()["tasks"]}
        assert tasks["evening"]["targetLocalTime"] == "18:00"
        assert tasks["evening"]["timezone"] == "Europe/Moscow"
        # 18:00 Moscow + 5 minutes of jitter
        assert tasks["evening"]["nextRun"] == "2024-01-15T15:05:00+00:00"
        assert tasks["morning"]["nextRun"] == "2024-01-16T08:05:00+00:00"

        listed = client.get("/schedule/tasks", params={"sessionId": session_id})
        assert {t["name"] for t in listed.json()["tasks"]} == {"evening", "morning"}

    @pytest.mark.parametrize(
        "task",
        [
            {"name": "t", "operation": "op", "targetLocalTime": "noon"},
            {"name": "t", "operation": "op", "targetLocalTime": "10:00", "timezone": "Mars/Base"},
            {
                "name": "t",
                "operation": "op",
                "targetLocalTime": "10:00",
                "jitterMin": 30,
                "jitterMax": 10,
            },
            {"name": "t", "operation": "op", "targetLocalTime": "10:00", "jitterMax": 10000},
        ],
    )
    def test_invalid_task(self, client, task):
        session_id = _login(client)

        response = client.put("/schedule/tasks", json={"sessionId": session_id, "tasks": [task]})

        assert response.status_code == 400
        assert response.json()["success"] is False


class TestHealthRoutes:
    """Tests for health and cross-cutting behaviour."""

    def test_health(self, client):
        _login(client)

        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["activeSessions"] == 1
        assert data["timers"]["scheduler-tick"]["started"] is True

    def test_ping(self, client):
        assert client.get("/ping").json() == {"success": True, "message": "pong"}

    def test_request_id_is_echoed(self, client):
        response = client.get("/ping", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_request_id_is_generated(self, client):
        assert client.get("/ping").headers["X-Request-ID"]

    def test_security_headers(self, client):
        response = client.get("/ping")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"

    def test_unknown_route_uses_envelope(self, client):
        response = client.get("/does-not-exist")

        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_shutdown_closes_sessions(self, service, sms_factory):
        with TestClient(create_app(service=service)) as client:
            _login(client)

        assert service.registry.session_count() == 0
        assert sms_factory.latest().closed
