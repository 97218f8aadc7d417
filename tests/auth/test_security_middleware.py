"""Tests for AuthMiddleware - session validation and clinic context."""

from datetime import timedelta
from unittest.mock import Mock
from uuid import uuid4

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from auth.exceptions import (
    InvalidTokenError,
    NoClinicMembershipError,
    SessionExpiredError,
    UserInactiveError,
)
from auth.security_middleware import AuthMiddleware
from auth.session import SessionReader
from auth.types import Role, Session
from utils.timezone import now_utc
from utils.user_context import (
    get_current_clinic_id,
    get_current_user_id,
    get_current_user_role,
    get_request_origin,
)


@pytest.fixture
def mock_session_reader():
    return Mock(spec=SessionReader)


def make_session(token="valid-token", role=Role.DOCTOR):
    return Session(
        token=token,
        user_id=uuid4(),
        clinic_id=uuid4(),
        role=role,
        expires_at=now_utc() + timedelta(hours=1),
    )


@pytest.fixture
def app_with_middleware(mock_session_reader):
    """FastAPI app with auth middleware."""
    app = FastAPI()

    app.add_middleware(AuthMiddleware, session_reader=mock_session_reader)

    @app.get("/api/data/protected")
    async def protected_route(request: Request):
        ip_address, user_agent = get_request_origin()
        return {
            "user_id": str(get_current_user_id()),
            "clinic_id": str(get_current_clinic_id()),
            "role": get_current_user_role(),
            "state_user_id": str(request.state.user_id),
            "ip_address": ip_address,
            "user_agent": user_agent,
        }

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


@pytest.fixture
def client(app_with_middleware):
    return TestClient(app_with_middleware)


class TestPublicPaths:
    """Public paths skip authentication."""

    def test_health_no_cookie_succeeds(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_docs_no_cookie_succeeds(self, client):
        assert client.get("/openapi.json").status_code == 200

    def test_public_path_ignores_bad_cookie(self, client, mock_session_reader):
        mock_session_reader.validate_session.side_effect = SessionExpiredError("expired")
        client.cookies.set("session_token", "stale")

        assert client.get("/health").status_code == 200
        mock_session_reader.validate_session.assert_not_called()


class TestProtectedPaths:
    """Protected path authentication outcomes."""

    def test_no_token_returns_401(self, client):
        response = client.get("/api/data/protected")

        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "NOT_AUTHENTICATED"

    @pytest.mark.parametrize("error, status, code", [
        (InvalidTokenError("unknown"), 401, "INVALID_TOKEN"),
        (SessionExpiredError("expired"), 401, "SESSION_EXPIRED"),
        (UserInactiveError("User is deactivated"), 403, "FORBIDDEN"),
        (NoClinicMembershipError("User has no clinic"), 403, "FORBIDDEN"),
    ])
    def test_rejected_sessions(self, client, mock_session_reader, error, status, code):
        mock_session_reader.validate_session.side_effect = error
        client.cookies.set("session_token", "some-token")

        response = client.get("/api/data/protected")

        assert response.status_code == status
        assert response.json()["error"]["code"] == code

    def test_cookie_session_sets_context(self, client, mock_session_reader):
        session = make_session(role=Role.RECEPTIONIST)
        mock_session_reader.validate_session.return_value = session
        client.cookies.set("session_token", "valid-token")

        response = client.get("/api/data/protected", headers={"User-Agent": "front-desk/1.0"})

        assert response.status_code == 200
        body = response.json()
        assert body["user_id"] == str(session.user_id)
        assert body["state_user_id"] == str(session.user_id)
        assert body["clinic_id"] == str(session.clinic_id)
        assert body["role"] == "RECEPTIONIST"
        assert body["user_agent"] == "front-desk/1.0"
        mock_session_reader.validate_session.assert_called_once_with("valid-token")

    def test_bearer_header_accepted(self, client, mock_session_reader):
        mock_session_reader.validate_session.return_value = make_session(token="bearer-token")

        response = client.get("/api/data/protected", headers={"Authorization": "Bearer bearer-token"})

        assert response.status_code == 200
        mock_session_reader.validate_session.assert_called_once_with("bearer-token")

    def test_forwarded_for_sets_client_ip(self, client, mock_session_reader):
        mock_session_reader.validate_session.return_value = make_session()
        client.cookies.set("session_token", "valid-token")

        response = client.get(
            "/api/data/protected", headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1"}
        )

        assert response.json()["ip_address"] == "203.0.113.9"


class TestContextLifecycle:
    """Context never leaks between requests."""

    def test_context_cleared_after_request(self, client, mock_session_reader):
        mock_session_reader.validate_session.return_value = make_session()
        client.cookies.set("session_token", "valid-token")

        client.get("/api/data/protected")

        with pytest.raises(RuntimeError):
            get_current_clinic_id()

    def test_consecutive_sessions_get_own_clinic(self, client, mock_session_reader):
        client.cookies.set("session_token", "valid-token")

        first = make_session()
        mock_session_reader.validate_session.return_value = first
        response_a = client.get("/api/data/protected")

        second = make_session()
        mock_session_reader.validate_session.return_value = second
        response_b = client.get("/api/data/protected")

        assert response_a.json()["clinic_id"] == str(first.clinic_id)
        assert response_b.json()["clinic_id"] == str(second.clinic_id)
