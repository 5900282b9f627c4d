from datetime import timedelta

import pytest
from sqlalchemy.exc import DataError, OperationalError, StatementError

from app.core.auth import create_access_token, create_refresh_token


def register(client, email="test@example.com", username="tester", password="testpass123"):
    return client.post(
        "/api/auth/register",
        json={"email": email, "username": username, "password": password, "display_name": "Test User"},
    )


def test_register(client):
    response = register(client)
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["user"]["email"] == "test@example.com"
    assert data["user"]["displayName"] == "Test User"
    assert data["tokens"]["accessToken"]
    assert data["tokens"]["tokenType"] == "bearer"


def test_register_duplicate_email(client):
    register(client)
    response = register(client, username="someone_else")
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "EMAIL_TAKEN"


def test_register_rejects_weak_password(client):
    response = register(client, password="short")
    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert "password" in error["details"]["fields"]


def test_login(client):
    register(client, email="testlogin@example.com", username="loginuser")

    response = client.post(
        "/api/auth/login",
        json={"email": "testlogin@example.com", "password": "testpass123"},
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert "accessToken" in data["tokens"]
    assert data["user"]["email"] == "testlogin@example.com"

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['tokens']['accessToken']}"})
    assert me.status_code == 200
    assert me.json()["data"]["username"] == "loginuser"


def test_login_wrong_password(client):
    register(client)
    response = client.post("/api/auth/login", json={"email": "test@example.com", "password": "wrongpass1"})
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "INVALID_CREDENTIALS"


def test_refresh(client, make_user):
    user = make_user("refresher")
    refresh_token = create_refresh_token(data={"sub": str(user.id)})

    response = client.post("/api/auth/refresh", json={"refreshToken": refresh_token})
    assert response.status_code == 200
    assert response.json()["data"]["accessToken"]


def test_refresh_rejects_access_token(client, make_user):
    user = make_user("refresher")
    access_token = create_access_token(data={"sub": str(user.id)})

    response = client.post("/api/auth/refresh", json={"refreshToken": access_token})
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "TOKEN_INVALID"


def test_expired_token(client, make_user):
    user = make_user("sleepy")
    token = create_access_token(data={"sub": str(user.id)}, expires_delta=timedelta(minutes=-1))

    response = client.get("/api/conversations", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "TOKEN_EXPIRED"


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_unknown_route_uses_error_envelope(client):
    response = client.get("/api/nothing-here")
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": {"code": "NOT_FOUND", "message": "Not Found"}}


def test_malformed_json_body(client, make_user, auth_headers):
    user = make_user("alice")
    response = client.post(
        "/api/conversations",
        content="{not json",
        headers={**auth_headers(user), "Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.parametrize(
    "error, status, code",
    [
        (OperationalError("SELECT 1", {}, Exception("server closed the connection unexpectedly")), 500, "INTERNAL_ERROR"),
        (DataError("SELECT 1", {}, Exception("invalid input syntax for type uuid")), 400, "INVALID_ID"),
        (StatementError("badly formed hexadecimal UUID string", "SELECT 1", {}, ValueError()), 400, "INVALID_ID"),
    ],
)
def test_database_errors_use_error_envelope(client, make_user, auth_headers, monkeypatch, error, status, code):
    from app.services import conversation_service

    user = make_user("alice")

    def failing_list(*args, **kwargs):
        raise error

    monkeypatch.setattr(conversation_service, "list_conversations", failing_list)
    response = client.get("/api/conversations", headers=auth_headers(user))
    assert response.status_code == status
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == code
