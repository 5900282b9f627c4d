"""
Shared fixtures.

Environment variables are set before the application is imported so the
engine points at a private in-memory SQLite database and uploads go to a
temporary directory.
"""
import os
import tempfile
import uuid

import pytest

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ["UPLOADS_DIR"] = tempfile.mkdtemp(prefix="messaging-uploads-")
os.environ["MEDIA_BASE_URL"] = "http://testserver"

from fastapi.testclient import TestClient  # noqa: E402

from app.core.auth import create_access_token  # noqa: E402
from app.core.notifier import Notifier, get_notifier  # noqa: E402
from app.db.session import Base, SessionLocal, engine  # noqa: E402
from app.models import BlockedUser, User  # noqa: E402
from main import app  # noqa: E402


class RecordingNotifier(Notifier):
    """Collects events instead of pushing them anywhere."""

    def __init__(self):
        self.events = []

    async def send(self, user_id: str, event: str, payload: dict) -> None:
        self.events.append((user_id, event, payload))

    def of_type(self, event: str):
        return [e for e in self.events if e[1] == event]


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(db, notifier):
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make_user(username=None, **kwargs):
        username = username or f"user_{uuid.uuid4().hex[:8]}"
        user = User(
            username=username,
            email=kwargs.pop("email", f"{username}@example.com"),
            display_name=kwargs.pop("display_name", username.title()),
            **kwargs,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def auth_headers():
    def _auth_headers(user):
        token = create_access_token(data={"sub": str(user.id)})
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers


@pytest.fixture
def block(db):
    def _block(blocker, blocked):
        db.add(BlockedUser(blocker_id=blocker.id, blocked_user_id=blocked.id))
        db.commit()

    return _block


@pytest.fixture
def create_group(client, auth_headers):
    """Create a group through the API and return its JSON representation"""
    def _create_group(admin, members, name="Team Alpha"):
        response = client.post(
            "/api/conversations/group",
            json={"name": name, "participantIds": [str(m.id) for m in members]},
            headers=auth_headers(admin),
        )
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return _create_group


@pytest.fixture
def create_direct(client, auth_headers):
    def _create_direct(user, other):
        response = client.post(
            "/api/conversations",
            json={"participantId": str(other.id)},
            headers=auth_headers(user),
        )
        assert response.status_code in (200, 201), response.text
        return response.json()["data"]

    return _create_direct
