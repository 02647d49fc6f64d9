import os
import sys
from pathlib import Path

# Must be set before `models` is imported: the storage singleton binds at import time
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402

from api import create_app  # noqa: E402
from models import storage  # noqa: E402
from models.credential_store import MemoryCredentialStore  # noqa: E402
from models.user import User  # noqa: E402
from utils.security import hash_password  # noqa: E402
from utils.tokens import AuthSettings, SessionManager  # noqa: E402

PASSWORD = "Secret123!"


@pytest.fixture
def settings():
    return AuthSettings(access_secret="unit-access-secret", refresh_secret="unit-refresh-secret")


@pytest.fixture
def memory_store():
    return MemoryCredentialStore()


@pytest.fixture
def session_manager(settings, memory_store):
    return SessionManager(settings, memory_store)


@pytest.fixture
def app():
    app = create_app("test", overrides={"CREDENTIAL_STORE_INSTANCE": MemoryCredentialStore()})
    with app.app_context():
        yield app
        storage.close()
        storage.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make(email="jane@example.com", username="jane", password=PASSWORD, role="user", active=True):
        user = User(
            email=email,
            username=username,
            password_hash=hash_password(password),
            role=role,
            active=active,
        )
        storage.new(user)
        storage.save()
        return user

    return _make


@pytest.fixture
def login(client):
    def _login(email="jane@example.com", password=PASSWORD):
        resp = client.post("/api/v1/users/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.get_json()
        return resp.get_json()

    return _login


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
