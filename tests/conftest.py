"""Shared fixtures for filevault tests."""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from filevault.core.config import Settings
from filevault.main import create_app
from filevault.models.database import init_db, make_engine, make_session_factory
from filevault.services.blobs import LocalBlobStore
from filevault.services.credentials import CredentialStore
from filevault.services.sessions import Identity

# Cheap hash for tests; production default is scrypt
FAST_HASH = "pbkdf2:sha256:1000"


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.sent: list[tuple[str, str, int]] = []
        self.fail = fail

    def send_otp(self, email: str, code: str, expires_in_minutes: int) -> None:
        if self.fail:
            raise ConnectionError("smtp down")
        self.sent.append((email, code, expires_in_minutes))

    @property
    def last_code(self) -> str:
        return self.sent[-1][1]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def db(tmp_path: Path):
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(engine)
    session = make_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def credentials():
    return CredentialStore(hash_method=FAST_HASH)


@pytest.fixture
def blob_dir(tmp_path: Path) -> Path:
    return tmp_path / "blobs"


@pytest.fixture
def blobs(blob_dir: Path):
    return LocalBlobStore(blob_dir)


@pytest.fixture
def user(db, credentials):
    return credentials.create_user(db, "alice@example.com", "alice", "secret123")


@pytest.fixture
def other_user(db, credentials):
    return credentials.create_user(db, "bob@example.com", "bob", "secret456")


def identity_for(user) -> Identity:
    return Identity(user_id=user.id, email=user.email, issued_at=0, expires_at=0)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{tmp_path / 'app.db'}",
        secret_key="test-secret",
        password_hash_method=FAST_HASH,
        storage_dir=tmp_path / "storage",
        log_level="WARNING",
    )


@pytest.fixture
def app(settings, notifier):
    application = create_app(settings, notifier=notifier)
    yield application
    application.state.services.engine.dispose()


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def register_and_login(client: TestClient, email: str = "alice@example.com", password: str = "secret123") -> str:
    res = client.post(
        "/auth/register",
        json={"email": email, "username": email.split("@")[0], "password": password},
    )
    assert res.status_code == 201, res.text
    res = client.post("/auth/login", json={"email": email, "password": password})
    assert res.status_code == 200, res.text
    return res.json()["token"]


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
