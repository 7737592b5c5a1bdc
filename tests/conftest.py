"""Pytest configuration and fixtures."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from dreik.config import Settings
from dreik.database import Base, get_db
from dreik.models.request import Request  # noqa: F401
from dreik.models.user import User  # noqa: F401
from dreik.models.workout import Workout  # noqa: F401
from dreik.stores.cache import InMemoryTokenCache

TEST_PASSWORD = "password123"


class FakeMailer:
    """Records outgoing emails instead of sending them. Fails the first `failures` sends."""

    def __init__(self, failures: int = 0) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.failures = failures
        self.attempts = 0

    def send_confirmation_email(self, recipient: str, token: str) -> None:
        self._send("confirmation", recipient, token)

    def send_recovery_email(self, recipient: str, token: str) -> None:
        self._send("recovery", recipient, token)

    def _send(self, kind: str, recipient: str, token: str) -> None:
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ConnectionError("smtp unavailable")
        self.sent.append((kind, recipient, token))

    def last(self, kind: str) -> tuple[str, str, str]:
        return [m for m in self.sent if m[0] == kind][-1]


@pytest.fixture(name="db_session")
def db_session_fixture():
    """Create an in-memory SQLite database for tests."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    testing_session_local = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(name="session_factory")
def session_factory_fixture(tmp_path):
    """Independent sessions on a file database, each with its own connection."""
    engine = create_engine(f"sqlite:///{tmp_path / 'dreik.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture(name="settings")
def settings_fixture(tmp_path) -> Settings:
    return Settings(
        ENV="local",
        TOKEN_SECRET="test-secret",
        DATABASE_URL="sqlite:///:memory:",
        REDIS_URL="",
        BASE_PATH="http://testserver",
        MAIL_SMTP_ADDRESS="",
        MAIL_RETRIES=2,
        MAIL_RETRY_BACKOFF=0,
        AVATAR_DIR=str(tmp_path / "avatars"),
        MAX_AVATAR_SIZE_BYTES=64 * 1024,
        REQUIRE_EMAIL_CONFIRMATION=False,
    )


@pytest.fixture(name="mailer")
def mailer_fixture() -> FakeMailer:
    return FakeMailer()


@pytest.fixture(name="app")
def app_fixture(settings: Settings, mailer: FakeMailer) -> FastAPI:
    from main import create_app

    return create_app(settings, mailer=mailer, cache=InMemoryTokenCache())


@pytest.fixture(name="client")
def client_fixture(app: FastAPI, db_session: Session):
    """Create a test client with overridden DB dependency and disabled rate limiting."""
    from dreik.rate_limit import limiter

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    limiter.enabled = False
    with TestClient(app) as c:
        yield c
    limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture(name="test_user")
def test_user_fixture(app: FastAPI, client: TestClient, db_session: Session):
    """Create a test user and return its data and an access token."""
    user = app.state.auth_service.register(db_session, "test@mail.com", "Test User", TEST_PASSWORD)
    app.state.mail_queue.join()
    return {
        "id": user.id,
        "email": user.email,
        "username": user.username,
        "name": user.name,
        "token": app.state.token_manager.issue(user.id),
    }


@pytest.fixture(name="auth_headers")
def auth_headers_fixture(test_user: dict) -> dict:
    return {"Authorization": f"Bearer {test_user['token']}"}


@pytest.fixture(name="register")
def register_fixture(client: TestClient):
    """Register an account through the API and return the response body."""

    def _register(email: str, name: str = "Someone", password: str = TEST_PASSWORD) -> dict:
        response = client.post("/api/auth/account", json={"email": email, "name": name, "password": password})
        assert response.status_code == 201, response.text
        return response.json()

    return _register


@pytest.fixture(name="login")
def login_fixture(client: TestClient):
    """Log in through the API and return an Authorization header."""

    def _login(email: str, password: str = TEST_PASSWORD) -> dict:
        response = client.post("/api/auth/session", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['token']}"}

    return _login
