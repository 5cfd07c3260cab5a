"""Shared pytest configuration for the fintracker test-suite."""

from __future__ import annotations

import functools
import os
import sys
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path

import bcrypt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool


def _insert_repo_root() -> None:
    """Make sure the repository root is importable."""

    repo_root = Path(__file__).resolve().parents[1]
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))


_insert_repo_root()

from fintracker import crud  # noqa: E402
from fintracker.config import Settings  # noqa: E402
from fintracker.database import Base  # noqa: E402
from fintracker.security import AuthorizedContext  # noqa: E402
from fintracker.server import create_app  # noqa: E402

TEST_SECRET = "test-signing-secret"


def pytest_report_header(config: pytest.Config) -> Iterable[str]:  # pragma: no cover - pytest hook
    log_level = os.environ.get("FINTRACKER_LOG_LEVEL", "INFO")
    return [f"fintracker repo: {Path.cwd()}", f"FINTRACKER_LOG_LEVEL={log_level}"]


@pytest.fixture(autouse=True)
def _set_logging_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FINTRACKER_LOG_LEVEL", "INFO")
    monkeypatch.delenv("FINTRACKER_JSON_LOGS", raising=False)


@pytest.fixture(autouse=True)
def _fast_bcrypt(monkeypatch: pytest.MonkeyPatch) -> None:
    """Use the minimum bcrypt cost so hashing does not dominate test time."""

    monkeypatch.setattr(bcrypt, "gensalt", functools.partial(bcrypt.gensalt, rounds=4))


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(database_url="sqlite://", jwt_secret=TEST_SECRET, log_dir=tmp_path / "logs")


@pytest.fixture()
def engine() -> Iterator[Engine]:
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    session: Session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture()
def make_ctx(db_session: Session) -> Callable[[str], AuthorizedContext]:
    """Register a user directly in the store and return its context."""

    def _make(username: str = "alice") -> AuthorizedContext:
        user = crud.register_user(db_session, username, "s3cret-pass")
        return AuthorizedContext(user_id=user.id)

    return _make


@pytest.fixture()
def client(settings: Settings, engine: Engine) -> Iterator[TestClient]:
    app = create_app(settings, engine=engine)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def auth_headers(client: TestClient) -> Callable[..., dict[str, str]]:
    """Register and log in a user through the API, returning bearer headers."""

    def _login(username: str = "alice", password: str = "s3cret-pass") -> dict[str, str]:
        registered = client.post("/register", json={"username": username, "password": password})
        assert registered.status_code == 201, registered.text
        response = client.post("/login", json={"username": username, "password": password})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['token']}"}

    return _login
