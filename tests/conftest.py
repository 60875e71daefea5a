"""
tests/conftest.py -- Shared test fixtures for NexusAuth.

This module provides:
  - FrozenClock: an injectable clock for token-expiry and last_login tests
  - store: an isolated file-backed SQLite UserStore per test
  - tokens / authenticator / profiles: services wired to that store
  - settings / api_client: a TestClient over create_app() with a throwaway DB

Design: SQLite files under tmp_path (not :memory:) because TestClient runs
route handlers in a thread pool and the concurrency tests hit the store from
several threads; every connection must see the same database.

bcrypt_rounds=4 is the minimum bcrypt accepts and keeps the suite fast. The
cost factor changes speed, not behaviour.
"""

from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from api.main import create_app
from auth.service import Authenticator, ProfileService
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import Settings

TEST_SECRET = "test-secret-key-0123456789abcdef0123456789abcdef"
TEST_ROUNDS = 4


class BrokenEngine:
    """Engine stand-in whose every connection attempt fails with a driver error."""

    def __init__(self, message: str) -> None:
        self.message = message

    def connect(self):
        raise OperationalError("SELECT 1", {}, Exception(self.message))

    def dispose(self) -> None:
        pass


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


# ---------------------------------------------------------------------------
# Service-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def store(tmp_path) -> Generator[UserStore, None, None]:
    s = UserStore(f"sqlite:///{tmp_path / 'auth.db'}")
    yield s
    s.close()


@pytest.fixture
def tokens(clock: FrozenClock) -> TokenService:
    return TokenService(secret_key=TEST_SECRET, clock=clock)


@pytest.fixture
def authenticator(store: UserStore, tokens: TokenService, clock: FrozenClock) -> Authenticator:
    return Authenticator(store, tokens, bcrypt_rounds=TEST_ROUNDS, clock=clock)


@pytest.fixture
def profiles(store: UserStore) -> ProfileService:
    return ProfileService(store)


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


def make_settings(database_url: str, **overrides) -> Settings:
    values = {
        "debug": False,
        "secret_key": TEST_SECRET,
        "database_url": database_url,
        "bcrypt_rounds": TEST_ROUNDS,
        "allowed_hosts": ["testserver"],
        "unify_login_errors": False,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(f"sqlite:///{tmp_path / 'api.db'}")


@pytest.fixture
def api_client(settings: Settings) -> Generator[TestClient, None, None]:
    """TestClient over a fresh app and database.

    Entering the client runs the lifespan, so app.state.user_store and
    app.state.tokens are available to tests through client.app.state.
    """
    with TestClient(create_app(settings), raise_server_exceptions=True) as client:
        yield client


def register(client: TestClient, name: str = "Ada", email: str = "ada@x.com", password: str = "secret1"):
    return client.post("/api/auth/register", json={"name": name, "email": email, "password": password})


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
