"""
tests/conftest.py -- Shared test fixtures for Staylist integration tests.

This module provides:
  - _make_test_store(): creates an isolated in-memory user DB
  - _patch_lifespan(): wires the test store into app.state, bypassing real startup
  - settings: the validated Settings used by every fixture
  - api_client: TestClient plus a registered user and a bearer token for it
  - FakeUserLookup: in-memory UserLookup that records every lookup call

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient and run_in_threadpool run queries on worker threads.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread.

SECRET_KEY and PASSWORD_PEPPER must be set before any api/ import:
api.main reads Settings at import time and refuses to load without them.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set secrets before any api/ or core/ import so get_settings()
# validates instead of raising ValueError.
os.environ.setdefault("SECRET_KEY", "test-signing-key-0123456789abcdef0123456789")
os.environ.setdefault("PASSWORD_PEPPER", "test-pepper-fedcba9876543210")
os.environ.setdefault("ARGON2_TIME_COST", "1")
os.environ.setdefault("ARGON2_MEMORY_COST", "1024")
os.environ.setdefault("ARGON2_PARALLELISM", "1")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app, install_auth
from auth.models import User
from auth.passwords import PasswordHasher
from auth.store import UserStore
from core.config import Settings, get_settings

TEST_EMAIL = "ann@example.com"
TEST_PASSWORD = "s3cret!"


class FakeUserLookup:
    """In-memory UserLookup. `calls` records every subject id looked up."""

    def __init__(self, *users: User) -> None:
        self.users = {u.id: u for u in users}
        self.calls: list[str] = []

    async def find_by_id(self, user_id: str) -> User | None:
        self.calls.append(user_id)
        return self.users.get(user_id)

    async def find_by_email(self, email: str) -> User | None:
        return next((u for u in self.users.values() if u.email == email), None)


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_store(db_suffix: str) -> UserStore:
    """Create an isolated named shared-memory SQLite store.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    return UserStore(db_url=f"sqlite:///file:test_users_{db_suffix}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(settings: Settings, user_store: UserStore):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        install_auth(app, settings, user_store)
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def settings() -> Settings:
    return get_settings()


@pytest.fixture(scope="session")
def hasher(settings: Settings) -> PasswordHasher:
    return PasswordHasher.from_settings(settings)


@pytest.fixture(scope="module")
def api_client(request, settings: Settings, hasher: PasswordHasher) -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, token, user_id) for API integration tests.

    The user (TEST_EMAIL / TEST_PASSWORD) is created before the client starts;
    the token is issued with the same codec the app uses.
    """
    user_store = _make_test_store(request.module.__name__.rsplit(".", 1)[-1])
    user = User(name="Ann", email=TEST_EMAIL, password_digest=hasher.hash_password(TEST_PASSWORD))
    uid = user_store.create_user(user)

    app.router.lifespan_context = _patch_lifespan(settings, user_store)

    with TestClient(app, raise_server_exceptions=True) as client:
        token = app.state.token_codec.issue(uid, TEST_EMAIL, ttl_seconds=3600)
        yield client, token, uid

    user_store.close()


@pytest.fixture
def fake_lookup() -> type[FakeUserLookup]:
    """The FakeUserLookup class, so tests can build one with their own users."""
    return FakeUserLookup
