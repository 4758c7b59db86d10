"""
tests/conftest.py -- Shared test fixtures for TeamRoster.

This module provides:
  - user_store / team_store: in-memory stores for unit tests
  - make_user: factory that inserts a user with a known password
  - auth_service / team_service: services wired the same way api/main.py wires them
  - api_client: TestClient over the real app with isolated shared-memory stores
  - register_user: registers an account over HTTP and returns its token

Design: API tests use named shared-memory SQLite URIs (not plain :memory:)
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the process.

DEBUG must be set before any auth/core import so get_settings() auto-generates
SECRET_KEY in dev mode rather than raising ValueError. Rate limits are raised
so a test module can log in more than ten times a minute.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager

# CRITICAL: configure the environment before any project import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("REGISTER_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app, wire_services
from auth.models import User
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import hash_password
from teams.service import TeamService
from teams.store import TeamStore

TEST_PASSWORD = "password123"

# bcrypt is deliberately slow; hash once and reuse for every fixture user.
_TEST_HASH = hash_password(TEST_PASSWORD)


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    store = UserStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def team_store() -> Generator[TeamStore, None, None]:
    store = TeamStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def make_user(user_store: UserStore) -> Callable[..., User]:
    """Return a factory: make_user("u1") inserts u1@example.com and returns the stored User."""

    def _make(handle: str, name: str | None = None) -> User:
        email = f"{handle}@example.com"
        user_store.create_user(User(email=email, name=name or handle.upper(), hashed_password=_TEST_HASH))
        return user_store.get_by_email(email)

    return _make


@pytest.fixture
def auth_service(user_store: UserStore, team_store: TeamStore) -> AuthService:
    return AuthService(user_store, on_account_deleted=[team_store.purge_user])


@pytest.fixture
def team_service(user_store: UserStore, team_store: TeamStore) -> TeamService:
    return TeamService(team_store, user_store)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, TeamStore]:
    """Create isolated named shared-memory SQLite stores.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    users_url = f"sqlite:///file:test_users_{db_suffix}?mode=memory&cache=shared&uri=true"
    teams_url = f"sqlite:///file:test_teams_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=users_url), TeamStore(db_url=teams_url)


def _patch_lifespan(user_store: UserStore, team_store: TeamStore):
    """Return a lifespan that wires the pre-created test stores into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        wire_services(app, user_store, team_store)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[TestClient, None, None]:
    """Yield a TestClient over the real app with stores private to the test module."""
    suffix = request.module.__name__.replace(".", "_")
    user_store, team_store = _make_test_stores(suffix)
    app.router.lifespan_context = _patch_lifespan(user_store, team_store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client

    team_store.close()
    user_store.close()


@pytest.fixture
def register_user(api_client: TestClient) -> Callable[..., str]:
    """Return a factory that registers an account over HTTP and returns its token."""

    def _register(email: str, name: str = "Test User", password: str = TEST_PASSWORD) -> str:
        resp = api_client.post(
            "/api/v1/auth/register",
            json={"email": email, "password": password, "name": name},
        )
        assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
        return resp.json()["data"]

    return _register
