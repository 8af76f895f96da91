"""
tests/conftest.py -- Shared test fixtures for Gatehouse.

This module provides:
  - FakeNotifier: records every message and can be told to fail
  - store / codec / notifier / service / workflow: unit-level collaborators
  - api_client: TestClient on the real app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are used for the
API client because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread.

Environment variables must be set before any api/auth/core import so
get_settings() auto-generates SECRET_KEY in dev mode, uses a cheap bcrypt
cost, and accepts the TestClient's "testserver" Host header.
"""

from __future__ import annotations

import itertools
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

# CRITICAL: set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.reset import PasswordResetWorkflow
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import SessionTokenCodec
from core.config import get_settings
from core.notifier import NotificationError

TEST_SECRET = "test-secret-key-that-is-at-least-32-characters"
TEST_WINDOW = 3600
TEST_ROUNDS = 4

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

_db_counter = itertools.count()


class FakeNotifier:
    """Notifier double. Records calls; raises NotificationError when told to."""

    def __init__(self) -> None:
        self.welcome: list[tuple[str, str]] = []
        self.resets: list[tuple[str, str, str]] = []
        self.fail_welcome = False
        self.fail_reset = False

    def send_welcome(self, user, profile_url: str) -> None:
        if self.fail_welcome:
            raise NotificationError("SMTP down")
        self.welcome.append((user.email, profile_url))

    def send_password_reset(self, user, reset_url: str, message: str) -> None:
        if self.fail_reset:
            raise NotificationError("SMTP down")
        self.resets.append((user.email, reset_url, message))

    @property
    def last_reset_token(self) -> str:
        _email, url, _message = self.resets[-1]
        return url.rsplit("/", 1)[-1]


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore(f"sqlite:///file:unit_auth_{next(_db_counter)}?mode=memory&cache=shared&uri=true")
    yield s
    s.close()


@pytest.fixture
def codec() -> SessionTokenCodec:
    return SessionTokenCodec(TEST_SECRET, TEST_WINDOW)


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def service(store: UserStore, codec: SessionTokenCodec, notifier: FakeNotifier) -> AuthService:
    return AuthService(store, codec, notifier, bcrypt_rounds=TEST_ROUNDS)


@pytest.fixture
def workflow(store: UserStore, codec: SessionTokenCodec, notifier: FakeNotifier) -> PasswordResetWorkflow:
    return PasswordResetWorkflow(store, codec, notifier, bcrypt_rounds=TEST_ROUNDS)


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, notifier: FakeNotifier):
    """Return a lifespan that wires test collaborators into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        settings = get_settings()
        codec = SessionTokenCodec(settings.secret_key, settings.token_expire_seconds)
        app.state.settings = settings
        app.state.user_store = user_store
        app.state.auth_service = AuthService(user_store, codec, notifier, bcrypt_rounds=TEST_ROUNDS)
        app.state.reset_workflow = PasswordResetWorkflow(user_store, codec, notifier, bcrypt_rounds=TEST_ROUNDS)
        yield

    return test_lifespan


@pytest.fixture
def api_client() -> Generator[tuple[TestClient, UserStore, FakeNotifier], None, None]:
    """Yield (client, store, notifier) backed by a fresh in-memory database."""
    user_store = UserStore(f"sqlite:///file:api_auth_{next(_db_counter)}?mode=memory&cache=shared&uri=true")
    notifier = FakeNotifier()
    app.router.lifespan_context = _patch_lifespan(user_store, notifier)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, user_store, notifier

    user_store.close()
