"""
tests/conftest.py -- Shared test fixtures for Threadline auth tests.

This module provides:
  - settings / user_store / kv_store / notifier: isolated collaborators
  - service: an AuthService wired to those collaborators
  - new_session: factory for fresh anonymous SessionManagers
  - client: TestClient running the real app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the user store because SQLAlchemy hands each worker thread its own pooled
connection. Plain :memory: DBs are per-connection and would present a blank
schema to each thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.

The DEBUG env var must be set before any app import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.service import AuthService
from auth.sessions import SessionManager
from auth.store import UserStore
from cache.store import SQLiteKeyValueStore
from core.config import Settings


class RecordingNotifier:
    """Notifier double that keeps every reset email it is asked to send."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []

    async def send_reset_email(self, to_address: str, reset_link: str, recipient_name: str) -> None:
        self.sent.append((to_address, reset_link, recipient_name))

    def last_token(self) -> str:
        _to, link, _name = self.sent[-1]
        return link.rsplit("/", 1)[-1]


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def settings() -> Settings:
    """Test settings: fixed secret and a short forgot-password delay."""
    return Settings(
        debug=True,
        secret_key="test-secret-key-0123456789-abcdefghijklmnop",
        forgot_password_delay_seconds=0.2,
        frontend_url="http://localhost:3000/",
    )


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    store = UserStore(f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")
    yield store
    store.close()


@pytest.fixture
def kv_store() -> SQLiteKeyValueStore:
    return SQLiteKeyValueStore(":memory:")


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def service(user_store, kv_store, notifier, settings) -> AuthService:
    return AuthService(users=user_store, tokens=kv_store, notifier=notifier, settings=settings)


@pytest.fixture
def new_session(kv_store, settings):
    """Return a factory producing fresh anonymous sessions on the test store."""

    def _make() -> SessionManager:
        return SessionManager(kv_store, settings)

    return _make


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


def _patch_lifespan(service: AuthService, user_store: UserStore, kv_store, settings: Settings):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test collaborators into app.state so TestClient routes
    see isolated stores rather than the configured databases.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = settings
        app.state.user_store = user_store
        app.state.kv_store = kv_store
        app.state.auth_service = service
        yield
        await service.drain()

    return test_lifespan


@pytest.fixture
def client(service, user_store, kv_store, settings) -> Generator[TestClient, None, None]:
    """TestClient over the real app. Cookies persist across calls like a browser."""
    app.router.lifespan_context = _patch_lifespan(service, user_store, kv_store, settings)
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c
