"""
tests/conftest.py -- Shared test fixtures for VidTube Auth.

This module provides:
  - store / assets / sessions: in-memory unit-test wiring for SessionManager
  - staged_file: factory for throwaway "uploaded" files on disk
  - api_client: TestClient with a pre-registered user and access token

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the TestClient fixture because sync route handlers run in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. Unit tests stay on one thread, so sqlite:///:memory: is fine
there.

Environment must be set before any auth/core import:
  DEBUG=true              -- get_settings() generates both signing secrets
  PASSWORD_HASH_ROUNDS=4  -- bcrypt minimum cost keeps the suite fast
  UPLOAD_DIR              -- staged multipart files go to a temp dir
SECURE_COOKIES stays at its default (true), so the TestClient cookie jar never
replays session cookies over http://testserver; tests pass tokens explicitly.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager
from pathlib import Path
from unittest.mock import MagicMock

# CRITICAL: Set before any auth/core import -- settings are read at import time.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("PASSWORD_HASH_ROUNDS", "4")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="vidtube-uploads-"))

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import User
from auth.passwords import hash_password
from auth.sessions import SessionManager
from auth.store import UserStore
from auth.tokens import create_access_token
from media.storage import UploadedAsset

# ---------------------------------------------------------------------------
# Asset store double
# ---------------------------------------------------------------------------


def _fake_upload(local_path) -> UploadedAsset | None:
    if not local_path:
        return None
    name = Path(local_path).name
    return UploadedAsset(url=f"https://res.cloudinary.test/{name}", public_id=name)


def make_asset_store() -> MagicMock:
    """MagicMock asset store whose upload() mirrors the real contract."""
    assets = MagicMock()
    assets.upload.side_effect = _fake_upload
    return assets


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def assets() -> MagicMock:
    return make_asset_store()


@pytest.fixture
def sessions(store: UserStore, assets: MagicMock) -> SessionManager:
    return SessionManager(store, assets)


@pytest.fixture
def staged_file(tmp_path: Path) -> Callable[[str], Path]:
    """Return a factory that writes a small file and returns its path."""

    def _make(name: str = "avatar.png") -> Path:
        path = tmp_path / name
        path.write_bytes(b"\x89PNG fake image bytes")
        return path

    return _make


@pytest.fixture
def alice(sessions: SessionManager, staged_file) -> dict:
    """Register alice/alice@x.com/Secret123! and return the registration inputs plus id."""
    created = sessions.register(
        fullname="Alice Liddell",
        email="alice@x.com",
        username="alice",
        password="Secret123!",
        avatar_path=staged_file("alice.png"),
    )
    return {"id": created.id, "username": "alice", "email": "alice@x.com", "password": "Secret123!"}


# ---------------------------------------------------------------------------
# Integration fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, asset_store: MagicMock):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store and a mocked asset store into app.state so routes
    never touch the production database or the network.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.asset_store = asset_store
        app.state.sessions = SessionManager(user_store, asset_store)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, token, user_id) for API integration tests.

    The DB name includes the test module name so modules never share state.
    A user "testuser" / "testpass123" exists before the client starts and
    token is a valid access token for it.
    """
    db_name = request.module.__name__.replace(".", "_")
    user_store = UserStore(db_url=f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")

    uid = user_store.create_user(
        User(
            username="testuser",
            email="testuser@example.com",
            fullname="Test User",
            avatar="https://res.cloudinary.test/testuser.png",
            hashed_password=hash_password("testpass123"),
        )
    )
    token = create_access_token(user_store.get_by_id(uid))

    app.router.lifespan_context = _patch_lifespan(user_store, make_asset_store())

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, uid

    user_store.close()
