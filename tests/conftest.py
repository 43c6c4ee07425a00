"""
tests/conftest.py -- Shared test fixtures for AuthGuard.

This module provides:
  - store: parametrized over InMemoryStorage and SqlStorage so every component
    test runs against both backends through the same contract
  - directory: an AccountDirectory wired to that store with a cheap bcrypt cost
  - FakeClock: a settable clock injected into time-dependent components
  - api_client: TestClient with a patched lifespan and an isolated directory

Design: Named shared-memory SQLite URIs (not plain :memory:) are used for the
SQL backend because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to each
worker thread.

DEBUG and BCRYPT_ROUNDS must be set before any auth/core import so
get_settings() auto-generates SECRET_KEY and accepts the cheap bcrypt cost.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: Set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from auth.directory import AccountDirectory
from auth.sql_store import SqlStorage
from auth.store import InMemoryStorage, Storage
from auth.tokens import TokenIssuer
from auth.vault import CredentialVault

TEST_SECRET = "test-secret-key-that-is-at-least-32-characters-long"
TEST_ROUNDS = 4

STRONG_PASSWORD = "Str0ng!Passw0rd"  # 15 chars -> strong_password flag
SHORT_PASSWORD = "Str0ng!Pass"  # 11 chars, passes policy but not "strong"


class FakeClock:
    """Callable clock that only moves when a test says so."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def _sql_url(name: str) -> str:
    return f"sqlite:///file:{name}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


@pytest.fixture(params=["memory", "sql"])
def store(request) -> Generator[Storage, None, None]:
    """Each backend behind the same Storage contract."""
    if request.param == "memory":
        s: Storage = InMemoryStorage()
    else:
        s = SqlStorage(_sql_url("test_store"))
    yield s
    s.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def vault() -> CredentialVault:
    return CredentialVault(rounds=TEST_ROUNDS)


@pytest.fixture
def issuer() -> TokenIssuer:
    return TokenIssuer(TEST_SECRET)


@pytest.fixture
def directory(store: Storage, vault: CredentialVault, issuer: TokenIssuer) -> AccountDirectory:
    return AccountDirectory(store=store, vault=vault, tokens=issuer)


@pytest.fixture
def clocked_directory(store: Storage, vault: CredentialVault, issuer: TokenIssuer, clock: FakeClock) -> AccountDirectory:
    """Directory whose ledger, registries and scorer all read the FakeClock."""
    return AccountDirectory(store=store, vault=vault, tokens=issuer, clock=clock)


@pytest.fixture
def alice(directory: AccountDirectory):
    return directory.register("alice", "alice@example.com", SHORT_PASSWORD)


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


def _patch_lifespan(directory: AccountDirectory):
    """Return an async context manager that replaces the real lifespan.

    Wires a pre-built directory into app.state so routes never touch the
    settings-driven production wiring.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.directory = directory
        yield

    return test_lifespan


@pytest.fixture
def api_client() -> Generator[tuple[TestClient, AccountDirectory], None, None]:
    """Yield (client, directory) for route integration tests.

    A fresh in-memory directory per test keeps tests independent of ordering.
    """
    from api.main import app

    directory = AccountDirectory(
        store=InMemoryStorage(),
        vault=CredentialVault(rounds=TEST_ROUNDS),
        tokens=TokenIssuer(TEST_SECRET),
    )
    original = app.router.lifespan_context
    app.router.lifespan_context = _patch_lifespan(directory)
    try:
        with TestClient(app, raise_server_exceptions=False) as client:
            yield client, directory
    finally:
        app.router.lifespan_context = original
