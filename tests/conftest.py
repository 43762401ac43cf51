"""
tests/conftest.py -- Shared test fixtures for the RBAC auth service.

This module provides:
  - hasher / tokens: fast core components (bcrypt at 4 rounds, 1h tokens)
  - admin_password: password of the seeded bootstrap admin
  - store: a fresh in-memory CredentialStore per test
  - seeded_store: store + default permissions/roles + bootstrap admin
  - api_client: TestClient wired to an isolated store with an admin JWT

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the API fixture because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.

Environment must be set before any api/core import: DEBUG lets get_settings()
auto-generate SECRET_KEY, ALLOWED_HOSTS admits TestClient's "testserver"
host, and the login limit is a small fixed value that the rate-limit test
can exhaust. Counters are reset before every test (reset_rate_limits).
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set env before any api/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("LOGIN_RATE_LIMIT", "20/minute")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("SEED_DEFAULTS", "false")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app, wire_services
from auth.accounts import AccountService
from auth.passwords import PasswordHasher
from auth.seed import seed_defaults
from auth.store import CredentialStore
from auth.tokens import TokenConfig, TokenService

TEST_SECRET = "test-secret-key-0123456789abcdef0123456789"
ADMIN_PASSWORD = "adminpassword"


# ---------------------------------------------------------------------------
# Core component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def token_config() -> TokenConfig:
    return TokenConfig(secret_key=TEST_SECRET, issuer="auth-api", duration_seconds=3600)


@pytest.fixture
def tokens(token_config: TokenConfig) -> TokenService:
    return TokenService(token_config)


@pytest.fixture
def store() -> Generator[CredentialStore, None, None]:
    s = CredentialStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def accounts(store: CredentialStore, hasher: PasswordHasher) -> AccountService:
    return AccountService(store, hasher)


@pytest.fixture
def admin_password() -> str:
    return ADMIN_PASSWORD


@pytest.fixture
def seeded_store(store: CredentialStore, accounts: AccountService) -> CredentialStore:
    """Default permission matrix plus the bootstrap admin (admin / adminpassword)."""
    seed_defaults(store, accounts, admin_password=ADMIN_PASSWORD)
    return store


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_rate_limits() -> None:
    """Give every test a fresh per-IP login budget."""
    limiter.reset()


def _patch_lifespan(store: CredentialStore):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-created test store into app.state so TestClient routes see
    an isolated test DB rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        wire_services(app, store)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, token, admin_user_id) for API integration tests.

    The store is seeded with the default roles and the admin user before the
    client starts; the token is obtained through the real login route.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    store = CredentialStore(f"sqlite:///file:test_auth_{suffix}?mode=memory&cache=shared&uri=true")
    seed_defaults(store, AccountService(store, PasswordHasher(rounds=4)), admin_password=ADMIN_PASSWORD)
    admin_id = store.get_user_by_username("admin").id

    app.router.lifespan_context = _patch_lifespan(store)

    with TestClient(app, raise_server_exceptions=True) as client:
        resp = client.post("/api/v1/auth/login", json={"username": "admin", "password": ADMIN_PASSWORD})
        assert resp.status_code == 200, resp.text
        yield client, resp.json()["access_token"], admin_id

    store.close()
