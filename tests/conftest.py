"""
tests/conftest.py -- Shared test fixtures for CyberSecure.

This module provides:
  - FakeClock / clock: a controllable time source so lockout expiry can be
    tested without sleeping
  - store / service: AccountStore on a private in-memory DB plus an
    AuthService wired to the fake clock
  - alice: the canonical active account (alice / P@ssw0rd!)
  - _make_test_service() / _patch_lifespan(): wire an isolated service into
    app.state, bypassing the real startup
  - api_client: TestClient with an admin bearer token for API tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the API fixture because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to each
worker thread. The named URI format shares one in-memory instance across all
connections in the same process.

Environment must be set before any project import: DEBUG lets get_settings()
auto-generate SECRET_KEY, BCRYPT_ROUNDS=4 keeps hashing fast, and the auth
rate limit is raised so lockout tests are not cut short by HTTP 429.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: Set before any auth/core/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("AUTH_RATE_LIMIT", "10000/minute")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.models import Account, Role
from auth.service import AuthService, Registration
from auth.store import AccountStore
from auth.tokens import TokenSigner

TEST_SECRET = "t" * 48
ALICE_PASSWORD = "P@ssw0rd!"
ADMIN_PASSWORD = "adminpass123"

# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable time source that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Store / service fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[AccountStore, None, None]:
    s = AccountStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def signer() -> TokenSigner:
    return TokenSigner(TEST_SECRET, expire_seconds=3600)


@pytest.fixture
def service(store: AccountStore, signer: TokenSigner, clock: FakeClock) -> AuthService:
    return AuthService(store, signer, bcrypt_rounds=4, clock=clock)


def registration(username: str, password: str = ALICE_PASSWORD, **overrides) -> Registration:
    fields = {
        "username": username,
        "email": f"{username}@example.com",
        "password": password,
        "first_name": username.capitalize(),
        "last_name": "Tester",
    }
    fields.update(overrides)
    return Registration(**fields)


@pytest.fixture
def alice(service: AuthService) -> Account:
    """Active analyst account alice / P@ssw0rd!."""
    return service.create_account(registration("alice"))


# ---------------------------------------------------------------------------
# App wiring helpers
# ---------------------------------------------------------------------------


def _make_test_service(db_suffix: str, clock: FakeClock) -> AuthService:
    """Create an AuthService over an isolated named shared-memory SQLite DB.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. 'auth', 'users').
    """
    db_url = f"sqlite:///file:test_cybersecure_{db_suffix}?mode=memory&cache=shared&uri=true"
    store = AccountStore(db_url)
    return AuthService(store, TokenSigner(TEST_SECRET, expire_seconds=3600), bcrypt_rounds=4, clock=clock)


def _patch_lifespan(service: AuthService):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.auth_service = service
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, FakeClock], None, None]:
    """Yield (client, admin_token, clock) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers but use an isolated in-memory store. An admin
    account (admin / adminpass123) exists before the client starts.

    The clock only drives lockout decisions; token expiry still uses real time.
    """
    clock = FakeClock()
    service = _make_test_service(request.module.__name__.rsplit(".", 1)[-1], clock)
    admin = service.create_account(registration("admin", ADMIN_PASSWORD, role=Role.admin, first_name="Site"))
    token = service.signer.sign(admin.id)

    limiter.enabled = False
    app.router.lifespan_context = _patch_lifespan(service)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, clock

    limiter.enabled = True
    service.store.close()


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
