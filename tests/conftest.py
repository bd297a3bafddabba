"""
tests/conftest.py -- Shared test fixtures for the deal pipeline test suite.

This module provides:
  - _make_test_stores(): isolated in-memory DB shared by the three stores
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient plus admin and user access tokens
  - db_url / user_store / ledger / deal_store: file-backed stores for unit tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

DEBUG and RATE_LIMIT_ENABLED must be set before any core/auth/api import:
get_settings() is cached on first call, and api.limiter reads it at import.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set before any core/auth/api import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError, and so
# the shared limiter is built disabled.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient

from api.main import app, install_services
from auth.ledger import RefreshTokenLedger
from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import TokenIssuer, hash_password
from deals.store import DealStore

ADMIN_USERNAME = "testadmin"
ADMIN_PASSWORD = "testpass123"
USER_USERNAME = "analyst"
USER_PASSWORD = "analystpass1"

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, RefreshTokenLedger, DealStore]:
    """Create isolated named shared-memory SQLite stores for test isolation.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. the module name).
    """
    url = f"sqlite:///file:test_pipeline_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=url), RefreshTokenLedger(db_url=url), DealStore(db_url=url)


def _patch_lifespan(user_store: UserStore, ledger: RefreshTokenLedger, deal_store: DealStore):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see
    isolated test DBs rather than the production database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        install_services(app, user_store, ledger, deal_store)
        yield

    return test_lifespan


def _make_user(store: UserStore, username: str, password: str, role: Role = Role.USER) -> User:
    """Insert an identity directly through the store and return it with its id."""
    uid = store.create_user(
        User(
            username=username,
            email=f"{username}@example.com",
            hashed_password=hash_password(password),
            role=role,
        )
    )
    return store.get_by_id(uid)


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, admin_token, user_token) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use an isolated in-memory database.
    An admin (testadmin) and a regular user (analyst) exist before the client
    starts; both tokens are minted with the app's own signing key.
    """
    user_store, ledger, deal_store = _make_test_stores(request.module.__name__.rsplit(".", 1)[-1])

    admin = _make_user(user_store, ADMIN_USERNAME, ADMIN_PASSWORD, Role.ADMIN)
    analyst = _make_user(user_store, USER_USERNAME, USER_PASSWORD)
    issuer = TokenIssuer.from_settings()

    app.router.lifespan_context = _patch_lifespan(user_store, ledger, deal_store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, issuer.issue(admin), issuer.issue(analyst)

    user_store.close()
    ledger.close()
    deal_store.close()


# ---------------------------------------------------------------------------
# Function-scoped store fixtures for unit tests
#
# File-backed (tmp_path) rather than shared-memory so each test starts empty
# and threaded tests get real SQLite locking.
# ---------------------------------------------------------------------------


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'pipeline.db'}"


@pytest.fixture
def user_store(db_url: str) -> Generator[UserStore, None, None]:
    store = UserStore(db_url=db_url)
    yield store
    store.close()


@pytest.fixture
def ledger(db_url: str) -> Generator[RefreshTokenLedger, None, None]:
    store = RefreshTokenLedger(db_url=db_url)
    yield store
    store.close()


@pytest.fixture
def deal_store(db_url: str) -> Generator[DealStore, None, None]:
    store = DealStore(db_url=db_url)
    yield store
    store.close()
