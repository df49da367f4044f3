"""
tests/conftest.py -- Shared test fixtures for HomeBase integration tests.

This module provides:
  - _make_test_store(): isolated named shared-memory SQLite household store
  - _seed(): two households -- H1 (admin, member, child) and H2 (foreign admin) --
    plus a signed-in user with no household yet
  - _patch_lifespan(): wires the test store, an in-memory weather cache, a
    mocked OAuth registry and a roomy edge gate into app.state
  - env: module-scoped (client, Seed) for API and web tests
  - reset_limits: autouse; clears slowapi and edge-gate counters per test

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.

The DEBUG env var must be set before any core/auth import so get_settings()
auto-generates SECRET_KEY instead of raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from unittest.mock import MagicMock

# CRITICAL: Set DEBUG before any auth/core import.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.gate import RateLimitGate
from api.limiter import limiter
from asgi import app
from auth.tokens import create_session_token
from cache.store import WeatherCache
from household.store import HouseholdStore

# Roomy enough that no ordinary test module trips it; test_edge_gate
# swaps in the production-sized gate explicitly.
_TEST_GATE_LIMIT = "100000/minute"


@dataclass
class Seed:
    store: HouseholdStore
    h1: int
    h2: int
    admin_id: int
    member_id: int
    child_id: int
    foreign_admin_id: int
    tokens: dict[str, str] = field(default_factory=dict)

    def auth(self, who: str) -> dict[str, str]:
        """Authorization header for one of: admin, member, child, foreign, newcomer."""
        return {"Authorization": f"Bearer {self.tokens[who]}"}


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_store(db_suffix: str) -> HouseholdStore:
    return HouseholdStore(db_url=f"sqlite:///file:test_homebase_{db_suffix}?mode=memory&cache=shared&uri=true")


def _add_member(store: HouseholdStore, household_id: int, invited_by: int, email: str, name: str, role: str) -> int:
    invitation = store.create_invitation(household_id, email, role, invited_by)
    member = store.accept_invitation(invitation, external_id=f"test:{email}", email=email, display_name=name)
    return member.id


def _seed(store: HouseholdStore) -> Seed:
    h1, admin = store.create_household_with_admin(
        name="The Smith Family",
        location="Denver, CO",
        timezone_name="America/Denver",
        external_id="test:alice@example.com",
        email="alice@example.com",
        display_name="Alice",
    )
    member_id = _add_member(store, h1.id, admin.id, "bob@example.com", "Bob", "MEMBER")
    child_id = _add_member(store, h1.id, admin.id, "kid@example.com", "Kid", "CHILD")
    h2, foreign = store.create_household_with_admin(
        name="The Jones Family",
        location=None,
        timezone_name="UTC",
        external_id="test:zed@example.com",
        email="zed@example.com",
        display_name="Zed",
    )
    seed = Seed(
        store=store,
        h1=h1.id,
        h2=h2.id,
        admin_id=admin.id,
        member_id=member_id,
        child_id=child_id,
        foreign_admin_id=foreign.id,
    )
    for who, email, name in (
        ("admin", "alice@example.com", "Alice"),
        ("member", "bob@example.com", "Bob"),
        ("child", "kid@example.com", "Kid"),
        ("foreign", "zed@example.com", "Zed"),
        ("newcomer", "new@example.com", "Newcomer"),
    ):
        seed.tokens[who] = create_session_token(f"test:{email}", email, name, expire_seconds=3600)
    return seed


def _patch_lifespan(store: HouseholdStore):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.store = store
        app.state.weather_cache = WeatherCache(db_path=":memory:", ttl=600)
        app.state.oauth = MagicMock()
        app.state.edge_gate = RateLimitGate(limit=_TEST_GATE_LIMIT)
        yield
        app.state.weather_cache.close()

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def env(request) -> Generator[tuple[TestClient, Seed], None, None]:
    """Yield (client, seed) backed by a fresh store for this test module.

    follow_redirects=False so web tests can assert on Location headers.
    """
    store = _make_test_store(request.module.__name__.rsplit(".", 1)[-1])
    seed = _seed(store)
    app.router.lifespan_context = _patch_lifespan(store)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield client, seed

    store.close()


@pytest.fixture(autouse=True)
def reset_limits() -> Generator[None, None, None]:
    limiter.reset()
    gate = getattr(app.state, "edge_gate", None)
    if gate is not None:
        gate.reset()
    yield
