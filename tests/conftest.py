"""
tests/conftest.py -- Shared test fixtures for CareGate.

This module provides:
  - fake_clock: manually advanced monotonic clock for governor tests
  - seed_hierarchy(): loads a standard two-supervisor hierarchy into a store
  - memory_store: function-scoped in-memory UserStore with the hierarchy
  - api_client: module-scoped TestClient wired to an isolated store

Design: Named shared-memory SQLite URIs (not plain :memory:) are used for the
TestClient fixture because route handlers run in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

DEBUG, ALLOWED_HOSTS and GOVERNOR_SWEEP_SECONDS must be set before any
api/auth/core import so get_settings() picks them up.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

# CRITICAL: set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("GOVERNOR_SWEEP_SECONDS", "0")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.governor import AttemptGovernor
from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password

PASSWORD = "correct-horse"


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class Hierarchy:
    """Ids of the seeded principals.

    supervisor ──┬── professional ── (assigned) patient
                 └── unassigned_patient
    other_supervisor ── other_professional
    """

    supervisor: int
    professional: int
    patient: int
    unassigned_patient: int
    other_supervisor: int
    other_professional: int
    emails: dict[int, str] = field(default_factory=dict)


def seed_hierarchy(store: UserStore, password_hash: str | None = None) -> Hierarchy:
    tag = uuid.uuid4().hex[:8]

    def add(name: str, role: Role, supervisor_id: int | None = None) -> int:
        return store.create_user(
            User(
                email=f"{name}-{tag}@clinic.test",
                name=name,
                role=role.value,
                supervisor_id=supervisor_id,
                hashed_password=password_hash,
            )
        )

    sup = add("supervisor", Role.SUPERVISOR)
    pro = add("professional", Role.PROFESSIONAL, sup)
    pat = add("patient", Role.PATIENT, sup)
    lone = add("unassigned", Role.PATIENT, sup)
    sup2 = add("other-supervisor", Role.SUPERVISOR)
    pro2 = add("other-professional", Role.PROFESSIONAL, sup2)
    store.assign_patient(pat, pro)

    h = Hierarchy(sup, pro, pat, lone, sup2, pro2)
    h.emails = {u.id: u.email for u in store.list_users()}
    return h


def token_for(store: UserStore, user_id: int) -> str:
    user = store.get_by_id(user_id)
    return create_access_token(user.id, user.email, user.role, user.supervisor_id, expire_seconds=3600)


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store() -> Generator[tuple[UserStore, Hierarchy], None, None]:
    store = UserStore("sqlite:///:memory:")
    hierarchy = seed_hierarchy(store)
    yield store, hierarchy
    store.close()


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore):
    """Return a lifespan that wires the test store and a fresh governor into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.governor = AttemptGovernor(window_seconds=900, max_attempts=10)
        app.state.sweep_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.sweep_task.cancel()

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, UserStore, Hierarchy], None, None]:
    """Yield (client, store, hierarchy) for API integration tests.

    Every seeded account has the password PASSWORD. The store lives in a
    uniquely named shared-memory database so modules never see each other's rows.
    """
    db_url = f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    user_store = UserStore(db_url)
    hierarchy = seed_hierarchy(user_store, hash_password(PASSWORD))

    app.router.lifespan_context = _patch_lifespan(user_store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, user_store, hierarchy

    user_store.close()


@pytest.fixture
def fresh_governor(api_client) -> Generator[tuple[AttemptGovernor, FakeClock], None, None]:
    """Swap in a governor driven by a FakeClock for one test."""
    client, _store, _h = api_client
    clock = FakeClock()
    governor = AttemptGovernor(window_seconds=900, max_attempts=10, clock=clock)
    previous = client.app.state.governor
    client.app.state.governor = governor
    yield governor, clock
    client.app.state.governor = previous
