"""
tests/conftest.py -- Shared test fixtures for Kairo integration tests.

This module provides:
  - _make_test_stores(): creates isolated in-memory DBs for users + practices
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - seed_world(): three practices (trial running, trial expired, paid) and a
    user per interesting role, with ready-made Bearer tokens
  - kairo: module-scoped TestClient plus the seeded world

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process. Each test
module gets its own name, so modules never see each other's rows.

The DEBUG env var must be set before any auth module import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import timedelta

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.credentials import encode_legacy, hash_password
from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import claims_for, issue_token
from core.config import get_settings, utcnow
from practice.models import Practice
from practice.store import PracticeStore
from tests.support import LEGACY_PASSWORD, PASSWORD


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, PracticeStore]:
    """Create isolated named shared-memory SQLite stores for test isolation.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    url = f"sqlite:///file:test_kairo_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=url), PracticeStore(db_url=url)


def _patch_lifespan(user_store: UserStore, practice_store: PracticeStore):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.practice_store = practice_store
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Seeded world
# ---------------------------------------------------------------------------


@dataclass
class World:
    client: TestClient
    users: UserStore
    practices: PracticeStore
    practice_ids: dict[str, int] = field(default_factory=dict)
    user_ids: dict[str, int] = field(default_factory=dict)
    tokens: dict[str, str] = field(default_factory=dict)


def seed_world(users: UserStore, practices: PracticeStore) -> tuple[dict, dict, dict]:
    """Create practices and users; return (practice_ids, user_ids, tokens).

    Practices:
      active  -- trial ends in 10 days
      expired -- trial ended an hour ago
      paid    -- not on trial

    Users (email <key>@example.org, password PASSWORD unless noted):
      admin, gp, legacy (base64 credential, LEGACY_PASSWORD)  -> active
      expired_gp, expired_admin                               -> expired
      paid_gp                                                 -> paid
      super                                                   -> no practice
      inactive (is_active False)                              -> active
    """
    now = utcnow()
    practice_ids = {
        "active": practices.create_practice(
            Practice(
                name="Active Surgery",
                email="active@practice.example.org",
                trial_ends_at=(now + timedelta(days=10)).isoformat(),
            )
        ),
        "expired": practices.create_practice(
            Practice(
                name="Expired Surgery",
                email="expired@practice.example.org",
                trial_ends_at=(now - timedelta(hours=1)).isoformat(),
            )
        ),
        "paid": practices.create_practice(
            Practice(
                name="Paid Surgery",
                email="paid@practice.example.org",
                is_trial=False,
                subscription_tier="PREMIUM",
            )
        ),
    }

    hashed = hash_password(PASSWORD)
    specs = [
        ("admin", Role.PRACTICE_ADMIN, "active", hashed, True),
        ("gp", Role.GP, "active", hashed, True),
        ("legacy", Role.NURSE, "active", encode_legacy(LEGACY_PASSWORD), True),
        ("inactive", Role.RECEPTIONIST, "active", hashed, False),
        ("expired_gp", Role.GP, "expired", hashed, True),
        ("expired_admin", Role.PRACTICE_ADMIN, "expired", hashed, True),
        ("paid_gp", Role.GP, "paid", hashed, True),
        ("super", Role.SUPER_ADMIN, None, hashed, True),
    ]
    user_ids: dict[str, int] = {}
    tokens: dict[str, str] = {}
    for key, role, practice, stored, active in specs:
        user = User(
            email=f"{key}@example.org",
            role=role.value,
            first_name=key.title(),
            last_name="Tester",
            practice_id=practice_ids[practice] if practice else None,
            is_active=active,
        )
        user_ids[key] = users.create_user(user, password=stored)
        tokens[key] = issue_token(claims_for(users.get_by_id(user_ids[key])), expire_seconds=3600)
    return practice_ids, user_ids, tokens


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    """Rate-limit counters are process-wide; start every test from zero."""
    limiter.reset()
    yield


@pytest.fixture
def device_check():
    """Turn the device guard on for one test."""
    settings = get_settings()
    previous = settings.device_check_enabled
    settings.device_check_enabled = True
    yield settings
    settings.device_check_enabled = previous


@pytest.fixture(scope="module")
def kairo(request) -> Generator[World, None, None]:
    """Yield a World: TestClient over the real app with isolated seeded stores.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use isolated in-memory stores.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    user_store, practice_store = _make_test_stores(suffix)
    practice_ids, user_ids, tokens = seed_world(user_store, practice_store)

    app.router.lifespan_context = _patch_lifespan(user_store, practice_store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield World(
            client=client,
            users=user_store,
            practices=practice_store,
            practice_ids=practice_ids,
            user_ids=user_ids,
            tokens=tokens,
        )

    user_store.close()
    practice_store.close()
