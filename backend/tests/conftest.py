"""
conftest.py — Shared pytest fixtures for the steelworks backend test suite.

Two kinds of fixtures live here:
  - Engine fixtures (PricingEngine, CapacityAggregator) for pure unit tests.
  - An API ``client`` backed by a throwaway SQLite file. Tables are created
    with a sync engine, requests run through ``sqlite+aiosqlite`` with
    NullPool so every session gets a fresh connection on the test client's
    event loop. ``get_current_user`` is overridden; switch role with ``act_as``.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``steelworks.*`` imports resolve correctly regardless of where pytest is
    invoked.
"""

import sys
import os
import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any steelworks imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)

# Tests never touch a real database; keeps init_db() in dev-mode skip
os.environ.pop("DATABASE_URL", None)
os.environ.setdefault("LOG_FORMAT", "text")


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def pricing_engine():
    """PricingEngine with policy defaults: floor 25 %, rounding £25, deviation 15 %."""
    from steelworks.services.pricing_engine import PricingEngine
    return PricingEngine()


@pytest.fixture(scope="session")
def capacity_aggregator():
    """CapacityAggregator over the four standard departments, 4-week summary."""
    from steelworks.services.capacity_engine import CapacityAggregator
    return CapacityAggregator()


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

ROLE_USER_IDS = {
    "ADMIN": "00000000-0000-0000-0000-00000000a001",
    "ESTIMATOR": "00000000-0000-0000-0000-00000000a002",
    "PRODUCTION_MANAGER": "00000000-0000-0000-0000-00000000a003",
    "VIEWER": "00000000-0000-0000-0000-00000000a004",
    "DESIGNER": "00000000-0000-0000-0000-00000000a005",
}


def _make_user(role: str):
    from steelworks.models.orm_models import User
    return User(
        id=ROLE_USER_IDS[role],
        email=f"{role.lower()}@steelworks.test",
        hashed_password="not-a-real-hash",
        full_name=f"Test {role.title()}",
        role=role,
        is_active=True,
    )


@pytest.fixture
def acting_user():
    """Mutable holder for whoever the overridden auth dependency returns."""
    return {"user": _make_user("ADMIN")}


@pytest.fixture
def act_as(acting_user):
    def _act_as(role: str):
        acting_user["user"] = _make_user(role)
        return acting_user["user"]
    return _act_as


# ---------------------------------------------------------------------------
# Database + API client
# ---------------------------------------------------------------------------

@pytest.fixture
def sqlite_path(tmp_path):
    """Fresh SQLite file with the full schema and one user per test role."""
    from sqlalchemy import create_engine
    from sqlalchemy.orm import Session
    from steelworks.db import Base
    from steelworks.models import orm_models  # noqa: F401

    path = tmp_path / "steelworks_test.db"
    sync_engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(sync_engine)
    with Session(sync_engine) as session:
        session.add_all([_make_user(role) for role in ROLE_USER_IDS])
        session.commit()
    sync_engine.dispose()
    return path


@pytest.fixture
def session_factory(sqlite_path):
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
    from sqlalchemy.pool import NullPool

    engine = create_async_engine(f"sqlite+aiosqlite:///{sqlite_path}", poolclass=NullPool)
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def client(session_factory, acting_user):
    from fastapi.testclient import TestClient
    from steelworks.api.deps import get_current_user
    from steelworks.db import get_db
    from steelworks.main import app

    async def _get_test_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_test_db
    app.dependency_overrides[get_current_user] = lambda: acting_user["user"]
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Shared API data
# ---------------------------------------------------------------------------

@pytest.fixture
def customer(client):
    resp = client.post("/api/customers", json={"name": "Northgate Construction Ltd"})
    assert resp.status_code == 201
    return resp.json()


@pytest.fixture
def quote(client, customer):
    resp = client.post("/api/quotes", json={"customer_id": customer["id"], "subject": "Mezzanine floor"})
    assert resp.status_code == 201
    return resp.json()


@pytest.fixture
def effort_product():
    """
    Dict-shaped product with a single production effort:
    400 h from Mon 2025-01-06 to Mon 2025-02-03 (4 weeks) ⇒ 100 h/week.
    """
    return {
        "id": "p-1",
        "part_code": "BEAM-01",
        "project": {"project_number": "100001"},
        "production_estimated_hours": 400,
        "production_planned_start": "2025-01-06",
        "production_target_date": "2025-02-03",
        "production_completion_date": None,
    }
