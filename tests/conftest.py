"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os
from pathlib import Path

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET and config path are set for test runs.
# This must happen before any import of zeclub.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)
os.environ.setdefault(
    "ZECLUB_CONFIG",
    str(Path(__file__).resolve().parent.parent / "config.yaml.example"),
)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from zeclub.database.engine import init_db  # noqa: E402
from zeclub.database.models import Mission, Reward, User  # noqa: E402
from zeclub.engine.ranks import apply_rank  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent)."""
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all ZE Club tables, seeded.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used by ``run_db``).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    return engine


@pytest.fixture
def file_engine(tmp_path) -> Engine:
    """A file-backed SQLite engine: separate sessions get separate connections."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'zeclub.db'}",
        echo=False,
        connect_args={"check_same_thread": False},
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------
def make_user(engine: Engine, *, experience: int = 0, ze_coins: int = 0, **kw) -> int:
    """Insert a member with ranked fields consistent with *experience*."""
    with Session(engine) as session:
        n = session.query(User).count() + 1
        user = User(
            email=kw.pop("email", f"member{n}@example.com"),
            name=kw.pop("name", f"Member {n}"),
            ze_tag=kw.pop("ze_tag", f"ZE{n:04d}"),
            experience=experience,
            ze_coins=ze_coins,
            **kw,
        )
        apply_rank(user)
        session.add(user)
        session.commit()
        return user.id


def make_mission(engine: Engine, *, points: int = 15, **kw) -> int:
    with Session(engine) as session:
        mission = Mission(
            name=kw.pop("name", "Share a highlight"),
            description=kw.pop("description", "Post your best clip"),
            points=points,
            active=kw.pop("active", True),
            current_completions=kw.pop("current_completions", 0),
            **kw,
        )
        session.add(mission)
        session.commit()
        return mission.id


def make_reward(engine: Engine, *, cost: int = 100, stock: int = 5, **kw) -> int:
    with Session(engine) as session:
        reward = Reward(
            name=kw.pop("name", "Club Jersey"),
            description=kw.pop("description", "Official ZE Club jersey"),
            cost=cost,
            stock=stock,
            required_rank=kw.pop("required_rank", "Rookie"),
            exclusive_to_top3=kw.pop("exclusive_to_top3", False),
            discountable=kw.pop("discountable", True),
            **kw,
        )
        session.add(reward)
        session.commit()
        return reward.id


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------
def make_token(user_id: int, *, roles: list[str] | None = None, email: str | None = None) -> str:
    """Create a session JWT as the auth provider would issue it."""
    import jwt

    from zeclub.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": str(user_id), "email": email or f"user{user_id}@example.com",
         "roles": roles if roles is not None else ["user"]},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


def make_admin_token(user_id: int = 99999) -> str:
    return make_token(user_id, roles=["user", "admin"], email="admin@example.com")


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(db_engine):
    """FastAPI TestClient bound to the in-memory engine.

    Not entered as a context manager, so the lifespan hook (which would
    connect to DATABASE_URL) never runs.
    """
    from fastapi.testclient import TestClient

    from zeclub.api.deps import get_engine
    from zeclub.api.main import app

    app.dependency_overrides[get_engine] = lambda: db_engine
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
