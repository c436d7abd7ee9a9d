"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of starledger.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

from datetime import UTC, datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from starledger.database.models import Base, Member, ShareEvent  # noqa: E402
from starledger.database.seed import seed_reward_rules  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all StarLedger tables.

    JSONB columns are transparently mapped to TEXT for SQLite compatibility.
    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db`` and by the
    TestClient threadpool).  The default reward rules are seeded.
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    seed_reward_rules(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a transactional session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


# ---------------------------------------------------------------------------
# Data helpers
# ---------------------------------------------------------------------------
BASE_TIME = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


def add_member(engine: Engine, member_id: str, role: str = "user") -> None:
    with Session(engine) as session:
        session.add(Member(id=member_id, role=role))
        session.commit()


def add_shares(engine: Engine, member_id: str, count: int, *, start: int = 0) -> list[int]:
    """Insert *count* unawarded shares one minute apart; return their ids.

    The member row must already exist.
    """
    with Session(engine) as session:
        rows = [
            ShareEvent(
                member_id=member_id,
                platform="x",
                created_at=BASE_TIME + timedelta(minutes=start + i),
            )
            for i in range(count)
        ]
        session.add_all(rows)
        session.commit()
        return [row.id for row in rows]


class RecordingNotifier:
    """Notifier double that keeps every delivery for assertions."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[str, dict]] = []
        self.broadcasts: list[tuple[str, dict]] = []
        self.connections: dict[str, str] = {}

    # Live-socket bookkeeping, used by the /ws endpoint
    def register(self, member_id: str, role: str, conn) -> None:
        self.connections[member_id] = role

    def unregister(self, member_id: str, conn) -> None:
        self.connections.pop(member_id, None)

    def send(self, member_id: str, payload: dict) -> None:
        if self.fail:
            raise ConnectionError("socket gone")
        self.sent.append((member_id, payload))

    def broadcast(self, role: str, payload: dict) -> None:
        if self.fail:
            raise ConnectionError("socket gone")
        self.broadcasts.append((role, payload))

    def types_sent(self) -> list[str]:
        return [payload["type"] for _, payload in self.sent]

    def types_broadcast(self) -> list[str]:
        return [payload["type"] for _, payload in self.broadcasts]


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


# ---------------------------------------------------------------------------
# API helpers
# ---------------------------------------------------------------------------
def make_token(sub: str = "member-1", **claims) -> str:
    """Create a member JWT.  Usable as both a fixture helper and a factory."""
    import jwt

    from starledger.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode({"sub": sub, **claims}, JWT_SECRET, algorithm=JWT_ALGORITHM)


def auth(sub: str = "member-1") -> dict:
    return {"Authorization": f"Bearer {make_token(sub)}"}


@pytest.fixture
def scheduler(db_engine, notifier):
    """Unstarted LedgerScheduler bound to the SQLite engine."""
    from starledger.config import StarLedgerConfig
    from starledger.services.scheduler import LedgerScheduler

    return LedgerScheduler(db_engine, StarLedgerConfig(scheduler_enabled=False), notifier)


@pytest.fixture
def client(db_engine, notifier, scheduler):
    """FastAPI TestClient bound to the SQLite engine and a recording notifier.

    The lifespan (scheduler start) is not run; jobs are tested directly.
    """
    from fastapi.testclient import TestClient

    from starledger.api.deps import get_config, get_engine, get_notifier, get_scheduler
    from starledger.api.main import app
    from starledger.config import StarLedgerConfig

    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_config] = lambda: StarLedgerConfig(scheduler_enabled=False)
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_scheduler] = lambda: scheduler
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
