"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from leave_ledger.common.constants import UserRole
from leave_ledger.config import settings
from leave_ledger.database import Base, get_db
from leave_ledger.main import create_app

# Import model modules so every table is registered on Base.metadata
import leave_ledger.common.audit  # noqa: F401
import leave_ledger.leave.models  # noqa: F401

# ── SQLite compat: compile PG-specific types to TEXT/CHAR ───────────

from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from leave_ledger.common.rate_limit import limiter

    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependency overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


@pytest.fixture
def session_factory() -> async_sessionmaker[AsyncSession]:
    """The sessionmaker bound to the test engine, for tests that need
    several independent sessions."""
    return TestSessionFactory


# ── Model factories ─────────────────────────────────────────────────

async def seed_leave_type(
    session: AsyncSession,
    *,
    name: str = "Annual Leave",
    default_days: int = 10,
):
    from leave_ledger.leave.models import LeaveType

    leave_type = LeaveType(id=uuid.uuid4(), name=name, default_days=default_days)
    session.add(leave_type)
    await session.flush()
    return leave_type


async def seed_allocation(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    *,
    period: int | None = None,
    number_of_days: int = 10,
):
    from leave_ledger.leave.models import LeaveAllocation

    allocation = LeaveAllocation(
        id=uuid.uuid4(),
        employee_id=employee_id,
        leave_type_id=leave_type_id,
        period=period or datetime.now(timezone.utc).year,
        number_of_days=number_of_days,
    )
    session.add(allocation)
    await session.flush()
    return allocation


@pytest.fixture
def employee_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def admin_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
async def leave_type(db):
    """An "Annual Leave" type with 10 default days."""
    lt = await seed_leave_type(db)
    await db.commit()
    return lt


@pytest.fixture
async def allocation(db, employee_id, leave_type):
    """10 days of Annual Leave for the current period."""
    alloc = await seed_allocation(db, employee_id, leave_type.id, number_of_days=10)
    await db.commit()
    return alloc


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    employee_id: uuid.UUID,
    role: UserRole = UserRole.employee,
    expired: bool = False,
) -> str:
    """Generate a JWT access token as the identity provider would."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
    payload = {
        "sub": str(employee_id),
        "role": role.value,
        "type": "access",
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def bearer(employee_id: uuid.UUID, role: UserRole = UserRole.employee) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(employee_id, role)}"}


@pytest.fixture
def auth_headers(employee_id) -> dict[str, str]:
    """Bearer headers for the plain employee."""
    return bearer(employee_id)


@pytest.fixture
def admin_headers(admin_id) -> dict[str, str]:
    """Bearer headers for an admin."""
    return bearer(admin_id, UserRole.admin)
