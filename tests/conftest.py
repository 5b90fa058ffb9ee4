"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
Factories commit, so rows written here survive a request that rolls back.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from hrms.auth.security import create_access_token, hash_token
from hrms.common.constants import HolidayType, UserRole
from hrms.database import Base, get_db
from hrms.main import create_app

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
import hrms.attendance.models  # noqa: F401
import hrms.auth.models  # noqa: F401
import hrms.common.audit  # noqa: F401
import hrms.core_hr.models  # noqa: F401
import hrms.holidays.models  # noqa: F401
import hrms.leave.models  # noqa: F401
import hrms.notifications.models  # noqa: F401
import hrms.permissions.models  # noqa: F401

# ── SQLite compat: compile PG-specific types to TEXT ────────────────

from sqlalchemy.dialects.postgresql import INET, JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(INET, "sqlite")
def _inet_sqlite(element, compiler, **kw):
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


@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() and gen_random_uuid() as SQLite custom functions."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
    )
    dbapi_conn.create_function(
        "gen_random_uuid", 0, lambda: str(uuid.uuid4()),
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
    """Clear slowapi counters so login limits do not leak between tests."""
    from hrms.common.rate_limit import limiter

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


# ── Model factories ─────────────────────────────────────────────────

async def make_department(
    db: AsyncSession,
    *,
    name: str = "Engineering",
    is_active: bool = True,
):
    from hrms.core_hr.models import Department

    dept = Department(id=uuid.uuid4(), name=name, is_active=is_active)
    db.add(dept)
    await db.commit()
    return dept


async def make_employee(
    db: AsyncSession,
    *,
    first_name: str = "Test",
    last_name: str = "User",
    email: Optional[str] = None,
    role: UserRole = UserRole.employee,
    department_id: Optional[uuid.UUID] = None,
    manager_id: Optional[uuid.UUID] = None,
    password_hash: Optional[str] = None,
    is_active: bool = True,
):
    from hrms.core_hr.models import Employee

    suffix = uuid.uuid4().hex[:6]
    emp = Employee(
        id=uuid.uuid4(),
        employee_code=f"T-{suffix.upper()}",
        first_name=first_name,
        last_name=last_name,
        email=email or f"{first_name.lower()}.{suffix}@example.com",
        role=role,
        department_id=department_id,
        manager_id=manager_id,
        password_hash=password_hash,
        is_active=is_active,
    )
    db.add(emp)
    await db.commit()
    return emp


async def make_leave_type(
    db: AsyncSession,
    *,
    code: str = "CL",
    name: str = "Casual Leave",
    default_days: Decimal = Decimal("12"),
    is_paid: bool = True,
    carry_forward: bool = False,
    max_carry_forward: Decimal = Decimal("0"),
    enforce_balance: bool = True,
    is_active: bool = True,
):
    from hrms.leave.models import LeaveType

    lt = LeaveType(
        id=uuid.uuid4(),
        code=code,
        name=name,
        default_days=default_days,
        is_paid=is_paid,
        carry_forward=carry_forward,
        max_carry_forward=max_carry_forward,
        enforce_balance=enforce_balance,
        is_active=is_active,
    )
    db.add(lt)
    await db.commit()
    return lt


async def make_balance(
    db: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    *,
    year: int = 2026,
    total: Decimal = Decimal("12"),
    used: Decimal = Decimal("0"),
    pending: Decimal = Decimal("0"),
    carry_forward: Decimal = Decimal("0"),
):
    from hrms.leave.models import LeaveBalance

    bal = LeaveBalance(
        id=uuid.uuid4(),
        employee_id=employee_id,
        leave_type_id=leave_type_id,
        year=year,
        total=total,
        used=used,
        pending=pending,
        carry_forward=carry_forward,
    )
    db.add(bal)
    await db.commit()
    return bal


async def make_holiday(
    db: AsyncSession,
    day: date,
    *,
    name: str = "Holiday",
    type: HolidayType = HolidayType.public,
):
    from hrms.holidays.models import Holiday

    holiday = Holiday(id=uuid.uuid4(), date=day, name=name, type=type)
    db.add(holiday)
    await db.commit()
    return holiday


# ── Auth helpers ────────────────────────────────────────────────────

async def auth_headers_for(db: AsyncSession, employee) -> dict[str, str]:
    """Return Bearer auth headers with a valid session persisted in the DB."""
    from hrms.auth.models import UserSession

    token, expires_at = create_access_token(employee.id, employee.role)
    db.add(
        UserSession(
            id=uuid.uuid4(),
            employee_id=employee.id,
            token_hash=hash_token(token),
            expires_at=expires_at,
            is_revoked=False,
        )
    )
    await db.commit()
    return {"Authorization": f"Bearer {token}"}


# ── Common cast ─────────────────────────────────────────────────────

@pytest.fixture
async def department(db):
    return await make_department(db)


@pytest.fixture
async def admin(db):
    return await make_employee(db, first_name="Ada", last_name="Admin", role=UserRole.admin)


@pytest.fixture
async def hr(db):
    return await make_employee(db, first_name="Hana", last_name="Hr", role=UserRole.hr)


@pytest.fixture
async def manager(db, department):
    return await make_employee(
        db,
        first_name="Maya",
        last_name="Manager",
        role=UserRole.manager,
        department_id=department.id,
    )


@pytest.fixture
async def employee(db, department, manager):
    return await make_employee(
        db,
        first_name="Eli",
        last_name="Employee",
        department_id=department.id,
        manager_id=manager.id,
    )


@pytest.fixture
async def casual_leave(db):
    return await make_leave_type(db)
