"""Auth service — credential check, session lifecycle, self-registration."""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.auth.models import UserSession
from hrms.auth.schemas import SignupRequest
from hrms.auth.security import (
    create_access_token,
    hash_password,
    hash_token,
    verify_password,
)
from hrms.common.constants import UserRole
from hrms.common.exceptions import UnauthenticatedException
from hrms.config import settings
from hrms.core_hr.models import Employee
from hrms.core_hr.service import EmployeeService

logger = logging.getLogger(__name__)


async def authenticate(db: AsyncSession, email: str, password: str) -> Employee:
    """Return the active employee for valid credentials."""
    result = await db.execute(
        select(Employee).where(func.lower(Employee.email) == email.strip().lower()),
    )
    employee = result.scalars().first()
    if (
        employee is None
        or not employee.password_hash
        or not verify_password(password, employee.password_hash)
    ):
        raise UnauthenticatedException("Invalid email or password.")
    if not employee.is_active:
        raise UnauthenticatedException("User account is inactive.")
    return employee


async def create_session(
    db: AsyncSession,
    employee: Employee,
    ip: Optional[str],
    user_agent: Optional[str],
) -> str:
    """Issue an access token and persist its session row."""
    token, expires_at = create_access_token(employee.id, employee.role)
    db.add(
        UserSession(
            employee_id=employee.id,
            token_hash=hash_token(token),
            ip_address=ip,
            user_agent=user_agent,
            expires_at=expires_at,
        )
    )
    await db.flush()
    logger.info("Session created for employee %s", employee.id)
    return token


async def revoke_session(db: AsyncSession, session_id: uuid.UUID) -> None:
    session = await db.get(UserSession, session_id)
    if session is not None:
        session.revoke()
        await db.flush()


async def signup(db: AsyncSession, data: SignupRequest) -> Employee:
    """Self-registration: an active ``employee`` with default balances."""
    return await EmployeeService.create_employee(
        db,
        first_name=data.first_name,
        last_name=data.last_name,
        email=data.email,
        phone=data.phone,
        role=UserRole.employee,
        password_hash=hash_password(data.password),
    )


def token_lifetime_seconds() -> int:
    return settings.JWT_EXPIRY_HOURS * 3600
