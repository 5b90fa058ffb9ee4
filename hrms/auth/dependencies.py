"""Request authentication and the role / permission guards built on it."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from fastapi import Depends, Request
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hrms.auth.models import UserSession
from hrms.auth.security import hash_token
from hrms.common.constants import PermissionAction, PermissionModule, UserRole
from hrms.common.exceptions import ForbiddenException, UnauthenticatedException
from hrms.config import settings
from hrms.core_hr.models import Employee
from hrms.database import get_db
from hrms.permissions.service import PermissionService

# last_seen_at is refreshed at most this often per session
SEEN_RESOLUTION = timedelta(minutes=5)


def _extract_bearer(request: Request) -> str:
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthenticatedException("Missing or invalid Authorization header.")
    return token.strip()


def _decode(token: str) -> dict[str, Any]:
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise UnauthenticatedException("Token has expired.")
    except JWTError:
        raise UnauthenticatedException("Invalid token.")

    if payload.get("type") != "access":
        raise UnauthenticatedException("Invalid token type.")
    return payload


async def _live_session(db: AsyncSession, token: str, now: datetime) -> UserSession:
    result = await db.execute(
        select(UserSession).where(
            UserSession.token_hash == hash_token(token),
            UserSession.is_revoked.is_(False),
            UserSession.expires_at > now,
        ),
    )
    session = result.scalars().first()
    if session is None:
        raise UnauthenticatedException("Session invalid or expired.")
    return session


# ── Core dependency ─────────────────────────────────────────────────

async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Employee:
    """Resolve the bearer token to an active Employee.

    The JWT must verify, its session row must be live, and the subject must
    still be an active employee. The stored role wins over the token claim,
    so role changes apply on the next request.
    """
    token = _extract_bearer(request)
    payload = _decode(token)
    now = datetime.now(timezone.utc)
    session = await _live_session(db, token, now)

    try:
        employee_id = uuid.UUID(payload["sub"])
    except (KeyError, ValueError):
        raise UnauthenticatedException("Invalid token subject.")
    if employee_id != session.employee_id:
        raise UnauthenticatedException("Invalid token subject.")

    result = await db.execute(
        select(Employee)
        .where(Employee.id == employee_id, Employee.is_active.is_(True))
        .options(selectinload(Employee.department)),
    )
    employee = result.scalars().first()
    if employee is None:
        raise UnauthenticatedException("User account is inactive or not found.")

    last_seen = session.last_seen_at
    if last_seen is not None and last_seen.tzinfo is None:
        last_seen = last_seen.replace(tzinfo=timezone.utc)
    if last_seen is None or now - last_seen >= SEEN_RESOLUTION:
        session.last_seen_at = now
        await db.flush()

    request.state.user_role = UserRole(employee.role)
    request.state.session_id = session.id
    return employee


# ── Role-based dependency ───────────────────────────────────────────

def require_role(*allowed_roles: UserRole) -> Callable:
    """Dependency factory: the caller's stored role must be one of *allowed_roles*."""

    async def _check(
        request: Request,
        employee: Employee = Depends(get_current_user),
    ) -> Employee:
        user_role: UserRole = request.state.user_role
        if user_role not in allowed_roles:
            allowed = ", ".join(r.value for r in allowed_roles)
            raise ForbiddenException(
                detail=f"Role '{user_role.value}' is not permitted here (allowed: {allowed}).",
            )
        return employee

    return _check


# ── Permission-based dependency ─────────────────────────────────────

def require_permission(module: PermissionModule, action: PermissionAction) -> Callable:
    """Dependency factory: role matrix plus per-employee overrides must allow the action."""

    async def _check(
        employee: Employee = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ) -> Employee:
        await PermissionService.check(db, employee, module, action)
        return employee

    return _check
