"""Auth router — password login, self-registration, logout, current user profile."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.auth.dependencies import get_current_user
from hrms.auth.schemas import (
    LoginRequest,
    MeResponse,
    SignupRequest,
    TokenResponse,
    UserInfo,
)
from hrms.auth.service import (
    authenticate,
    create_session,
    revoke_session,
    signup,
    token_lifetime_seconds,
)
from hrms.common.audit import create_audit_entry
from hrms.common.rate_limit import limiter
from hrms.config import settings
from hrms.core_hr.models import Employee
from hrms.database import get_db
from hrms.permissions.service import PermissionService

router = APIRouter(prefix="", tags=["auth"])


def _user_info(employee: Employee) -> UserInfo:
    return UserInfo(
        id=employee.id,
        employee_code=employee.employee_code,
        name=employee.full_name,
        email=employee.email,
        role=employee.role.value,
        department=employee.department.name if employee.department else None,
    )


async def _issue_token(
    db: AsyncSession,
    request: Request,
    employee: Employee,
    action: str,
) -> TokenResponse:
    ip = request.client.host if request.client else None
    user_agent = request.headers.get("user-agent")
    token = await create_session(db, employee, ip, user_agent)

    await create_audit_entry(
        db,
        action=action,
        entity_type="user_session",
        entity_id=employee.id,
        actor_id=employee.id,
        new_values={"ip": ip, "user_agent": user_agent},
        ip_address=ip,
        user_agent=user_agent,
    )
    return TokenResponse(
        access_token=token,
        expires_in=token_lifetime_seconds(),
        user=_user_info(employee),
    )


# ── POST /login ─────────────────────────────────────────────────────

@router.post("/login", response_model=TokenResponse)
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def login(
    request: Request,
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
):
    employee = await authenticate(db, body.email, body.password)
    await db.refresh(employee, attribute_names=["department"])
    return await _issue_token(db, request, employee, "login")


# ── POST /signup ────────────────────────────────────────────────────

@router.post("/signup", response_model=TokenResponse, status_code=201)
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def register(
    request: Request,
    body: SignupRequest,
    db: AsyncSession = Depends(get_db),
):
    """Self-registration. New accounts get the ``employee`` role."""
    employee = await signup(db, body)
    return await _issue_token(db, request, employee, "signup")


# ── POST /logout — Revoke current session ──────────────────────────

@router.post("/logout")
async def logout(
    request: Request,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    session_id = request.state.session_id
    await revoke_session(db, session_id)

    await create_audit_entry(
        db,
        action="logout",
        entity_type="user_session",
        entity_id=session_id,
        actor_id=employee.id,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return {"data": None, "message": "Logged out successfully"}


# ── GET /me — Current user profile ─────────────────────────────────

@router.get("/me", response_model=MeResponse)
async def me(
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(func.count()).select_from(Employee).where(
            Employee.manager_id == employee.id,
            Employee.is_active.is_(True),
        ),
    )
    direct_reports_count = result.scalar() or 0

    return MeResponse(
        id=employee.id,
        employee_code=employee.employee_code,
        name=employee.full_name,
        email=employee.email,
        role=employee.role.value,
        department=employee.department.name if employee.department else None,
        manager_id=employee.manager_id,
        direct_reports_count=direct_reports_count,
        modules=await PermissionService.module_access_map(db, employee),
    )
