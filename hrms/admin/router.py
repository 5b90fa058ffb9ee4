"""Admin router — leave-type catalog, balance edits, carry-forward and audit trail.

Leave types and balances sit behind the ``leave_policies`` module; the
audit trail behind ``admin`` (read).
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.admin.schemas import (
    AuditEntryOut,
    BalanceUpsert,
    CarryForwardResult,
    LeaveTypeCreate,
    LeaveTypeUpdate,
    SeedResult,
)
from hrms.admin.service import AdminService
from hrms.auth.dependencies import require_permission
from hrms.common.audit import list_audit_entries
from hrms.common.constants import PermissionAction, PermissionModule
from hrms.core_hr.models import Employee
from hrms.database import get_db
from hrms.leave.schemas import LeaveBalanceOut, LeaveTypeOut

router = APIRouter(prefix="", tags=["admin"])

_policies = PermissionModule.leave_policies


# ═══════════════════════════════════════════════════════════════════
# LEAVE TYPES
# ═══════════════════════════════════════════════════════════════════

@router.get("/leave-types", response_model=list[LeaveTypeOut])
async def list_leave_types(
    _user: Employee = Depends(require_permission(_policies, PermissionAction.read)),
    db: AsyncSession = Depends(get_db),
):
    """List all leave types (active + inactive)."""
    return await AdminService.list_leave_types(db)


@router.post("/leave-types", response_model=LeaveTypeOut, status_code=201)
async def create_leave_type(
    body: LeaveTypeCreate,
    user: Employee = Depends(require_permission(_policies, PermissionAction.write)),
    db: AsyncSession = Depends(get_db),
):
    """Create a leave type and open current-year balances for active employees."""
    return await AdminService.create_leave_type(db, body, actor_id=user.id)


@router.post("/leave-types/seed", response_model=SeedResult)
async def seed_leave_types(
    user: Employee = Depends(require_permission(_policies, PermissionAction.write)),
    db: AsyncSession = Depends(get_db),
):
    """Upsert the default leave-type catalog."""
    return await AdminService.seed_leave_types(db, actor_id=user.id)


@router.put("/leave-types/{leave_type_id}", response_model=LeaveTypeOut)
async def update_leave_type(
    leave_type_id: uuid.UUID,
    body: LeaveTypeUpdate,
    user: Employee = Depends(require_permission(_policies, PermissionAction.edit)),
    db: AsyncSession = Depends(get_db),
):
    return await AdminService.update_leave_type(db, leave_type_id, body, actor_id=user.id)


@router.delete("/leave-types/{leave_type_id}")
async def delete_leave_type(
    leave_type_id: uuid.UUID,
    user: Employee = Depends(require_permission(_policies, PermissionAction.delete)),
    db: AsyncSession = Depends(get_db),
):
    removed = await AdminService.delete_leave_type(db, leave_type_id, actor_id=user.id)
    return {
        "data": {"balances_removed": removed},
        "message": "Leave type deleted",
    }


# ═══════════════════════════════════════════════════════════════════
# BALANCES
# ═══════════════════════════════════════════════════════════════════

@router.put("/balances", response_model=LeaveBalanceOut)
async def upsert_balance(
    body: BalanceUpsert,
    user: Employee = Depends(require_permission(_policies, PermissionAction.edit)),
    db: AsyncSession = Depends(get_db),
):
    """Set total and/or carry-forward for one employee, type and year."""
    return await AdminService.upsert_balance(db, body, actor_id=user.id)


@router.post("/balances/carry-forward", response_model=CarryForwardResult)
async def carry_forward(
    from_year: Optional[int] = Query(None, ge=2000, le=2099),
    user: Employee = Depends(require_permission(_policies, PermissionAction.edit)),
    db: AsyncSession = Depends(get_db),
):
    """Roll unused carry-forward days into the next year. Defaults to last year."""
    year = from_year or datetime.now(timezone.utc).year - 1
    return await AdminService.carry_forward(db, year, actor_id=user.id)


# ═══════════════════════════════════════════════════════════════════
# AUDIT
# ═══════════════════════════════════════════════════════════════════

@router.get("/audit", response_model=list[AuditEntryOut])
async def list_audit(
    entity_type: Optional[str] = Query(None, max_length=50),
    entity_id: Optional[uuid.UUID] = Query(None),
    actor_id: Optional[uuid.UUID] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    _user: Employee = Depends(
        require_permission(PermissionModule.admin, PermissionAction.read),
    ),
    db: AsyncSession = Depends(get_db),
):
    """Newest audit entries, optionally for one entity or one actor."""
    return await list_audit_entries(
        db,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_id=actor_id,
        limit=limit,
    )
