"""Permissions router — effective access maps, self-check and per-employee overrides."""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.auth.dependencies import get_current_user, require_permission
from hrms.common.constants import PermissionAction, PermissionModule
from hrms.core_hr.models import Employee
from hrms.database import get_db
from hrms.permissions.schemas import (
    EmployeePermissions,
    PermissionCheckOut,
    PermissionFlagsSchema,
    PermissionUpsert,
)
from hrms.permissions.service import PermissionService

router = APIRouter(prefix="", tags=["permissions"])


@router.get("", response_model=list[EmployeePermissions])
async def list_permissions(
    _user: Employee = Depends(
        require_permission(PermissionModule.admin, PermissionAction.read),
    ),
    db: AsyncSession = Depends(get_db),
):
    """Effective module access for every active employee."""
    return await PermissionService.list_permissions(db)


@router.get("/check", response_model=PermissionCheckOut)
async def check_permission(
    module: PermissionModule = Query(...),
    action: PermissionAction = Query(PermissionAction.read),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Whether the caller may perform ``action`` on ``module``, and why."""
    return await PermissionService.explain(db, employee, module, action)


@router.put("/{employee_id}", response_model=PermissionFlagsSchema)
async def set_permission(
    employee_id: uuid.UUID,
    body: PermissionUpsert,
    user: Employee = Depends(
        require_permission(PermissionModule.admin, PermissionAction.write),
    ),
    db: AsyncSession = Depends(get_db),
):
    """Create or replace one module override. Admin accounts cannot be changed."""
    return await PermissionService.upsert(db, employee_id, body, actor_id=user.id)


@router.delete("/{employee_id}")
async def reset_permissions(
    employee_id: uuid.UUID,
    user: Employee = Depends(
        require_permission(PermissionModule.admin, PermissionAction.delete),
    ),
    db: AsyncSession = Depends(get_db),
):
    """Drop every override so the employee falls back to role defaults."""
    removed = await PermissionService.reset(db, employee_id, actor_id=user.id)
    return {"data": {"removed": removed}, "message": "Permissions reset to role defaults"}
