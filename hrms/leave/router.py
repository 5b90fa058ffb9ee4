"""Leave router — submit, review, cancel, delete, balances, types, day preview.

All endpoints require authentication. Review rights (manager of the
requester, HR, admin) are checked by ``LeaveService``.
"""


import uuid
from datetime import datetime, timezone
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.auth.dependencies import get_current_user, require_permission
from hrms.common.constants import LeaveStatus, PermissionAction, PermissionModule
from hrms.common.pagination import PaginationParams
from hrms.core_hr.models import Employee
from hrms.database import get_db
from hrms.leave.schemas import (
    LeaveBalanceOut,
    LeaveRejectRequest,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveTypeOut,
    WorkingDaysOut,
    WorkingDaysQuery,
)
from hrms.leave.service import LeaveService
from hrms.permissions.service import PermissionService

router = APIRouter(prefix="", tags=["leave"])


# ── POST /requests ──────────────────────────────────────────────────

@router.post("/requests", response_model=LeaveRequestOut, status_code=201)
async def submit_leave(
    body: LeaveRequestCreate,
    employee: Employee = Depends(
        require_permission(PermissionModule.leave, PermissionAction.write),
    ),
    db: AsyncSession = Depends(get_db),
):
    """Submit a leave request. Validates working days, overlap and balance."""
    return await LeaveService.submit(db, employee, body)


# ── GET /requests ───────────────────────────────────────────────────

@router.get("/requests")
async def list_requests(
    scope: Literal["my", "team", "pending", "all"] = Query("my"),
    status: Optional[LeaveStatus] = Query(None),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    employee_id: Optional[uuid.UUID] = Query(None),
    pagination: PaginationParams = Depends(),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List leave requests for the given scope (``my`` by default)."""
    if scope == "team":
        await PermissionService.check(
            db, employee, PermissionModule.team, PermissionAction.read,
        )
    result = await LeaveService.list_requests(
        db,
        employee,
        pagination,
        scope=scope,
        status=status,
        year=year,
        employee_id=employee_id,
    )
    return {
        "data": [
            LeaveRequestOut.model_validate(r).model_dump(mode="json")
            for r in result.data
        ],
        "meta": result.meta.model_dump(),
    }


# ── GET /requests/{id} ──────────────────────────────────────────────

@router.get("/requests/{request_id}", response_model=LeaveRequestOut)
async def get_request(
    request_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_request(db, request_id, employee)


# ── PUT /requests/{id}/approve ──────────────────────────────────────

@router.put("/requests/{request_id}/approve", response_model=LeaveRequestOut)
async def approve_leave(
    request_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Approve a pending leave request. Moves its days from pending to used."""
    return await LeaveService.approve(db, request_id, employee)


# ── PUT /requests/{id}/reject ───────────────────────────────────────

@router.put("/requests/{request_id}/reject", response_model=LeaveRequestOut)
async def reject_leave(
    request_id: uuid.UUID,
    body: Optional[LeaveRejectRequest] = None,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Reject a pending leave request with an optional reason."""
    reason = body.reason if body else None
    return await LeaveService.reject(db, request_id, employee, reason)


# ── PUT /requests/{id}/cancel ───────────────────────────────────────

@router.put("/requests/{request_id}/cancel", response_model=LeaveRequestOut)
async def cancel_leave(
    request_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cancel your own pending leave request."""
    return await LeaveService.cancel(db, request_id, employee)


# ── DELETE /requests/{id} ───────────────────────────────────────────

@router.delete("/requests/{request_id}")
async def delete_leave(
    request_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Delete a pending, cancelled or rejected request (owner or admin)."""
    await LeaveService.delete(db, request_id, employee)
    return {"data": None, "message": "Leave request deleted"}


# ── GET /balances ───────────────────────────────────────────────────

@router.get("/balances", response_model=list[LeaveBalanceOut])
async def get_balances(
    year: Optional[int] = Query(None, ge=2000, le=2100, description="Leave year; defaults to current year"),
    employee_id: Optional[uuid.UUID] = Query(None, description="Another employee (admin / HR only)"),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Leave balances for a year, created on first read."""
    target_year = year or datetime.now(timezone.utc).year
    return await LeaveService.get_balances(db, employee, target_year, employee_id)


# ── GET /types ──────────────────────────────────────────────────────

@router.get("/types", response_model=list[LeaveTypeOut])
async def get_leave_types(
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Active leave types."""
    return await LeaveService.get_leave_types(db)


# ── POST /working-days ──────────────────────────────────────────────

@router.post("/working-days", response_model=WorkingDaysOut)
async def preview_working_days(
    body: WorkingDaysQuery,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Preview the billable day count for a date range."""
    return await LeaveService.preview_working_days(db, body)
