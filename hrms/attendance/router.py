"""Attendance and shift routers.

``router`` serves punches, history, the team day view and manual marking;
``shifts_router`` serves the shift catalogue and assignments.
"""

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.attendance.schemas import (
    AttendanceListResponse,
    AttendanceMark,
    AttendanceRecordOut,
    PunchRequest,
    ShiftAssignmentCreate,
    ShiftAssignmentOut,
    ShiftCreate,
    ShiftOut,
    ShiftUpdate,
    TeamAttendanceResponse,
)
from hrms.attendance.service import AttendanceService, ShiftService
from hrms.auth.dependencies import get_current_user, require_permission
from hrms.common.constants import PermissionAction, PermissionModule
from hrms.common.pagination import PaginationParams
from hrms.core_hr.models import Employee
from hrms.database import get_db
from hrms.permissions.service import PermissionService

router = APIRouter(prefix="", tags=["attendance"])
shifts_router = APIRouter(prefix="", tags=["shifts"])


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


# ── Punches ─────────────────────────────────────────────────────────

@router.post("/punch-in", response_model=AttendanceRecordOut, status_code=201)
async def punch_in(
    request: Request,
    body: Optional[PunchRequest] = None,
    employee: Employee = Depends(
        require_permission(PermissionModule.attendance, PermissionAction.write),
    ),
    db: AsyncSession = Depends(get_db),
):
    """Start today's record. A second punch-in on the same day is a conflict."""
    return await AttendanceService.punch_in(
        db,
        employee,
        notes=body.notes if body else None,
        ip_address=_client_ip(request),
    )


@router.post("/punch-out", response_model=AttendanceRecordOut)
async def punch_out(
    request: Request,
    body: Optional[PunchRequest] = None,
    employee: Employee = Depends(
        require_permission(PermissionModule.attendance, PermissionAction.write),
    ),
    db: AsyncSession = Depends(get_db),
):
    return await AttendanceService.punch_out(
        db,
        employee,
        notes=body.notes if body else None,
        ip_address=_client_ip(request),
    )


# ── Own records ─────────────────────────────────────────────────────

@router.get("/today", response_model=Optional[AttendanceRecordOut])
async def today(
    employee: Employee = Depends(
        require_permission(PermissionModule.attendance, PermissionAction.read),
    ),
    db: AsyncSession = Depends(get_db),
):
    """Today's record for the caller, or ``null`` before the first punch."""
    return await AttendanceService.get_day(
        db, employee.id, datetime.now(timezone.utc).date(),
    )


@router.get("/me", response_model=AttendanceListResponse)
async def my_attendance(
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    pagination: PaginationParams = Depends(),
    employee: Employee = Depends(
        require_permission(PermissionModule.attendance, PermissionAction.read),
    ),
    db: AsyncSession = Depends(get_db),
):
    """The caller's records; defaults to the last 30 days."""
    end = to_date or datetime.now(timezone.utc).date()
    start = from_date or end - timedelta(days=30)
    return await AttendanceService.history(db, employee.id, start, end, pagination)


# ── Team ────────────────────────────────────────────────────────────

@router.get("/team", response_model=TeamAttendanceResponse)
async def team_attendance(
    day: Optional[date] = Query(None, alias="date"),
    department_id: Optional[uuid.UUID] = Query(None),
    employee: Employee = Depends(
        require_permission(PermissionModule.attendance, PermissionAction.read),
    ),
    db: AsyncSession = Depends(get_db),
):
    """Attendance of everyone the caller oversees on one day (today by default)."""
    await PermissionService.check(
        db, employee, PermissionModule.team, PermissionAction.read,
    )
    return await AttendanceService.team_day(
        db,
        employee,
        day or datetime.now(timezone.utc).date(),
        department_id=department_id,
    )


@router.get("/employees/{employee_id}", response_model=AttendanceListResponse)
async def employee_attendance(
    employee_id: uuid.UUID,
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    pagination: PaginationParams = Depends(),
    employee: Employee = Depends(
        require_permission(PermissionModule.attendance, PermissionAction.read),
    ),
    db: AsyncSession = Depends(get_db),
):
    """Another employee's records; limited to the caller's team below HR."""
    if employee_id != employee.id:
        await PermissionService.check(
            db, employee, PermissionModule.team, PermissionAction.read,
        )
        await AttendanceService.ensure_visible(db, employee, employee_id)
    end = to_date or datetime.now(timezone.utc).date()
    start = from_date or end - timedelta(days=30)
    return await AttendanceService.history(db, employee_id, start, end, pagination)


@router.put("/records", response_model=AttendanceRecordOut)
async def mark_attendance(
    body: AttendanceMark,
    employee: Employee = Depends(
        require_permission(PermissionModule.attendance, PermissionAction.edit),
    ),
    db: AsyncSession = Depends(get_db),
):
    """Create or correct a team member's record for one day."""
    return await AttendanceService.mark(db, body, employee)


# ── Shifts ──────────────────────────────────────────────────────────

@shifts_router.get("", response_model=list[ShiftOut])
async def list_shifts(
    include_inactive: bool = Query(False),
    _user: Employee = Depends(
        require_permission(PermissionModule.shifts, PermissionAction.read),
    ),
    db: AsyncSession = Depends(get_db),
):
    return await ShiftService.list_shifts(db, include_inactive=include_inactive)


@shifts_router.post("", response_model=ShiftOut, status_code=201)
async def create_shift(
    body: ShiftCreate,
    user: Employee = Depends(
        require_permission(PermissionModule.shifts, PermissionAction.write),
    ),
    db: AsyncSession = Depends(get_db),
):
    return await ShiftService.create_shift(db, body, actor_id=user.id)


@shifts_router.get("/assignments", response_model=list[ShiftAssignmentOut])
async def list_assignments(
    employee_id: Optional[uuid.UUID] = Query(None),
    active_only: bool = Query(True),
    _user: Employee = Depends(
        require_permission(PermissionModule.shifts, PermissionAction.read),
    ),
    db: AsyncSession = Depends(get_db),
):
    return await ShiftService.list_assignments(
        db, employee_id=employee_id, active_only=active_only,
    )


@shifts_router.post("/assignments", response_model=ShiftAssignmentOut, status_code=201)
async def assign_shift(
    body: ShiftAssignmentCreate,
    user: Employee = Depends(
        require_permission(PermissionModule.shifts, PermissionAction.write),
    ),
    db: AsyncSession = Depends(get_db),
):
    """Assign a shift; the employee's previous assignment is closed."""
    return await ShiftService.assign(db, body, actor_id=user.id)


@shifts_router.delete("/assignments/{assignment_id}", status_code=204)
async def remove_assignment(
    assignment_id: uuid.UUID,
    user: Employee = Depends(
        require_permission(PermissionModule.shifts, PermissionAction.delete),
    ),
    db: AsyncSession = Depends(get_db),
):
    await ShiftService.remove_assignment(db, assignment_id, actor_id=user.id)


@shifts_router.put("/{shift_id}", response_model=ShiftOut)
async def update_shift(
    shift_id: uuid.UUID,
    body: ShiftUpdate,
    user: Employee = Depends(
        require_permission(PermissionModule.shifts, PermissionAction.edit),
    ),
    db: AsyncSession = Depends(get_db),
):
    return await ShiftService.update_shift(db, shift_id, body, actor_id=user.id)


@shifts_router.delete("/{shift_id}", status_code=204)
async def delete_shift(
    shift_id: uuid.UUID,
    user: Employee = Depends(
        require_permission(PermissionModule.shifts, PermissionAction.delete),
    ),
    db: AsyncSession = Depends(get_db),
):
    """Delete a shift nobody is currently assigned to."""
    await ShiftService.delete_shift(db, shift_id, actor_id=user.id)
