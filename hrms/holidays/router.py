"""Holiday router — calendar listing for everyone, management behind the holidays module."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.auth.dependencies import get_current_user, require_permission
from hrms.common.constants import PermissionAction, PermissionModule
from hrms.core_hr.models import Employee
from hrms.database import get_db
from hrms.holidays.schemas import (
    HolidayBulkImport,
    HolidayBulkResult,
    HolidayCreate,
    HolidayOut,
    HolidayUpdate,
)
from hrms.holidays.service import HolidayService

router = APIRouter(prefix="", tags=["holidays"])


@router.get("", response_model=list[HolidayOut])
async def list_holidays(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    _user: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List holidays, optionally filtered by year."""
    return await HolidayService.list_holidays(db, year)


@router.post("", response_model=HolidayOut, status_code=201)
async def create_holiday(
    body: HolidayCreate,
    user: Employee = Depends(
        require_permission(PermissionModule.holidays, PermissionAction.write),
    ),
    db: AsyncSession = Depends(get_db),
):
    return await HolidayService.create_holiday(db, body, actor_id=user.id)


@router.post("/bulk", response_model=HolidayBulkResult)
async def bulk_import_holidays(
    body: HolidayBulkImport,
    user: Employee = Depends(
        require_permission(PermissionModule.holidays, PermissionAction.write),
    ),
    db: AsyncSession = Depends(get_db),
):
    """Import holidays; an existing holiday on the same date is replaced."""
    return await HolidayService.bulk_import(db, body, actor_id=user.id)


@router.put("/{holiday_id}", response_model=HolidayOut)
async def update_holiday(
    holiday_id: uuid.UUID,
    body: HolidayUpdate,
    user: Employee = Depends(
        require_permission(PermissionModule.holidays, PermissionAction.edit),
    ),
    db: AsyncSession = Depends(get_db),
):
    return await HolidayService.update_holiday(db, holiday_id, body, actor_id=user.id)


@router.delete("/{holiday_id}", status_code=204)
async def delete_holiday(
    holiday_id: uuid.UUID,
    user: Employee = Depends(
        require_permission(PermissionModule.holidays, PermissionAction.delete),
    ),
    db: AsyncSession = Depends(get_db),
):
    await HolidayService.delete_holiday(db, holiday_id, actor_id=user.id)
