"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out                → response bodies (read)
  - *Brief              → compact embedded representations
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from hrms.common.constants import MAX_LEAVE_SPAN_DAYS, LeaveDayType, LeaveStatus


# ═════════════════════════════════════════════════════════════════════
# Embedded / shared
# ═════════════════════════════════════════════════════════════════════


class ManagerBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_code: str
    full_name: str
    email: str


class EmployeeBrief(BaseModel):
    """Minimal employee info embedded in leave responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_code: str
    full_name: str
    email: str
    designation: Optional[str] = None
    manager: Optional[ManagerBrief] = None


class LeaveTypeBrief(BaseModel):
    """Minimal leave type info embedded in leave responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    code: str
    name: str
    color: Optional[str] = None
    is_paid: bool = True


# ═════════════════════════════════════════════════════════════════════
# Leave Type
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeOut(BaseModel):
    """Full leave type representation."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    code: str
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    default_days: Decimal
    is_paid: bool = True
    carry_forward: bool = False
    max_carry_forward: Decimal
    enforce_balance: bool = True
    is_active: bool = True


# ═════════════════════════════════════════════════════════════════════
# Leave Balance
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceOut(BaseModel):
    """Balance for one leave type and year, with the derived available days."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type: LeaveTypeBrief
    year: int
    total: Decimal
    used: Decimal
    pending: Decimal
    carry_forward: Decimal
    available: Decimal


# ═════════════════════════════════════════════════════════════════════
# Leave Request
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Submit-leave payload. ``days`` is computed server-side."""

    model_config = ConfigDict(populate_by_name=True)

    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    day_type: LeaveDayType = Field(LeaveDayType.full, alias="type")
    reason: Optional[str] = Field(None, max_length=2000)
    emergency_contact: Optional[str] = Field(None, max_length=255)

    @model_validator(mode="after")
    def _check_range(self) -> "LeaveRequestCreate":
        if self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date.")
        if (self.end_date - self.start_date).days >= MAX_LEAVE_SPAN_DAYS:
            raise ValueError(
                f"A leave request cannot span more than {MAX_LEAVE_SPAN_DAYS} days."
            )
        return self


class LeaveRejectRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=2000)

    @field_validator("reason")
    @classmethod
    def _blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


class LeaveRequestOut(BaseModel):
    """Leave request with nested leave type and requester (incl. manager)."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    day_type: LeaveDayType
    days: Decimal
    reason: Optional[str] = None
    emergency_contact: Optional[str] = None
    status: LeaveStatus
    approved_by: Optional[uuid.UUID] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    leave_type: Optional[LeaveTypeBrief] = None
    employee: Optional[EmployeeBrief] = None


# ═════════════════════════════════════════════════════════════════════
# Working-day preview
# ═════════════════════════════════════════════════════════════════════


class WorkingDaysQuery(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_date: date
    end_date: date
    day_type: LeaveDayType = Field(LeaveDayType.full, alias="type")

    @model_validator(mode="after")
    def _check_range(self) -> "WorkingDaysQuery":
        if self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date.")
        if (self.end_date - self.start_date).days >= MAX_LEAVE_SPAN_DAYS:
            raise ValueError(
                f"Range cannot span more than {MAX_LEAVE_SPAN_DAYS} days."
            )
        return self


class WorkingDaysOut(BaseModel):
    start_date: date
    end_date: date
    day_type: LeaveDayType
    days: Decimal
    holidays: list[date] = Field(default_factory=list)
