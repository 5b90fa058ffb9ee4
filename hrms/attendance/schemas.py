"""Attendance and shift Pydantic schemas."""

from __future__ import annotations

import datetime
import re
import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from hrms.common.constants import ArrivalStatus, AttendanceStatus
from hrms.common.pagination import PaginationMeta

_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")


class MemberBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_code: str
    full_name: str
    department_id: Optional[uuid.UUID] = None


# ── Shifts ──────────────────────────────────────────────────────────

class ShiftCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    code: str = Field(..., min_length=1, max_length=20)
    start_time: datetime.time
    end_time: datetime.time
    break_minutes: int = Field(default=60, ge=0, le=240)
    grace_minutes: int = Field(default=15, ge=0, le=120)
    color: str = "#3b82f6"

    @field_validator("code")
    @classmethod
    def _upper_code(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("color")
    @classmethod
    def _hex_color(cls, v: str) -> str:
        if not _COLOR_RE.match(v):
            raise ValueError("color must be a hex value like #3b82f6")
        return v

    @model_validator(mode="after")
    def _distinct_times(self) -> "ShiftCreate":
        if self.start_time == self.end_time:
            raise ValueError("start_time and end_time must differ")
        return self


class ShiftUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    code: Optional[str] = Field(default=None, min_length=1, max_length=20)
    start_time: Optional[datetime.time] = None
    end_time: Optional[datetime.time] = None
    break_minutes: Optional[int] = Field(default=None, ge=0, le=240)
    grace_minutes: Optional[int] = Field(default=None, ge=0, le=120)
    color: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("code")
    @classmethod
    def _upper_code(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v is not None else v

    @field_validator("color")
    @classmethod
    def _hex_color(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not _COLOR_RE.match(v):
            raise ValueError("color must be a hex value like #3b82f6")
        return v


class ShiftOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    code: str
    start_time: datetime.time
    end_time: datetime.time
    break_minutes: int
    grace_minutes: int
    color: str
    is_active: bool
    is_overnight: bool


class ShiftAssignmentCreate(BaseModel):
    """Assigning a shift ends the employee's current assignment."""

    employee_id: uuid.UUID
    shift_id: uuid.UUID
    start_date: datetime.date
    end_date: Optional[datetime.date] = None

    @model_validator(mode="after")
    def _ordered(self) -> "ShiftAssignmentCreate":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class ShiftAssignmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    shift_id: uuid.UUID
    start_date: datetime.date
    end_date: Optional[datetime.date] = None
    is_active: bool
    shift: Optional[ShiftOut] = None
    employee: Optional[MemberBrief] = None


# ── Attendance ──────────────────────────────────────────────────────

class PunchRequest(BaseModel):
    notes: Optional[str] = Field(default=None, max_length=500)


class AttendanceMark(BaseModel):
    """Manual entry or correction of one employee's day."""

    employee_id: uuid.UUID
    date: datetime.date
    status: AttendanceStatus
    punch_in: Optional[datetime.datetime] = None
    punch_out: Optional[datetime.datetime] = None
    notes: Optional[str] = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def _ordered(self) -> "AttendanceMark":
        if self.punch_out is not None and self.punch_in is None:
            raise ValueError("punch_out requires punch_in")
        if self.punch_in and self.punch_out and self.punch_out <= self.punch_in:
            raise ValueError("punch_out must be after punch_in")
        return self


class AttendanceRecordOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    date: datetime.date
    status: AttendanceStatus
    arrival_status: Optional[ArrivalStatus] = None
    punch_in: Optional[datetime.datetime] = None
    punch_out: Optional[datetime.datetime] = None
    work_minutes: Optional[int] = None
    shift_id: Optional[uuid.UUID] = None
    notes: Optional[str] = None
    employee: Optional[MemberBrief] = None


class AttendanceSummary(BaseModel):
    present: int = 0
    half_day: int = 0
    absent: int = 0
    on_leave: int = 0
    late: int = 0
    very_late: int = 0
    total_work_minutes: int = 0
    avg_work_minutes: int = 0


class AttendanceListResponse(BaseModel):
    data: list[AttendanceRecordOut]
    meta: PaginationMeta
    summary: AttendanceSummary


class TeamAttendanceRow(BaseModel):
    """One team member on a given day; ``record`` is None when they never punched in."""

    employee: MemberBrief
    record: Optional[AttendanceRecordOut] = None


class TeamAttendanceResponse(BaseModel):
    date: datetime.date
    members: list[TeamAttendanceRow]
    summary: AttendanceSummary
    unmarked: int = 0
