"""Enums and constants for hrms — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    admin = "admin"
    hr = "hr"
    manager = "manager"
    employee = "employee"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


class LeaveDayType(str, enum.Enum):
    full = "full"
    half = "half"


# Statuses that still occupy calendar dates (overlap checks)
ACTIVE_LEAVE_STATUSES: tuple[LeaveStatus, ...] = (
    LeaveStatus.pending,
    LeaveStatus.approved,
)

# Statuses a request may be hard-deleted from
DELETABLE_LEAVE_STATUSES: tuple[LeaveStatus, ...] = (
    LeaveStatus.pending,
    LeaveStatus.cancelled,
    LeaveStatus.rejected,
)


# ── Holidays ────────────────────────────────────────────────────────

class HolidayType(str, enum.Enum):
    public = "public"
    optional = "optional"
    company = "company"


# ── Notifications ───────────────────────────────────────────────────

class NotificationType(str, enum.Enum):
    info = "info"
    success = "success"
    warning = "warning"
    error = "error"
    action_required = "action_required"


# ── Attendance ──────────────────────────────────────────────────────

class AttendanceStatus(str, enum.Enum):
    present = "present"
    half_day = "half_day"
    absent = "absent"
    on_leave = "on_leave"


class ArrivalStatus(str, enum.Enum):
    on_time = "on_time"
    late = "late"
    very_late = "very_late"


# Minutes past shift start beyond which an arrival is very late
VERY_LATE_THRESHOLD_MINUTES = 60
# Worked-minute floors when the employee has no shift assigned
DEFAULT_FULL_DAY_MINUTES = 480
DEFAULT_HALF_DAY_MINUTES = 240
DEFAULT_BREAK_MINUTES = 60
MAX_ATTENDANCE_RANGE_DAYS = 93


# ── Permissions ─────────────────────────────────────────────────────

class PermissionModule(str, enum.Enum):
    attendance = "attendance"
    leave = "leave"
    team = "team"
    analytics = "analytics"
    payroll = "payroll"
    admin = "admin"
    shifts = "shifts"
    holidays = "holidays"
    reports = "reports"
    tasks = "tasks"
    notifications = "notifications"
    users = "users"
    departments = "departments"
    leave_policies = "leave_policies"


class PermissionAction(str, enum.Enum):
    read = "read"
    write = "write"
    edit = "edit"
    delete = "delete"
    all = "all"


# ── Misc constants ──────────────────────────────────────────────────

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
MAX_LEAVE_SPAN_DAYS = 366
