"""Attendance service — punch in/out, history, team view, shifts and assignments.

Times are handled in UTC; a shift's ``start_time`` is read as UTC wall clock
on the day of the punch.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hrms.attendance.models import AttendanceRecord, Shift, ShiftAssignment
from hrms.attendance.schemas import (
    AttendanceListResponse,
    AttendanceMark,
    AttendanceRecordOut,
    AttendanceSummary,
    MemberBrief,
    ShiftAssignmentCreate,
    ShiftCreate,
    ShiftOut,
    ShiftUpdate,
    TeamAttendanceResponse,
    TeamAttendanceRow,
)
from hrms.common.audit import changed_fields, create_audit_entry
from hrms.common.constants import (
    DEFAULT_BREAK_MINUTES,
    DEFAULT_FULL_DAY_MINUTES,
    DEFAULT_HALF_DAY_MINUTES,
    MAX_ATTENDANCE_RANGE_DAYS,
    VERY_LATE_THRESHOLD_MINUTES,
    ArrivalStatus,
    AttendanceStatus,
)
from hrms.common.exceptions import (
    ConflictError,
    ForbiddenException,
    InvalidStateException,
    NotFoundException,
    ValidationException,
)
from hrms.common.pagination import PaginationParams, paginate
from hrms.core_hr.models import Employee
from hrms.core_hr.service import OrgHierarchy
from hrms.permissions.resolver import is_privileged

logger = logging.getLogger(__name__)


# ── Day rules ───────────────────────────────────────────────────────

def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops the offset)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def arrival_status(punched_at: datetime, shift: Optional[Shift]) -> ArrivalStatus:
    """On time within the grace period, late up to an hour past start, then very late."""
    if shift is None:
        return ArrivalStatus.on_time
    start = datetime.combine(punched_at.date(), shift.start_time, tzinfo=punched_at.tzinfo)
    late_by = (punched_at - start).total_seconds() / 60
    # Punching in after midnight belongs to the shift that began the evening before
    if shift.is_overnight and late_by < -12 * 60:
        late_by += 24 * 60
    if late_by <= shift.grace_minutes:
        return ArrivalStatus.on_time
    if late_by <= VERY_LATE_THRESHOLD_MINUTES:
        return ArrivalStatus.late
    return ArrivalStatus.very_late


def worked_minutes(punch_in: datetime, punch_out: datetime, break_minutes: int) -> int:
    span = int((punch_out - punch_in).total_seconds() // 60)
    return max(0, span - break_minutes)


def day_status(minutes: int, shift: Optional[Shift]) -> AttendanceStatus:
    """Present from a full shift's worth of work, half day from half of it."""
    if shift is None:
        full, half = DEFAULT_FULL_DAY_MINUTES, DEFAULT_HALF_DAY_MINUTES
    else:
        full = max(1, shift.length_minutes - shift.break_minutes)
        half = full // 2
    if minutes >= full:
        return AttendanceStatus.present
    if minutes >= half:
        return AttendanceStatus.half_day
    return AttendanceStatus.absent


def build_summary(records: Iterable[AttendanceRecord]) -> AttendanceSummary:
    summary = AttendanceSummary()
    timed = 0
    for record in records:
        setattr(summary, record.status.value, getattr(summary, record.status.value) + 1)
        if record.arrival_status == ArrivalStatus.late:
            summary.late += 1
        elif record.arrival_status == ArrivalStatus.very_late:
            summary.very_late += 1
        if record.work_minutes is not None:
            summary.total_work_minutes += record.work_minutes
            timed += 1
    if timed:
        summary.avg_work_minutes = summary.total_work_minutes // timed
    return summary


def _validate_range(from_date: date, to_date: date) -> None:
    if from_date > to_date:
        raise ValidationException(
            {"date_range": ["from_date must be on or before to_date."]}
        )
    if (to_date - from_date).days > MAX_ATTENDANCE_RANGE_DAYS:
        raise ValidationException(
            {"date_range": [f"Date range cannot exceed {MAX_ATTENDANCE_RANGE_DAYS} days."]}
        )


def _record_query():
    return select(AttendanceRecord).options(selectinload(AttendanceRecord.employee))


# ── Shifts ──────────────────────────────────────────────────────────

class ShiftService:
    """Shift catalogue and employee shift assignments."""

    @staticmethod
    async def list_shifts(
        db: AsyncSession,
        *,
        include_inactive: bool = False,
    ) -> list[Shift]:
        query = select(Shift).order_by(Shift.start_time, Shift.code)
        if not include_inactive:
            query = query.where(Shift.is_active.is_(True))
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def get_shift(db: AsyncSession, shift_id: uuid.UUID) -> Shift:
        shift = await db.get(Shift, shift_id)
        if shift is None:
            raise NotFoundException("Shift", str(shift_id))
        return shift

    @staticmethod
    async def _code_taken(
        db: AsyncSession,
        code: str,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> bool:
        query = select(Shift.id).where(Shift.code == code)
        if exclude_id is not None:
            query = query.where(Shift.id != exclude_id)
        return (await db.execute(query)).first() is not None

    @staticmethod
    async def create_shift(
        db: AsyncSession,
        data: ShiftCreate,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Shift:
        if await ShiftService._code_taken(db, data.code):
            raise ConflictError("code", data.code)

        shift = Shift(**data.model_dump())
        db.add(shift)
        await db.flush()
        await db.refresh(shift)

        await create_audit_entry(
            db,
            action="create",
            entity_type="shift",
            entity_id=shift.id,
            actor_id=actor_id,
            new_values=data.model_dump(),
        )
        logger.info("Shift created: %s (%s)", shift.code, shift.id)
        return shift

    @staticmethod
    async def update_shift(
        db: AsyncSession,
        shift_id: uuid.UUID,
        data: ShiftUpdate,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Shift:
        shift = await ShiftService.get_shift(db, shift_id)
        changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}

        code = changes.get("code")
        if code is not None and code != shift.code:
            if await ShiftService._code_taken(db, code, exclude_id=shift.id):
                raise ConflictError("code", code)
        start = changes.get("start_time", shift.start_time)
        end = changes.get("end_time", shift.end_time)
        if start == end:
            raise ValidationException(
                {"end_time": ["start_time and end_time must differ."]}
            )

        old_values = ShiftOut.model_validate(shift).model_dump(mode="json")
        for key, value in changes.items():
            setattr(shift, key, value)
        await db.flush()

        before, after = changed_fields(
            old_values, ShiftOut.model_validate(shift).model_dump(mode="json"),
        )
        await create_audit_entry(
            db,
            action="update",
            entity_type="shift",
            entity_id=shift.id,
            actor_id=actor_id,
            old_values=before,
            new_values=after,
        )
        return shift

    @staticmethod
    async def delete_shift(
        db: AsyncSession,
        shift_id: uuid.UUID,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> None:
        shift = await ShiftService.get_shift(db, shift_id)
        in_use = await db.execute(
            select(ShiftAssignment.id).where(
                ShiftAssignment.shift_id == shift.id,
                ShiftAssignment.is_active.is_(True),
            )
        )
        if in_use.first() is not None:
            raise InvalidStateException("shift", "assigned", "delete")

        await create_audit_entry(
            db,
            action="delete",
            entity_type="shift",
            entity_id=shift.id,
            actor_id=actor_id,
            old_values={"code": shift.code, "name": shift.name},
        )
        await db.delete(shift)
        await db.flush()
        logger.info("Shift deleted: %s", shift.code)

    # ── Assignments ─────────────────────────────────────────────────

    @staticmethod
    def _assignment_query():
        return select(ShiftAssignment).options(
            selectinload(ShiftAssignment.shift),
            selectinload(ShiftAssignment.employee),
        )

    @staticmethod
    async def list_assignments(
        db: AsyncSession,
        *,
        employee_id: Optional[uuid.UUID] = None,
        active_only: bool = True,
    ) -> Sequence[ShiftAssignment]:
        query = ShiftService._assignment_query().order_by(ShiftAssignment.start_date.desc())
        if employee_id is not None:
            query = query.where(ShiftAssignment.employee_id == employee_id)
        if active_only:
            query = query.where(ShiftAssignment.is_active.is_(True))
        result = await db.execute(query)
        return result.scalars().all()

    @staticmethod
    async def current_shift(
        db: AsyncSession,
        employee_id: uuid.UUID,
        day: date,
    ) -> Optional[Shift]:
        """The active shift covering *day*, if any."""
        result = await db.execute(
            select(Shift)
            .join(ShiftAssignment, ShiftAssignment.shift_id == Shift.id)
            .where(
                ShiftAssignment.employee_id == employee_id,
                ShiftAssignment.is_active.is_(True),
                ShiftAssignment.start_date <= day,
                or_(ShiftAssignment.end_date.is_(None), ShiftAssignment.end_date >= day),
                Shift.is_active.is_(True),
            )
            .order_by(ShiftAssignment.start_date.desc())
        )
        return result.scalars().first()

    @staticmethod
    async def assign(
        db: AsyncSession,
        data: ShiftAssignmentCreate,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> ShiftAssignment:
        """Assign a shift, closing whatever assignment the employee had before."""
        target = await db.get(Employee, data.employee_id)
        if target is None:
            raise NotFoundException("Employee", str(data.employee_id))
        if not target.is_active:
            raise ValidationException({"employee_id": ["Employee is deactivated."]})
        shift = await ShiftService.get_shift(db, data.shift_id)
        if not shift.is_active:
            raise ValidationException({"shift_id": ["Shift is inactive."]})

        previous = await ShiftService.list_assignments(db, employee_id=target.id)
        for old in previous:
            old.is_active = False
            old.end_date = max(old.start_date, data.start_date - timedelta(days=1))

        assignment = ShiftAssignment(
            employee_id=target.id,
            shift_id=shift.id,
            start_date=data.start_date,
            end_date=data.end_date,
            is_active=True,
        )
        db.add(assignment)
        await db.flush()

        await create_audit_entry(
            db,
            action="assign",
            entity_type="shift_assignment",
            entity_id=assignment.id,
            actor_id=actor_id,
            old_values={"shift_ids": [old.shift_id for old in previous]} if previous else None,
            new_values=data.model_dump(),
        )
        logger.info(
            "Shift %s assigned to %s from %s (%d previous closed)",
            shift.code, target.id, data.start_date, len(previous),
        )
        result = await db.execute(
            ShiftService._assignment_query()
            .where(ShiftAssignment.id == assignment.id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    @staticmethod
    async def remove_assignment(
        db: AsyncSession,
        assignment_id: uuid.UUID,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> None:
        assignment = await db.get(ShiftAssignment, assignment_id)
        if assignment is None:
            raise NotFoundException("ShiftAssignment", str(assignment_id))
        await create_audit_entry(
            db,
            action="delete",
            entity_type="shift_assignment",
            entity_id=assignment.id,
            actor_id=actor_id,
            old_values={
                "employee_id": assignment.employee_id,
                "shift_id": assignment.shift_id,
                "start_date": assignment.start_date,
            },
        )
        await db.delete(assignment)
        await db.flush()


# ── Attendance ──────────────────────────────────────────────────────

class AttendanceService:
    """Static service class for daily attendance records."""

    @staticmethod
    async def _load(db: AsyncSession, record_id: uuid.UUID) -> AttendanceRecord:
        result = await db.execute(
            _record_query()
            .where(AttendanceRecord.id == record_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    @staticmethod
    async def get_day(
        db: AsyncSession,
        employee_id: uuid.UUID,
        day: date,
    ) -> Optional[AttendanceRecord]:
        result = await db.execute(
            _record_query().where(
                AttendanceRecord.employee_id == employee_id,
                AttendanceRecord.date == day,
            )
        )
        return result.scalars().first()

    @staticmethod
    async def _open_record(
        db: AsyncSession,
        employee_id: uuid.UUID,
        today: date,
    ) -> Optional[AttendanceRecord]:
        """Today's or yesterday's record still waiting for a punch-out."""
        result = await db.execute(
            select(AttendanceRecord)
            .where(
                AttendanceRecord.employee_id == employee_id,
                AttendanceRecord.date.in_([today, today - timedelta(days=1)]),
                AttendanceRecord.punch_in.is_not(None),
                AttendanceRecord.punch_out.is_(None),
            )
            .order_by(AttendanceRecord.date.desc())
        )
        return result.scalars().first()

    # ── Punch in / out ──────────────────────────────────────────────

    @staticmethod
    async def punch_in(
        db: AsyncSession,
        employee: Employee,
        *,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
        ip_address: Optional[str] = None,
    ) -> AttendanceRecord:
        """Open today's record. One punch-in per day."""
        now = as_utc(now) or datetime.now(timezone.utc)
        today = now.date()

        record = await AttendanceService.get_day(db, employee.id, today)
        if record is not None and record.punch_in is not None:
            raise ConflictError("punch_in", today.isoformat())

        shift = await ShiftService.current_shift(db, employee.id, today)
        arrival = arrival_status(now, shift)
        if record is None:
            record = AttendanceRecord(employee_id=employee.id, date=today)
            db.add(record)
        record.punch_in = now
        record.status = AttendanceStatus.present
        record.arrival_status = arrival
        record.shift_id = shift.id if shift else None
        if notes:
            record.notes = notes
        await db.flush()

        await create_audit_entry(
            db,
            action="punch_in",
            entity_type="attendance_record",
            entity_id=record.id,
            actor_id=employee.id,
            new_values={"date": today, "punch_in": now, "arrival_status": arrival},
            ip_address=ip_address,
        )
        logger.info(
            "Punch in: employee=%s date=%s arrival=%s",
            employee.id, today, arrival.value,
        )
        return await AttendanceService._load(db, record.id)

    @staticmethod
    async def punch_out(
        db: AsyncSession,
        employee: Employee,
        *,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
        ip_address: Optional[str] = None,
    ) -> AttendanceRecord:
        """Close the open record and settle the day's status from worked minutes."""
        now = as_utc(now) or datetime.now(timezone.utc)

        record = await AttendanceService._open_record(db, employee.id, now.date())
        if record is None:
            closed = await AttendanceService.get_day(db, employee.id, now.date())
            if closed is not None and closed.punch_out is not None:
                raise ConflictError("punch_out", now.date().isoformat())
            raise ValidationException(
                {"punch_out": ["You have not punched in today."]}
            )
        punched_in = as_utc(record.punch_in)
        if now <= punched_in:
            raise ValidationException(
                {"punch_out": ["Punch-out must be after punch-in."]}
            )

        shift = await db.get(Shift, record.shift_id) if record.shift_id else None
        minutes = worked_minutes(
            punched_in, now, shift.break_minutes if shift else DEFAULT_BREAK_MINUTES,
        )
        record.punch_out = now
        record.work_minutes = minutes
        record.status = day_status(minutes, shift)
        if notes:
            record.notes = notes
        await db.flush()

        await create_audit_entry(
            db,
            action="punch_out",
            entity_type="attendance_record",
            entity_id=record.id,
            actor_id=employee.id,
            new_values={
                "punch_out": now,
                "work_minutes": minutes,
                "status": record.status,
            },
            ip_address=ip_address,
        )
        logger.info(
            "Punch out: employee=%s date=%s minutes=%d status=%s",
            employee.id, record.date, minutes, record.status.value,
        )
        return await AttendanceService._load(db, record.id)

    # ── History ─────────────────────────────────────────────────────

    @staticmethod
    async def history(
        db: AsyncSession,
        employee_id: uuid.UUID,
        from_date: date,
        to_date: date,
        params: PaginationParams,
    ) -> AttendanceListResponse:
        """Records in a date range, newest first, with a summary of the whole range."""
        _validate_range(from_date, to_date)
        in_range = (
            AttendanceRecord.employee_id == employee_id,
            AttendanceRecord.date >= from_date,
            AttendanceRecord.date <= to_date,
        )
        page = await paginate(
            db,
            _record_query().where(*in_range).order_by(AttendanceRecord.date.desc()),
            params,
            model=AttendanceRecord,
        )
        everything = await db.execute(select(AttendanceRecord).where(*in_range))
        return AttendanceListResponse(
            data=[AttendanceRecordOut.model_validate(r) for r in page.data],
            meta=page.meta,
            summary=build_summary(everything.scalars().all()),
        )

    # ── Team view ───────────────────────────────────────────────────

    @staticmethod
    async def ensure_visible(
        db: AsyncSession,
        viewer: Employee,
        employee_id: uuid.UUID,
    ) -> None:
        if is_privileged(viewer.role):
            return
        if employee_id not in await OrgHierarchy.team_member_ids(db, viewer):
            raise ForbiddenException(detail="That employee is outside your team.")

    @staticmethod
    async def _visible_members(
        db: AsyncSession,
        viewer: Employee,
        department_id: Optional[uuid.UUID],
    ) -> Sequence[Employee]:
        query = select(Employee).where(Employee.is_active.is_(True))
        if not is_privileged(viewer.role):
            ids = await OrgHierarchy.team_member_ids(db, viewer)
            if not ids:
                return []
            query = query.where(Employee.id.in_(ids))
        if department_id is not None:
            query = query.where(Employee.department_id == department_id)
        result = await db.execute(query.order_by(Employee.first_name, Employee.last_name))
        return result.scalars().all()

    @staticmethod
    async def team_day(
        db: AsyncSession,
        viewer: Employee,
        day: date,
        *,
        department_id: Optional[uuid.UUID] = None,
    ) -> TeamAttendanceResponse:
        """Everyone the viewer may see on *day*, punched in or not.

        Admin and HR see the whole company; anyone else sees their team
        (direct reports and department colleagues).
        """
        members = await AttendanceService._visible_members(db, viewer, department_id)
        by_employee: dict[uuid.UUID, AttendanceRecord] = {}
        if members:
            result = await db.execute(
                _record_query().where(
                    AttendanceRecord.date == day,
                    AttendanceRecord.employee_id.in_([m.id for m in members]),
                )
            )
            by_employee = {r.employee_id: r for r in result.scalars().all()}

        rows = [
            TeamAttendanceRow(
                employee=MemberBrief.model_validate(member),
                record=(
                    AttendanceRecordOut.model_validate(by_employee[member.id])
                    if member.id in by_employee else None
                ),
            )
            for member in members
        ]
        return TeamAttendanceResponse(
            date=day,
            members=rows,
            summary=build_summary(by_employee.values()),
            unmarked=len(members) - len(by_employee),
        )

    # ── Manual marking ──────────────────────────────────────────────

    @staticmethod
    async def mark(
        db: AsyncSession,
        data: AttendanceMark,
        actor: Employee,
    ) -> AttendanceRecord:
        """Create or correct one employee's day on their behalf."""
        target = await db.get(Employee, data.employee_id)
        if target is None:
            raise NotFoundException("Employee", str(data.employee_id))
        await AttendanceService.ensure_visible(db, actor, target.id)

        record = await AttendanceService.get_day(db, target.id, data.date)
        old_values = (
            AttendanceRecordOut.model_validate(record).model_dump(
                mode="json", exclude={"employee"},
            )
            if record is not None else {}
        )
        if record is None:
            record = AttendanceRecord(employee_id=target.id, date=data.date)
            db.add(record)

        shift = await ShiftService.current_shift(db, target.id, data.date)
        punch_in = as_utc(data.punch_in)
        punch_out = as_utc(data.punch_out)
        record.status = data.status
        record.punch_in = punch_in
        record.punch_out = punch_out
        record.shift_id = shift.id if shift else None
        record.arrival_status = arrival_status(punch_in, shift) if punch_in else None
        record.work_minutes = (
            worked_minutes(
                punch_in, punch_out, shift.break_minutes if shift else DEFAULT_BREAK_MINUTES,
            )
            if punch_in and punch_out else None
        )
        if data.notes is not None:
            record.notes = data.notes
        await db.flush()

        record = await AttendanceService._load(db, record.id)
        before, after = changed_fields(
            old_values,
            AttendanceRecordOut.model_validate(record).model_dump(
                mode="json", exclude={"employee"},
            ),
        )
        await create_audit_entry(
            db,
            action="mark",
            entity_type="attendance_record",
            entity_id=record.id,
            actor_id=actor.id,
            old_values=before,
            new_values=after,
        )
        logger.info(
            "Attendance marked: employee=%s date=%s status=%s by=%s",
            target.id, data.date, data.status.value, actor.id,
        )
        return record
