"""Attendance — punch rules, history, team scope, manual marks, shifts and assignments."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

import pytest
from sqlalchemy import select

from hrms.attendance.models import AttendanceRecord, Shift, ShiftAssignment
from hrms.attendance.schemas import AttendanceMark, ShiftAssignmentCreate, ShiftCreate
from hrms.attendance.service import (
    AttendanceService,
    ShiftService,
    arrival_status,
    as_utc,
    build_summary,
    day_status,
)
from hrms.common.constants import ArrivalStatus, AttendanceStatus, UserRole
from hrms.common.exceptions import (
    ConflictError,
    ForbiddenException,
    InvalidStateException,
    ValidationException,
)
from hrms.common.pagination import PaginationParams
from tests.conftest import auth_headers_for, make_department, make_employee

UTC = timezone.utc
MONDAY = date(2026, 3, 2)


def _at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime.combine(day, time(hour, minute), tzinfo=UTC)


def _general_shift(**kw) -> Shift:
    values = dict(
        name="General", code="GEN", start_time=time(9), end_time=time(18),
        break_minutes=60, grace_minutes=15,
    )
    values.update(kw)
    return Shift(**values)


@pytest.fixture
async def general_shift(db, hr):
    return await ShiftService.create_shift(
        db,
        ShiftCreate(name="General", code="gen", start_time=time(9), end_time=time(18)),
        actor_id=hr.id,
    )


@pytest.fixture
async def stranger(db):
    sales = await make_department(db, name="Sales")
    return await make_employee(db, first_name="Sam", last_name="Stranger", department_id=sales.id)


async def _record(db, employee, day) -> AttendanceRecord:
    result = await db.execute(
        select(AttendanceRecord)
        .where(AttendanceRecord.employee_id == employee.id, AttendanceRecord.date == day)
        .execution_options(populate_existing=True)
    )
    return result.scalars().one()


# ═════════════════════════════════════════════════════════════════════
# Day rules
# ═════════════════════════════════════════════════════════════════════


class TestArrivalStatus:
    def test_no_shift_is_always_on_time(self):
        assert arrival_status(_at(MONDAY, 11), None) == ArrivalStatus.on_time

    @pytest.mark.parametrize(
        "hour, minute, expected",
        [
            (8, 50, ArrivalStatus.on_time),
            (9, 15, ArrivalStatus.on_time),
            (9, 40, ArrivalStatus.late),
            (10, 0, ArrivalStatus.late),
            (10, 30, ArrivalStatus.very_late),
        ],
    )
    def test_grace_then_late_then_very_late(self, hour, minute, expected):
        assert arrival_status(_at(MONDAY, hour, minute), _general_shift()) == expected

    def test_after_midnight_counts_against_previous_evening(self):
        night = _general_shift(code="NIGHT", start_time=time(22), end_time=time(6))
        assert night.is_overnight
        assert arrival_status(_at(MONDAY, 22, 10), night) == ArrivalStatus.on_time
        assert arrival_status(_at(MONDAY, 0, 30), night) == ArrivalStatus.very_late


class TestDayStatus:
    def test_thresholds_follow_shift_length(self):
        shift = _general_shift()
        assert shift.length_minutes == 540
        assert day_status(480, shift) == AttendanceStatus.present
        assert day_status(300, shift) == AttendanceStatus.half_day
        assert day_status(100, shift) == AttendanceStatus.absent

    def test_defaults_without_shift(self):
        assert day_status(480, None) == AttendanceStatus.present
        assert day_status(240, None) == AttendanceStatus.half_day
        assert day_status(239, None) == AttendanceStatus.absent

    def test_overnight_length(self):
        assert _general_shift(start_time=time(22), end_time=time(6)).length_minutes == 480

    def test_naive_values_read_as_utc(self):
        assert as_utc(datetime(2026, 3, 2, 9)) == _at(MONDAY, 9)

    def test_summary_counts(self):
        records = [
            AttendanceRecord(status=AttendanceStatus.present, arrival_status=ArrivalStatus.late, work_minutes=500),
            AttendanceRecord(status=AttendanceStatus.half_day, arrival_status=ArrivalStatus.on_time, work_minutes=300),
            AttendanceRecord(status=AttendanceStatus.on_leave),
        ]
        summary = build_summary(records)
        assert (summary.present, summary.half_day, summary.on_leave) == (1, 1, 1)
        assert summary.late == 1
        assert summary.total_work_minutes == 800
        assert summary.avg_work_minutes == 400


# ═════════════════════════════════════════════════════════════════════
# Punches
# ═════════════════════════════════════════════════════════════════════


class TestPunches:
    async def test_full_day_on_shift(self, db, hr, employee, general_shift):
        await ShiftService.assign(
            db,
            ShiftAssignmentCreate(employee_id=employee.id, shift_id=general_shift.id, start_date=MONDAY),
            actor_id=hr.id,
        )
        record = await AttendanceService.punch_in(db, employee, now=_at(MONDAY, 9, 5))
        assert record.arrival_status == ArrivalStatus.on_time
        assert record.shift_id == general_shift.id

        record = await AttendanceService.punch_out(db, employee, now=_at(MONDAY, 18, 10))
        assert record.work_minutes == 485
        assert record.status == AttendanceStatus.present

    async def test_late_short_day(self, db, hr, employee, general_shift):
        await ShiftService.assign(
            db,
            ShiftAssignmentCreate(employee_id=employee.id, shift_id=general_shift.id, start_date=MONDAY),
            actor_id=hr.id,
        )
        await AttendanceService.punch_in(db, employee, now=_at(MONDAY, 9, 40))
        record = await AttendanceService.punch_out(db, employee, now=_at(MONDAY, 15))
        assert record.arrival_status == ArrivalStatus.late
        assert record.status == AttendanceStatus.half_day

    async def test_second_punch_in_conflicts(self, db, employee):
        await AttendanceService.punch_in(db, employee, now=_at(MONDAY, 9))
        with pytest.raises(ConflictError):
            await AttendanceService.punch_in(db, employee, now=_at(MONDAY, 10))

    async def test_punch_out_without_punch_in(self, db, employee):
        with pytest.raises(ValidationException):
            await AttendanceService.punch_out(db, employee, now=_at(MONDAY, 18))

    async def test_second_punch_out_conflicts(self, db, employee):
        await AttendanceService.punch_in(db, employee, now=_at(MONDAY, 9))
        await AttendanceService.punch_out(db, employee, now=_at(MONDAY, 17))
        with pytest.raises(ConflictError):
            await AttendanceService.punch_out(db, employee, now=_at(MONDAY, 18))

    async def test_punch_out_after_midnight_closes_previous_day(self, db, employee):
        await AttendanceService.punch_in(db, employee, now=_at(MONDAY, 22))
        record = await AttendanceService.punch_out(
            db, employee, now=_at(MONDAY + timedelta(days=1), 6),
        )
        assert record.date == MONDAY
        assert record.work_minutes == 420
        assert record.status == AttendanceStatus.half_day


class TestHistory:
    async def test_paged_with_summary_of_whole_range(self, db, employee):
        for offset in range(3):
            day = MONDAY + timedelta(days=offset)
            await AttendanceService.punch_in(db, employee, now=_at(day, 9))
            await AttendanceService.punch_out(db, employee, now=_at(day, 18))

        result = await AttendanceService.history(
            db, employee.id, MONDAY, MONDAY + timedelta(days=6),
            PaginationParams(page=1, page_size=2, sort=None),
        )
        assert result.meta.total == 3
        assert [r.date for r in result.data] == [MONDAY + timedelta(days=2), MONDAY + timedelta(days=1)]
        assert result.summary.present == 3
        assert result.summary.avg_work_minutes == 480

    async def test_range_must_be_ordered(self, db, employee):
        with pytest.raises(ValidationException):
            await AttendanceService.history(
                db, employee.id, MONDAY, MONDAY - timedelta(days=1),
                PaginationParams(page=1, page_size=10, sort=None),
            )


class TestTeamScope:
    async def test_manager_sees_team_only(self, db, manager, employee, stranger):
        await AttendanceService.punch_in(db, employee, now=_at(MONDAY, 9))
        await AttendanceService.punch_in(db, stranger, now=_at(MONDAY, 9))

        view = await AttendanceService.team_day(db, manager, MONDAY)
        ids = [row.employee.id for row in view.members]
        assert ids == [employee.id]
        assert view.members[0].record is not None
        assert view.unmarked == 0

    async def test_hr_sees_everyone_and_unmarked(self, db, hr, manager, employee, stranger):
        await AttendanceService.punch_in(db, employee, now=_at(MONDAY, 9))

        view = await AttendanceService.team_day(db, hr, MONDAY)
        ids = {row.employee.id for row in view.members}
        assert {employee.id, stranger.id, manager.id, hr.id} <= ids
        assert view.unmarked == len(ids) - 1

    async def test_manager_cannot_mark_outside_team(self, db, manager, stranger):
        with pytest.raises(ForbiddenException):
            await AttendanceService.mark(
                db,
                AttendanceMark(employee_id=stranger.id, date=MONDAY, status=AttendanceStatus.absent),
                manager,
            )

    async def test_manager_marks_report_on_leave(self, db, manager, employee):
        record = await AttendanceService.mark(
            db,
            AttendanceMark(employee_id=employee.id, date=MONDAY, status=AttendanceStatus.on_leave),
            manager,
        )
        assert record.status == AttendanceStatus.on_leave
        assert record.punch_in is None

    async def test_hr_correction_recomputes_minutes(self, db, hr, employee):
        await AttendanceService.punch_in(db, employee, now=_at(MONDAY, 9))
        await AttendanceService.mark(
            db,
            AttendanceMark(
                employee_id=employee.id,
                date=MONDAY,
                status=AttendanceStatus.present,
                punch_in=_at(MONDAY, 9),
                punch_out=_at(MONDAY, 18),
                notes="Forgot to punch out",
            ),
            hr,
        )
        record = await _record(db, employee, MONDAY)
        assert record.work_minutes == 480
        assert record.notes == "Forgot to punch out"


# ═════════════════════════════════════════════════════════════════════
# Shifts
# ═════════════════════════════════════════════════════════════════════


class TestShifts:
    async def test_code_is_uppercased_and_unique(self, db, hr, general_shift):
        assert general_shift.code == "GEN"
        with pytest.raises(ConflictError):
            await ShiftService.create_shift(
                db,
                ShiftCreate(name="Other", code="Gen", start_time=time(10), end_time=time(19)),
                actor_id=hr.id,
            )

    async def test_assignment_replaces_previous(self, db, hr, employee, general_shift):
        night = await ShiftService.create_shift(
            db,
            ShiftCreate(name="Night", code="NIGHT", start_time=time(22), end_time=time(6)),
            actor_id=hr.id,
        )
        first = await ShiftService.assign(
            db,
            ShiftAssignmentCreate(employee_id=employee.id, shift_id=general_shift.id, start_date=MONDAY),
            actor_id=hr.id,
        )
        await ShiftService.assign(
            db,
            ShiftAssignmentCreate(
                employee_id=employee.id, shift_id=night.id, start_date=MONDAY + timedelta(days=7),
            ),
            actor_id=hr.id,
        )

        active = await ShiftService.list_assignments(db, employee_id=employee.id)
        assert [a.shift_id for a in active] == [night.id]
        old = await db.get(ShiftAssignment, first.id, populate_existing=True)
        assert old.is_active is False
        assert old.end_date == MONDAY + timedelta(days=6)
        assert (await ShiftService.current_shift(db, employee.id, MONDAY + timedelta(days=7))).id == night.id

    async def test_assigned_shift_cannot_be_deleted(self, db, hr, employee, general_shift):
        assignment = await ShiftService.assign(
            db,
            ShiftAssignmentCreate(employee_id=employee.id, shift_id=general_shift.id, start_date=MONDAY),
            actor_id=hr.id,
        )
        with pytest.raises(InvalidStateException):
            await ShiftService.delete_shift(db, general_shift.id, actor_id=hr.id)

        await ShiftService.remove_assignment(db, assignment.id, actor_id=hr.id)
        await ShiftService.delete_shift(db, general_shift.id, actor_id=hr.id)
        assert await ShiftService.list_shifts(db, include_inactive=True) == []

    async def test_cannot_assign_to_deactivated_employee(self, db, hr, general_shift):
        gone = await make_employee(db, first_name="Gone", is_active=False)
        with pytest.raises(ValidationException):
            await ShiftService.assign(
                db,
                ShiftAssignmentCreate(employee_id=gone.id, shift_id=general_shift.id, start_date=MONDAY),
                actor_id=hr.id,
            )


# ═════════════════════════════════════════════════════════════════════
# HTTP
# ═════════════════════════════════════════════════════════════════════


class TestAttendanceApi:
    async def test_punch_flow(self, client, db, employee):
        headers = await auth_headers_for(db, employee)

        resp = await client.post("/api/v1/attendance/punch-in", json={"notes": "On site"}, headers=headers)
        assert resp.status_code == 201
        assert resp.json()["employee"]["id"] == str(employee.id)

        resp = await client.post("/api/v1/attendance/punch-in", headers=headers)
        assert resp.status_code == 409

        resp = await client.post("/api/v1/attendance/punch-out", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["punch_out"] is not None

        resp = await client.get("/api/v1/attendance/today", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["notes"] == "On site"

        resp = await client.get("/api/v1/attendance/me", headers=headers)
        body = resp.json()
        assert body["meta"]["total"] == 1
        assert "summary" in body

    async def test_punch_out_first_is_422(self, client, db, employee):
        headers = await auth_headers_for(db, employee)
        resp = await client.post("/api/v1/attendance/punch-out", headers=headers)
        assert resp.status_code == 422
        assert "punch_out" in resp.json()["errors"]

    async def test_team_view_requires_team_access(self, client, db, employee):
        headers = await auth_headers_for(db, employee)
        resp = await client.get("/api/v1/attendance/team", headers=headers)
        assert resp.status_code == 403

    async def test_manager_team_view(self, client, db, manager, employee, stranger):
        headers = await auth_headers_for(db, manager)
        resp = await client.get(
            "/api/v1/attendance/team", params={"date": MONDAY.isoformat()}, headers=headers,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert [m["employee"]["id"] for m in body["members"]] == [str(employee.id)]
        assert body["unmarked"] == 1

    async def test_employee_records_scoped_to_team(self, client, db, manager, employee, stranger):
        headers = await auth_headers_for(db, manager)
        resp = await client.get(f"/api/v1/attendance/employees/{employee.id}", headers=headers)
        assert resp.status_code == 200
        resp = await client.get(f"/api/v1/attendance/employees/{stranger.id}", headers=headers)
        assert resp.status_code == 403

        own = await auth_headers_for(db, employee)
        resp = await client.get(f"/api/v1/attendance/employees/{manager.id}", headers=own)
        assert resp.status_code == 403


class TestShiftApi:
    async def test_employee_reads_but_cannot_create(self, client, db, employee):
        headers = await auth_headers_for(db, employee)
        assert (await client.get("/api/v1/shifts", headers=headers)).status_code == 200
        resp = await client.post(
            "/api/v1/shifts",
            json={"name": "General", "code": "GEN", "start_time": "09:00", "end_time": "18:00"},
            headers=headers,
        )
        assert resp.status_code == 403

    async def test_hr_manages_shifts_and_assignments(self, client, db, hr, employee):
        headers = await auth_headers_for(db, hr)
        resp = await client.post(
            "/api/v1/shifts",
            json={"name": "Morning", "code": "morn", "start_time": "06:00", "end_time": "14:00"},
            headers=headers,
        )
        assert resp.status_code == 201
        shift = resp.json()
        assert shift["code"] == "MORN"
        assert shift["break_minutes"] == 60
        assert shift["grace_minutes"] == 15

        resp = await client.post(
            "/api/v1/shifts",
            json={"name": "Dup", "code": "MORN", "start_time": "07:00", "end_time": "15:00"},
            headers=headers,
        )
        assert resp.status_code == 409

        resp = await client.post(
            "/api/v1/shifts/assignments",
            json={"employee_id": str(employee.id), "shift_id": shift["id"], "start_date": MONDAY.isoformat()},
            headers=headers,
        )
        assert resp.status_code == 201
        assert resp.json()["shift"]["code"] == "MORN"

        resp = await client.delete(f"/api/v1/shifts/{shift['id']}", headers=headers)
        assert resp.status_code == 409

    async def test_same_start_and_end_rejected(self, client, db, hr):
        headers = await auth_headers_for(db, hr)
        resp = await client.post(
            "/api/v1/shifts",
            json={"name": "Zero", "code": "ZERO", "start_time": "09:00", "end_time": "09:00"},
            headers=headers,
        )
        assert resp.status_code == 422

    async def test_manager_cannot_assign(self, client, db, manager, employee):
        headers = await auth_headers_for(db, manager)
        resp = await client.post(
            "/api/v1/shifts/assignments",
            json={"employee_id": str(employee.id), "shift_id": str(employee.id), "start_date": MONDAY.isoformat()},
            headers=headers,
        )
        assert resp.status_code == 403


@pytest.mark.parametrize("role", [UserRole.admin, UserRole.hr])
async def test_privileged_roles_mark_anyone(client, db, role, stranger):
    actor = await make_employee(db, first_name="Priv", role=role)
    headers = await auth_headers_for(db, actor)
    resp = await client.put(
        "/api/v1/attendance/records",
        json={"employee_id": str(stranger.id), "date": MONDAY.isoformat(), "status": "absent"},
        headers=headers,
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "absent"
