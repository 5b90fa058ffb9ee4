"""Admin — leave-type catalog, balance edits, carry-forward, audit listing."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from hrms.admin.schemas import BalanceUpsert, LeaveTypeCreate, LeaveTypeUpdate
from hrms.admin.service import DEFAULT_LEAVE_TYPES, AdminService
from hrms.common.audit import list_audit_entries
from hrms.common.exceptions import ConflictError, ValidationException
from hrms.leave.ledger import LeaveLedger
from hrms.leave.models import LeaveBalance
from hrms.leave.schemas import LeaveRequestCreate
from hrms.leave.service import LeaveService
from tests.conftest import auth_headers_for, make_balance, make_employee, make_leave_type

THIS_YEAR = datetime.now(timezone.utc).year


async def _balances_for(db, leave_type_id) -> int:
    result = await db.execute(
        select(func.count()).select_from(LeaveBalance).where(
            LeaveBalance.leave_type_id == leave_type_id,
        )
    )
    return result.scalar_one()


class TestLeaveTypes:
    async def test_create_opens_balances_for_active_employees(self, db, admin, employee):
        await make_employee(db, first_name="Former", is_active=False)

        lt = await AdminService.create_leave_type(
            db,
            LeaveTypeCreate(code="bl", name="Bereavement Leave", default_days=Decimal("3")),
            actor_id=admin.id,
        )

        assert lt.code == "BL"
        # admin, manager, employee
        assert await _balances_for(db, lt.id) == 3
        balance = await LeaveLedger.find(db, employee.id, lt.id, THIS_YEAR)
        assert balance.total == Decimal("3")

    async def test_duplicate_code_conflicts(self, db, admin):
        await make_leave_type(db, code="SL", name="Sick Leave")
        with pytest.raises(ConflictError):
            await AdminService.create_leave_type(
                db, LeaveTypeCreate(code="sl", name="Sick"), actor_id=admin.id,
            )

    async def test_update_code_conflicts(self, db, admin, casual_leave):
        sick = await make_leave_type(db, code="SL", name="Sick Leave")
        with pytest.raises(ConflictError):
            await AdminService.update_leave_type(
                db, sick.id, LeaveTypeUpdate(code="CL"), actor_id=admin.id,
            )

    async def test_update_fields(self, db, admin, casual_leave):
        lt = await AdminService.update_leave_type(
            db,
            casual_leave.id,
            LeaveTypeUpdate(default_days=Decimal("10"), is_active=False),
            actor_id=admin.id,
        )
        assert lt.default_days == Decimal("10")
        assert lt.is_active is False
        assert lt.name == "Casual Leave"

        entry = (await list_audit_entries(db, entity_type="leave_type"))[0]
        assert entry.old_values["is_active"] is True
        assert entry.new_values["is_active"] is False
        assert "name" not in entry.new_values

    async def test_delete_removes_balances(self, db, admin, employee, casual_leave):
        await make_balance(db, employee.id, casual_leave.id)

        removed = await AdminService.delete_leave_type(db, casual_leave.id, actor_id=admin.id)

        assert removed == 1
        assert await _balances_for(db, casual_leave.id) == 0

    async def test_delete_refused_while_requests_exist(self, db, admin, employee, casual_leave):
        await LeaveService.submit(
            db,
            employee,
            LeaveRequestCreate(
                leave_type_id=casual_leave.id,
                start_date=date(2026, 3, 2),
                end_date=date(2026, 3, 2),
            ),
        )
        with pytest.raises(ValidationException) as exc_info:
            await AdminService.delete_leave_type(db, casual_leave.id, actor_id=admin.id)
        assert "leave_type" in exc_info.value.errors

    async def test_seed_upserts_by_code(self, db, admin):
        await make_leave_type(db, code="CL", name="Old Casual", default_days=Decimal("5"))

        first = await AdminService.seed_leave_types(db, actor_id=admin.id)
        assert first.created == len(DEFAULT_LEAVE_TYPES) - 1
        assert first.updated == 1

        second = await AdminService.seed_leave_types(db, actor_id=admin.id)
        assert second.created == 0
        assert second.updated == len(DEFAULT_LEAVE_TYPES)

        by_code = {lt.code: lt for lt in await AdminService.list_leave_types(db)}
        assert by_code["CL"].name == "Casual Leave"
        assert by_code["CL"].default_days == Decimal("12")
        assert by_code["LOP"].enforce_balance is False
        assert by_code["EL"].max_carry_forward == Decimal("30")


class TestBalances:
    async def test_upsert_creates_then_updates(self, db, admin, employee, casual_leave):
        created = await AdminService.upsert_balance(
            db,
            BalanceUpsert(
                employee_id=employee.id, leave_type_id=casual_leave.id,
                year=2026, total=Decimal("20"),
            ),
            actor_id=admin.id,
        )
        assert created.total == Decimal("20")
        assert created.leave_type.code == "CL"

        updated = await AdminService.upsert_balance(
            db,
            BalanceUpsert(
                employee_id=employee.id, leave_type_id=casual_leave.id,
                year=2026, carry_forward=Decimal("2"),
            ),
            actor_id=admin.id,
        )
        assert updated.id == created.id
        assert updated.total == Decimal("20")
        assert updated.carry_forward == Decimal("2")

        entries = await list_audit_entries(db, entity_type="leave_balance")
        assert sorted(e.action for e in entries) == ["create", "update"]


class TestCarryForward:
    async def test_clamped_to_max_and_idempotent(self, db, admin, employee, manager):
        earned = await make_leave_type(
            db, code="EL", name="Earned Leave", default_days=Decimal("15"),
            carry_forward=True, max_carry_forward=Decimal("5"),
        )
        await make_balance(db, employee.id, earned.id, year=2025, total=Decimal("15"),
                           used=Decimal("2"))
        await make_balance(db, manager.id, earned.id, year=2025, total=Decimal("15"),
                           used=Decimal("12"))

        first = await AdminService.carry_forward(db, 2025, actor_id=admin.id)
        again = await AdminService.carry_forward(db, 2025, actor_id=admin.id)

        assert first.processed == again.processed == 2
        assert first.to_year == 2026
        assert first.leave_types == ["EL"]
        emp_next = await LeaveLedger.find(db, employee.id, earned.id, 2026)
        mgr_next = await LeaveLedger.find(db, manager.id, earned.id, 2026)
        assert emp_next.carry_forward == Decimal("5")
        assert mgr_next.carry_forward == Decimal("3")
        assert emp_next.total == Decimal("15")

    async def test_negative_available_carries_nothing(self, db, admin, employee):
        earned = await make_leave_type(
            db, code="EL", name="Earned Leave",
            carry_forward=True, max_carry_forward=Decimal("30"),
        )
        await make_balance(db, employee.id, earned.id, year=2025, total=Decimal("2"),
                           used=Decimal("4"))

        await AdminService.carry_forward(db, 2025, actor_id=admin.id)

        nxt = await LeaveLedger.find(db, employee.id, earned.id, 2026)
        assert nxt.carry_forward == Decimal("0")

    async def test_non_carry_types_skipped(self, db, admin, employee, casual_leave):
        await make_balance(db, employee.id, casual_leave.id, year=2025)

        result = await AdminService.carry_forward(db, 2025, actor_id=admin.id)

        assert result.processed == 0
        assert await LeaveLedger.find(db, employee.id, casual_leave.id, 2026) is None


class TestAdminEndpoints:
    async def test_employee_cannot_manage_leave_types(self, client, db, employee):
        headers = await auth_headers_for(db, employee)
        resp = await client.post(
            "/api/v1/admin/leave-types",
            json={"code": "BL", "name": "Bereavement Leave"},
            headers=headers,
        )
        assert resp.status_code == 403

    async def test_admin_creates_and_deletes_leave_type(self, client, db, admin):
        headers = await auth_headers_for(db, admin)

        resp = await client.post(
            "/api/v1/admin/leave-types",
            json={"code": "bl", "name": "Bereavement Leave", "default_days": "3"},
            headers=headers,
        )
        assert resp.status_code == 201
        lt_id = resp.json()["id"]
        assert resp.json()["code"] == "BL"

        resp = await client.delete(f"/api/v1/admin/leave-types/{lt_id}", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["data"]["balances_removed"] == 1

    async def test_hr_reads_audit_and_edits_leave_types(self, client, db, hr, casual_leave):
        headers = await auth_headers_for(db, hr)

        resp = await client.get("/api/v1/admin/audit", headers=headers)
        assert resp.status_code == 200

        resp = await client.put(
            f"/api/v1/admin/leave-types/{casual_leave.id}",
            json={"name": "Casual"},
            headers=headers,
        )
        assert resp.status_code == 200
