"""Leave balance ledger — lazy creation, reserve / commit / release, admin edits."""

from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from hrms.common.exceptions import (
    InsufficientBalanceException,
    NotFoundException,
    ValidationException,
)
from hrms.leave.ledger import LeaveLedger
from hrms.leave.models import LeaveBalance
from tests.conftest import make_balance, make_employee, make_leave_type

YEAR = 2026


async def _balance_count(db, employee_id, leave_type_id) -> int:
    result = await db.execute(
        select(func.count()).select_from(LeaveBalance).where(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_type_id == leave_type_id,
        )
    )
    return result.scalar_one()


class TestGetOrCreate:
    async def test_creates_from_default_days(self, db):
        emp = await make_employee(db)
        lt = await make_leave_type(db, default_days=Decimal("15"))

        balance = await LeaveLedger.get_or_create(db, emp.id, lt.id, YEAR)

        assert balance.total == Decimal("15")
        assert balance.used == Decimal("0")
        assert balance.pending == Decimal("0")
        assert balance.carry_forward == Decimal("0")
        assert balance.available == Decimal("15")

    async def test_idempotent(self, db):
        emp = await make_employee(db)
        lt = await make_leave_type(db)

        first = await LeaveLedger.get_or_create(db, emp.id, lt.id, YEAR)
        second = await LeaveLedger.get_or_create(db, emp.id, lt.id, YEAR)

        assert first.id == second.id
        assert await _balance_count(db, emp.id, lt.id) == 1

    async def test_years_are_separate(self, db):
        emp = await make_employee(db)
        lt = await make_leave_type(db)

        a = await LeaveLedger.get_or_create(db, emp.id, lt.id, YEAR)
        b = await LeaveLedger.get_or_create(db, emp.id, lt.id, YEAR + 1)

        assert a.id != b.id

    async def test_unknown_leave_type(self, db):
        emp = await make_employee(db)
        with pytest.raises(NotFoundException):
            await LeaveLedger.get_or_create(db, emp.id, uuid.uuid4(), YEAR)


class TestReserve:
    async def test_reserve_moves_days_to_pending(self, db):
        emp = await make_employee(db)
        lt = await make_leave_type(db)

        balance = await LeaveLedger.reserve(db, emp.id, lt.id, YEAR, Decimal("2"))

        assert balance.pending == Decimal("2")
        assert balance.used == Decimal("0")
        assert balance.available == Decimal("10")

    async def test_reserve_exact_available(self, db):
        emp = await make_employee(db)
        lt = await make_leave_type(db)
        await make_balance(db, emp.id, lt.id, year=YEAR, total=Decimal("3"), used=Decimal("1"))

        balance = await LeaveLedger.reserve(db, emp.id, lt.id, YEAR, Decimal("2"))
        assert balance.available == Decimal("0")

    async def test_insufficient_balance(self, db):
        emp = await make_employee(db)
        lt = await make_leave_type(db)
        bal = await make_balance(db, emp.id, lt.id, year=YEAR, total=Decimal("1"))

        with pytest.raises(InsufficientBalanceException) as exc_info:
            await LeaveLedger.reserve(db, emp.id, lt.id, YEAR, Decimal("2"))

        assert exc_info.value.available == Decimal("1")
        assert exc_info.value.requested == Decimal("2")
        await db.refresh(bal)
        assert bal.pending == Decimal("0")

    async def test_carry_forward_counts_as_available(self, db):
        emp = await make_employee(db)
        lt = await make_leave_type(db)
        await make_balance(
            db, emp.id, lt.id, year=YEAR,
            total=Decimal("1"), carry_forward=Decimal("2"),
        )

        balance = await LeaveLedger.reserve(db, emp.id, lt.id, YEAR, Decimal("3"))
        assert balance.pending == Decimal("3")

    async def test_unenforced_type_may_overdraw(self, db):
        emp = await make_employee(db)
        lop = await make_leave_type(
            db, code="LOP", name="Loss of Pay",
            default_days=Decimal("0"), is_paid=False, enforce_balance=False,
        )

        balance = await LeaveLedger.reserve(db, emp.id, lop.id, YEAR, Decimal("5"))

        assert balance.pending == Decimal("5")
        assert balance.available == Decimal("-5")

    @pytest.mark.parametrize("days", [Decimal("0"), Decimal("-1")])
    async def test_non_positive_days_rejected(self, db, days):
        emp = await make_employee(db)
        lt = await make_leave_type(db)
        with pytest.raises(ValidationException):
            await LeaveLedger.reserve(db, emp.id, lt.id, YEAR, days)


class TestCommitRelease:
    async def test_commit_moves_pending_to_used(self, db):
        emp = await make_employee(db)
        lt = await make_leave_type(db)
        await LeaveLedger.reserve(db, emp.id, lt.id, YEAR, Decimal("2"))

        balance = await LeaveLedger.commit(db, emp.id, lt.id, YEAR, Decimal("2"))

        assert balance.used == Decimal("2")
        assert balance.pending == Decimal("0")
        assert balance.total == Decimal("12")

    async def test_reserve_release_round_trip(self, db):
        emp = await make_employee(db)
        lt = await make_leave_type(db)
        await make_balance(
            db, emp.id, lt.id, year=YEAR,
            used=Decimal("3"), pending=Decimal("1"),
        )

        await LeaveLedger.reserve(db, emp.id, lt.id, YEAR, Decimal("2.5"))
        balance = await LeaveLedger.release(db, emp.id, lt.id, YEAR, Decimal("2.5"))

        assert balance.pending == Decimal("1")
        assert balance.used == Decimal("3")
        assert balance.total == Decimal("12")

    async def test_release_clamps_pending_at_zero(self, db):
        emp = await make_employee(db)
        lt = await make_leave_type(db)
        await make_balance(db, emp.id, lt.id, year=YEAR, pending=Decimal("1"))

        balance = await LeaveLedger.release(db, emp.id, lt.id, YEAR, Decimal("2"))
        assert balance.pending == Decimal("0")

    async def test_used_plus_pending_never_exceeds_grant(self, db):
        emp = await make_employee(db)
        lt = await make_leave_type(db, default_days=Decimal("5"))

        await LeaveLedger.reserve(db, emp.id, lt.id, YEAR, Decimal("2"))
        await LeaveLedger.reserve(db, emp.id, lt.id, YEAR, Decimal("2"))
        await LeaveLedger.commit(db, emp.id, lt.id, YEAR, Decimal("2"))
        with pytest.raises(InsufficientBalanceException):
            await LeaveLedger.reserve(db, emp.id, lt.id, YEAR, Decimal("2"))
        await LeaveLedger.release(db, emp.id, lt.id, YEAR, Decimal("2"))
        balance = await LeaveLedger.reserve(db, emp.id, lt.id, YEAR, Decimal("3"))

        assert balance.used + balance.pending <= balance.total + balance.carry_forward
        assert balance.available == Decimal("0")


class TestSetBalance:
    async def test_creates_and_sets(self, db):
        emp = await make_employee(db)
        lt = await make_leave_type(db)

        balance = await LeaveLedger.set_balance(
            db, emp.id, lt.id, YEAR, total=Decimal("20"), carry_forward=Decimal("4"),
        )

        assert balance.total == Decimal("20")
        assert balance.carry_forward == Decimal("4")
        assert balance.available == Decimal("24")

    async def test_partial_update_keeps_other_fields(self, db):
        emp = await make_employee(db)
        lt = await make_leave_type(db)
        await make_balance(db, emp.id, lt.id, year=YEAR, used=Decimal("10"))

        balance = await LeaveLedger.set_balance(db, emp.id, lt.id, YEAR, total=Decimal("5"))

        # Admin edits are not balance-checked
        assert balance.total == Decimal("5")
        assert balance.used == Decimal("10")
        assert balance.available == Decimal("-5")
