"""Leave balance ledger — per (employee, leave type, year) bookkeeping.

``reserve`` moves days into *pending* when a request is submitted,
``commit`` moves them from *pending* to *used* on approval and ``release``
drops them from *pending* on rejection, cancellation or deletion. None of
these flush a commit: they run inside the caller's transaction so the
balance change and the request change persist together.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.common.exceptions import (
    InsufficientBalanceException,
    NotFoundException,
    ValidationException,
)
from hrms.leave.models import LeaveBalance, LeaveType

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class LeaveLedger:
    """Async balance operations. All methods flush, none commit."""

    # ── Lookup / lazy creation ──────────────────────────────────────

    @staticmethod
    async def _get_leave_type(db: AsyncSession, leave_type_id: uuid.UUID) -> LeaveType:
        leave_type = await db.get(LeaveType, leave_type_id)
        if leave_type is None:
            raise NotFoundException("LeaveType", str(leave_type_id))
        return leave_type

    @staticmethod
    async def find(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        *,
        lock: bool = False,
    ) -> Optional[LeaveBalance]:
        query = select(LeaveBalance).where(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_type_id == leave_type_id,
            LeaveBalance.year == year,
        )
        if lock:
            query = query.with_for_update()
        result = await db.execute(query)
        return result.scalars().first()

    @staticmethod
    async def get_or_create(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        *,
        lock: bool = False,
    ) -> LeaveBalance:
        """Return the balance row, creating it from the type's default days.

        Idempotent: a second call for the same key returns the same row, and
        a concurrent insert losing the unique-constraint race re-reads the
        winner's row.
        """
        balance = await LeaveLedger.find(
            db, employee_id, leave_type_id, year, lock=lock,
        )
        if balance is not None:
            return balance

        leave_type = await LeaveLedger._get_leave_type(db, leave_type_id)
        balance = LeaveBalance(
            employee_id=employee_id,
            leave_type_id=leave_type_id,
            year=year,
            total=leave_type.default_days or ZERO,
            used=ZERO,
            pending=ZERO,
            carry_forward=ZERO,
        )
        try:
            async with db.begin_nested():
                db.add(balance)
        except IntegrityError:
            existing = await LeaveLedger.find(
                db, employee_id, leave_type_id, year, lock=lock,
            )
            if existing is None:
                raise
            return existing

        logger.debug(
            "Created %s balance for employee %s (%s): total=%s",
            leave_type.code, employee_id, year, balance.total,
        )
        return balance

    @staticmethod
    def available(balance: LeaveBalance) -> Decimal:
        """total + carry_forward − used − pending."""
        return balance.available

    # ── Mutations ───────────────────────────────────────────────────

    @staticmethod
    def _check_days(days: Decimal) -> Decimal:
        days = Decimal(days)
        if days <= ZERO:
            raise ValidationException({"days": ["Days must be greater than zero."]})
        return days

    @staticmethod
    async def reserve(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        days: Decimal,
    ) -> LeaveBalance:
        """Add *days* to pending; refuses to overdraw a balance-enforced type."""
        days = LeaveLedger._check_days(days)
        leave_type = await LeaveLedger._get_leave_type(db, leave_type_id)
        balance = await LeaveLedger.get_or_create(
            db, employee_id, leave_type_id, year, lock=True,
        )

        available = balance.available
        if leave_type.enforce_balance and available < days:
            raise InsufficientBalanceException(
                leave_type.name, max(available, ZERO), days,
            )

        balance.pending += days
        balance.updated_at = datetime.now(timezone.utc)
        await db.flush()
        logger.debug(
            "Reserved %s day(s) of %s for employee %s (%s); pending=%s",
            days, leave_type.code, employee_id, year, balance.pending,
        )
        return balance

    @staticmethod
    async def commit(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        days: Decimal,
    ) -> LeaveBalance:
        """Move *days* from pending to used."""
        days = LeaveLedger._check_days(days)
        balance = await LeaveLedger.get_or_create(
            db, employee_id, leave_type_id, year, lock=True,
        )
        balance.pending = LeaveLedger._drain_pending(balance, days)
        balance.used += days
        balance.updated_at = datetime.now(timezone.utc)
        await db.flush()
        logger.debug(
            "Committed %s day(s) for employee %s (%s); used=%s pending=%s",
            days, employee_id, year, balance.used, balance.pending,
        )
        return balance

    @staticmethod
    async def release(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        days: Decimal,
    ) -> LeaveBalance:
        """Drop *days* from pending without touching used."""
        days = LeaveLedger._check_days(days)
        balance = await LeaveLedger.get_or_create(
            db, employee_id, leave_type_id, year, lock=True,
        )
        balance.pending = LeaveLedger._drain_pending(balance, days)
        balance.updated_at = datetime.now(timezone.utc)
        await db.flush()
        logger.debug(
            "Released %s day(s) for employee %s (%s); pending=%s",
            days, employee_id, year, balance.pending,
        )
        return balance

    @staticmethod
    def _drain_pending(balance: LeaveBalance, days: Decimal) -> Decimal:
        remaining = balance.pending - days
        if remaining < ZERO:
            logger.warning(
                "Pending for balance %s would go negative (%s - %s); clamping to 0",
                balance.id, balance.pending, days,
            )
            return ZERO
        return remaining

    # ── Admin-direct edits (not balance checked) ────────────────────

    @staticmethod
    async def set_balance(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        *,
        total: Optional[Decimal] = None,
        carry_forward: Optional[Decimal] = None,
    ) -> LeaveBalance:
        """Upsert ``total`` / ``carry_forward`` for one balance row."""
        balance = await LeaveLedger.get_or_create(
            db, employee_id, leave_type_id, year, lock=True,
        )
        if total is not None:
            balance.total = Decimal(total)
        if carry_forward is not None:
            balance.carry_forward = Decimal(carry_forward)
        balance.updated_at = datetime.now(timezone.utc)
        await db.flush()
        return balance
