"""Admin service — leave-type catalog, balance edits and year-end carry-forward."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hrms.admin.schemas import (
    BalanceUpsert,
    CarryForwardResult,
    LeaveTypeCreate,
    LeaveTypeUpdate,
    SeedResult,
)
from hrms.common.audit import changed_fields, create_audit_entry
from hrms.common.exceptions import ConflictError, NotFoundException, ValidationException
from hrms.core_hr.models import Employee
from hrms.leave.ledger import LeaveLedger
from hrms.leave.models import LeaveBalance, LeaveRequest, LeaveType

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

# (code, name, description, color, default_days, extra fields)
DEFAULT_LEAVE_TYPES: list[dict] = [
    {
        "code": "CL", "name": "Casual Leave",
        "description": "For personal matters and emergencies",
        "color": "#3b82f6", "default_days": Decimal("12"),
    },
    {
        "code": "SL", "name": "Sick Leave",
        "description": "For health-related absences",
        "color": "#ef4444", "default_days": Decimal("12"),
    },
    {
        "code": "EL", "name": "Earned Leave",
        "description": "Annual vacation leave",
        "color": "#10b981", "default_days": Decimal("15"),
        "carry_forward": True, "max_carry_forward": Decimal("30"),
    },
    {
        "code": "WFH", "name": "Work From Home",
        "description": "Remote working day",
        "color": "#8b5cf6", "default_days": Decimal("24"),
    },
    {
        "code": "COMP", "name": "Compensatory Off",
        "description": "Leave earned by working on holidays/weekends",
        "color": "#f59e0b", "default_days": Decimal("0"),
    },
    {
        "code": "LOP", "name": "Loss of Pay",
        "description": "Unpaid leave when balance exhausted",
        "color": "#6b7280", "default_days": Decimal("0"),
        "is_paid": False, "enforce_balance": False,
    },
    {
        "code": "ML", "name": "Maternity Leave",
        "description": "Leave for expecting mothers",
        "color": "#ec4899", "default_days": Decimal("180"),
    },
    {
        "code": "PL", "name": "Paternity Leave",
        "description": "Leave for new fathers",
        "color": "#06b6d4", "default_days": Decimal("15"),
    },
]


def _leave_type_snapshot(lt: LeaveType) -> dict:
    return {
        "code": lt.code,
        "name": lt.name,
        "default_days": str(lt.default_days),
        "is_paid": lt.is_paid,
        "carry_forward": lt.carry_forward,
        "max_carry_forward": str(lt.max_carry_forward),
        "enforce_balance": lt.enforce_balance,
        "is_active": lt.is_active,
    }


class AdminService:
    """Static service class for admin operations."""

    # ── Leave Types ─────────────────────────────────────────────────

    @staticmethod
    async def list_leave_types(db: AsyncSession) -> list[LeaveType]:
        result = await db.execute(
            select(LeaveType).order_by(LeaveType.code)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_leave_type(db: AsyncSession, leave_type_id: uuid.UUID) -> LeaveType:
        lt = await db.get(LeaveType, leave_type_id)
        if lt is None:
            raise NotFoundException("LeaveType", str(leave_type_id))
        return lt

    @staticmethod
    async def _ensure_code_free(
        db: AsyncSession,
        code: str,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        query = select(LeaveType.id).where(LeaveType.code == code)
        if exclude_id is not None:
            query = query.where(LeaveType.id != exclude_id)
        if (await db.execute(query)).first() is not None:
            raise ConflictError("code", code)

    @staticmethod
    async def _open_balances(db: AsyncSession, leave_type: LeaveType) -> int:
        """Current-year balance for every active employee."""
        year = datetime.now(timezone.utc).year
        result = await db.execute(
            select(Employee.id).where(Employee.is_active.is_(True))
        )
        count = 0
        for (employee_id,) in result.all():
            await LeaveLedger.get_or_create(db, employee_id, leave_type.id, year)
            count += 1
        return count

    @staticmethod
    async def create_leave_type(
        db: AsyncSession,
        data: LeaveTypeCreate,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveType:
        await AdminService._ensure_code_free(db, data.code)

        lt = LeaveType(**data.model_dump(), is_active=True)
        db.add(lt)
        await db.flush()
        await db.refresh(lt)

        opened = await AdminService._open_balances(db, lt)
        await create_audit_entry(
            db,
            action="create",
            entity_type="leave_type",
            entity_id=lt.id,
            actor_id=actor_id,
            new_values=_leave_type_snapshot(lt),
        )
        logger.info("Created leave type %s; opened %d balance(s)", lt.code, opened)
        return lt

    @staticmethod
    async def update_leave_type(
        db: AsyncSession,
        leave_type_id: uuid.UUID,
        data: LeaveTypeUpdate,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveType:
        lt = await AdminService.get_leave_type(db, leave_type_id)
        update_data = data.model_dump(exclude_unset=True)
        if update_data.get("code"):
            await AdminService._ensure_code_free(db, update_data["code"], leave_type_id)

        old_values = _leave_type_snapshot(lt)
        for key, value in update_data.items():
            if value is None and key != "description" and key != "color":
                continue
            setattr(lt, key, value)
        lt.updated_at = datetime.now(timezone.utc)

        await db.flush()
        await db.refresh(lt)
        before, after = changed_fields(old_values, _leave_type_snapshot(lt))
        await create_audit_entry(
            db,
            action="update",
            entity_type="leave_type",
            entity_id=lt.id,
            actor_id=actor_id,
            old_values=before,
            new_values=after,
        )
        return lt

    @staticmethod
    async def delete_leave_type(
        db: AsyncSession,
        leave_type_id: uuid.UUID,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> int:
        """Delete a leave type and its balances. Refused while requests reference it."""
        lt = await AdminService.get_leave_type(db, leave_type_id)

        in_use = await db.execute(
            select(func.count())
            .select_from(LeaveRequest)
            .where(LeaveRequest.leave_type_id == leave_type_id)
        )
        if in_use.scalar_one():
            raise ValidationException(
                {"leave_type": [
                    "Leave requests reference this leave type; deactivate it instead."
                ]}
            )

        removed = await db.execute(
            delete(LeaveBalance).where(LeaveBalance.leave_type_id == leave_type_id)
        )
        await create_audit_entry(
            db,
            action="delete",
            entity_type="leave_type",
            entity_id=lt.id,
            actor_id=actor_id,
            old_values=_leave_type_snapshot(lt),
            new_values={"balances_removed": removed.rowcount},
        )
        await db.delete(lt)
        await db.flush()
        logger.info("Deleted leave type %s (%d balances)", lt.code, removed.rowcount)
        return removed.rowcount  # type: ignore[return-value]

    @staticmethod
    async def seed_leave_types(
        db: AsyncSession,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> SeedResult:
        """Upsert the default leave-type catalog by code."""
        created = updated = 0
        for preset in DEFAULT_LEAVE_TYPES:
            values = {
                "is_paid": True,
                "carry_forward": False,
                "max_carry_forward": ZERO,
                "enforce_balance": True,
                **preset,
            }
            existing = (
                await db.execute(select(LeaveType).where(LeaveType.code == preset["code"]))
            ).scalars().first()
            if existing is None:
                lt = LeaveType(**values, is_active=True)
                db.add(lt)
                await db.flush()
                await AdminService._open_balances(db, lt)
                created += 1
            else:
                for key, value in values.items():
                    setattr(existing, key, value)
                existing.updated_at = datetime.now(timezone.utc)
                updated += 1

        await db.flush()
        result = SeedResult(created=created, updated=updated, total=len(DEFAULT_LEAVE_TYPES))
        logger.info("Leave types seeded: %d created, %d updated", created, updated)
        return result

    # ── Balances ────────────────────────────────────────────────────

    @staticmethod
    async def upsert_balance(
        db: AsyncSession,
        data: BalanceUpsert,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveBalance:
        employee = await db.get(Employee, data.employee_id)
        if employee is None:
            raise NotFoundException("Employee", str(data.employee_id))

        before = await LeaveLedger.find(db, data.employee_id, data.leave_type_id, data.year)
        old_values = (
            {"total": str(before.total), "carry_forward": str(before.carry_forward)}
            if before else None
        )

        balance = await LeaveLedger.set_balance(
            db,
            data.employee_id,
            data.leave_type_id,
            data.year,
            total=data.total,
            carry_forward=data.carry_forward,
        )
        await create_audit_entry(
            db,
            action="update" if before else "create",
            entity_type="leave_balance",
            entity_id=balance.id,
            actor_id=actor_id,
            old_values=old_values,
            new_values={
                "total": str(balance.total),
                "carry_forward": str(balance.carry_forward),
            },
        )
        return await AdminService.get_balance(db, balance.id)

    @staticmethod
    async def get_balance(db: AsyncSession, balance_id: uuid.UUID) -> LeaveBalance:
        result = await db.execute(
            select(LeaveBalance)
            .where(LeaveBalance.id == balance_id)
            .options(selectinload(LeaveBalance.leave_type))
            .execution_options(populate_existing=True)
        )
        balance = result.scalars().first()
        if balance is None:
            raise NotFoundException("LeaveBalance", str(balance_id))
        return balance

    @staticmethod
    async def carry_forward(
        db: AsyncSession,
        from_year: int,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> CarryForwardResult:
        """Roll unused days of carry-forward types into ``from_year + 1``.

        Next year's ``carry_forward`` is set (not added) to
        ``min(max(available, 0), max_carry_forward)``, so running it twice
        gives the same result.
        """
        to_year = from_year + 1
        types = (
            await db.execute(
                select(LeaveType).where(
                    LeaveType.carry_forward.is_(True),
                    LeaveType.is_active.is_(True),
                )
            )
        ).scalars().all()

        processed = 0
        for lt in types:
            balances = (
                await db.execute(
                    select(LeaveBalance).where(
                        LeaveBalance.leave_type_id == lt.id,
                        LeaveBalance.year == from_year,
                    )
                )
            ).scalars().all()
            for balance in balances:
                amount = min(max(balance.available, ZERO), lt.max_carry_forward)
                await LeaveLedger.set_balance(
                    db, balance.employee_id, lt.id, to_year, carry_forward=amount,
                )
                processed += 1

        if processed:
            await create_audit_entry(
                db,
                action="carry_forward",
                entity_type="leave_balance",
                entity_id=uuid.uuid5(uuid.NAMESPACE_OID, f"carry-forward:{from_year}"),
                actor_id=actor_id,
                new_values={"from_year": from_year, "to_year": to_year, "processed": processed},
            )
        logger.info(
            "Carried forward %d balance(s) from %d to %d", processed, from_year, to_year,
        )
        return CarryForwardResult(
            from_year=from_year,
            to_year=to_year,
            processed=processed,
            leave_types=[lt.code for lt in types],
        )
