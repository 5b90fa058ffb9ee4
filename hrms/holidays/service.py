"""Holiday service — CRUD and bulk import for the holiday calendar."""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.common.audit import changed_fields, create_audit_entry
from hrms.common.exceptions import ConflictError, NotFoundException
from hrms.holidays.models import Holiday
from hrms.holidays.schemas import (
    HolidayBulkImport,
    HolidayBulkResult,
    HolidayCreate,
    HolidayOut,
    HolidayUpdate,
)

logger = logging.getLogger(__name__)


class HolidayService:
    """Static service class for holiday operations."""

    @staticmethod
    async def list_holidays(
        db: AsyncSession,
        year: Optional[int] = None,
    ) -> list[Holiday]:
        query = select(Holiday).order_by(Holiday.date)
        if year:
            query = query.where(
                Holiday.date >= date(year, 1, 1),
                Holiday.date <= date(year, 12, 31),
            )
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def get_holiday(db: AsyncSession, holiday_id: uuid.UUID) -> Holiday:
        holiday = await db.get(Holiday, holiday_id)
        if holiday is None:
            raise NotFoundException("Holiday", str(holiday_id))
        return holiday

    @staticmethod
    async def _find_by_date(db: AsyncSession, day: date) -> Optional[Holiday]:
        result = await db.execute(select(Holiday).where(Holiday.date == day))
        return result.scalars().first()

    @staticmethod
    async def create_holiday(
        db: AsyncSession,
        data: HolidayCreate,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Holiday:
        if await HolidayService._find_by_date(db, data.date) is not None:
            raise ConflictError("date", data.date.isoformat())

        holiday = Holiday(
            date=data.date,
            name=data.name,
            type=data.type,
            description=data.description,
        )
        db.add(holiday)
        await db.flush()
        await db.refresh(holiday)

        await create_audit_entry(
            db,
            action="create",
            entity_type="holiday",
            entity_id=holiday.id,
            actor_id=actor_id,
            new_values=data.model_dump(mode="json"),
        )
        return holiday

    @staticmethod
    async def update_holiday(
        db: AsyncSession,
        holiday_id: uuid.UUID,
        data: HolidayUpdate,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Holiday:
        holiday = await HolidayService.get_holiday(db, holiday_id)
        changes = data.model_dump(exclude_unset=True)

        new_date = changes.get("date")
        if new_date is not None and new_date != holiday.date:
            if await HolidayService._find_by_date(db, new_date) is not None:
                raise ConflictError("date", new_date.isoformat())

        old_values = HolidayOut.model_validate(holiday).model_dump(mode="json")
        for key, value in changes.items():
            if value is not None:
                setattr(holiday, key, value)
        await db.flush()

        before, after = changed_fields(
            old_values, HolidayOut.model_validate(holiday).model_dump(mode="json"),
        )
        await create_audit_entry(
            db,
            action="update",
            entity_type="holiday",
            entity_id=holiday.id,
            actor_id=actor_id,
            old_values=before,
            new_values=after,
        )
        return holiday

    @staticmethod
    async def delete_holiday(
        db: AsyncSession,
        holiday_id: uuid.UUID,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> None:
        holiday = await HolidayService.get_holiday(db, holiday_id)
        await create_audit_entry(
            db,
            action="delete",
            entity_type="holiday",
            entity_id=holiday.id,
            actor_id=actor_id,
            old_values=HolidayOut.model_validate(holiday).model_dump(mode="json"),
        )
        await db.delete(holiday)
        await db.flush()

    @staticmethod
    async def bulk_import(
        db: AsyncSession,
        data: HolidayBulkImport,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> HolidayBulkResult:
        """Insert each holiday, overwriting any existing one on the same date.

        A date repeated inside the payload keeps its last entry.
        """
        by_date: dict[date, HolidayCreate] = {h.date: h for h in data.holidays}
        created = updated = 0
        holidays: list[Holiday] = []

        for day in sorted(by_date):
            item = by_date[day]
            holiday = await HolidayService._find_by_date(db, day)
            if holiday is None:
                holiday = Holiday(
                    date=day,
                    name=item.name,
                    type=item.type,
                    description=item.description,
                )
                db.add(holiday)
                created += 1
            else:
                holiday.name = item.name
                holiday.type = item.type
                holiday.description = item.description
                updated += 1
            holidays.append(holiday)

        await db.flush()
        for holiday in holidays:
            await db.refresh(holiday)
            await create_audit_entry(
                db,
                action="import",
                entity_type="holiday",
                entity_id=holiday.id,
                actor_id=actor_id,
                new_values=HolidayOut.model_validate(holiday).model_dump(mode="json"),
            )

        logger.info("Holiday import: %d created, %d updated", created, updated)
        return HolidayBulkResult(
            created=created,
            updated=updated,
            holidays=[HolidayOut.model_validate(h) for h in holidays],
        )
