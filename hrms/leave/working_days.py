"""Working-day calculator — billable day count for a leave date range.

Pure functions plus one async helper that loads holiday dates. Every date in
the inclusive range is visited; Saturdays, Sundays and holidays contribute
nothing, any other day contributes 1.0 (full) or 0.5 (half).
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable, Iterator, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.common.constants import LeaveDayType
from hrms.holidays.models import Holiday

_WEEKEND = (5, 6)  # Saturday, Sunday

DAY_WEIGHTS: dict[LeaveDayType, Decimal] = {
    LeaveDayType.full: Decimal("1.0"),
    LeaveDayType.half: Decimal("0.5"),
}


def _normalize(value: Union[date, datetime, str]) -> date:
    """Reduce a holiday value to its calendar date, ignoring time-of-day."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def iter_dates(start_date: date, end_date: date) -> Iterator[date]:
    """Yield every calendar date in ``[start_date, end_date]``."""
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)


def is_working_day(day: date, holidays: set[date]) -> bool:
    return day.weekday() not in _WEEKEND and day not in holidays


def calculate_working_days(
    start_date: date,
    end_date: date,
    day_type: LeaveDayType = LeaveDayType.full,
    holidays: Iterable[Union[date, datetime, str]] = (),
) -> Decimal:
    """Return the billable days in the inclusive range.

    Raises ``ValueError`` when ``start_date`` is after ``end_date``. A result
    of zero is valid here; callers decide whether it is acceptable.
    """
    if start_date > end_date:
        raise ValueError("start_date must be on or before end_date.")

    holiday_dates = {_normalize(h) for h in holidays}
    weight = DAY_WEIGHTS[LeaveDayType(day_type)]

    total = Decimal("0")
    for day in iter_dates(start_date, end_date):
        if is_working_day(day, holiday_dates):
            total += weight
    return total


async def get_holiday_dates(
    db: AsyncSession,
    start_date: date,
    end_date: date,
) -> set[date]:
    """Holiday dates falling inside ``[start_date, end_date]``."""
    result = await db.execute(
        select(Holiday.date).where(
            Holiday.date >= start_date,
            Holiday.date <= end_date,
        )
    )
    return {_normalize(row[0]) for row in result.all()}


async def count_working_days(
    db: AsyncSession,
    start_date: date,
    end_date: date,
    day_type: LeaveDayType = LeaveDayType.full,
) -> Decimal:
    """Convenience wrapper: load holidays for the range, then calculate."""
    holidays = await get_holiday_dates(db, start_date, end_date)
    return calculate_working_days(start_date, end_date, day_type, holidays)
