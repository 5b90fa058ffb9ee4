"""Working-day calculator — weekends, holidays, half days, long ranges."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from hrms.common.constants import LeaveDayType
from hrms.leave.working_days import (
    calculate_working_days,
    count_working_days,
    get_holiday_dates,
    is_working_day,
    iter_dates,
)
from tests.conftest import make_holiday

MONDAY = date(2024, 6, 3)
FRIDAY = date(2024, 6, 7)
SATURDAY = date(2024, 6, 8)
SUNDAY = date(2024, 6, 9)


class TestSingleDay:
    def test_weekday_full(self):
        assert calculate_working_days(MONDAY, MONDAY) == Decimal("1.0")

    def test_weekday_half(self):
        assert calculate_working_days(MONDAY, MONDAY, LeaveDayType.half) == Decimal("0.5")

    @pytest.mark.parametrize("day", [SATURDAY, SUNDAY])
    def test_weekend_is_zero(self, day):
        assert calculate_working_days(day, day) == Decimal("0")

    def test_holiday_is_zero(self):
        assert calculate_working_days(MONDAY, MONDAY, holidays=[MONDAY]) == Decimal("0")


class TestRanges:
    def test_full_week(self):
        assert calculate_working_days(MONDAY, SUNDAY) == Decimal("5")

    def test_half_day_week(self):
        assert calculate_working_days(MONDAY, FRIDAY, "half") == Decimal("2.5")

    def test_weekend_only_range(self):
        assert calculate_working_days(SATURDAY, SUNDAY) == Decimal("0")

    def test_holiday_inside_range(self):
        holidays = {date(2024, 6, 5)}
        assert calculate_working_days(MONDAY, FRIDAY, holidays=holidays) == Decimal("4")

    def test_holiday_on_weekend_counts_once(self):
        assert calculate_working_days(MONDAY, SUNDAY, holidays=[SATURDAY]) == Decimal("5")

    def test_holiday_time_of_day_ignored(self):
        holidays = [datetime(2024, 6, 4, 18, 30), "2024-06-05T00:00:00+05:30"]
        assert calculate_working_days(MONDAY, FRIDAY, holidays=holidays) == Decimal("3")

    def test_multi_month_range(self):
        # June 2024 has 20 weekdays, July 2024 has 23
        assert calculate_working_days(date(2024, 6, 1), date(2024, 7, 31)) == Decimal("43")

    def test_year_boundary(self):
        # Mon 30 Dec 2024 .. Fri 3 Jan 2025 with New Year's Day off
        days = calculate_working_days(
            date(2024, 12, 30), date(2025, 1, 3), holidays=[date(2025, 1, 1)],
        )
        assert days == Decimal("4")

    def test_start_after_end_raises(self):
        with pytest.raises(ValueError):
            calculate_working_days(FRIDAY, MONDAY)


def test_iter_dates_inclusive():
    dates = list(iter_dates(MONDAY, FRIDAY))
    assert dates[0] == MONDAY
    assert dates[-1] == FRIDAY
    assert len(dates) == 5


def test_is_working_day():
    assert is_working_day(MONDAY, set())
    assert not is_working_day(SATURDAY, set())
    assert not is_working_day(MONDAY, {MONDAY})


class TestHolidayLookup:
    async def test_only_dates_in_range(self, db):
        await make_holiday(db, date(2024, 6, 4), name="In range")
        await make_holiday(db, date(2024, 6, 20), name="Out of range")

        dates = await get_holiday_dates(db, MONDAY, FRIDAY)
        assert dates == {date(2024, 6, 4)}

    async def test_count_working_days_uses_calendar(self, db):
        await make_holiday(db, date(2024, 6, 4))
        await make_holiday(db, MONDAY + timedelta(days=2))

        days = await count_working_days(db, MONDAY, FRIDAY)
        assert days == Decimal("3")
