"""Holiday calendar — CRUD, date uniqueness, bulk import."""

from __future__ import annotations

import uuid
from datetime import date

import pytest

from hrms.common.audit import list_audit_entries
from hrms.common.constants import HolidayType
from hrms.common.exceptions import ConflictError, NotFoundException
from hrms.holidays.schemas import HolidayBulkImport, HolidayCreate, HolidayUpdate
from hrms.holidays.service import HolidayService
from tests.conftest import auth_headers_for, make_holiday


class TestHolidayService:
    async def test_create_and_list_by_year(self, db, admin):
        await HolidayService.create_holiday(
            db, HolidayCreate(date=date(2026, 1, 26), name="Republic Day"), actor_id=admin.id,
        )
        await make_holiday(db, date(2025, 12, 25), name="Christmas")

        all_days = await HolidayService.list_holidays(db)
        this_year = await HolidayService.list_holidays(db, 2026)

        assert [h.name for h in all_days] == ["Christmas", "Republic Day"]
        assert [h.name for h in this_year] == ["Republic Day"]

    async def test_duplicate_date_conflicts(self, db, admin):
        await make_holiday(db, date(2026, 8, 15), name="Independence Day")
        with pytest.raises(ConflictError) as exc_info:
            await HolidayService.create_holiday(
                db, HolidayCreate(date=date(2026, 8, 15), name="Other"), actor_id=admin.id,
            )
        assert "date" in exc_info.value.errors

    async def test_update_to_taken_date_conflicts(self, db, admin):
        await make_holiday(db, date(2026, 10, 2), name="Gandhi Jayanti")
        diwali = await make_holiday(db, date(2026, 11, 8), name="Diwali")

        with pytest.raises(ConflictError):
            await HolidayService.update_holiday(
                db, diwali.id, HolidayUpdate(date=date(2026, 10, 2)), actor_id=admin.id,
            )

    async def test_partial_update(self, db, admin):
        holiday = await make_holiday(db, date(2026, 3, 4), name="Holi")

        updated = await HolidayService.update_holiday(
            db, holiday.id, HolidayUpdate(type=HolidayType.optional), actor_id=admin.id,
        )

        assert updated.type == HolidayType.optional
        assert updated.name == "Holi"
        assert updated.date == date(2026, 3, 4)

        entries = await list_audit_entries(db, entity_type="holiday", entity_id=holiday.id)
        assert entries[0].new_values == {"type": "optional"}

    async def test_delete(self, db, admin):
        holiday = await make_holiday(db, date(2026, 5, 1))
        await HolidayService.delete_holiday(db, holiday.id, actor_id=admin.id)
        with pytest.raises(NotFoundException):
            await HolidayService.get_holiday(db, holiday.id)

    async def test_bulk_import_overwrites_and_dedupes(self, db, admin):
        await make_holiday(db, date(2026, 1, 1), name="Old Name")

        result = await HolidayService.bulk_import(
            db,
            HolidayBulkImport(holidays=[
                HolidayCreate(date=date(2026, 1, 1), name="New Year"),
                HolidayCreate(date=date(2026, 4, 14), name="First"),
                HolidayCreate(date=date(2026, 4, 14), name="Ambedkar Jayanti"),
            ]),
            actor_id=admin.id,
        )

        assert result.created == 1
        assert result.updated == 1
        assert [h.name for h in result.holidays] == ["New Year", "Ambedkar Jayanti"]
        assert len(await HolidayService.list_holidays(db, 2026)) == 2


class TestHolidayEndpoints:
    async def test_employee_can_list(self, client, db, employee):
        await make_holiday(db, date(2026, 12, 25), name="Christmas")
        headers = await auth_headers_for(db, employee)

        resp = await client.get("/api/v1/holidays", params={"year": 2026}, headers=headers)

        assert resp.status_code == 200
        assert resp.json()[0]["name"] == "Christmas"

    async def test_employee_cannot_create(self, client, db, employee):
        headers = await auth_headers_for(db, employee)
        resp = await client.post(
            "/api/v1/holidays",
            json={"date": "2026-12-25", "name": "Christmas"},
            headers=headers,
        )
        assert resp.status_code == 403

    async def test_hr_creates_and_conflict_is_409(self, client, db, hr):
        headers = await auth_headers_for(db, hr)
        payload = {"date": "2026-12-25", "name": "Christmas"}

        resp = await client.post("/api/v1/holidays", json=payload, headers=headers)
        assert resp.status_code == 201
        assert resp.json()["type"] == "public"

        resp = await client.post("/api/v1/holidays", json=payload, headers=headers)
        assert resp.status_code == 409
        assert resp.headers["content-type"].startswith("application/problem+json")

    async def test_delete_unknown_is_404(self, client, db, admin):
        headers = await auth_headers_for(db, admin)
        resp = await client.delete(f"/api/v1/holidays/{uuid.uuid4()}", headers=headers)
        assert resp.status_code == 404
