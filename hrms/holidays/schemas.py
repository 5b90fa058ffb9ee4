"""Holiday Pydantic schemas."""

from __future__ import annotations

import datetime
import uuid
from typing import Optional

from pydantic import BaseModel, Field

from hrms.common.constants import HolidayType


class HolidayCreate(BaseModel):
    date: datetime.date
    name: str = Field(..., min_length=1, max_length=200)
    type: HolidayType = HolidayType.public
    description: Optional[str] = None


class HolidayUpdate(BaseModel):
    date: Optional[datetime.date] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    type: Optional[HolidayType] = None
    description: Optional[str] = None


class HolidayBulkImport(BaseModel):
    """Replace-by-date import: an existing holiday on the same date is overwritten."""

    holidays: list[HolidayCreate] = Field(..., min_length=1, max_length=366)


class HolidayOut(BaseModel):
    id: uuid.UUID
    date: datetime.date
    name: str
    type: HolidayType
    description: Optional[str] = None

    model_config = {"from_attributes": True}


class HolidayBulkResult(BaseModel):
    created: int
    updated: int
    holidays: list[HolidayOut]
