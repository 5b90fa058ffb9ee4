"""Admin Pydantic schemas — leave-type catalog, balance edits, carry-forward, audit."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


# ── Leave Type Schemas ──────────────────────────────────────────────

class LeaveTypeCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=10)
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    color: Optional[str] = Field(default=None, max_length=20)
    default_days: Decimal = Field(default=Decimal("0"), ge=0, le=366)
    is_paid: bool = True
    carry_forward: bool = False
    max_carry_forward: Decimal = Field(default=Decimal("0"), ge=0, le=366)
    enforce_balance: bool = True

    @field_validator("code")
    @classmethod
    def _upper_code(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("Code cannot be blank.")
        return v


class LeaveTypeUpdate(BaseModel):
    code: Optional[str] = Field(default=None, min_length=1, max_length=10)
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    color: Optional[str] = Field(default=None, max_length=20)
    default_days: Optional[Decimal] = Field(default=None, ge=0, le=366)
    is_paid: Optional[bool] = None
    carry_forward: Optional[bool] = None
    max_carry_forward: Optional[Decimal] = Field(default=None, ge=0, le=366)
    enforce_balance: Optional[bool] = None
    is_active: Optional[bool] = None

    @field_validator("code")
    @classmethod
    def _upper_code(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v is not None else v


class SeedResult(BaseModel):
    created: int
    updated: int
    total: int


# ── Balance Schemas ─────────────────────────────────────────────────

class BalanceUpsert(BaseModel):
    """Admin-direct edit; not checked against used / pending."""

    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    year: int = Field(..., ge=2000, le=2100)
    total: Optional[Decimal] = Field(default=None, ge=0, le=999)
    carry_forward: Optional[Decimal] = Field(default=None, ge=0, le=999)


class CarryForwardResult(BaseModel):
    from_year: int
    to_year: int
    processed: int
    leave_types: list[str]


# ── Audit Schemas ───────────────────────────────────────────────────

class AuditEntryOut(BaseModel):
    id: uuid.UUID
    actor_id: Optional[uuid.UUID] = None
    action: str
    entity_type: str
    entity_id: uuid.UUID
    old_values: Optional[dict[str, Any]] = None
    new_values: Optional[dict[str, Any]] = None
    created_at: datetime

    model_config = {"from_attributes": True}
