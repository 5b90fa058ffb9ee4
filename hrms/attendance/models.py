"""Attendance ORM models: Shift, ShiftAssignment, AttendanceRecord."""

from __future__ import annotations

import uuid
from datetime import date, datetime, time
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hrms.common.constants import ArrivalStatus, AttendanceStatus
from hrms.database import Base


class Shift(Base):
    __tablename__ = "shifts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    code: Mapped[str] = mapped_column(sa.String(20), unique=True, nullable=False)
    start_time: Mapped[time] = mapped_column(sa.Time, nullable=False)
    end_time: Mapped[time] = mapped_column(sa.Time, nullable=False)
    break_minutes: Mapped[int] = mapped_column(
        sa.Integer, default=60, server_default=sa.text("60")
    )
    grace_minutes: Mapped[int] = mapped_column(
        sa.Integer, default=15, server_default=sa.text("15")
    )
    color: Mapped[str] = mapped_column(
        sa.String(20), default="#3b82f6", server_default="#3b82f6"
    )
    is_active: Mapped[bool] = mapped_column(
        sa.Boolean, default=True, server_default=sa.text("true")
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    assignments: Mapped[list[ShiftAssignment]] = relationship(
        back_populates="shift", passive_deletes=True,
    )

    @property
    def is_overnight(self) -> bool:
        return self.end_time <= self.start_time

    @property
    def length_minutes(self) -> int:
        """Scheduled minutes from start to end, crossing midnight if needed."""
        start = self.start_time.hour * 60 + self.start_time.minute
        end = self.end_time.hour * 60 + self.end_time.minute
        if end <= start:
            end += 24 * 60
        return end - start

    def __repr__(self) -> str:
        return f"<Shift {self.code} {self.start_time}-{self.end_time}>"


class ShiftAssignment(Base):
    """Links an employee to a shift; at most one assignment is active at a time."""

    __tablename__ = "shift_assignments"
    __table_args__ = (
        sa.Index("ix_shift_assignments_employee_active", "employee_id", "is_active"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    shift_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("shifts.id", ondelete="CASCADE"),
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    is_active: Mapped[bool] = mapped_column(
        sa.Boolean, default=True, server_default=sa.text("true")
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    shift: Mapped[Shift] = relationship(back_populates="assignments")
    employee: Mapped["hrms.core_hr.models.Employee"] = relationship()

    def __repr__(self) -> str:
        return f"<ShiftAssignment {self.employee_id} -> {self.shift_id} active={self.is_active}>"


class AttendanceRecord(Base):
    """One row per employee per calendar day."""

    __tablename__ = "attendance_records"
    __table_args__ = (
        sa.UniqueConstraint("employee_id", "date", name="uq_attendance_records_employee_date"),
        sa.Index("ix_attendance_records_date", "date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    status: Mapped[AttendanceStatus] = mapped_column(
        sa.Enum(AttendanceStatus, name="attendance_status"),
        default=AttendanceStatus.present,
        server_default="present",
    )
    arrival_status: Mapped[Optional[ArrivalStatus]] = mapped_column(
        sa.Enum(ArrivalStatus, name="arrival_status"),
    )
    punch_in: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    punch_out: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    work_minutes: Mapped[Optional[int]] = mapped_column(sa.Integer)
    shift_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("shifts.id", ondelete="SET NULL"),
    )
    notes: Mapped[Optional[str]] = mapped_column(sa.Text)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now()
    )

    employee: Mapped["hrms.core_hr.models.Employee"] = relationship()
    shift: Mapped[Optional[Shift]] = relationship()

    def __repr__(self) -> str:
        return f"<AttendanceRecord {self.employee_id} {self.date.isoformat()} {self.status.value}>"
