"""Server-side record of every issued access token."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import INET, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hrms.database import Base


class UserSession(Base):
    """A bearer token is honoured only while its row is live.

    Only the SHA-256 of the token is stored; logout and account
    deactivation revoke rows so outstanding tokens stop working at once.
    """

    __tablename__ = "user_sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    token_hash: Mapped[str] = mapped_column(sa.String(64), nullable=False, unique=True)
    ip_address: Mapped[Optional[str]] = mapped_column(INET)
    user_agent: Mapped[Optional[str]] = mapped_column(sa.Text)
    expires_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False
    )
    is_revoked: Mapped[bool] = mapped_column(
        sa.Boolean, default=False, server_default=sa.text("FALSE")
    )
    revoked_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    last_seen_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    employee: Mapped["hrms.core_hr.models.Employee"] = relationship(
        back_populates="sessions"
    )

    def revoke(self, when: Optional[datetime] = None) -> None:
        if not self.is_revoked:
            self.is_revoked = True
            self.revoked_at = when or datetime.now(timezone.utc)

    def __repr__(self) -> str:
        state = "revoked" if self.is_revoked else "live"
        return f"<UserSession {self.employee_id} {state}>"
