"""Request and response bodies for the notification endpoints."""


import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from hrms.common.constants import NotificationType
from hrms.common.pagination import PaginationMeta


class NotificationCreate(BaseModel):
    recipient_id: uuid.UUID
    type: NotificationType = NotificationType.info
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1)
    # In-app route such as "/leave/approvals"; never an external URL
    link: Optional[str] = Field(None, max_length=500)
    entity_type: Optional[str] = Field(None, max_length=50)
    entity_id: Optional[uuid.UUID] = None

    @field_validator("title", "message")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("link")
    @classmethod
    def _relative_link(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and (not v.startswith("/") or v.startswith("//")):
            raise ValueError("link must be an in-app path starting with '/'")
        return v


class NotificationResponse(BaseModel):
    id: uuid.UUID
    recipient_id: uuid.UUID
    sender_id: Optional[uuid.UUID] = None
    type: NotificationType
    title: str
    message: str
    link: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[uuid.UUID] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationListMeta(PaginationMeta):
    """Page metadata plus the caller's total unread count, whatever the filters."""

    unread: int


class NotificationListResponse(BaseModel):
    data: list[NotificationResponse]
    meta: NotificationListMeta
