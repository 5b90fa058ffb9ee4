"""Notification endpoints.

    GET    /notifications                 — caller's inbox (paginated, filterable)
    POST   /notifications                 — send to another employee
    GET    /notifications/unread-count    — header badge
    PUT    /notifications/read-all        — mark the whole inbox read
    PUT    /notifications/{id}/read       — mark one read
    DELETE /notifications/{id}            — dismiss one

Fixed paths are declared before ``/{notification_id}`` so they never parse
as UUIDs.
"""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.auth.dependencies import get_current_user, require_permission
from hrms.common.constants import NotificationType, PermissionAction, PermissionModule
from hrms.common.pagination import PaginationParams
from hrms.core_hr.models import Employee
from hrms.database import get_db
from hrms.notifications.schemas import (
    NotificationCreate,
    NotificationListResponse,
    NotificationResponse,
)
from hrms.notifications.service import NotificationService

router = APIRouter(prefix="", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    unread: Optional[bool] = Query(None, description="true: unread only, false: read only"),
    type: Optional[NotificationType] = Query(None),
    entity_type: Optional[str] = Query(None, max_length=50, description='e.g. "leave_request"'),
    entity_id: Optional[uuid.UUID] = Query(None),
    pagination: PaginationParams = Depends(),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await NotificationService.get_notifications(
        db,
        employee_id=employee.id,
        pagination=pagination,
        is_read=None if unread is None else not unread,
        notification_type=type,
        entity_type=entity_type,
        entity_id=entity_id,
    )


@router.post("", status_code=201)
async def send_notification(
    body: NotificationCreate,
    employee: Employee = Depends(
        require_permission(PermissionModule.notifications, PermissionAction.write),
    ),
    db: AsyncSession = Depends(get_db),
):
    """Requires write on the notifications module (HR and admin by default)."""
    notification = await NotificationService.send(db, sender=employee, **body.model_dump())
    return {
        "message": "Notification sent",
        "data": NotificationResponse.model_validate(notification),
    }


@router.get("/unread-count")
async def unread_count(
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"data": {"count": await NotificationService.get_unread_count(db, employee.id)}}


@router.put("/read-all")
async def mark_all_read(
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    count = await NotificationService.mark_all_read(db, employee.id)
    return {"message": "All notifications marked as read", "data": {"count": count}}


@router.put("/{notification_id}/read")
async def mark_read(
    notification_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    notification = await NotificationService.mark_read(db, notification_id, employee.id)
    return {
        "message": "Notification marked as read",
        "data": NotificationResponse.model_validate(notification),
    }


@router.delete("/{notification_id}")
async def dismiss_notification(
    notification_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Only the recipient may dismiss a notification."""
    await NotificationService.dismiss(db, notification_id, employee.id)
    return {"message": "Notification dismissed", "data": {"id": str(notification_id)}}
