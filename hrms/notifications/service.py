"""In-app notifications: the per-user inbox and the leave-workflow notices."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from sqlalchemy import Select, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.common.constants import NotificationType, UserRole
from hrms.common.exceptions import ForbiddenException, NotFoundException
from hrms.common.pagination import PaginationParams, paginate
from hrms.config import settings
from hrms.core_hr.models import Employee
from hrms.notifications.models import Notification
from hrms.notifications.schemas import (
    NotificationListMeta,
    NotificationListResponse,
    NotificationResponse,
)

logger = logging.getLogger(__name__)


def _inbox(employee_id: uuid.UUID) -> Select:
    return select(Notification).where(Notification.recipient_id == employee_id)


class NotificationService:

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        *,
        recipient_id: uuid.UUID,
        title: str,
        message: str,
        type: NotificationType = NotificationType.info,
        sender_id: Optional[uuid.UUID] = None,
        **context: Any,
    ) -> Notification:
        """Add one unread notification; *context* carries ``link``, ``entity_type`` and ``entity_id``."""
        notification = Notification(
            recipient_id=recipient_id,
            sender_id=sender_id,
            type=type,
            title=title,
            message=message,
            is_read=False,
            **context,
        )
        db.add(notification)
        await db.flush()
        await db.refresh(notification)
        return notification

    @staticmethod
    async def send(
        db: AsyncSession,
        *,
        sender: Employee,
        recipient_id: uuid.UUID,
        **content: Any,
    ) -> Notification:
        """User-to-user notice. The recipient must be an active employee."""
        recipient = await db.get(Employee, recipient_id)
        if recipient is None or not recipient.is_active:
            raise NotFoundException("Employee", recipient_id)
        notification = await NotificationService.create_notification(
            db, recipient_id=recipient_id, sender_id=sender.id, **content,
        )
        logger.info("Notification %s sent by %s to %s", notification.id, sender.id, recipient_id)
        return notification

    @staticmethod
    async def get_notifications(
        db: AsyncSession,
        employee_id: uuid.UUID,
        pagination: PaginationParams,
        *,
        is_read: Optional[bool] = None,
        notification_type: Optional[NotificationType] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[uuid.UUID] = None,
    ) -> NotificationListResponse:
        """One page of the inbox, newest first unless *pagination* sorts.

        ``meta.unread`` counts the whole inbox, ignoring the filters, so the
        header badge stays right while a filtered view is open.
        """
        query = _inbox(employee_id).order_by(
            Notification.created_at.desc(), Notification.id,
        )
        filters = (
            (Notification.is_read, is_read),
            (Notification.type, notification_type),
            (Notification.entity_type, entity_type),
            (Notification.entity_id, entity_id),
        )
        for column, value in filters:
            if value is not None:
                query = query.where(column == value)

        page = await paginate(db, query, pagination, model=Notification)
        unread = await NotificationService.get_unread_count(db, employee_id)
        return NotificationListResponse(
            data=[NotificationResponse.model_validate(n) for n in page.data],
            meta=NotificationListMeta(**page.meta.model_dump(), unread=unread),
        )

    @staticmethod
    async def get_unread_count(db: AsyncSession, employee_id: uuid.UUID) -> int:
        unread = _inbox(employee_id).where(Notification.is_read.is_(False))
        result = await db.execute(
            select(func.count()).select_from(unread.subquery())
        )
        return result.scalar_one()

    @staticmethod
    async def mark_read(
        db: AsyncSession,
        notification_id: uuid.UUID,
        employee_id: uuid.UUID,
    ) -> Notification:
        notification = await NotificationService._owned(db, notification_id, employee_id)
        if notification.mark_read():
            await db.flush()
        return notification

    @staticmethod
    async def mark_all_read(db: AsyncSession, employee_id: uuid.UUID) -> int:
        """Returns how many notifications flipped to read."""
        result = await db.execute(
            update(Notification)
            .where(
                Notification.recipient_id == employee_id,
                Notification.is_read.is_(False),
            )
            .values(is_read=True, read_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        await db.flush()
        return result.rowcount  # type: ignore[return-value]

    @staticmethod
    async def dismiss(
        db: AsyncSession,
        notification_id: uuid.UUID,
        employee_id: uuid.UUID,
    ) -> None:
        notification = await NotificationService._owned(db, notification_id, employee_id)
        await db.delete(notification)
        await db.flush()

    @staticmethod
    async def _owned(
        db: AsyncSession,
        notification_id: uuid.UUID,
        employee_id: uuid.UUID,
    ) -> Notification:
        notification = await db.get(Notification, notification_id)
        if notification is None:
            raise NotFoundException("Notification", notification_id)
        if notification.recipient_id != employee_id:
            raise ForbiddenException("You can only manage your own notifications.")
        return notification


# ── Leave workflow dispatchers ──────────────────────────────────────
# Called by the leave state machine inside its transaction. Each one runs
# in a SAVEPOINT; a failure is logged and never undoes the transition.


async def _dispatch(
    db: AsyncSession,
    recipients: Iterable[uuid.UUID],
    **fields,
) -> list[Notification]:
    created: list[Notification] = []
    for recipient_id in recipients:
        try:
            async with db.begin_nested():
                created.append(
                    await NotificationService.create_notification(
                        db, recipient_id=recipient_id, **fields,
                    )
                )
        except SQLAlchemyError:
            logger.exception(
                "Failed to notify %s (%s)", recipient_id, fields.get("title"),
            )
    return created


async def notify_leave_submitted(
    db: AsyncSession,
    leave_request,  # hrms.leave.models.LeaveRequest
    requester: Employee,
) -> list[Notification]:
    """Notify the requester's manager and every active HR/admin user.

    The requester never receives the notice, and the manager receives it
    once even when they are HR/admin too.
    """
    recipients: list[uuid.UUID] = []
    if requester.manager_id and requester.manager_id != requester.id:
        recipients.append(requester.manager_id)

    result = await db.execute(
        select(Employee.id).where(
            Employee.role.in_([UserRole.admin, UserRole.hr]),
            Employee.is_active.is_(True),
        )
    )
    for (emp_id,) in result.all():
        if emp_id != requester.id and emp_id not in recipients:
            recipients.append(emp_id)

    return await _dispatch(
        db,
        recipients,
        type=NotificationType.action_required,
        title="New Leave Request",
        message=(
            f"{requester.full_name} has requested {leave_request.days} day(s) of "
            f"{leave_request.leave_type.name} from {leave_request.start_date} "
            f"to {leave_request.end_date}."
        ),
        link=settings.LEAVE_APPROVALS_PATH,
        entity_type="leave_request",
        entity_id=leave_request.id,
        sender_id=requester.id,
    )


async def notify_leave_approved(
    db: AsyncSession,
    leave_request,  # hrms.leave.models.LeaveRequest
    approver: Employee,
) -> list[Notification]:
    """Notify the employee that their leave request was approved."""
    return await _dispatch(
        db,
        [leave_request.employee_id],
        type=NotificationType.success,
        title="Leave Approved",
        message=(
            f"Your {leave_request.leave_type.name} request for "
            f"{leave_request.days} day(s) has been approved by {approver.full_name}."
        ),
        link=settings.LEAVE_PAGE_PATH,
        entity_type="leave_request",
        entity_id=leave_request.id,
        sender_id=approver.id,
    )


async def notify_leave_rejected(
    db: AsyncSession,
    leave_request,  # hrms.leave.models.LeaveRequest
    approver: Employee,
) -> list[Notification]:
    """Notify the employee that their leave request was rejected."""
    message = (
        f"Your {leave_request.leave_type.name} request has been rejected "
        f"by {approver.full_name}"
    )
    if leave_request.rejection_reason:
        message += f": {leave_request.rejection_reason}"
    return await _dispatch(
        db,
        [leave_request.employee_id],
        type=NotificationType.error,
        title="Leave Rejected",
        message=message + ".",
        link=settings.LEAVE_PAGE_PATH,
        entity_type="leave_request",
        entity_id=leave_request.id,
        sender_id=approver.id,
    )
