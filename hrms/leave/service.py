"""Leave service — request lifecycle, balances and leave-type lookups.

State machine::

    pending ──approve──▶ approved
       │  ├──reject───▶ rejected
       │  └──cancel───▶ cancelled
       └──delete (pending / cancelled / rejected only)

Every transition runs inside the request's database transaction
(``get_db`` commits once at the end). Ledger side effects, the status
change and the audit row therefore persist together or not at all.
Notifications are best-effort and never roll a transition back.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hrms.common.audit import create_audit_entry
from hrms.common.constants import (
    ACTIVE_LEAVE_STATUSES,
    DELETABLE_LEAVE_STATUSES,
    LeaveStatus,
    UserRole,
)
from hrms.common.exceptions import (
    ForbiddenException,
    InvalidStateException,
    NotFoundException,
    OverlappingRequestException,
    ValidationException,
)
from hrms.common.pagination import PaginatedResponse, PaginationParams, paginate
from hrms.core_hr.models import Employee
from hrms.core_hr.service import OrgHierarchy
from hrms.leave.ledger import LeaveLedger
from hrms.leave.models import LeaveBalance, LeaveRequest, LeaveType
from hrms.leave.schemas import (
    LeaveBalanceOut,
    LeaveRequestCreate,
    LeaveTypeOut,
    WorkingDaysOut,
    WorkingDaysQuery,
)
from hrms.leave.working_days import (
    calculate_working_days,
    count_working_days,
    get_holiday_dates,
)
from hrms.notifications.service import (
    notify_leave_approved,
    notify_leave_rejected,
    notify_leave_submitted,
)
from hrms.permissions.resolver import is_admin, is_privileged

logger = logging.getLogger(__name__)

LIST_SCOPES = ("my", "team", "pending", "all")


def _load_options():
    return (
        selectinload(LeaveRequest.leave_type),
        selectinload(LeaveRequest.employee).selectinload(Employee.manager),
    )


class LeaveService:
    """Async leave operations."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _get_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        *,
        lock: bool = False,
    ) -> LeaveRequest:
        query = (
            select(LeaveRequest)
            .where(LeaveRequest.id == request_id)
            .options(*_load_options())
            .execution_options(populate_existing=True)
        )
        if lock:
            query = query.with_for_update(of=LeaveRequest)
        leave_req = (await db.execute(query)).scalars().first()
        if leave_req is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return leave_req

    @staticmethod
    def can_review(actor: Employee, leave_req: LeaveRequest) -> bool:
        """Requester's manager, or admin / HR."""
        if is_privileged(actor.role):
            return True
        return leave_req.employee.manager_id == actor.id

    @staticmethod
    def _require_pending(leave_req: LeaveRequest, action: str) -> None:
        if leave_req.status != LeaveStatus.pending:
            raise InvalidStateException("LeaveRequest", leave_req.status.value, action)

    # ─────────────────────────────────────────────────────────────────
    # Leave Types
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_leave_types(
        db: AsyncSession,
        *,
        is_active: Optional[bool] = True,
    ) -> list[LeaveTypeOut]:
        query = select(LeaveType).order_by(LeaveType.name)
        if is_active is not None:
            query = query.where(LeaveType.is_active == is_active)
        result = await db.execute(query)
        return [LeaveTypeOut.model_validate(lt) for lt in result.scalars().all()]

    # ─────────────────────────────────────────────────────────────────
    # Working-day preview
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def preview_working_days(
        db: AsyncSession,
        query: WorkingDaysQuery,
    ) -> WorkingDaysOut:
        holidays = await get_holiday_dates(db, query.start_date, query.end_date)
        days = calculate_working_days(
            query.start_date, query.end_date, query.day_type, holidays,
        )
        return WorkingDaysOut(
            start_date=query.start_date,
            end_date=query.end_date,
            day_type=query.day_type,
            days=days,
            holidays=sorted(holidays),
        )

    # ─────────────────────────────────────────────────────────────────
    # Submit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def submit(
        db: AsyncSession,
        employee: Employee,
        data: LeaveRequestCreate,
    ) -> LeaveRequest:
        """Create a pending request and reserve its days.

        Guards, in order: active leave type, at least one working day, no
        overlapping pending/approved request, sufficient balance (unless
        the type does not enforce one).
        """
        # Serialise concurrent submissions by the same employee
        locked = await db.execute(
            select(Employee.id)
            .where(Employee.id == employee.id, Employee.is_active.is_(True))
            .with_for_update()
        )
        if locked.first() is None:
            raise NotFoundException("Employee", str(employee.id))

        lt_result = await db.execute(
            select(LeaveType).where(
                LeaveType.id == data.leave_type_id,
                LeaveType.is_active.is_(True),
            )
        )
        leave_type = lt_result.scalars().first()
        if leave_type is None:
            raise NotFoundException("LeaveType", str(data.leave_type_id))

        days = await count_working_days(db, data.start_date, data.end_date, data.day_type)
        if days <= 0:
            raise ValidationException(
                {"dates": ["No working days found in the selected range "
                           "(all days are weekends or holidays)."]}
            )

        overlap = await db.execute(
            select(LeaveRequest.id).where(
                LeaveRequest.employee_id == employee.id,
                LeaveRequest.status.in_(ACTIVE_LEAVE_STATUSES),
                LeaveRequest.start_date <= data.end_date,
                LeaveRequest.end_date >= data.start_date,
            ).limit(1)
        )
        existing_id = overlap.scalar_one_or_none()
        if existing_id is not None:
            raise OverlappingRequestException(existing_id)

        year = data.start_date.year
        await LeaveLedger.reserve(db, employee.id, leave_type.id, year, days)

        leave_req = LeaveRequest(
            employee_id=employee.id,
            leave_type_id=leave_type.id,
            start_date=data.start_date,
            end_date=data.end_date,
            day_type=data.day_type,
            days=days,
            reason=data.reason,
            emergency_contact=data.emergency_contact,
            status=LeaveStatus.pending,
        )
        db.add(leave_req)
        await db.flush()

        await create_audit_entry(
            db,
            action="submit",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=employee.id,
            new_values={
                "leave_type": leave_type.code,
                "start_date": data.start_date.isoformat(),
                "end_date": data.end_date.isoformat(),
                "days": str(days),
                "status": LeaveStatus.pending.value,
            },
        )
        logger.info(
            "Leave request %s submitted by %s: %s %s day(s) %s..%s",
            leave_req.id, employee.id, leave_type.code, days,
            data.start_date, data.end_date,
        )

        leave_req = await LeaveService._get_request(db, leave_req.id)
        await notify_leave_submitted(db, leave_req, employee)
        return leave_req

    # ─────────────────────────────────────────────────────────────────
    # Approve / Reject
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def approve(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Employee,
    ) -> LeaveRequest:
        """pending → approved; moves the days from pending to used."""
        leave_req = await LeaveService._get_request(db, request_id, lock=True)
        if not LeaveService.can_review(actor, leave_req):
            raise ForbiddenException(
                detail="Only the requester's manager, HR or admin can approve leave requests.",
            )
        LeaveService._require_pending(leave_req, "approve")

        await LeaveLedger.commit(
            db, leave_req.employee_id, leave_req.leave_type_id,
            leave_req.year, leave_req.days,
        )

        now = datetime.now(timezone.utc)
        leave_req.status = LeaveStatus.approved
        leave_req.approved_by = actor.id
        leave_req.approved_at = now
        leave_req.updated_at = now
        await db.flush()

        await create_audit_entry(
            db,
            action="approve",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=actor.id,
            old_values={"status": LeaveStatus.pending.value},
            new_values={"status": LeaveStatus.approved.value},
        )
        logger.info("Leave request %s approved by %s", leave_req.id, actor.id)

        await notify_leave_approved(db, leave_req, actor)
        return leave_req

    @staticmethod
    async def reject(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Employee,
        reason: Optional[str] = None,
    ) -> LeaveRequest:
        """pending → rejected; releases the reserved days."""
        leave_req = await LeaveService._get_request(db, request_id, lock=True)
        if not LeaveService.can_review(actor, leave_req):
            raise ForbiddenException(
                detail="Only the requester's manager, HR or admin can reject leave requests.",
            )
        LeaveService._require_pending(leave_req, "reject")

        await LeaveLedger.release(
            db, leave_req.employee_id, leave_req.leave_type_id,
            leave_req.year, leave_req.days,
        )

        now = datetime.now(timezone.utc)
        leave_req.status = LeaveStatus.rejected
        leave_req.approved_by = actor.id
        leave_req.approved_at = now
        leave_req.rejection_reason = reason
        leave_req.updated_at = now
        await db.flush()

        await create_audit_entry(
            db,
            action="reject",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=actor.id,
            old_values={"status": LeaveStatus.pending.value},
            new_values={"status": LeaveStatus.rejected.value, "reason": reason},
        )
        logger.info("Leave request %s rejected by %s", leave_req.id, actor.id)

        await notify_leave_rejected(db, leave_req, actor)
        return leave_req

    # ─────────────────────────────────────────────────────────────────
    # Cancel / Delete
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def cancel(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Employee,
    ) -> LeaveRequest:
        """pending → cancelled by the requester; releases the reserved days."""
        leave_req = await LeaveService._get_request(db, request_id, lock=True)
        if leave_req.employee_id != actor.id:
            raise ForbiddenException(
                detail="Only the requester can cancel their leave request.",
            )
        LeaveService._require_pending(leave_req, "cancel")

        await LeaveLedger.release(
            db, leave_req.employee_id, leave_req.leave_type_id,
            leave_req.year, leave_req.days,
        )

        now = datetime.now(timezone.utc)
        leave_req.status = LeaveStatus.cancelled
        leave_req.cancelled_at = now
        leave_req.updated_at = now
        await db.flush()

        await create_audit_entry(
            db,
            action="cancel",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=actor.id,
            old_values={"status": LeaveStatus.pending.value},
            new_values={"status": LeaveStatus.cancelled.value},
        )
        logger.info("Leave request %s cancelled by %s", leave_req.id, actor.id)
        return leave_req

    @staticmethod
    async def delete(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Employee,
    ) -> None:
        """Hard-delete a pending, cancelled or rejected request.

        Approved requests are kept. Deleting a pending request releases its
        reservation first.
        """
        leave_req = await LeaveService._get_request(db, request_id, lock=True)
        if leave_req.employee_id != actor.id and not is_admin(actor.role):
            raise ForbiddenException(
                detail="Only the requester or an admin can delete a leave request.",
            )
        if leave_req.status not in DELETABLE_LEAVE_STATUSES:
            raise InvalidStateException("LeaveRequest", leave_req.status.value, "delete")

        if leave_req.status == LeaveStatus.pending:
            await LeaveLedger.release(
                db, leave_req.employee_id, leave_req.leave_type_id,
                leave_req.year, leave_req.days,
            )

        await create_audit_entry(
            db,
            action="delete",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=actor.id,
            old_values={
                "status": leave_req.status.value,
                "employee_id": str(leave_req.employee_id),
                "days": str(leave_req.days),
            },
        )
        await db.delete(leave_req)
        await db.flush()
        logger.info("Leave request %s deleted by %s", request_id, actor.id)

    # ─────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        viewer: Employee,
    ) -> LeaveRequest:
        """Owner, the requester's manager, or admin / HR."""
        leave_req = await LeaveService._get_request(db, request_id)
        if leave_req.employee_id != viewer.id and not LeaveService.can_review(viewer, leave_req):
            raise ForbiddenException(detail="You cannot view this leave request.")
        return leave_req

    @staticmethod
    async def list_requests(
        db: AsyncSession,
        viewer: Employee,
        pagination: PaginationParams,
        *,
        scope: str = "my",
        status: Optional[LeaveStatus] = None,
        year: Optional[int] = None,
        employee_id: Optional[uuid.UUID] = None,
    ) -> PaginatedResponse:
        """Requests visible to *viewer* under *scope*.

        - ``my``: own requests
        - ``team``: admin / HR see everyone; managers see own + team
        - ``pending``: pending requests the viewer can approve
        - ``all``: admin / HR only (others fall back to ``my``)
        """
        query = (
            select(LeaveRequest)
            .options(*_load_options())
            .order_by(LeaveRequest.created_at.desc(), LeaveRequest.id)
        )
        privileged = is_privileged(viewer.role)

        if scope == "pending":
            query = query.where(LeaveRequest.status == LeaveStatus.pending)
            if not privileged:
                reports = select(Employee.id).where(Employee.manager_id == viewer.id)
                query = query.where(LeaveRequest.employee_id.in_(reports))
        elif scope in ("team", "all") and privileged:
            if employee_id is not None:
                query = query.where(LeaveRequest.employee_id == employee_id)
        elif scope == "team" and UserRole(viewer.role) == UserRole.manager:
            team_ids = await OrgHierarchy.team_member_ids(db, viewer)
            query = query.where(
                or_(
                    LeaveRequest.employee_id == viewer.id,
                    LeaveRequest.employee_id.in_(team_ids),
                )
            )
            if employee_id is not None:
                query = query.where(LeaveRequest.employee_id == employee_id)
        else:
            query = query.where(LeaveRequest.employee_id == viewer.id)

        if status is not None and scope != "pending":
            query = query.where(LeaveRequest.status == status)
        if year is not None:
            query = query.where(
                LeaveRequest.start_date >= date(year, 1, 1),
                LeaveRequest.start_date <= date(year, 12, 31),
            )

        return await paginate(db, query, pagination, model=LeaveRequest)

    # ─────────────────────────────────────────────────────────────────
    # Balances
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_balances(
        db: AsyncSession,
        viewer: Employee,
        year: int,
        employee_id: Optional[uuid.UUID] = None,
    ) -> list[LeaveBalanceOut]:
        """Balances for every active leave type, created lazily.

        Only admin / HR may read another employee's balances.
        """
        target_id = employee_id or viewer.id
        if target_id != viewer.id:
            if not is_privileged(viewer.role):
                raise ForbiddenException(
                    detail="You can only view your own leave balances.",
                )
            target = await db.get(Employee, target_id)
            if target is None:
                raise NotFoundException("Employee", str(target_id))

        types = await db.execute(
            select(LeaveType.id).where(LeaveType.is_active.is_(True))
        )
        for (leave_type_id,) in types.all():
            await LeaveLedger.get_or_create(db, target_id, leave_type_id, year)

        result = await db.execute(
            select(LeaveBalance)
            .join(LeaveType, LeaveBalance.leave_type_id == LeaveType.id)
            .where(
                LeaveBalance.employee_id == target_id,
                LeaveBalance.year == year,
                LeaveType.is_active.is_(True),
            )
            .options(selectinload(LeaveBalance.leave_type))
            .execution_options(populate_existing=True)
            .order_by(LeaveType.name)
        )
        return [LeaveBalanceOut.model_validate(b) for b in result.scalars().all()]

