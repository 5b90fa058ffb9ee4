"""Permission service — loads override rows and applies the resolver."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.common.audit import create_audit_entry
from hrms.common.constants import PermissionAction, PermissionModule, UserRole
from hrms.common.exceptions import ForbiddenException, NotFoundException
from hrms.core_hr.models import Employee
from hrms.permissions import resolver
from hrms.permissions.models import Permission
from hrms.permissions.resolver import PermissionFlags
from hrms.permissions.schemas import (
    EmployeePermissions,
    ModuleAccess,
    PermissionCheckOut,
    PermissionUpsert,
)

logger = logging.getLogger(__name__)


def _flags_snapshot(record: Permission) -> dict[str, bool]:
    return {
        "can_read": record.can_read,
        "can_write": record.can_write,
        "can_edit": record.can_edit,
        "can_delete": record.can_delete,
    }


class PermissionService:
    """Async permission operations."""

    # ── Resolution ──────────────────────────────────────────────────

    @staticmethod
    async def get_override(
        db: AsyncSession,
        employee_id: uuid.UUID,
        module: PermissionModule,
    ) -> Optional[PermissionFlags]:
        result = await db.execute(
            select(Permission).where(
                Permission.employee_id == employee_id,
                Permission.module == module,
            )
        )
        record = result.scalars().first()
        return PermissionFlags.from_record(record) if record else None

    @staticmethod
    async def resolve(
        db: AsyncSession,
        employee: Employee,
        module: PermissionModule,
        action: PermissionAction,
    ) -> bool:
        override = None
        # Overrides only matter below HR
        if not resolver.is_privileged(employee.role):
            override = await PermissionService.get_override(db, employee.id, module)
        return resolver.resolve(employee.role, module, action, override)

    @staticmethod
    async def check(
        db: AsyncSession,
        employee: Employee,
        module: PermissionModule,
        action: PermissionAction,
    ) -> None:
        """Raise ``ForbiddenException`` unless the action is allowed."""
        if not await PermissionService.resolve(db, employee, module, action):
            logger.info(
                "Permission denied: employee=%s role=%s module=%s action=%s",
                employee.id, employee.role.value, module.value, action.value,
            )
            raise ForbiddenException(
                detail=f"You do not have '{action.value}' access to the '{module.value}' module.",
            )

    @staticmethod
    async def explain(
        db: AsyncSession,
        employee: Employee,
        module: PermissionModule,
        action: PermissionAction,
    ) -> PermissionCheckOut:
        role = UserRole(employee.role)
        if role == UserRole.admin:
            reason = "Admin has full access"
        elif role == UserRole.hr:
            reason = (
                "HR has read-only admin access"
                if module == PermissionModule.admin
                else "HR has full access"
            )
        else:
            override = await PermissionService.get_override(db, employee.id, module)
            reason = "Explicit permission" if override else "Role default"
        allowed = await PermissionService.resolve(db, employee, module, action)
        return PermissionCheckOut(
            module=module, action=action, allowed=allowed, role=role, reason=reason,
        )

    @staticmethod
    async def module_access_map(
        db: AsyncSession,
        employee: Employee,
    ) -> list[ModuleAccess]:
        """Effective flags for every module (drives menu visibility)."""
        overrides: dict[PermissionModule, PermissionFlags] = {}
        if not resolver.is_privileged(employee.role):
            result = await db.execute(
                select(Permission).where(Permission.employee_id == employee.id)
            )
            overrides = {
                PermissionModule(p.module): PermissionFlags.from_record(p)
                for p in result.scalars().all()
            }

        access: list[ModuleAccess] = []
        for module in PermissionModule:
            override = overrides.get(module)
            flags = resolver.effective_flags(employee.role, module, override)
            access.append(
                ModuleAccess(
                    module=module,
                    can_read=flags.can_read,
                    can_write=flags.can_write,
                    can_edit=flags.can_edit,
                    can_delete=flags.can_delete,
                    has_access=flags.has_access,
                    is_default=override is None,
                )
            )
        return access

    # ── Management ──────────────────────────────────────────────────

    @staticmethod
    async def list_permissions(db: AsyncSession) -> list[EmployeePermissions]:
        """Permission map for every active employee."""
        result = await db.execute(
            select(Employee)
            .where(Employee.is_active.is_(True))
            .order_by(Employee.first_name, Employee.last_name)
        )
        rows: list[EmployeePermissions] = []
        for emp in result.scalars().all():
            rows.append(
                EmployeePermissions(
                    employee_id=emp.id,
                    employee_code=emp.employee_code,
                    name=emp.full_name,
                    role=emp.role,
                    modules=await PermissionService.module_access_map(db, emp),
                )
            )
        return rows

    @staticmethod
    async def _get_target(db: AsyncSession, employee_id: uuid.UUID) -> Employee:
        target = await db.get(Employee, employee_id)
        if target is None:
            raise NotFoundException("Employee", str(employee_id))
        if target.role == UserRole.admin:
            raise ForbiddenException(detail="Admin permissions cannot be modified.")
        return target

    @staticmethod
    async def upsert(
        db: AsyncSession,
        employee_id: uuid.UUID,
        data: PermissionUpsert,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Permission:
        """Create or replace the override row for one module."""
        await PermissionService._get_target(db, employee_id)

        result = await db.execute(
            select(Permission).where(
                Permission.employee_id == employee_id,
                Permission.module == data.module,
            )
        )
        record = result.scalars().first()
        old_values = None
        if record is None:
            record = Permission(employee_id=employee_id, module=data.module)
            db.add(record)
        else:
            old_values = _flags_snapshot(record)

        record.can_read = data.can_read
        record.can_write = data.can_write
        record.can_edit = data.can_edit
        record.can_delete = data.can_delete
        record.updated_at = datetime.now(timezone.utc)
        await db.flush()

        await create_audit_entry(
            db,
            action="update" if old_values else "create",
            entity_type="permission",
            entity_id=record.id,
            actor_id=actor_id,
            old_values=old_values,
            new_values=data.model_dump(mode="json"),
        )
        return record

    @staticmethod
    async def reset(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> int:
        """Delete every override row for an employee (back to role defaults)."""
        await PermissionService._get_target(db, employee_id)
        result = await db.execute(
            delete(Permission).where(Permission.employee_id == employee_id)
        )
        await db.flush()
        await create_audit_entry(
            db,
            action="reset",
            entity_type="permission",
            entity_id=employee_id,
            actor_id=actor_id,
            new_values={"removed": result.rowcount},
        )
        return result.rowcount  # type: ignore[return-value]

