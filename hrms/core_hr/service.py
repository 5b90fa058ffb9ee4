"""Core HR service layer — employees, departments and the reporting hierarchy.

Uses:
  - ``paginate()`` from hrms.common.pagination
  - ``create_audit_entry`` from hrms.common.audit
  - ``LeaveLedger`` to open default balances for new employees
"""

from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hrms.auth.models import UserSession
from hrms.common.audit import create_audit_entry
from hrms.common.constants import UserRole
from hrms.common.exceptions import (
    ConflictError,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from hrms.common.pagination import PaginatedResponse, PaginationParams, paginate
from hrms.config import settings
from hrms.core_hr.models import Department, Employee
from hrms.core_hr.schemas import (
    DepartmentCreate,
    DepartmentOut,
    DepartmentUpdate,
    EmployeeSummary,
    EmployeeUpdate,
    OrgTreeNode,
    OrgTreeOut,
    OrgTreeStats,
)
from hrms.leave.ledger import LeaveLedger
from hrms.leave.models import LeaveType

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════
# EmployeeService
# ═════════════════════════════════════════════════════════════════════


class EmployeeService:
    """Async CRUD operations for employees."""

    # ── Lookup ──────────────────────────────────────────────────────

    @staticmethod
    async def get_employee(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        active_only: bool = False,
    ) -> Employee:
        query = (
            select(Employee)
            .where(Employee.id == employee_id)
            .options(selectinload(Employee.department))
            .execution_options(populate_existing=True)
        )
        if active_only:
            query = query.where(Employee.is_active.is_(True))
        employee = (await db.execute(query)).scalars().first()
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))
        return employee

    @staticmethod
    async def list_employees(
        db: AsyncSession,
        pagination: PaginationParams,
        *,
        viewer: Employee,
        search: Optional[str] = None,
        department_id: Optional[uuid.UUID] = None,
        role: Optional[UserRole] = None,
        include_inactive: bool = False,
    ) -> PaginatedResponse:
        """Paginated employee list scoped to what *viewer* may see.

        admin / hr see everyone, managers see themselves and their team,
        everyone else sees only themselves.
        """
        query = (
            select(Employee)
            .options(selectinload(Employee.department))
            .order_by(Employee.first_name, Employee.last_name)
        )

        if viewer.role not in (UserRole.admin, UserRole.hr):
            visible = {viewer.id}
            if viewer.role == UserRole.manager:
                visible |= set(await OrgHierarchy.team_member_ids(db, viewer))
            query = query.where(Employee.id.in_(visible))

        if not include_inactive:
            query = query.where(Employee.is_active.is_(True))
        if department_id:
            query = query.where(Employee.department_id == department_id)
        if role:
            query = query.where(Employee.role == role)
        if search:
            pattern = f"%{search.lower()}%"
            query = query.where(
                or_(
                    func.lower(Employee.first_name).like(pattern),
                    func.lower(Employee.last_name).like(pattern),
                    func.lower(Employee.email).like(pattern),
                    func.lower(Employee.employee_code).like(pattern),
                )
            )

        return await paginate(db, query, pagination, model=Employee)

    # ── Create ──────────────────────────────────────────────────────

    @staticmethod
    async def next_employee_code(db: AsyncSession) -> str:
        """Next sequential code, e.g. EMP0001 → EMP0002."""
        prefix = settings.EMPLOYEE_CODE_PREFIX
        result = await db.execute(
            select(Employee.employee_code).where(Employee.employee_code.like(f"{prefix}%"))
        )
        highest = 0
        pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$")
        for (code,) in result.all():
            match = pattern.match(code)
            if match:
                highest = max(highest, int(match.group(1)))
        return f"{prefix}{highest + 1:04d}"

    @staticmethod
    async def create_employee(
        db: AsyncSession,
        *,
        first_name: str,
        email: str,
        last_name: str = "",
        phone: Optional[str] = None,
        designation: Optional[str] = None,
        role: UserRole = UserRole.employee,
        department_id: Optional[uuid.UUID] = None,
        manager_id: Optional[uuid.UUID] = None,
        password_hash: Optional[str] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Employee:
        """Create an employee and open default balances for the current year."""
        email = email.strip().lower()
        existing = await db.execute(
            select(Employee.id).where(func.lower(Employee.email) == email)
        )
        if existing.first() is not None:
            raise ConflictError("email", email)

        if department_id is not None:
            await DepartmentService.get_department(db, department_id)
        if manager_id is not None:
            await EmployeeService.get_employee(db, manager_id, active_only=True)

        employee = Employee(
            employee_code=await EmployeeService.next_employee_code(db),
            first_name=first_name.strip(),
            last_name=(last_name or "").strip(),
            email=email,
            phone=phone,
            designation=designation,
            role=role,
            department_id=department_id,
            manager_id=manager_id,
            password_hash=password_hash,
            is_active=True,
        )
        db.add(employee)
        await db.flush()

        await EmployeeService.open_default_balances(db, employee.id)

        await create_audit_entry(
            db,
            action="create",
            entity_type="employee",
            entity_id=employee.id,
            actor_id=actor_id or employee.id,
            new_values={
                "employee_code": employee.employee_code,
                "email": email,
                "role": UserRole(role).value,
            },
        )
        logger.info("Created employee %s (%s)", employee.employee_code, email)
        return await EmployeeService.get_employee(db, employee.id)

    @staticmethod
    async def open_default_balances(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: Optional[int] = None,
    ) -> int:
        """Create the current-year balance for every active leave type."""
        target_year = year or datetime.now(timezone.utc).year
        result = await db.execute(
            select(LeaveType.id).where(LeaveType.is_active.is_(True))
        )
        count = 0
        for (leave_type_id,) in result.all():
            await LeaveLedger.get_or_create(db, employee_id, leave_type_id, target_year)
            count += 1
        return count

    # ── Update ──────────────────────────────────────────────────────

    @staticmethod
    async def update_employee(
        db: AsyncSession,
        employee_id: uuid.UUID,
        data: EmployeeUpdate,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Employee:
        """Partial-update an existing employee.

        ``is_active`` is not a plain column write: it goes through
        deactivate / reactivate so sessions and timestamps follow.
        """
        employee = await EmployeeService.get_employee(db, employee_id)

        changes = data.model_dump(exclude_unset=True)
        active = changes.pop("is_active", None)
        if changes:
            await EmployeeService._apply_changes(db, employee, changes, actor_id)

        if active is False:
            await EmployeeService.deactivate_employee(db, employee_id, actor_id=actor_id)
        elif active is True:
            await EmployeeService.reactivate_employee(db, employee_id, actor_id=actor_id)
        return await EmployeeService.get_employee(db, employee.id)

    @staticmethod
    async def _apply_changes(
        db: AsyncSession,
        employee: Employee,
        changes: dict[str, Any],
        actor_id: Optional[uuid.UUID],
    ) -> None:
        employee_id = employee.id

        if "email" in changes and changes["email"] is not None:
            changes["email"] = changes["email"].strip().lower()
            clash = await db.execute(
                select(Employee.id).where(
                    func.lower(Employee.email) == changes["email"],
                    Employee.id != employee_id,
                )
            )
            if clash.first() is not None:
                raise ConflictError("email", changes["email"])
        if changes.get("department_id") is not None:
            await DepartmentService.get_department(db, changes["department_id"])

        old_values: dict[str, Any] = {}
        for field, value in changes.items():
            old_val = getattr(employee, field, None)
            if hasattr(old_val, "value"):
                old_val = old_val.value
            old_values[field] = str(old_val) if isinstance(old_val, uuid.UUID) else old_val
            setattr(employee, field, value)

        employee.updated_at = datetime.now(timezone.utc)
        await db.flush()

        await create_audit_entry(
            db,
            action="update",
            entity_type="employee",
            entity_id=employee.id,
            actor_id=actor_id,
            old_values=old_values,
            new_values=changes,
        )

    # ── Deactivate (soft delete) ────────────────────────────────────

    @staticmethod
    async def deactivate_employee(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        actor_id: uuid.UUID,
    ) -> Employee:
        if employee_id == actor_id:
            raise ForbiddenException(detail="You cannot deactivate your own account.")

        employee = await EmployeeService.get_employee(db, employee_id)
        if not employee.is_active:
            return employee

        now = datetime.now(timezone.utc)
        employee.is_active = False
        employee.deactivated_at = now
        employee.updated_at = now
        await db.execute(
            update(UserSession)
            .where(
                UserSession.employee_id == employee.id,
                UserSession.is_revoked.is_(False),
            )
            .values(is_revoked=True, revoked_at=now)
        )
        await db.flush()

        await create_audit_entry(
            db,
            action="deactivate",
            entity_type="employee",
            entity_id=employee.id,
            actor_id=actor_id,
            old_values={"is_active": True},
            new_values={"is_active": False},
        )
        logger.info("Deactivated employee %s", employee.employee_code)
        return employee

    @staticmethod
    async def reactivate_employee(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Employee:
        employee = await EmployeeService.get_employee(db, employee_id)
        if employee.is_active:
            return employee

        employee.is_active = True
        employee.deactivated_at = None
        employee.updated_at = datetime.now(timezone.utc)
        await db.flush()

        await create_audit_entry(
            db,
            action="reactivate",
            entity_type="employee",
            entity_id=employee.id,
            actor_id=actor_id,
            old_values={"is_active": False},
            new_values={"is_active": True},
        )
        logger.info("Reactivated employee %s", employee.employee_code)
        return employee


# ═════════════════════════════════════════════════════════════════════
# OrgHierarchy
# ═════════════════════════════════════════════════════════════════════


def build_tree(employees: Iterable[Employee]) -> list[OrgTreeNode]:
    """Build the reporting forest from a flat employee list.

    Every employee becomes a node; a node is attached under its manager when
    ``manager_id`` resolves to an employee in the list, otherwise it is a
    root.
    """
    employees = list(employees)
    nodes: dict[uuid.UUID, OrgTreeNode] = {}
    for emp in employees:
        nodes[emp.id] = OrgTreeNode(
            id=emp.id,
            employee_code=emp.employee_code,
            name=emp.full_name,
            email=emp.email,
            role=emp.role,
            designation=emp.designation,
            department=emp.department.name if emp.department else None,
            manager_id=emp.manager_id,
        )

    roots: list[OrgTreeNode] = []
    for emp in employees:
        node = nodes[emp.id]
        parent = nodes.get(emp.manager_id) if emp.manager_id else None
        if parent is not None and parent is not node:
            parent.children.append(node)
        else:
            roots.append(node)
    return roots


def tree_depth(nodes: Sequence[OrgTreeNode]) -> int:
    """Depth of the deepest branch (a lone root has depth 1)."""
    depth = 0
    stack = [(node, 1) for node in nodes]
    while stack:
        node, level = stack.pop()
        depth = max(depth, level)
        stack.extend((child, level + 1) for child in node.children)
    return depth


class OrgHierarchy:
    """Reporting-line queries and mutations."""

    @staticmethod
    async def get_tree(db: AsyncSession) -> OrgTreeOut:
        result = await db.execute(
            select(Employee)
            .where(Employee.is_active.is_(True))
            .options(selectinload(Employee.department))
            .order_by(Employee.first_name, Employee.last_name)
        )
        employees = result.scalars().all()
        tree = build_tree(employees)
        manager_ids = {e.manager_id for e in employees if e.manager_id}
        return OrgTreeOut(
            tree=tree,
            flat_list=[EmployeeSummary.model_validate(e) for e in employees],
            stats=OrgTreeStats(
                total=len(employees),
                roots=len(tree),
                managers=len(manager_ids & {e.id for e in employees}),
                max_depth=tree_depth(tree),
            ),
        )

    @staticmethod
    async def manager_chain(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> list[uuid.UUID]:
        """Ids from *employee_id* up to its root, nearest manager first."""
        chain: list[uuid.UUID] = []
        seen: set[uuid.UUID] = {employee_id}
        current: Optional[uuid.UUID] = employee_id
        while current is not None:
            result = await db.execute(
                select(Employee.manager_id).where(Employee.id == current)
            )
            parent = result.scalar_one_or_none()
            if parent is None or parent in seen:
                break
            chain.append(parent)
            seen.add(parent)
            current = parent
        return chain

    @staticmethod
    async def set_manager(
        db: AsyncSession,
        employee_id: uuid.UUID,
        manager_id: Optional[uuid.UUID],
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Employee:
        """Reassign *employee_id* under *manager_id* (``None`` makes it a root).

        Rejects self-management and any assignment whose new manager chain
        leads back to the employee.
        """
        employee = await EmployeeService.get_employee(db, employee_id)

        if manager_id is not None:
            if manager_id == employee_id:
                raise ValidationException(
                    {"manager_id": ["An employee cannot be their own manager."]}
                )
            await EmployeeService.get_employee(db, manager_id, active_only=True)
            chain = await OrgHierarchy.manager_chain(db, manager_id)
            if employee_id in chain:
                raise ValidationException(
                    {"manager_id": [
                        "This assignment would create a reporting cycle."
                    ]}
                )

        old_manager = employee.manager_id
        employee.manager_id = manager_id
        employee.updated_at = datetime.now(timezone.utc)
        await db.flush()

        await create_audit_entry(
            db,
            action="set_manager",
            entity_type="employee",
            entity_id=employee.id,
            actor_id=actor_id,
            old_values={"manager_id": str(old_manager) if old_manager else None},
            new_values={"manager_id": str(manager_id) if manager_id else None},
        )
        logger.info("Employee %s now reports to %s", employee_id, manager_id)
        return employee

    @staticmethod
    async def is_manager_of(
        db: AsyncSession,
        manager_id: uuid.UUID,
        employee_id: uuid.UUID,
    ) -> bool:
        result = await db.execute(
            select(Employee.manager_id).where(Employee.id == employee_id)
        )
        return result.scalar_one_or_none() == manager_id

    @staticmethod
    async def team_member_ids(
        db: AsyncSession,
        manager: Employee,
    ) -> list[uuid.UUID]:
        """Active direct reports plus active members of the same department."""
        criteria = [Employee.manager_id == manager.id]
        if manager.department_id is not None:
            criteria.append(Employee.department_id == manager.department_id)
        result = await db.execute(
            select(Employee.id).where(
                or_(*criteria),
                Employee.is_active.is_(True),
                Employee.id != manager.id,
            )
        )
        return [row[0] for row in result.all()]

    @staticmethod
    async def get_team(db: AsyncSession, manager: Employee) -> Sequence[Employee]:
        ids = await OrgHierarchy.team_member_ids(db, manager)
        if not ids:
            return []
        result = await db.execute(
            select(Employee)
            .where(Employee.id.in_(ids))
            .options(selectinload(Employee.department))
            .order_by(Employee.first_name, Employee.last_name)
        )
        return result.scalars().all()

    @staticmethod
    async def get_direct_reports(
        db: AsyncSession,
        manager_id: uuid.UUID,
    ) -> Sequence[Employee]:
        result = await db.execute(
            select(Employee)
            .where(
                Employee.manager_id == manager_id,
                Employee.is_active.is_(True),
            )
            .options(selectinload(Employee.department))
            .order_by(Employee.first_name, Employee.last_name)
        )
        return result.scalars().all()


# ═════════════════════════════════════════════════════════════════════
# DepartmentService
# ═════════════════════════════════════════════════════════════════════


class DepartmentService:
    """Async CRUD operations for departments."""

    @staticmethod
    async def _member_counts(db: AsyncSession) -> dict[uuid.UUID, int]:
        result = await db.execute(
            select(Employee.department_id, func.count(Employee.id))
            .where(
                Employee.department_id.is_not(None),
                Employee.is_active.is_(True),
            )
            .group_by(Employee.department_id)
        )
        return {dept_id: count for dept_id, count in result.all()}

    @staticmethod
    def _to_out(dept: Department, counts: dict[uuid.UUID, int]) -> DepartmentOut:
        out = DepartmentOut.model_validate(dept)
        out.member_count = counts.get(dept.id, 0)
        return out

    @staticmethod
    async def list_departments(
        db: AsyncSession,
        *,
        include_inactive: bool = False,
    ) -> list[DepartmentOut]:
        query = select(Department).order_by(Department.name)
        if not include_inactive:
            query = query.where(Department.is_active.is_(True))
        departments = (await db.execute(query)).scalars().all()
        counts = await DepartmentService._member_counts(db)
        return [DepartmentService._to_out(d, counts) for d in departments]

    @staticmethod
    async def get_department(db: AsyncSession, department_id: uuid.UUID) -> Department:
        department = await db.get(Department, department_id)
        if department is None:
            raise NotFoundException("Department", str(department_id))
        return department

    @staticmethod
    async def _ensure_unique_name(
        db: AsyncSession,
        name: str,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        query = select(Department.id).where(func.lower(Department.name) == name.lower())
        if exclude_id is not None:
            query = query.where(Department.id != exclude_id)
        if (await db.execute(query)).first() is not None:
            raise ConflictError("name", name)

    @staticmethod
    async def create_department(
        db: AsyncSession,
        data: DepartmentCreate,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> DepartmentOut:
        await DepartmentService._ensure_unique_name(db, data.name)
        department = Department(name=data.name, description=data.description, is_active=True)
        db.add(department)
        await db.flush()
        await db.refresh(department)

        await create_audit_entry(
            db,
            action="create",
            entity_type="department",
            entity_id=department.id,
            actor_id=actor_id,
            new_values=data.model_dump(mode="json"),
        )
        return DepartmentService._to_out(department, {})

    @staticmethod
    async def update_department(
        db: AsyncSession,
        department_id: uuid.UUID,
        data: DepartmentUpdate,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> DepartmentOut:
        """Rename / edit a department. Members keep their reference."""
        department = await DepartmentService.get_department(db, department_id)
        changes = data.model_dump(exclude_unset=True)
        if changes.get("name"):
            await DepartmentService._ensure_unique_name(db, changes["name"], department_id)

        old_values = {k: getattr(department, k) for k in changes}
        for key, value in changes.items():
            setattr(department, key, value)
        department.updated_at = datetime.now(timezone.utc)
        await db.flush()

        await create_audit_entry(
            db,
            action="update",
            entity_type="department",
            entity_id=department.id,
            actor_id=actor_id,
            old_values=old_values,
            new_values=changes,
        )
        counts = await DepartmentService._member_counts(db)
        return DepartmentService._to_out(department, counts)

    @staticmethod
    async def delete_department(
        db: AsyncSession,
        department_id: uuid.UUID,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> None:
        department = await DepartmentService.get_department(db, department_id)
        counts = await DepartmentService._member_counts(db)
        if counts.get(department.id, 0):
            raise ValidationException(
                {"department": [
                    "Department still has active members; reassign them first."
                ]}
            )
        await create_audit_entry(
            db,
            action="delete",
            entity_type="department",
            entity_id=department.id,
            actor_id=actor_id,
            old_values={"name": department.name},
        )
        await db.delete(department)
        await db.flush()
