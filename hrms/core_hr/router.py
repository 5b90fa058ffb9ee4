"""Core HR router — Employee, Department and org-tree API endpoints.

Routes:
    /employees                  — List, create employees
    /employees/team             — Caller's team (direct reports + department)
    /employees/{id}             — Get, update, deactivate employee
    /employees/{id}/direct-reports — Direct reports of a manager
    /departments                — List, create departments
    /departments/{id}           — Detail, rename, delete
    /org-tree                   — Reporting hierarchy
    /org-tree/{id}/manager      — Reassign manager
"""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.auth.dependencies import get_current_user, require_permission, require_role
from hrms.auth.security import hash_password
from hrms.common.constants import PermissionAction, PermissionModule, UserRole
from hrms.common.exceptions import ForbiddenException
from hrms.common.pagination import PaginationParams
from hrms.core_hr.models import Employee
from hrms.core_hr.schemas import (
    SELF_EDITABLE_FIELDS,
    DepartmentCreate,
    DepartmentOut,
    DepartmentUpdate,
    EmployeeCreate,
    EmployeeOut,
    EmployeeUpdate,
    ManagerAssign,
)
from hrms.core_hr.service import DepartmentService, EmployeeService, OrgHierarchy
from hrms.database import get_db
from hrms.permissions.resolver import is_privileged
from hrms.permissions.service import PermissionService


# ═════════════════════════════════════════════════════════════════════
# Routers
# ═════════════════════════════════════════════════════════════════════

employees_router = APIRouter(prefix="", tags=["employees"])
departments_router = APIRouter(prefix="", tags=["departments"])
org_tree_router = APIRouter(prefix="", tags=["org-tree"])


def _is_privileged(request: Request) -> bool:
    return is_privileged(request.state.user_role)


# ═════════════════════════════════════════════════════════════════════
# Employee Endpoints
# ═════════════════════════════════════════════════════════════════════


# ── GET /employees — List employees ─────────────────────────────────

@employees_router.get("")
async def list_employees(
    db: AsyncSession = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
    pagination: PaginationParams = Depends(),
    search: Optional[str] = Query(None, description="Search by name, email, or employee code"),
    department_id: Optional[uuid.UUID] = Query(None, description="Filter by department"),
    role: Optional[UserRole] = Query(None, description="Filter by role"),
    include_inactive: bool = Query(False, description="Include deactivated employees"),
):
    """List employees visible to the caller.

    - **admin / hr**: everyone
    - **manager**: self + team
    - **employee**: self only
    """
    result = await EmployeeService.list_employees(
        db,
        pagination,
        viewer=current_user,
        search=search,
        department_id=department_id,
        role=role,
        include_inactive=include_inactive,
    )
    items = [EmployeeOut.model_validate(emp) for emp in result.data]
    return {
        "data": [item.model_dump(mode="json") for item in items],
        "meta": result.meta.model_dump(),
    }


# ── GET /employees/team — Caller's team ─────────────────────────────
# NOTE: defined before /employees/{employee_id} to avoid a path clash.

@employees_router.get("/team")
async def get_my_team(
    db: AsyncSession = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
):
    """Active employees reporting to the caller or sharing their department."""
    members = await OrgHierarchy.get_team(db, current_user)
    items = [EmployeeOut.model_validate(emp) for emp in members]
    return {
        "data": [item.model_dump(mode="json") for item in items],
        "message": f"Found {len(items)} team member(s).",
    }


# ── GET /employees/{id} ─────────────────────────────────────────────

@employees_router.get("/{employee_id}")
async def get_employee(
    employee_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
):
    """Retrieve one employee.

    Access rules:
    - **employee**: own profile only
    - **manager**: own + team
    - **admin / hr**: any employee
    """
    if not _is_privileged(request) and current_user.id != employee_id:
        team = await OrgHierarchy.team_member_ids(db, current_user)
        if employee_id not in team:
            raise ForbiddenException(
                detail="You can only view your own profile or your team.",
            )

    employee = await EmployeeService.get_employee(db, employee_id)
    return {
        "data": EmployeeOut.model_validate(employee).model_dump(mode="json"),
        "message": "Employee retrieved successfully.",
    }


# ── POST /employees — Create employee ──────────────────────────────

@employees_router.post("", status_code=201)
async def create_employee(
    body: EmployeeCreate,
    db: AsyncSession = Depends(get_db),
    current_user: Employee = Depends(
        require_permission(PermissionModule.users, PermissionAction.write),
    ),
):
    """Create a new employee. Opens default leave balances for this year."""
    employee = await EmployeeService.create_employee(
        db,
        first_name=body.first_name,
        last_name=body.last_name,
        email=body.email,
        phone=body.phone,
        designation=body.designation,
        role=body.role,
        department_id=body.department_id,
        manager_id=body.manager_id,
        password_hash=hash_password(body.password),
        actor_id=current_user.id,
    )
    return {
        "data": EmployeeOut.model_validate(employee).model_dump(mode="json"),
        "message": "Employee created successfully.",
    }


# ── PUT /employees/{id} — Update employee ──────────────────────────

@employees_router.put("/{employee_id}")
async def update_employee(
    employee_id: uuid.UUID,
    body: EmployeeUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
):
    """Partial update.

    - **self**: name and phone only
    - **users.edit** holders: any field, except ``role`` which only admin / hr
      may change and ``is_active`` which only admin may change
    """
    provided = set(body.model_dump(exclude_unset=True))
    is_own = current_user.id == employee_id

    can_manage = await PermissionService.resolve(
        db, current_user, PermissionModule.users, PermissionAction.edit,
    )
    if not can_manage:
        if not is_own:
            raise ForbiddenException(detail="You can only update your own profile.")
        disallowed = provided - SELF_EDITABLE_FIELDS
        if disallowed:
            raise ForbiddenException(
                detail=f"You are not allowed to update: {', '.join(sorted(disallowed))}. "
                       f"Only these fields can be self-updated: {', '.join(sorted(SELF_EDITABLE_FIELDS))}.",
            )

    if "role" in provided and not _is_privileged(request):
        raise ForbiddenException(detail="Only admin or HR can change roles.")
    if "is_active" in provided and request.state.user_role != UserRole.admin:
        raise ForbiddenException(detail="Only admin can activate or deactivate employees.")

    employee = await EmployeeService.update_employee(
        db, employee_id, body, actor_id=current_user.id,
    )
    return {
        "data": EmployeeOut.model_validate(employee).model_dump(mode="json"),
        "message": "Employee updated successfully.",
    }


# ── DELETE /employees/{id} — Deactivate ─────────────────────────────

@employees_router.delete("/{employee_id}")
async def deactivate_employee(
    employee_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: Employee = Depends(require_role(UserRole.admin)),
):
    """Soft-delete an employee. Admin only; you cannot deactivate yourself."""
    employee = await EmployeeService.deactivate_employee(
        db, employee_id, actor_id=current_user.id,
    )
    return {
        "data": EmployeeOut.model_validate(employee).model_dump(mode="json"),
        "message": "Employee deactivated successfully.",
    }


# ── GET /employees/{id}/direct-reports ─────────────────────────────

@employees_router.get("/{employee_id}/direct-reports")
async def get_direct_reports(
    employee_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
):
    """Direct reports of a manager. Non-privileged callers: own reports only."""
    if not _is_privileged(request) and current_user.id != employee_id:
        raise ForbiddenException(
            detail="You can only view your own direct reports.",
        )

    reports = await OrgHierarchy.get_direct_reports(db, employee_id)
    items = [EmployeeOut.model_validate(emp) for emp in reports]
    return {
        "data": [item.model_dump(mode="json") for item in items],
        "message": f"Found {len(items)} direct report(s).",
    }


# ═════════════════════════════════════════════════════════════════════
# Department Endpoints
# ═════════════════════════════════════════════════════════════════════


@departments_router.get("")
async def list_departments(
    include_inactive: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
):
    """List departments with active member counts."""
    departments = await DepartmentService.list_departments(
        db, include_inactive=include_inactive,
    )
    return {
        "data": [dept.model_dump(mode="json") for dept in departments],
        "message": f"Found {len(departments)} department(s).",
    }


@departments_router.get("/{department_id}")
async def get_department(
    department_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
):
    dept = await DepartmentService.get_department(db, department_id)
    return {
        "data": DepartmentOut.model_validate(dept).model_dump(mode="json"),
        "message": "Department retrieved successfully.",
    }


@departments_router.post("", status_code=201)
async def create_department(
    body: DepartmentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: Employee = Depends(
        require_permission(PermissionModule.departments, PermissionAction.write),
    ),
):
    dept = await DepartmentService.create_department(db, body, actor_id=current_user.id)
    return {
        "data": dept.model_dump(mode="json"),
        "message": "Department created successfully.",
    }


@departments_router.put("/{department_id}")
async def update_department(
    department_id: uuid.UUID,
    body: DepartmentUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: Employee = Depends(
        require_permission(PermissionModule.departments, PermissionAction.edit),
    ),
):
    dept = await DepartmentService.update_department(
        db, department_id, body, actor_id=current_user.id,
    )
    return {
        "data": dept.model_dump(mode="json"),
        "message": "Department updated successfully.",
    }


@departments_router.delete("/{department_id}")
async def delete_department(
    department_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: Employee = Depends(
        require_permission(PermissionModule.departments, PermissionAction.delete),
    ),
):
    """Delete a department that has no active members."""
    await DepartmentService.delete_department(db, department_id, actor_id=current_user.id)
    return {"data": None, "message": "Department deleted successfully."}


# ═════════════════════════════════════════════════════════════════════
# Org Tree Endpoints
# ═════════════════════════════════════════════════════════════════════


@org_tree_router.get("")
async def get_org_tree(
    db: AsyncSession = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
):
    """Reporting forest of active employees plus a flat list and stats."""
    tree = await OrgHierarchy.get_tree(db)
    return {
        "data": tree.model_dump(mode="json"),
        "message": "Organisation tree retrieved successfully.",
    }


@org_tree_router.put("/{employee_id}/manager")
async def set_manager(
    employee_id: uuid.UUID,
    body: ManagerAssign,
    db: AsyncSession = Depends(get_db),
    current_user: Employee = Depends(
        require_permission(PermissionModule.users, PermissionAction.edit),
    ),
):
    """Reassign an employee's manager. ``null`` makes the employee a root."""
    await OrgHierarchy.set_manager(
        db, employee_id, body.manager_id, actor_id=current_user.id,
    )
    employee = await EmployeeService.get_employee(db, employee_id)
    return {
        "data": EmployeeOut.model_validate(employee).model_dump(mode="json"),
        "message": "Manager updated successfully.",
    }
