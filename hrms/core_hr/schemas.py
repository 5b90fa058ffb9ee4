"""Core HR Pydantic v2 schemas — Department, Employee, org tree.

Naming conventions:
  - *Create / *Update  → request bodies (write)
  - *Out               → response bodies (read)
  - *Summary / *Brief  → compact embedded representations
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from hrms.common.constants import UserRole


# ═════════════════════════════════════════════════════════════════════
# Department
# ═════════════════════════════════════════════════════════════════════


class DepartmentBrief(BaseModel):
    """Minimal department info embedded in other responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str


class DepartmentCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=150)
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Department name must be at least 2 characters.")
        return v


class DepartmentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=150)
    description: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Department name must be at least 2 characters.")
        return v


class DepartmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: Optional[str] = None
    is_active: bool
    member_count: int = 0
    created_at: datetime


# ═════════════════════════════════════════════════════════════════════
# Employee — write schemas
# ═════════════════════════════════════════════════════════════════════


class EmployeeCreate(BaseModel):
    """Payload for creating an employee (admin / HR)."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field("", max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    phone: Optional[str] = Field(None, max_length=20)
    designation: Optional[str] = Field(None, max_length=150)
    role: UserRole = UserRole.employee
    department_id: Optional[uuid.UUID] = None
    manager_id: Optional[uuid.UUID] = None


class EmployeeUpdate(BaseModel):
    """Partial-update payload for an employee (all fields optional)."""

    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=20)
    designation: Optional[str] = Field(None, max_length=150)
    role: Optional[UserRole] = None
    department_id: Optional[uuid.UUID] = None
    is_active: Optional[bool] = None


# Fields an employee may change on their own record
SELF_EDITABLE_FIELDS = frozenset({"first_name", "last_name", "phone"})


class ManagerAssign(BaseModel):
    """Payload for (re)assigning an employee's manager; null detaches."""

    manager_id: Optional[uuid.UUID] = None


# ═════════════════════════════════════════════════════════════════════
# Employee — read schemas
# ═════════════════════════════════════════════════════════════════════


class EmployeeSummary(BaseModel):
    """Minimal employee reference (manager links, leave responses, etc.)."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_code: str
    full_name: str
    email: str
    designation: Optional[str] = None


class EmployeeOut(BaseModel):
    """Employee profile returned by the employee endpoints."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_code: str
    first_name: str
    last_name: str
    full_name: str
    email: str
    phone: Optional[str] = None
    designation: Optional[str] = None
    role: UserRole
    department: Optional[DepartmentBrief] = None
    manager_id: Optional[uuid.UUID] = None
    is_active: bool
    created_at: datetime


# ═════════════════════════════════════════════════════════════════════
# Org tree
# ═════════════════════════════════════════════════════════════════════


class OrgTreeNode(BaseModel):
    """Recursive node for org-tree rendering."""

    id: uuid.UUID
    employee_code: str
    name: str
    email: str
    role: UserRole
    designation: Optional[str] = None
    department: Optional[str] = None
    manager_id: Optional[uuid.UUID] = None
    children: list["OrgTreeNode"] = Field(default_factory=list)


OrgTreeNode.model_rebuild()


class OrgTreeStats(BaseModel):
    total: int
    roots: int
    managers: int
    max_depth: int


class OrgTreeOut(BaseModel):
    tree: list[OrgTreeNode]
    flat_list: list[EmployeeSummary]
    stats: OrgTreeStats
