"""Permission Pydantic schemas."""


import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict

from hrms.common.constants import PermissionAction, PermissionModule, UserRole


class PermissionFlagsSchema(BaseModel):
    """Four independent CRUD flags for one module."""

    model_config = ConfigDict(from_attributes=True)

    can_read: bool = False
    can_write: bool = False
    can_edit: bool = False
    can_delete: bool = False


class ModuleAccess(PermissionFlagsSchema):
    """Effective flags for a module plus visibility and origin."""

    module: PermissionModule
    has_access: bool
    is_default: bool


class PermissionUpsert(PermissionFlagsSchema):
    """Payload for setting an override row."""

    module: PermissionModule


class EmployeePermissions(BaseModel):
    employee_id: uuid.UUID
    employee_code: str
    name: str
    role: UserRole
    modules: list[ModuleAccess]


class PermissionCheckOut(BaseModel):
    module: PermissionModule
    action: PermissionAction
    allowed: bool
    role: UserRole
    reason: Optional[str] = None
