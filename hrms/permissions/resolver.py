"""Authorization resolver — (role, module, action) → allowed.

Evaluation order:

1. ``admin`` is always allowed.
2. ``hr`` is allowed everywhere except non-read actions on the ``admin``
   module.
3. ``manager`` / ``employee``: an explicit per-user override row wins;
   otherwise the static role-default table below applies, and a module
   missing from the table is denied.

``all`` requires every flag; module visibility (``has_access``) is the OR of
the four flags. This module is pure; loading override rows is done by
``PermissionService``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from hrms.common.constants import PermissionAction, PermissionModule, UserRole


@dataclass(frozen=True)
class PermissionFlags:
    can_read: bool = False
    can_write: bool = False
    can_edit: bool = False
    can_delete: bool = False

    @classmethod
    def from_record(cls, record) -> "PermissionFlags":
        return cls(
            can_read=bool(record.can_read),
            can_write=bool(record.can_write),
            can_edit=bool(record.can_edit),
            can_delete=bool(record.can_delete),
        )

    def allows(self, action: PermissionAction) -> bool:
        if action == PermissionAction.all:
            return self.can_read and self.can_write and self.can_edit and self.can_delete
        return {
            PermissionAction.read: self.can_read,
            PermissionAction.write: self.can_write,
            PermissionAction.edit: self.can_edit,
            PermissionAction.delete: self.can_delete,
        }[action]

    @property
    def has_access(self) -> bool:
        return self.can_read or self.can_write or self.can_edit or self.can_delete


NO_ACCESS = PermissionFlags()
FULL_ACCESS = PermissionFlags(True, True, True, True)
READ_ONLY = PermissionFlags(can_read=True)


# ── Role defaults (manager / employee) ──────────────────────────────

ROLE_DEFAULTS: dict[UserRole, dict[PermissionModule, PermissionFlags]] = {
    UserRole.manager: {
        PermissionModule.attendance: PermissionFlags(True, True, True, False),
        PermissionModule.tasks: FULL_ACCESS,
        PermissionModule.leave: PermissionFlags(True, True, True, False),
        PermissionModule.team: READ_ONLY,
        PermissionModule.analytics: READ_ONLY,
        PermissionModule.payroll: NO_ACCESS,
        PermissionModule.admin: NO_ACCESS,
        PermissionModule.shifts: READ_ONLY,
        PermissionModule.holidays: READ_ONLY,
        PermissionModule.reports: READ_ONLY,
        PermissionModule.notifications: PermissionFlags(True, False, True, False),
    },
    UserRole.employee: {
        PermissionModule.attendance: PermissionFlags(True, True, False, False),
        PermissionModule.tasks: FULL_ACCESS,
        PermissionModule.leave: PermissionFlags(True, True, False, False),
        PermissionModule.team: NO_ACCESS,
        PermissionModule.analytics: NO_ACCESS,
        PermissionModule.payroll: NO_ACCESS,
        PermissionModule.admin: NO_ACCESS,
        PermissionModule.shifts: READ_ONLY,
        PermissionModule.holidays: READ_ONLY,
        PermissionModule.reports: NO_ACCESS,
        PermissionModule.notifications: PermissionFlags(True, False, True, False),
    },
}


# ── Role helpers ────────────────────────────────────────────────────

def is_admin(role: Union[UserRole, str]) -> bool:
    return UserRole(role) == UserRole.admin


def is_privileged(role: Union[UserRole, str]) -> bool:
    """Admin or HR: blanket authority by role rather than by record."""
    return UserRole(role) in (UserRole.admin, UserRole.hr)


def default_flags(role: Union[UserRole, str], module: PermissionModule) -> PermissionFlags:
    """Role-default flags; unlisted modules and roles get no access."""
    return ROLE_DEFAULTS.get(UserRole(role), {}).get(module, NO_ACCESS)


# ── Resolution ──────────────────────────────────────────────────────

def effective_flags(
    role: Union[UserRole, str],
    module: Union[PermissionModule, str],
    override: Optional[PermissionFlags] = None,
) -> PermissionFlags:
    """Flags actually in force for a role/module with an optional override."""
    role = UserRole(role)
    module = PermissionModule(module)

    if role == UserRole.admin:
        return FULL_ACCESS
    if role == UserRole.hr:
        return READ_ONLY if module == PermissionModule.admin else FULL_ACCESS
    if override is not None:
        return override
    return default_flags(role, module)


def resolve(
    role: Union[UserRole, str],
    module: Union[PermissionModule, str],
    action: Union[PermissionAction, str],
    override: Optional[PermissionFlags] = None,
) -> bool:
    """Return whether *role* may perform *action* on *module*."""
    return effective_flags(role, module, override).allows(PermissionAction(action))
