"""Common module — shared utilities for HRMS."""

from hrms.common.audit import (
    AuditTrail,
    changed_fields,
    create_audit_entry,
    list_audit_entries,
)
from hrms.common.constants import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    HolidayType,
    LeaveDayType,
    LeaveStatus,
    NotificationType,
    PermissionAction,
    PermissionModule,
    UserRole,
)
from hrms.common.exceptions import (
    AppException,
    ConflictError,
    ForbiddenException,
    InsufficientBalanceException,
    InvalidStateException,
    NotFoundException,
    OverlappingRequestException,
    UnauthenticatedException,
    ValidationException,
    register_exception_handlers,
)
from hrms.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Audit
    "AuditTrail",
    "changed_fields",
    "create_audit_entry",
    "list_audit_entries",
    # Constants / Enums
    "HolidayType",
    "LeaveDayType",
    "LeaveStatus",
    "NotificationType",
    "PermissionAction",
    "PermissionModule",
    "UserRole",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "ConflictError",
    "ForbiddenException",
    "InsufficientBalanceException",
    "InvalidStateException",
    "NotFoundException",
    "OverlappingRequestException",
    "UnauthenticatedException",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
