"""Common module — shared utilities for the leave ledger."""

from leave_ledger.common.audit import AuditTrail, create_audit_entry
from leave_ledger.common.constants import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    PERMISSIONS,
    LeaveAction,
    RequestState,
    UserRole,
)
from leave_ledger.common.exceptions import (
    AppException,
    ForbiddenException,
    InsufficientBalanceException,
    InvalidTransitionException,
    NotFoundException,
    ValidationException,
    register_exception_handlers,
)
from leave_ledger.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    # Constants / Enums
    "LeaveAction",
    "RequestState",
    "UserRole",
    "PERMISSIONS",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "ForbiddenException",
    "InsufficientBalanceException",
    "InvalidTransitionException",
    "NotFoundException",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
