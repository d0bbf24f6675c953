"""Enums and constants for the leave ledger — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    admin = "admin"


# ── Leave ───────────────────────────────────────────────────────────

class RequestState(str, enum.Enum):
    """Decision axis of a leave request. Cancellation is a separate flag."""

    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class LeaveAction(str, enum.Enum):
    approve = "approve"
    reject = "reject"
    cancel = "cancel"


# ── Role-based permissions ──────────────────────────────────────────

PERMISSIONS: dict[UserRole, list[str]] = {
    UserRole.employee: [
        "leave:request",
        "leave:read_own",
        "leave:cancel_own",
        "allocation:read_own",
    ],
    UserRole.admin: [
        "leave:request",
        "leave:read_own",
        "leave:cancel_own",
        "leave:read_all",
        "leave:approve",
        "leave:reject",
        "allocation:read_own",
        "allocation:provision",
    ],
}

# ── Misc constants ──────────────────────────────────────────────────

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100
