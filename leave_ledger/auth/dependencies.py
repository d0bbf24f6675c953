"""Auth dependencies — JWT validation, RBAC enforcement.

Tokens are issued by the external identity provider. We only verify the
signature and read the caller's employee id (``sub``) and ``role``; the
resulting identity is passed explicitly into every service call.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, Request
from fastapi.exceptions import HTTPException
from jose import ExpiredSignatureError, JWTError, jwt

from leave_ledger.common.constants import PERMISSIONS, UserRole
from leave_ledger.common.exceptions import ForbiddenException
from leave_ledger.config import settings

@dataclass(frozen=True)
class CurrentUser:
    """Caller identity as asserted by the identity provider."""

    employee_id: uuid.UUID
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header.")
    return auth_header[7:]


# ── Core dependency ─────────────────────────────────────────────────

async def get_current_user(request: Request) -> CurrentUser:
    """Validate the JWT and return the caller's identity."""
    token = _extract_bearer(request)

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired.")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token.")

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type.")

    try:
        employee_id = uuid.UUID(payload["sub"])
    except (KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token subject.")

    role_str = payload.get("role", UserRole.employee.value)
    try:
        role = UserRole(role_str)
    except ValueError:
        role = UserRole.employee

    return CurrentUser(employee_id=employee_id, role=role)


# ── Permission-based dependency ─────────────────────────────────────

def require_permission(permission: str) -> Callable:
    """Return a FastAPI dependency that enforces a specific permission string."""

    async def _check(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if permission not in PERMISSIONS.get(user.role, []):
            raise ForbiddenException(
                detail=f"Permission '{permission}' is not granted to role '{user.role.value}'.",
            )
        return user

    return _check
