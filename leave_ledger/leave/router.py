"""Leave router — leave types, request lifecycle, allocations.

All endpoints require authentication. Approve/reject, the admin listing and
allocation provisioning are admin-only; cancel is owner-only.
"""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.auth.dependencies import (
    CurrentUser,
    get_current_user,
    require_permission,
)
from leave_ledger.common.constants import RequestState
from leave_ledger.common.pagination import PaginationParams
from leave_ledger.common.rate_limit import limiter, write_limit
from leave_ledger.database import get_db
from leave_ledger.leave.ledger import AllocationLedger
from leave_ledger.leave.schemas import (
    AdminLeaveRequestList,
    EmployeeLeaveOverview,
    LeaveAllocationCreate,
    LeaveAllocationOut,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveTypeOut,
)
from leave_ledger.leave.service import LeaveCatalogService, LeaveWorkflowService

router = APIRouter(prefix="", tags=["leave"])


# ── GET /types ──────────────────────────────────────────────────────

@router.get("/types", response_model=list[LeaveTypeOut])
async def list_leave_types(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List all leave types."""
    return await LeaveCatalogService.list_leave_types(db)


# ── POST /requests ──────────────────────────────────────────────────

@router.post(
    "/requests",
    response_model=LeaveRequestOut,
    status_code=201,
)
@limiter.limit(write_limit)
async def create_request(
    request: Request,
    body: LeaveRequestCreate,
    user: CurrentUser = Depends(require_permission("leave:request")),
    db: AsyncSession = Depends(get_db),
):
    """Submit a leave request. Reserves the days on the caller's allocation."""
    return await LeaveWorkflowService.create_request(db, user.employee_id, body)


# ── GET /requests ───────────────────────────────────────────────────

@router.get("/requests", response_model=AdminLeaveRequestList)
async def list_requests(
    status: Optional[RequestState] = Query(None),
    employee_id: Optional[uuid.UUID] = Query(None),
    cancelled: Optional[bool] = Query(None),
    pagination: PaginationParams = Depends(),
    user: CurrentUser = Depends(require_permission("leave:read_all")),
    db: AsyncSession = Depends(get_db),
):
    """All leave requests with summary counts (admin)."""
    return await LeaveWorkflowService.list_all(
        db, pagination, status=status, employee_id=employee_id, cancelled=cancelled,
    )


# ── GET /requests/mine ──────────────────────────────────────────────

@router.get("/requests/mine", response_model=EmployeeLeaveOverview)
async def my_requests(
    period: Optional[int] = Query(None, ge=1900, le=9999),
    user: CurrentUser = Depends(require_permission("leave:read_own")),
    db: AsyncSession = Depends(get_db),
):
    """The caller's allocations and leave requests."""
    return await LeaveWorkflowService.list_for_employee(
        db, user.employee_id, period=period,
    )


# ── GET /requests/{id} ──────────────────────────────────────────────

@router.get("/requests/{request_id}", response_model=LeaveRequestOut)
async def get_request(
    request_id: uuid.UUID,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Request details. Visible to the requester and to admins."""
    return await LeaveWorkflowService.get_request(
        db, request_id, viewer_id=user.employee_id, is_admin=user.is_admin,
    )


# ── PUT /requests/{id}/approve ──────────────────────────────────────

@router.put("/requests/{request_id}/approve", response_model=LeaveRequestOut)
@limiter.limit(write_limit)
async def approve_request(
    request: Request,
    request_id: uuid.UUID,
    user: CurrentUser = Depends(require_permission("leave:approve")),
    db: AsyncSession = Depends(get_db),
):
    """Approve a pending leave request."""
    return await LeaveWorkflowService.approve_request(db, request_id, user.employee_id)


# ── PUT /requests/{id}/reject ───────────────────────────────────────

@router.put("/requests/{request_id}/reject", response_model=LeaveRequestOut)
@limiter.limit(write_limit)
async def reject_request(
    request: Request,
    request_id: uuid.UUID,
    user: CurrentUser = Depends(require_permission("leave:reject")),
    db: AsyncSession = Depends(get_db),
):
    """Reject a pending leave request. Releases the reserved days."""
    return await LeaveWorkflowService.reject_request(db, request_id, user.employee_id)


# ── PUT /requests/{id}/cancel ───────────────────────────────────────

@router.put("/requests/{request_id}/cancel", response_model=LeaveRequestOut)
@limiter.limit(write_limit)
async def cancel_request(
    request: Request,
    request_id: uuid.UUID,
    user: CurrentUser = Depends(require_permission("leave:cancel_own")),
    db: AsyncSession = Depends(get_db),
):
    """Cancel own pending or approved request. Releases the reserved days."""
    return await LeaveWorkflowService.cancel_request(db, request_id, user.employee_id)


# ── GET /allocations/mine ───────────────────────────────────────────

@router.get("/allocations/mine", response_model=list[LeaveAllocationOut])
async def my_allocations(
    period: Optional[int] = Query(None, ge=1900, le=9999),
    user: CurrentUser = Depends(require_permission("allocation:read_own")),
    db: AsyncSession = Depends(get_db),
):
    """Remaining days per leave type and period for the caller."""
    allocations = await AllocationLedger.list_for_employee(
        db, user.employee_id, period=period,
    )
    return [LeaveAllocationOut.model_validate(a) for a in allocations]


# ── POST /allocations ───────────────────────────────────────────────

@router.post(
    "/allocations",
    response_model=LeaveAllocationOut,
    status_code=201,
)
@limiter.limit(write_limit)
async def provision_allocation(
    request: Request,
    body: LeaveAllocationCreate,
    user: CurrentUser = Depends(require_permission("allocation:provision")),
    db: AsyncSession = Depends(get_db),
):
    """Provision an allocation at the leave type's default days (admin).

    Idempotent: an existing allocation is returned unchanged.
    """
    allocation, _ = await LeaveWorkflowService.provision_allocation(
        db,
        body.employee_id,
        body.leave_type_id,
        period=body.period,
        actor_id=user.employee_id,
    )
    return allocation
