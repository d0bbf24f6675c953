"""Leave service layer — workflow coordinator and read-only leave type catalog.

Business logic:
  - Submission reserves days on the ledger (reserve-on-submit)
  - Approval changes only the request; the days are already reserved
  - Rejection and cancellation release the reservation back to the ledger
  - Each transition writes the request and the ledger in the caller's
    transaction; a guarded UPDATE on the request makes concurrent
    transitions on the same request mutually exclusive
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leave_ledger.common.audit import create_audit_entry
from leave_ledger.common.constants import LeaveAction, RequestState
from leave_ledger.common.exceptions import (
    ForbiddenException,
    InvalidTransitionException,
    NotFoundException,
)
from leave_ledger.common.pagination import PaginationParams, paginate
from leave_ledger.leave import lifecycle
from leave_ledger.leave.ledger import AllocationLedger
from leave_ledger.leave.models import LeaveAllocation, LeaveRequest, LeaveType
from leave_ledger.leave.schemas import (
    AdminLeaveRequestList,
    EmployeeLeaveOverview,
    LeaveAllocationOut,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveRequestSummary,
    LeaveTypeOut,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(now: Optional[datetime]) -> datetime:
    """Action timestamp in UTC. Naive datetimes are taken to be UTC already."""
    if now is None:
        return _utcnow()
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


# ═════════════════════════════════════════════════════════════════════
# LeaveCatalogService
# ═════════════════════════════════════════════════════════════════════


class LeaveCatalogService:
    """Read-only access to leave types."""

    @staticmethod
    async def get_leave_type(db: AsyncSession, leave_type_id: uuid.UUID) -> LeaveType:
        leave_type = await db.get(LeaveType, leave_type_id)
        if leave_type is None:
            raise NotFoundException("LeaveType", str(leave_type_id))
        return leave_type

    @staticmethod
    async def list_leave_types(db: AsyncSession) -> list[LeaveTypeOut]:
        result = await db.execute(select(LeaveType).order_by(LeaveType.name))
        return [LeaveTypeOut.model_validate(lt) for lt in result.scalars().all()]


# ═════════════════════════════════════════════════════════════════════
# LeaveWorkflowService
# ═════════════════════════════════════════════════════════════════════


class LeaveWorkflowService:
    """Entry points for submitting and actioning leave requests."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _get_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        *,
        lock: bool = False,
    ) -> LeaveRequest:
        query = (
            select(LeaveRequest)
            .where(LeaveRequest.id == request_id)
            .options(selectinload(LeaveRequest.leave_type))
            .execution_options(populate_existing=True)
        )
        if lock:
            query = query.with_for_update()
        result = await db.execute(query)
        leave_req = result.scalars().first()
        if leave_req is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return leave_req

    @staticmethod
    async def _apply_transition(
        db: AsyncSession,
        leave_req: LeaveRequest,
        action: LeaveAction,
        **values,
    ) -> None:
        """Move *leave_req* along *action* and settle the ledger.

        The write is guarded on the state *action* may start from, so a
        request that changed underneath us (a concurrent approve/cancel)
        raises InvalidTransitionException instead of being overwritten.
        Releasing actions credit the reserved days back to the period the
        request was submitted in.
        """
        lifecycle.ensure_transition_allowed(leave_req.status, leave_req.cancelled, action)
        status, cancelled = lifecycle.target_state(leave_req.status, action)
        # Cancel only sets the flag; the decision axis may have moved concurrently.
        changes = {"cancelled": True} if cancelled else {"status": status}

        result = await db.execute(
            update(LeaveRequest)
            .where(
                LeaveRequest.id == leave_req.id,
                LeaveRequest.status.in_(list(lifecycle.allowed_source_states(action))),
                LeaveRequest.cancelled.is_(False),
            )
            .values(**changes, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = await LeaveWorkflowService._get_request(db, leave_req.id)
            current_state = lifecycle.describe_state(current.status, current.cancelled)
            logger.info(
                "Lost transition race: %s on %s (now %s)",
                action.value, leave_req.id, current_state,
            )
            raise InvalidTransitionException(action.value, current_state)

        if action in lifecycle.RELEASING_ACTIONS:
            await AllocationLedger.credit(
                db,
                leave_req.requesting_employee_id,
                leave_req.leave_type_id,
                leave_req.period,
                leave_req.days_requested,
            )

    @staticmethod
    def _build_request_response(req: LeaveRequest) -> LeaveRequestOut:
        return LeaveRequestOut.model_validate(req)

    # ─────────────────────────────────────────────────────────────────
    # Create
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def create_request(
        db: AsyncSession,
        employee_id: uuid.UUID,
        data: LeaveRequestCreate,
        *,
        now: Optional[datetime] = None,
    ) -> LeaveRequestOut:
        """Submit a leave request and reserve its days.

        The period is the calendar year of submission. Fails with
        NotFoundException (unknown type / no allocation),
        ValidationException (bad range) or InsufficientBalanceException;
        on failure neither the ledger nor the request table changes.
        """
        now = _as_utc(now)
        days = lifecycle.compute_days_requested(data.start_date, data.end_date)
        leave_type = await LeaveCatalogService.get_leave_type(db, data.leave_type_id)
        period = now.year

        await AllocationLedger.debit(db, employee_id, leave_type.id, period, days)

        leave_request = LeaveRequest(
            requesting_employee_id=employee_id,
            leave_type_id=leave_type.id,
            start_date=data.start_date,
            end_date=data.end_date,
            days_requested=days,
            date_requested=now,
            status=RequestState.pending,
            cancelled=False,
            request_comments=data.request_comments,
        )
        db.add(leave_request)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="leave_request",
            entity_id=leave_request.id,
            actor_id=employee_id,
            new_values={
                "leave_type": leave_type.name,
                "start_date": data.start_date.isoformat(),
                "end_date": data.end_date.isoformat(),
                "days_requested": days,
                "period": period,
                "status": RequestState.pending.value,
            },
        )
        logger.info(
            "Leave request %s submitted by %s: %d day(s) of %s for %d",
            leave_request.id, employee_id, days, leave_type.name, period,
        )

        leave_req = await LeaveWorkflowService._get_request(db, leave_request.id)
        return LeaveWorkflowService._build_request_response(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Approve
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def approve_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        approver_id: uuid.UUID,
        *,
        now: Optional[datetime] = None,
    ) -> LeaveRequestOut:
        """Approve a pending request. The ledger is not touched."""
        now = _as_utc(now)
        leave_req = await LeaveWorkflowService._get_request(db, request_id, lock=True)

        await LeaveWorkflowService._apply_transition(
            db,
            leave_req,
            LeaveAction.approve,
            approved_by_id=approver_id,
            date_actioned=now,
        )

        await create_audit_entry(
            db,
            action="approve",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=approver_id,
            old_values={"status": RequestState.pending.value},
            new_values={"status": RequestState.approved.value},
        )
        logger.info("Leave request %s approved by %s", request_id, approver_id)

        leave_req = await LeaveWorkflowService._get_request(db, request_id)
        return LeaveWorkflowService._build_request_response(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Reject
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def reject_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        approver_id: uuid.UUID,
        *,
        now: Optional[datetime] = None,
    ) -> LeaveRequestOut:
        """Reject a pending request and release its reserved days."""
        now = _as_utc(now)
        leave_req = await LeaveWorkflowService._get_request(db, request_id, lock=True)

        await LeaveWorkflowService._apply_transition(
            db,
            leave_req,
            LeaveAction.reject,
            approved_by_id=approver_id,
            date_actioned=now,
        )

        await create_audit_entry(
            db,
            action="reject",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=approver_id,
            old_values={"status": RequestState.pending.value},
            new_values={
                "status": RequestState.rejected.value,
                "days_released": leave_req.days_requested,
            },
        )
        logger.info(
            "Leave request %s rejected by %s, %d day(s) released",
            request_id, approver_id, leave_req.days_requested,
        )

        leave_req = await LeaveWorkflowService._get_request(db, request_id)
        return LeaveWorkflowService._build_request_response(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Cancel
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def cancel_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        employee_id: uuid.UUID,
        *,
        now: Optional[datetime] = None,
    ) -> LeaveRequestOut:
        """Cancel own pending or approved request and release its days."""
        now = _as_utc(now)
        leave_req = await LeaveWorkflowService._get_request(db, request_id, lock=True)

        if leave_req.requesting_employee_id != employee_id:
            raise ForbiddenException("You can only cancel your own leave requests.")

        old_state = lifecycle.describe_state(leave_req.status, leave_req.cancelled)
        await LeaveWorkflowService._apply_transition(db, leave_req, LeaveAction.cancel)

        await create_audit_entry(
            db,
            action="cancel",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=employee_id,
            old_values={"state": old_state},
            new_values={
                "state": lifecycle.describe_state(leave_req.status, True),
                "days_released": leave_req.days_requested,
                "cancelled_at": now.isoformat(),
            },
        )
        logger.info(
            "Leave request %s cancelled by %s (was %s), %d day(s) released",
            request_id, employee_id, old_state, leave_req.days_requested,
        )

        leave_req = await LeaveWorkflowService._get_request(db, request_id)
        return LeaveWorkflowService._build_request_response(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        *,
        viewer_id: uuid.UUID,
        is_admin: bool = False,
    ) -> LeaveRequestOut:
        """Request details, visible to its owner and to admins."""
        leave_req = await LeaveWorkflowService._get_request(db, request_id)
        if not is_admin and leave_req.requesting_employee_id != viewer_id:
            raise ForbiddenException("You can only view your own leave requests.")
        return LeaveWorkflowService._build_request_response(leave_req)

    @staticmethod
    async def list_for_employee(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        period: Optional[int] = None,
    ) -> EmployeeLeaveOverview:
        """The employee's allocations and leave requests, newest first."""
        allocations = await AllocationLedger.list_for_employee(
            db, employee_id, period=period,
        )

        query = (
            select(LeaveRequest)
            .where(LeaveRequest.requesting_employee_id == employee_id)
            .options(selectinload(LeaveRequest.leave_type))
            .order_by(LeaveRequest.date_requested.desc())
        )
        result = await db.execute(query)
        requests = result.scalars().all()
        if period is not None:
            requests = [r for r in requests if r.period == period]

        return EmployeeLeaveOverview(
            employee_id=employee_id,
            allocations=[LeaveAllocationOut.model_validate(a) for a in allocations],
            requests=[LeaveWorkflowService._build_request_response(r) for r in requests],
        )

    @staticmethod
    async def get_summary(db: AsyncSession) -> LeaveRequestSummary:
        """Count requests by state. Pending/approved exclude cancelled ones."""

        def _count_where(*conditions) -> sa.ColumnElement:
            return func.coalesce(func.sum(sa.case((sa.and_(*conditions), 1), else_=0)), 0)

        not_cancelled = LeaveRequest.cancelled.is_(False)
        row = (
            await db.execute(
                select(
                    func.count(LeaveRequest.id),
                    _count_where(LeaveRequest.status == RequestState.approved, not_cancelled),
                    _count_where(LeaveRequest.status == RequestState.pending, not_cancelled),
                    _count_where(LeaveRequest.status == RequestState.rejected),
                    _count_where(LeaveRequest.cancelled.is_(True)),
                )
            )
        ).one()
        total, approved, pending, rejected, cancelled = (int(v) for v in row)
        return LeaveRequestSummary(
            total=total,
            approved=approved,
            pending=pending,
            rejected=rejected,
            cancelled=cancelled,
        )

    @staticmethod
    async def list_all(
        db: AsyncSession,
        pagination: PaginationParams,
        *,
        status: Optional[RequestState] = None,
        employee_id: Optional[uuid.UUID] = None,
        cancelled: Optional[bool] = None,
    ) -> AdminLeaveRequestList:
        """Admin view: a page of requests plus counts over all requests.

        Filtering on pending or approved leaves cancelled requests out, as the
        summary does, unless ``cancelled`` is given explicitly.
        """
        query = (
            select(LeaveRequest)
            .options(selectinload(LeaveRequest.leave_type))
            .order_by(LeaveRequest.date_requested.desc(), LeaveRequest.id)
        )
        if status is not None:
            query = query.where(LeaveRequest.status == status)
            if cancelled is None and status != RequestState.rejected:
                cancelled = False
        if cancelled is not None:
            query = query.where(LeaveRequest.cancelled.is_(cancelled))
        if employee_id is not None:
            query = query.where(LeaveRequest.requesting_employee_id == employee_id)

        rows, meta = await paginate(db, query, pagination)
        summary = await LeaveWorkflowService.get_summary(db)

        return AdminLeaveRequestList(
            summary=summary,
            data=[LeaveWorkflowService._build_request_response(r) for r in rows],
            meta=meta,
        )

    # ─────────────────────────────────────────────────────────────────
    # Allocations
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def provision_allocation(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        *,
        period: Optional[int] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> tuple[LeaveAllocationOut, bool]:
        """Provision an allocation (defaults to the current period)."""
        target_period = period or _utcnow().year
        allocation, created = await AllocationLedger.provision(
            db, employee_id, leave_type_id, target_period, actor_id=actor_id,
        )
        result = await db.execute(
            select(LeaveAllocation)
            .where(LeaveAllocation.id == allocation.id)
            .options(selectinload(LeaveAllocation.leave_type))
        )
        return LeaveAllocationOut.model_validate(result.scalars().one()), created
