"""Allocation ledger — remaining leave days per employee, leave type and period.

Every change to ``LeaveAllocation.number_of_days`` goes through ``debit`` or
``credit``. Both are single guarded UPDATE statements on a row that was first
locked with ``SELECT ... FOR UPDATE``, so two transitions racing on the same
allocation cannot lose an update. Nothing here commits; the caller's unit of
work decides.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Iterable, Optional

import sqlalchemy as sa
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leave_ledger.common.audit import create_audit_entry
from leave_ledger.common.exceptions import (
    InsufficientBalanceException,
    NotFoundException,
    ValidationException,
)
from leave_ledger.config import settings
from leave_ledger.leave.models import LeaveAllocation, LeaveType

logger = logging.getLogger(__name__)


def _scope(employee_id: uuid.UUID, leave_type_id: uuid.UUID, period: int) -> str:
    return f"{employee_id}/{leave_type_id}/{period}"


def _check_days(days: int) -> None:
    if days < 0:
        raise ValidationException({"days": ["Days must not be negative."]})


class AllocationLedger:
    """Async balance operations on ``LeaveAllocation`` rows."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _find(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        period: int,
        *,
        lock: bool = False,
    ) -> Optional[LeaveAllocation]:
        query = (
            select(LeaveAllocation)
            .where(
                LeaveAllocation.employee_id == employee_id,
                LeaveAllocation.leave_type_id == leave_type_id,
                LeaveAllocation.period == period,
            )
            .execution_options(populate_existing=True)
        )
        if lock:
            query = query.with_for_update()
        result = await db.execute(query)
        return result.scalars().first()

    @staticmethod
    async def _get(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        period: int,
        *,
        lock: bool = False,
    ) -> LeaveAllocation:
        allocation = await AllocationLedger._find(
            db, employee_id, leave_type_id, period, lock=lock,
        )
        if allocation is None:
            raise NotFoundException(
                "LeaveAllocation", _scope(employee_id, leave_type_id, period),
            )
        return allocation

    # ─────────────────────────────────────────────────────────────────
    # Balance
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_balance(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        period: int,
    ) -> int:
        """Remaining days for the scope. Raises NotFoundException if unallocated."""
        allocation = await AllocationLedger._get(db, employee_id, leave_type_id, period)
        return allocation.number_of_days

    @staticmethod
    async def list_for_employee(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        period: Optional[int] = None,
    ) -> list[LeaveAllocation]:
        query = (
            select(LeaveAllocation)
            .join(LeaveType, LeaveAllocation.leave_type_id == LeaveType.id)
            .where(LeaveAllocation.employee_id == employee_id)
            .options(selectinload(LeaveAllocation.leave_type))
            .order_by(LeaveAllocation.period.desc(), LeaveType.name)
        )
        if period is not None:
            query = query.where(LeaveAllocation.period == period)
        result = await db.execute(query)
        return list(result.scalars().all())

    # ─────────────────────────────────────────────────────────────────
    # Debit / Credit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def debit(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        period: int,
        days: int,
    ) -> LeaveAllocation:
        """Take *days* from the allocation.

        Raises InsufficientBalanceException (and changes nothing) when the
        allocation holds fewer than *days*.
        """
        _check_days(days)
        allocation = await AllocationLedger._get(
            db, employee_id, leave_type_id, period, lock=True,
        )
        if days > allocation.number_of_days:
            logger.warning(
                "Debit refused for %s: requested=%d available=%d",
                _scope(employee_id, leave_type_id, period), days, allocation.number_of_days,
            )
            raise InsufficientBalanceException(days, allocation.number_of_days)

        result = await db.execute(
            update(LeaveAllocation)
            .where(
                LeaveAllocation.id == allocation.id,
                LeaveAllocation.number_of_days >= days,
            )
            .values(
                number_of_days=LeaveAllocation.number_of_days - days,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        await db.refresh(allocation)
        if result.rowcount != 1:
            # Balance moved between the locked read and the write.
            raise InsufficientBalanceException(days, allocation.number_of_days)

        logger.debug(
            "Debited %d day(s) from %s, remaining=%d",
            days, _scope(employee_id, leave_type_id, period), allocation.number_of_days,
        )
        return allocation

    @staticmethod
    async def credit(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        period: int,
        days: int,
    ) -> LeaveAllocation:
        """Return *days* to the allocation.

        With ``LEDGER_CLAMP_CREDITS_TO_DEFAULT`` the result never exceeds the
        leave type's ``default_days``.
        """
        _check_days(days)
        allocation = await AllocationLedger._get(
            db, employee_id, leave_type_id, period, lock=True,
        )

        new_value = LeaveAllocation.number_of_days + days
        if settings.LEDGER_CLAMP_CREDITS_TO_DEFAULT:
            cap = (
                await db.execute(
                    select(LeaveType.default_days).where(LeaveType.id == leave_type_id)
                )
            ).scalar_one()
            if allocation.number_of_days + days > cap:
                logger.warning(
                    "Credit on %s clamped at default_days=%d (balance=%d, credit=%d)",
                    _scope(employee_id, leave_type_id, period),
                    cap, allocation.number_of_days, days,
                )
            new_value = sa.case((new_value > cap, cap), else_=new_value)

        await db.execute(
            update(LeaveAllocation)
            .where(LeaveAllocation.id == allocation.id)
            .values(number_of_days=new_value, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        await db.refresh(allocation)

        logger.debug(
            "Credited %d day(s) to %s, remaining=%d",
            days, _scope(employee_id, leave_type_id, period), allocation.number_of_days,
        )
        return allocation

    # ─────────────────────────────────────────────────────────────────
    # Provisioning (on-boarding / new period)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def provision(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        period: int,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> tuple[LeaveAllocation, bool]:
        """Create the allocation at the leave type's default days if missing.

        Returns ``(allocation, created)``. An existing row is left untouched.
        """
        leave_type = await db.get(LeaveType, leave_type_id)
        if leave_type is None:
            raise NotFoundException("LeaveType", str(leave_type_id))

        existing = await AllocationLedger._find(db, employee_id, leave_type_id, period)
        if existing is not None:
            return existing, False

        allocation = LeaveAllocation(
            employee_id=employee_id,
            leave_type_id=leave_type_id,
            period=period,
            number_of_days=leave_type.default_days,
        )
        db.add(allocation)
        await db.flush()

        await create_audit_entry(
            db,
            action="provision",
            entity_type="leave_allocation",
            entity_id=allocation.id,
            actor_id=actor_id,
            new_values={
                "employee_id": str(employee_id),
                "leave_type": leave_type.name,
                "period": period,
                "number_of_days": allocation.number_of_days,
            },
        )
        logger.info(
            "Provisioned %s with %d day(s)",
            _scope(employee_id, leave_type_id, period), allocation.number_of_days,
        )
        return allocation, True

    @staticmethod
    async def provision_period(
        db: AsyncSession,
        period: int,
        employee_ids: Iterable[uuid.UUID],
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> int:
        """Provision every leave type for every employee; return rows created."""
        type_ids = (await db.execute(select(LeaveType.id))).scalars().all()
        created = 0
        for employee_id in employee_ids:
            for leave_type_id in type_ids:
                _, was_created = await AllocationLedger.provision(
                    db, employee_id, leave_type_id, period, actor_id=actor_id,
                )
                created += int(was_created)
        logger.info("Provisioned %d allocation(s) for period %d", created, period)
        return created
