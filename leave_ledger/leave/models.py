"""Leave ORM models: LeaveType, LeaveAllocation, LeaveRequest."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leave_ledger.common.constants import RequestState
from leave_ledger.database import Base


class LeaveType(Base):
    __tablename__ = "leave_types"
    __table_args__ = (
        sa.CheckConstraint("default_days >= 0", name="ck_leave_type_default_days"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(100), unique=True, nullable=False)
    default_days: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, server_default=sa.text("0")
    )
    date_created: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    allocations: Mapped[list[LeaveAllocation]] = relationship(back_populates="leave_type")
    requests: Mapped[list[LeaveRequest]] = relationship(back_populates="leave_type")

    def __repr__(self) -> str:
        return f"<LeaveType {self.name!r} ({self.default_days}d)>"


class LeaveAllocation(Base):
    """Remaining days for one (employee, leave type, period).

    ``number_of_days`` is changed only by the allocation ledger.
    """

    __tablename__ = "leave_allocations"
    __table_args__ = (
        sa.UniqueConstraint(
            "employee_id", "leave_type_id", "period", name="uq_leave_allocation"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    period: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    number_of_days: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    date_created: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    leave_type: Mapped[LeaveType] = relationship(back_populates="allocations")


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.CheckConstraint("start_date <= end_date", name="ck_leave_request_dates"),
        sa.Index(
            "ix_leave_requests_employee_type",
            "requesting_employee_id",
            "leave_type_id",
        ),
        sa.Index("ix_leave_requests_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    requesting_employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False
    )
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    # Fixed at submission; never recomputed from the date range.
    days_requested: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    date_requested: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False
    )
    date_actioned: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    status: Mapped[RequestState] = mapped_column(
        sa.Enum(RequestState, name="request_state", create_type=False),
        nullable=False,
        default=RequestState.pending,
        server_default=RequestState.pending.value,
    )
    approved_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    cancelled: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False, server_default=sa.false()
    )
    request_comments: Mapped[Optional[str]] = mapped_column(sa.String(300))

    # Relationships
    leave_type: Mapped[LeaveType] = relationship(back_populates="requests")

    @property
    def approved(self) -> Optional[bool]:
        """Tri-state decision: None while pending, True approved, False rejected."""
        if self.status == RequestState.pending:
            return None
        return self.status == RequestState.approved

    @property
    def period(self) -> int:
        """Allocation period the request drew its days from."""
        return self.date_requested.year

    def __repr__(self) -> str:
        flag = " cancelled" if self.cancelled else ""
        return f"<LeaveRequest {self.id} {self.status.value}{flag}>"
