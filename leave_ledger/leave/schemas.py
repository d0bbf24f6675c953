"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out                → response bodies (read)
  - *Brief              → compact embedded representations
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from leave_ledger.common.constants import LeaveAction, RequestState
from leave_ledger.common.pagination import PaginatedResponse
from leave_ledger.config import settings
from leave_ledger.leave import lifecycle


# ═════════════════════════════════════════════════════════════════════
# Leave Type
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeBrief(BaseModel):
    """Minimal leave type info embedded in leave responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str


class LeaveTypeOut(BaseModel):
    """Full leave type representation."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    default_days: int
    date_created: Optional[datetime] = None


# ═════════════════════════════════════════════════════════════════════
# Leave Allocation
# ═════════════════════════════════════════════════════════════════════


class LeaveAllocationOut(BaseModel):
    """Remaining days for one leave type and period."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    period: int
    number_of_days: int
    date_created: Optional[datetime] = None

    leave_type: Optional[LeaveTypeBrief] = None


class LeaveAllocationCreate(BaseModel):
    """Admin payload for provisioning an allocation at the type's default days."""

    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    period: Optional[int] = Field(
        None, ge=1900, le=9999, description="Calendar year; defaults to the current year",
    )


# ═════════════════════════════════════════════════════════════════════
# Leave Request: Create
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for submitting a leave request."""

    leave_type_id: uuid.UUID
    start_date: date = Field(..., description="Leave start date")
    end_date: date = Field(..., description="Leave end date")
    request_comments: Optional[str] = Field(None, description="Optional note for the approver")

    @field_validator("request_comments")
    @classmethod
    def comments_within_limit(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if len(v) > settings.REQUEST_COMMENTS_MAX_LENGTH:
            raise ValueError(
                f"request_comments must be at most {settings.REQUEST_COMMENTS_MAX_LENGTH} characters."
            )
        return v or None

    @model_validator(mode="after")
    def validate_dates(self) -> "LeaveRequestCreate":
        if self.start_date > self.end_date:
            raise ValueError("Start date cannot be after the end date.")
        return self


# ═════════════════════════════════════════════════════════════════════
# Leave Request: Response
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    """Full leave request response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    requesting_employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    days_requested: int
    date_requested: datetime
    date_actioned: Optional[datetime] = None
    status: RequestState
    approved: Optional[bool] = None
    approved_by_id: Optional[uuid.UUID] = None
    cancelled: bool = False
    request_comments: Optional[str] = None
    period: int

    # Derived by service
    state: str = ""
    allowed_actions: list[LeaveAction] = Field(default_factory=list)
    leave_type: Optional[LeaveTypeBrief] = None

    @model_validator(mode="after")
    def derive_state(self) -> "LeaveRequestOut":
        self.state = lifecycle.describe_state(self.status, self.cancelled)
        self.allowed_actions = lifecycle.allowed_actions(self.status, self.cancelled)
        return self


# ═════════════════════════════════════════════════════════════════════
# Listings
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestSummary(BaseModel):
    """Admin counters derived from the requests table."""

    total: int = 0
    approved: int = 0
    pending: int = 0
    rejected: int = 0
    cancelled: int = 0


class AdminLeaveRequestList(PaginatedResponse[LeaveRequestOut]):
    """All requests (paginated) with aggregate counts."""

    summary: LeaveRequestSummary


class EmployeeLeaveOverview(BaseModel):
    """An employee's allocations and requests."""

    employee_id: uuid.UUID
    allocations: list[LeaveAllocationOut]
    requests: list[LeaveRequestOut]
