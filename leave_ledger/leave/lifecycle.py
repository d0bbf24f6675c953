"""Leave request state machine.

A request carries two independent axes:

  - ``status``: pending → approved | rejected (decided once)
  - ``cancelled``: a flag set at most once, from pending or approved

So "approved, then cancelled" is representable, and rejected requests can
never be cancelled. Everything here is pure; the workflow service applies the
results to the database.
"""

from __future__ import annotations

from datetime import date

from leave_ledger.common.constants import LeaveAction, RequestState
from leave_ledger.common.exceptions import InvalidTransitionException, ValidationException

# Source states (on the decision axis) each action may start from.
# Cancelled requests are excluded for every action.
_ALLOWED_FROM: dict[LeaveAction, frozenset[RequestState]] = {
    LeaveAction.approve: frozenset({RequestState.pending}),
    LeaveAction.reject: frozenset({RequestState.pending}),
    LeaveAction.cancel: frozenset({RequestState.pending, RequestState.approved}),
}

# Actions that hand the reserved days back to the ledger.
RELEASING_ACTIONS: frozenset[LeaveAction] = frozenset(
    {LeaveAction.reject, LeaveAction.cancel}
)


def allowed_source_states(action: LeaveAction) -> frozenset[RequestState]:
    return _ALLOWED_FROM[action]


def describe_state(status: RequestState, cancelled: bool) -> str:
    """Human-readable combined state, e.g. ``approved_cancelled``."""
    if cancelled:
        return f"{status.value}_cancelled"
    return status.value


def allowed_actions(status: RequestState, cancelled: bool) -> list[LeaveAction]:
    """Actions that may still be applied to a request in this state."""
    if cancelled:
        return []
    return [action for action, sources in _ALLOWED_FROM.items() if status in sources]


def ensure_transition_allowed(
    status: RequestState,
    cancelled: bool,
    action: LeaveAction,
) -> None:
    """Raise ``InvalidTransitionException`` if *action* is not permitted."""
    if cancelled or status not in _ALLOWED_FROM[action]:
        raise InvalidTransitionException(action.value, describe_state(status, cancelled))


def target_state(status: RequestState, action: LeaveAction) -> tuple[RequestState, bool]:
    """Return ``(status, cancelled)`` after applying *action*."""
    if action == LeaveAction.approve:
        return RequestState.approved, False
    if action == LeaveAction.reject:
        return RequestState.rejected, False
    return status, True


# ── Date range ──────────────────────────────────────────────────────


def validate_date_range(start_date: date, end_date: date) -> None:
    if start_date > end_date:
        raise ValidationException(
            {"start_date": ["Start date cannot be after the end date."]}
        )


def compute_days_requested(start_date: date, end_date: date) -> int:
    """Whole days between start and end; a same-day request is 0 days."""
    validate_date_range(start_date, end_date)
    return (end_date - start_date).days
