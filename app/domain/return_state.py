"""Vehicle return state machine.

States: none → requested → approved | rejected

- approved is terminal and completes the booking
- rejected behaves like none: the return may be requested again
"""

from enum import Enum

from app.core.exceptions import InvalidStateError, ValidationError
from app.domain.booking_state import assert_can_request_return
from app.models.booking import Booking


class ReturnState(str, Enum):
    """Return request states."""

    NONE = "none"
    REQUESTED = "requested"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReturnAction(str, Enum):
    """Actions on a return request."""

    REQUEST = "request"
    APPROVE = "approve"
    REJECT = "reject"


RETURN_TRANSITIONS: dict[ReturnState, set[ReturnState]] = {
    ReturnState.NONE: {ReturnState.REQUESTED},
    ReturnState.REJECTED: {ReturnState.REQUESTED},
    ReturnState.REQUESTED: {ReturnState.APPROVED, ReturnState.REJECTED},
    ReturnState.APPROVED: set(),
}

ACTION_TARGETS: dict[ReturnAction, ReturnState] = {
    ReturnAction.REQUEST: ReturnState.REQUESTED,
    ReturnAction.APPROVE: ReturnState.APPROVED,
    ReturnAction.REJECT: ReturnState.REJECTED,
}


def get_return_state(booking: Booking) -> ReturnState:
    """Derive the return state from the booking's return flags."""
    if booking.return_approved:
        return ReturnState.APPROVED
    if booking.return_requested:
        return ReturnState.REQUESTED
    if booking.return_rejected_at is not None:
        return ReturnState.REJECTED
    return ReturnState.NONE


def assert_return_transition(booking: Booking, action: str | ReturnAction) -> ReturnState:
    """Validate a return action against the booking and return the target state.

    Raises:
        ValidationError: Unknown action
        InvalidStateError: Action not allowed in the current state
    """
    try:
        action = ReturnAction(action)
    except ValueError:
        raise ValidationError("Invalid action. Must be request, approve, or reject")

    current = get_return_state(booking)

    if action is ReturnAction.REQUEST:
        assert_can_request_return(booking.status)
        if current is ReturnState.REQUESTED:
            raise InvalidStateError("Return already requested")
    elif action is ReturnAction.APPROVE:
        if not booking.return_requested:
            raise InvalidStateError("No return request to approve")
        if current is ReturnState.APPROVED:
            raise InvalidStateError("Return already approved")
    else:
        if not booking.return_requested:
            raise InvalidStateError("No return request to reject")
        if current is ReturnState.APPROVED:
            raise InvalidStateError("Return already approved, cannot reject")

    target = ACTION_TARGETS[action]
    if target not in RETURN_TRANSITIONS[current]:
        raise InvalidStateError(f"Invalid return transition: {current.value} → {target.value}")
    return target
