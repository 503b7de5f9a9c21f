"""Booking status rules.

Lifecycle: a driver request starts at pending_partner_approval; the partner
accepts (partner_accepted, or pending_insurance_upload while cover is
missing) or rejects; acceptance leads to active once payment, insurance and
documents are in order; active bookings finish or are returned as
completed. Any non-terminal booking may be cancelled.
"""

from enum import Enum
from typing import Any

from app.core.exceptions import InvalidStateError


class BookingStatus(str, Enum):
    """Booking lifecycle states."""

    PENDING_PARTNER_APPROVAL = "pending_partner_approval"
    PENDING_ADMIN_APPROVAL = "pending_admin_approval"
    PENDING_SIGNATURE = "pending_signature"
    PENDING_INSURANCE_UPLOAD = "pending_insurance_upload"
    PARTNER_ACCEPTED = "partner_accepted"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


TERMINAL_STATUSES = {
    BookingStatus.COMPLETED.value,
    BookingStatus.CANCELLED.value,
    BookingStatus.REJECTED.value,
}

VEHICLE_CHANGE_STATUSES = {
    BookingStatus.ACTIVE.value,
    BookingStatus.PARTNER_ACCEPTED.value,
    BookingStatus.CONFIRMED.value,
    BookingStatus.PENDING_INSURANCE_UPLOAD.value,
}

RETURN_REQUEST_STATUSES = {
    BookingStatus.PARTNER_ACCEPTED.value,
    BookingStatus.ACTIVE.value,
    BookingStatus.IN_PROGRESS.value,
}

VEHICLE_RELEASE_STATUSES = {
    BookingStatus.ACTIVE.value,
    BookingStatus.IN_PROGRESS.value,
    BookingStatus.PARTNER_ACCEPTED.value,
    BookingStatus.PENDING_INSURANCE_UPLOAD.value,
}


def assert_can_change_vehicle(status: str) -> None:
    if status not in VEHICLE_CHANGE_STATUSES:
        raise InvalidStateError(f"Cannot change vehicle for booking with status: {status}")


def assert_can_request_return(status: str) -> None:
    if status not in RETURN_REQUEST_STATUSES:
        raise InvalidStateError(f"Cannot request return. Booking status: {status}")


def assert_can_release_vehicle(status: str) -> None:
    if status not in VEHICLE_RELEASE_STATUSES:
        raise InvalidStateError(f"Cannot release vehicle for booking with status: {status}")

PARTNER_RESPONSE_STATUSES = {BookingStatus.PENDING_PARTNER_APPROVAL.value}

ACTIVATION_STATUSES = {
    BookingStatus.PARTNER_ACCEPTED.value,
    BookingStatus.PENDING_INSURANCE_UPLOAD.value,
    BookingStatus.CONFIRMED.value,
}

FINISH_STATUSES = {
    BookingStatus.ACTIVE.value,
    BookingStatus.IN_PROGRESS.value,
    BookingStatus.PARTNER_ACCEPTED.value,
}

# booking.payment_status values that let an accepted booking go straight to active
PAYMENT_CONFIRMED_STATUSES = {"completed", "paid", "confirmed"}
# A manual activation also accepts a running weekly payment plan
ACTIVATION_PAYMENT_STATUSES = PAYMENT_CONFIRMED_STATUSES | {"active"}


def assert_awaiting_partner_response(status: str) -> None:
    if status not in PARTNER_RESPONSE_STATUSES:
        raise InvalidStateError(f"Booking is no longer pending approval. Current status: {status}")


def assert_can_activate(status: str) -> None:
    if status not in ACTIVATION_STATUSES:
        raise InvalidStateError(f"Cannot activate booking with status: {status}")


def assert_can_finish(status: str) -> None:
    if status not in FINISH_STATUSES:
        raise InvalidStateError(f"Cannot finish booking with status: {status}")


def assert_can_cancel(status: str) -> None:
    if status in TERMINAL_STATUSES:
        raise InvalidStateError(f"Cannot cancel booking with status: {status}")


def insurance_satisfied(booking: Any) -> bool:
    return bool(
        not booking.insurance_required
        or booking.driver_insurance_valid
        or booking.partner_provides_insurance
    )


def documents_satisfied(booking: Any) -> bool:
    return bool(not booking.requires_document_verification or booking.documents_approved)


def activation_checks(booking: Any) -> dict[str, bool]:
    """Readiness flags shown to the partner before activating."""
    return {
        "valid_status": booking.status in ACTIVATION_STATUSES,
        "payment_confirmed": booking.payment_status in PAYMENT_CONFIRMED_STATUSES,
        "insurance_valid": insurance_satisfied(booking),
        "documents_approved": documents_satisfied(booking),
    }


def activation_requirements(booking: Any) -> list[str]:
    """Unmet conditions for a manual activation, in display order."""
    requirements = []
    if booking.payment_status not in ACTIVATION_PAYMENT_STATUSES:
        requirements.append("Payment must be confirmed")
    if not insurance_satisfied(booking):
        requirements.append("Valid insurance certificate required")
    if not documents_satisfied(booking):
        requirements.append("Document verification must be completed")
    return requirements


def can_auto_activate(booking: Any) -> bool:
    """Whether partner acceptance can move the booking straight to active."""
    return (
        booking.payment_status in PAYMENT_CONFIRMED_STATUSES
        and insurance_satisfied(booking)
        and documents_satisfied(booking)
    )
