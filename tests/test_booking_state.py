"""Tests for booking status guards and activation requirements."""

from types import SimpleNamespace

import pytest

from app.core.exceptions import InvalidStateError
from app.domain.booking_state import (
    activation_requirements,
    assert_awaiting_partner_response,
    assert_can_activate,
    assert_can_cancel,
    assert_can_finish,
    can_auto_activate,
)


def _booking(**overrides):
    values = dict(
        status="partner_accepted",
        payment_status="completed",
        insurance_required=False,
        driver_insurance_valid=False,
        partner_provides_insurance=False,
        requires_document_verification=False,
        documents_approved=False,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.mark.parametrize("status", ["completed", "cancelled", "rejected"])
def test_terminal_bookings_cannot_be_cancelled(status):
    with pytest.raises(InvalidStateError) as exc:
        assert_can_cancel(status)
    assert exc.value.detail == f"Cannot cancel booking with status: {status}"


@pytest.mark.parametrize("status", ["pending_partner_approval", "partner_accepted", "active"])
def test_open_bookings_can_be_cancelled(status):
    assert_can_cancel(status)


def test_guard_messages():
    with pytest.raises(InvalidStateError, match="Booking is no longer pending approval. Current status: active"):
        assert_awaiting_partner_response("active")
    with pytest.raises(InvalidStateError, match="Cannot activate booking with status: completed"):
        assert_can_activate("completed")
    with pytest.raises(InvalidStateError, match="Cannot finish booking with status: pending_partner_approval"):
        assert_can_finish("pending_partner_approval")


def test_requirements_listed_in_order():
    booking = _booking(
        payment_status="pending",
        insurance_required=True,
        requires_document_verification=True,
    )

    assert activation_requirements(booking) == [
        "Payment must be confirmed",
        "Valid insurance certificate required",
        "Document verification must be completed",
    ]


def test_partner_insurance_satisfies_requirement():
    booking = _booking(insurance_required=True, partner_provides_insurance=True)

    assert activation_requirements(booking) == []
    assert can_auto_activate(booking)


def test_running_payment_plan_allows_manual_activation_only():
    booking = _booking(payment_status="active")

    assert activation_requirements(booking) == []
    assert not can_auto_activate(booking)
