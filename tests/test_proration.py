"""Tests for the vehicle change billing adjustment."""

from datetime import UTC, date, datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.core.exceptions import ValidationError
from app.domain.proration import (
    calculate_vehicle_change_adjustment,
    days_elapsed,
    format_rate_change,
    paid_days_total,
    round_currency,
    sum_actual_paid,
)

START = date(2024, 1, 1)
THREE_DAYS_IN = datetime(2024, 1, 4, tzinfo=UTC)


def test_prorated_upgrade_three_days_into_paid_week():
    result = calculate_vehicle_change_adjustment(
        old_weekly_rate=Decimal("280"),
        new_weekly_rate=Decimal("350"),
        adjustment_type="prorated",
        actual_paid=Decimal("280"),
        booking_status="active",
        start_date=START,
        now=THREE_DAYS_IN,
    )

    assert result.amount == Decimal("40.00")
    assert result.days_used == 3
    assert result.remaining_days == 4
    assert result.rate_difference == Decimal("70")
    assert result.reason == "Prorated rate adjustment: 4 paid days remaining at +£70/week"


def test_prorated_downgrade_is_a_refund():
    result = calculate_vehicle_change_adjustment(
        old_weekly_rate="350",
        new_weekly_rate="280",
        adjustment_type="prorated",
        actual_paid="350",
        start_date=START,
        now=THREE_DAYS_IN,
    )

    assert result.amount == Decimal("-40.00")
    assert "£-70/week" in result.reason


@pytest.mark.parametrize(
    "old_rate, new_rate",
    [("280", "350"), ("350", "280"), ("199.99", "249.50"), ("0", "300")],
)
def test_immediate_charges_full_rate_difference(old_rate, new_rate):
    result = calculate_vehicle_change_adjustment(
        old_weekly_rate=old_rate,
        new_weekly_rate=new_rate,
        adjustment_type="immediate",
        actual_paid="1000",
        start_date=START,
        now=THREE_DAYS_IN,
    )

    assert result.amount == Decimal(new_rate) - Decimal(old_rate)
    assert result.reason.startswith("Immediate rate adjustment: ")


def test_next_cycle_charges_nothing_now():
    result = calculate_vehicle_change_adjustment(
        old_weekly_rate="280",
        new_weekly_rate="350",
        adjustment_type="next_cycle",
        actual_paid="560",
        start_date=START,
        now=THREE_DAYS_IN,
    )

    assert result.amount == Decimal("0.00")
    assert result.reason == "Rate change will apply to next billing cycle: +£70/week"


def test_prorated_is_zero_when_paid_days_are_used_up():
    result = calculate_vehicle_change_adjustment(
        old_weekly_rate="280",
        new_weekly_rate="350",
        adjustment_type="prorated",
        actual_paid="280",
        start_date=START,
        now=datetime(2024, 1, 10, tzinfo=UTC),
    )

    assert result.remaining_days == 0
    assert result.amount == Decimal("0.00")


def test_prorated_with_nothing_paid_is_zero():
    result = calculate_vehicle_change_adjustment(
        old_weekly_rate="280",
        new_weekly_rate="350",
        actual_paid="0",
        start_date=START,
        now=THREE_DAYS_IN,
    )

    assert result.amount == Decimal("0.00")


def test_non_active_booking_counts_every_paid_day_as_remaining():
    # Not started yet: nothing has been used
    result = calculate_vehicle_change_adjustment(
        old_weekly_rate="280",
        new_weekly_rate="350",
        actual_paid="280",
        booking_status="partner_accepted",
        start_date=START,
        now=datetime(2024, 3, 1, tzinfo=UTC),
    )

    assert result.days_used == 0
    assert result.remaining_days == 7
    assert result.amount == Decimal("70.00")


def test_zero_old_rate_skips_day_computation():
    prorated = calculate_vehicle_change_adjustment(
        old_weekly_rate="0", new_weekly_rate="300", actual_paid="500", start_date=START, now=THREE_DAYS_IN
    )
    immediate = calculate_vehicle_change_adjustment(
        old_weekly_rate="0", new_weekly_rate="300", adjustment_type="immediate", actual_paid="500"
    )

    assert prorated.remaining_days == 0
    assert prorated.amount == Decimal("0.00")
    assert immediate.amount == Decimal("300.00")


def test_amount_is_rounded_half_up_to_pennies():
    # 10 * 4 / 7 = 5.714...
    result = calculate_vehicle_change_adjustment(
        old_weekly_rate="100.00",
        new_weekly_rate="110.00",
        actual_paid="100.00",
        start_date=START,
        now=THREE_DAYS_IN,
    )

    assert result.amount == Decimal("5.71")
    assert result.amount.as_tuple().exponent == -2


def test_round_currency_half_up():
    assert round_currency(Decimal("0.125")) == Decimal("0.13")
    assert round_currency(Decimal("-0.125")) == Decimal("-0.13")
    assert round_currency(Decimal("2.004")) == Decimal("2.00")


def test_unknown_adjustment_type_is_rejected():
    with pytest.raises(ValidationError):
        calculate_vehicle_change_adjustment("280", "350", adjustment_type="weekly")


def test_negative_rates_are_rejected():
    with pytest.raises(ValidationError):
        calculate_vehicle_change_adjustment("-1", "350")


def test_paid_days_total_counts_whole_weeks():
    assert paid_days_total(Decimal("280"), Decimal("280")) == 7
    assert paid_days_total(Decimal("300"), Decimal("280")) == 14
    assert paid_days_total(Decimal("0"), Decimal("280")) == 0
    assert paid_days_total(Decimal("280"), Decimal("0")) == 0


def test_days_elapsed_rounds_partial_days_up():
    assert days_elapsed(START, datetime(2024, 1, 1, tzinfo=UTC)) == 0
    assert days_elapsed(START, datetime(2024, 1, 2, 6, tzinfo=UTC)) == 2
    assert days_elapsed(START, datetime(2023, 12, 25, tzinfo=UTC)) == 0
    assert days_elapsed(None, THREE_DAYS_IN) == 0


def test_sum_actual_paid_counts_settled_instructions_only():
    instructions = [
        SimpleNamespace(status="completed", amount=Decimal("280.00")),
        SimpleNamespace(status="received", amount=Decimal("280.00")),
        SimpleNamespace(status="pending", amount=Decimal("280.00")),
        SimpleNamespace(status="cancelled", amount=Decimal("280.00")),
    ]

    assert sum_actual_paid(instructions) == Decimal("560.00")


def test_format_rate_change():
    assert format_rate_change(Decimal("70.00")) == "+£70"
    assert format_rate_change(Decimal("40.50")) == "+£40.5"
    assert format_rate_change(Decimal("-35.00")) == "£-35"
    assert format_rate_change(Decimal("0.00")) == "+£0"
    assert format_rate_change(Decimal("100")) == "+£100"
