"""Tests for cancellation refunds and final settlement."""

from datetime import UTC, date, datetime
from decimal import Decimal

import pytest

from app.core.exceptions import ValidationError
from app.domain.settlement import (
    calculate_cancellation_refund,
    calculate_final_settlement,
    rental_weeks,
)

START = date(2024, 1, 1)
END = date(2024, 1, 29)
THREE_DAYS_IN = datetime(2024, 1, 4, tzinfo=UTC)


def _refund(cancel_type, weekly_rate="280", paid="560", now=THREE_DAYS_IN):
    return calculate_cancellation_refund(
        cancel_type=cancel_type,
        weekly_rate=Decimal(weekly_rate),
        actual_paid=Decimal(paid),
        start_date=START,
        end_date=END,
        now=now,
    )


def test_prorated_refunds_unused_paid_days():
    result = _refund("prorated")

    # 14 paid days at £40/day, 3 used
    assert result.refund_amount == Decimal("440.00")
    assert result.total_days == 28
    assert result.days_used == 3
    assert result.remaining_days == 25


def test_prorated_daily_rate_not_divisible_by_seven():
    result = _refund("prorated", weekly_rate="300", paid="300")

    assert result.refund_amount == Decimal("171.43")


def test_prorated_nothing_back_once_paid_days_are_used():
    result = _refund("prorated", paid="280", now=datetime(2024, 1, 20, tzinfo=UTC))

    assert result.refund_amount == Decimal("0.00")
    assert result.days_used == 19


def test_prorated_without_rate_refunds_nothing():
    assert _refund("prorated", weekly_rate="0").refund_amount == Decimal("0.00")


def test_full_refunds_everything_paid():
    assert _refund("full").refund_amount == Decimal("560.00")


def test_none_refunds_nothing():
    assert _refund("none").refund_amount == Decimal("0.00")


def test_unknown_cancel_type():
    with pytest.raises(ValidationError) as exc:
        _refund("partial")
    assert exc.value.detail == "Invalid cancel type"


def test_cancel_before_start_uses_no_days():
    result = _refund("prorated", now=datetime(2023, 12, 25, tzinfo=UTC))

    assert result.days_used == 0
    assert result.remaining_days == 28
    assert result.refund_amount == Decimal("560.00")


def test_final_settlement_bills_started_weeks():
    result = calculate_final_settlement(
        weekly_rate=Decimal("280"),
        actual_paid=Decimal("280"),
        start_date=START,
        now=datetime(2024, 1, 10, tzinfo=UTC),
    )

    assert result.total_days == 9
    assert result.total_weeks == 2
    assert result.final_amount == Decimal("560.00")
    assert result.outstanding_amount == Decimal("280.00")


def test_final_settlement_overpaid_owes_nothing():
    result = calculate_final_settlement(
        weekly_rate=Decimal("280"),
        actual_paid=Decimal("840"),
        start_date=START,
        now=datetime(2024, 1, 10, tzinfo=UTC),
    )

    assert result.outstanding_amount == Decimal("0.00")


@pytest.mark.parametrize(
    "end_date, weeks",
    [
        (date(2024, 1, 8), 1),
        (date(2024, 1, 10), 2),
        (END, 4),
    ],
)
def test_rental_weeks_round_up(end_date, weeks):
    assert rental_weeks(START, end_date) == weeks
