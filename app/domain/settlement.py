"""Booking settlement domain logic.

Cancel types:
- full: refund everything the driver has paid
- prorated: refund the paid days not yet used, at the daily rate
- none: no refund

Finishing a booking bills every started week at the booking's weekly rate;
anything not yet covered by payments is left outstanding.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from app.core.exceptions import ValidationError
from app.domain.proration import DAYS_PER_WEEK, days_elapsed, round_currency, to_money


class CancelType(str, Enum):
    """Refund policy chosen when a booking is cancelled."""

    FULL = "full"
    PRORATED = "prorated"
    NONE = "none"


@dataclass(frozen=True)
class CancellationRefund:
    refund_amount: Decimal
    total_days: int
    days_used: int
    remaining_days: int


@dataclass(frozen=True)
class FinalSettlement:
    total_days: int
    total_weeks: int
    final_amount: Decimal
    outstanding_amount: Decimal


def rental_days(start_date: date | None, end_date: date | None) -> int:
    """Booked length in days, 0 when either end is unknown."""
    if start_date is None or end_date is None:
        return 0
    return max(0, (end_date - start_date).days)


def rental_weeks(start_date: date, end_date: date) -> int:
    """Weeks billed for a booked period; a part week counts as a full one."""
    return math.ceil(rental_days(start_date, end_date) / DAYS_PER_WEEK)


def calculate_cancellation_refund(
    cancel_type: str | CancelType,
    weekly_rate: Any,
    actual_paid: Any,
    start_date: date | None,
    end_date: date | None,
    now: datetime,
) -> CancellationRefund:
    """Calculate the driver refund for cancelling a booking at ``now``.

    Raises:
        ValidationError: Unknown cancel type
    """
    try:
        cancel_type = CancelType(cancel_type)
    except ValueError:
        raise ValidationError("Invalid cancel type")

    paid = to_money(actual_paid)
    total_days = rental_days(start_date, end_date)
    days_used = days_elapsed(start_date, now)
    remaining_days = max(0, total_days - days_used)

    if cancel_type is CancelType.FULL:
        refund = paid
    elif cancel_type is CancelType.PRORATED:
        weekly = to_money(weekly_rate)
        refund = Decimal("0")
        if weekly > 0:
            # paid / (weekly / 7) without an inexact daily rate
            paid_days = math.ceil(paid * DAYS_PER_WEEK / weekly)
            refund = max(0, paid_days - days_used) * weekly / DAYS_PER_WEEK
    else:
        refund = Decimal("0")

    return CancellationRefund(
        refund_amount=round_currency(refund),
        total_days=total_days,
        days_used=days_used,
        remaining_days=remaining_days,
    )


def calculate_final_settlement(
    weekly_rate: Any,
    actual_paid: Any,
    start_date: date | None,
    now: datetime,
) -> FinalSettlement:
    """Bill the weeks actually used and work out what is still owed."""
    total_days = days_elapsed(start_date, now)
    total_weeks = math.ceil(total_days / DAYS_PER_WEEK)
    final_amount = round_currency(total_weeks * to_money(weekly_rate))
    outstanding = max(Decimal("0"), final_amount - to_money(actual_paid))
    return FinalSettlement(
        total_days=total_days,
        total_weeks=total_weeks,
        final_amount=final_amount,
        outstanding_amount=round_currency(outstanding),
    )
