"""Vehicle change billing adjustment.

When a partner swaps the vehicle on a booking, the driver is charged (or
refunded) the difference between the old and new weekly rates:

- prorated: daily rate difference for every paid day not yet used
- immediate: one full week's difference
- next_cycle: nothing now; the new rate applies from the next billing cycle
"""

import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

from app.core.exceptions import ValidationError
from app.domain.booking_state import BookingStatus

CENT = Decimal("0.01")
DAYS_PER_WEEK = 7
SECONDS_PER_DAY = 24 * 60 * 60

PAID_INSTRUCTION_STATUSES = frozenset({"completed", "received"})


class AdjustmentType(str, Enum):
    """Billing policy for a mid-rental rate change."""

    PRORATED = "prorated"
    IMMEDIATE = "immediate"
    NEXT_CYCLE = "next_cycle"


@dataclass(frozen=True)
class AdjustmentResult:
    """Outcome of a rate change calculation.

    ``amount`` is positive for an additional charge, negative for a refund
    and zero when nothing is owed now.
    """

    amount: Decimal
    reason: str
    rate_difference: Decimal
    days_used: int
    remaining_days: int


def to_money(value: Any) -> Decimal:
    """Coerce a stored or user-supplied amount to Decimal (None -> 0)."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_currency(value: Decimal) -> Decimal:
    """Round half-up to the nearest penny."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(amount: Decimal) -> str:
    """'70', '40.5', '-35': pounds without trailing zeros."""
    return f"{amount.normalize():f}"


def format_rate_change(rate_difference: Decimal) -> str:
    """'+£70' / '£-35': sign prefix only when non-negative."""
    sign = "+" if rate_difference >= 0 else ""
    return f"{sign}£{format_amount(rate_difference)}"


def sum_actual_paid(instructions: Iterable[Any]) -> Decimal:
    """Total of completed or received payment instructions."""
    total = Decimal("0")
    for instruction in instructions:
        if instruction.status in PAID_INSTRUCTION_STATUSES:
            total += to_money(instruction.amount)
    return total


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps (as SQLite returns them) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def start_of_day(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=UTC)


def days_elapsed(start_date: date | None, now: datetime) -> int:
    """Whole days (rounded up) since the start of ``start_date``, never negative."""
    if start_date is None:
        return 0
    start = start_of_day(start_date)
    now = as_utc(now)
    elapsed = (now - start).total_seconds() / SECONDS_PER_DAY
    return max(0, math.ceil(elapsed))


def paid_days_total(actual_paid: Decimal, weekly_rate: Decimal) -> int:
    """Days covered by the payments so far, counted in whole weeks."""
    if weekly_rate <= 0:
        return 0
    return math.ceil(actual_paid / weekly_rate) * DAYS_PER_WEEK


def calculate_vehicle_change_adjustment(
    old_weekly_rate: Any,
    new_weekly_rate: Any,
    adjustment_type: str | AdjustmentType = AdjustmentType.PRORATED,
    actual_paid: Any = 0,
    booking_status: str = BookingStatus.ACTIVE.value,
    start_date: date | None = None,
    now: datetime | None = None,
) -> AdjustmentResult:
    """Calculate the one-time adjustment for swapping a booking's vehicle.

    Args:
        old_weekly_rate: Weekly rate currently billed on the booking
        new_weekly_rate: Weekly rate of the replacement vehicle
        adjustment_type: prorated, immediate or next_cycle
        actual_paid: Sum of completed/received payment instructions
        booking_status: Current booking status
        start_date: Booking start date
        now: Calculation time (defaults to current UTC time)

    Returns:
        AdjustmentResult rounded to the penny

    Raises:
        ValidationError: Negative rates or unknown adjustment type
    """
    try:
        adjustment_type = AdjustmentType(adjustment_type)
    except ValueError:
        raise ValidationError(
            f"Invalid adjustment type: {adjustment_type}. "
            "Must be prorated, immediate, or next_cycle"
        )

    old_rate = to_money(old_weekly_rate)
    new_rate = to_money(new_weekly_rate)
    paid = to_money(actual_paid)
    if old_rate < 0 or new_rate < 0:
        raise ValidationError("Weekly rates cannot be negative")

    now = now or datetime.now(UTC)
    rate_difference = new_rate - old_rate
    change = format_rate_change(rate_difference)

    days_used = 0
    remaining_days = 0
    # No prior rate means no paid days can be derived from it
    if old_rate > 0:
        covered_days = paid_days_total(paid, old_rate)
        if booking_status == BookingStatus.ACTIVE.value:
            days_used = days_elapsed(start_date, now)
            remaining_days = max(0, covered_days - days_used)
        else:
            remaining_days = covered_days

    if adjustment_type is AdjustmentType.PRORATED:
        amount = rate_difference * remaining_days / DAYS_PER_WEEK
        reason = f"Prorated rate adjustment: {remaining_days} paid days remaining at {change}/week"
    elif adjustment_type is AdjustmentType.IMMEDIATE:
        amount = rate_difference
        reason = f"Immediate rate adjustment: {change}/week"
    else:
        amount = Decimal("0")
        reason = f"Rate change will apply to next billing cycle: {change}/week"

    return AdjustmentResult(
        amount=round_currency(amount),
        reason=reason,
        rate_difference=rate_difference,
        days_used=days_used,
        remaining_days=remaining_days,
    )
