"""Booking money ledger.

Charges or refunds go through the payment gateway and are recorded as one
``Payment`` plus a mirrored pair of ``Transaction`` rows: ``income`` on the
partner's statement and ``expense`` on the driver's, with identical amounts
and snapshots so each statement is queryable on its own.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from app.config import settings
from app.core.exceptions import AppException, DependencyWriteError
from app.domain.proration import AdjustmentResult
from app.models.booking import Booking
from app.models.payment import Payment, Subscription, Transaction
from app.models.user import User
from app.models.vehicle import Vehicle
from app.services.gateway_service import gateway_service
from app.services.record_store import RecordStore

logger = logging.getLogger(__name__)

PAYMENT_FAILED = "Failed to process payment adjustment"
REFUND_FAILED = "Failed to process payment refund"
NO_FEES = {"platform": 0, "payment": 0, "insurance": 0, "maintenance": 0}
MIRRORED = ("income", "expense")


@dataclass
class AdjustmentPayment:
    """Gateway outcome reported back to the caller."""

    payment_processed: bool = False
    stripe_payment_id: str | None = None
    stripe_refund_id: str | None = None


def _party_details(user: User | None, email: str | None, with_company: bool = False) -> dict[str, Any]:
    details: dict[str, Any] = {
        "name": (user.full_name if user else None) or email or "Unknown",
        "email": email,
    }
    if with_company:
        details["company_name"] = user.company_name if user else None
    return details


def vehicle_details(booking: Booking, vehicle: Vehicle | None = None) -> dict[str, Any]:
    """Statement snapshot of a vehicle, falling back to the booking's car fields."""
    if vehicle is not None:
        return {
            "registration": vehicle.registration_number,
            "make": vehicle.make,
            "model": vehicle.model,
        }
    car = booking.car or {}
    return {
        "registration": booking.car_plate or car.get("registration_number") or "",
        "make": car.get("make"),
        "model": car.get("model"),
    }


class LedgerService:
    """Service for booking payments and statement entries."""

    async def get_active_subscription(self, store: RecordStore, booking: Booking) -> Subscription | None:
        return await store.first(
            Subscription,
            Subscription.booking_id == booking.id,
            Subscription.status == "active",
        )

    def record_entries(
        self,
        store: RecordStore,
        booking: Booking,
        amount: Decimal,
        description: str,
        now: datetime,
        driver: User | None,
        partner: User | None,
        booking_details: dict[str, Any],
        vehicle_details: dict[str, Any],
        source: str,
        payment_method: str,
        category: str = "Vehicle Rental",
        entry_types: Iterable[str] = MIRRORED,
        instruction_id: UUID | None = None,
        stripe_invoice_id: str | None = None,
        stripe_refund_id: str | None = None,
    ) -> list[Transaction]:
        """Stage one statement line per entry type; the caller flushes."""
        entries = []
        for entry_type in entry_types:
            entries.append(
                store.insert(
                    Transaction,
                    booking_id=booking.id,
                    partner_id=booking.partner_id,
                    driver_id=booking.driver_id,
                    instruction_id=instruction_id,
                    type=entry_type,
                    category=category,
                    amount=amount,
                    net_amount=amount,
                    fees=dict(NO_FEES),
                    description=description,
                    transaction_date=now,
                    status="completed",
                    source=source,
                    payment_method=payment_method,
                    stripe_invoice_id=stripe_invoice_id,
                    stripe_refund_id=stripe_refund_id,
                    booking_details=booking_details,
                    driver_details=_party_details(driver, booking.driver_email),
                    partner_details=_party_details(partner, booking.partner_email, with_company=True),
                    vehicle_details=vehicle_details,
                    created_at=now,
                )
            )
        return entries

    async def process_vehicle_change_adjustment(
        self,
        store: RecordStore,
        booking: Booking,
        old_vehicle_id: UUID | None,
        new_vehicle: Vehicle,
        adjustment: AdjustmentResult,
        old_weekly_rate: Decimal,
        new_weekly_rate: Decimal,
        driver: User | None,
        partner: User | None,
        now: datetime,
    ) -> AdjustmentPayment:
        """Charge or refund a non-zero adjustment and record it.

        Nothing happens when the amount is zero, the booking has no active
        subscription, or (for charges) the subscription is not linked to a
        Stripe customer.

        Raises:
            DependencyWriteError: Gateway or ledger write failed
        """
        outcome = AdjustmentPayment()
        if adjustment.amount == 0:
            return outcome

        try:
            subscription = await self.get_active_subscription(store, booking)
            if subscription is None:
                logger.info(f"No active subscription for booking {booking.id}; adjustment not billed")
                return outcome

            if adjustment.amount > 0:
                if not (subscription.stripe_customer_id and subscription.stripe_subscription_id):
                    logger.info(f"Subscription {subscription.id} has no Stripe customer; adjustment not billed")
                    return outcome
                result = await gateway_service.create_payment(
                    amount=adjustment.amount,
                    booking_id=str(booking.id),
                    description=f"Vehicle change adjustment: {adjustment.reason}",
                    customer_id=subscription.stripe_customer_id,
                    metadata={"new_vehicle_id": str(new_vehicle.id)},
                )
                if not result.success:
                    logger.error(f"Adjustment charge failed for booking {booking.id}: {result.error_message}")
                    raise DependencyWriteError(PAYMENT_FAILED)
                outcome.stripe_payment_id = result.transaction_id
                payment_type = "vehicle_change_adjustment"
                description = f"Vehicle change adjustment: {adjustment.reason}"
                gateway_response = result.raw_response
            else:
                result = await gateway_service.process_refund(
                    amount=adjustment.amount,
                    booking_id=str(booking.id),
                    charge_id=subscription.stripe_payment_intent_id,
                    reason=adjustment.reason,
                )
                if not result.success:
                    logger.error(f"Adjustment refund failed for booking {booking.id}: {result.error_message}")
                    raise DependencyWriteError(PAYMENT_FAILED)
                outcome.stripe_refund_id = result.refund_id
                payment_type = "vehicle_change_refund"
                description = f"Vehicle change refund: {adjustment.reason}"
                gateway_response = result.raw_response

            outcome.payment_processed = True
            booking_details = {
                "old_vehicle_id": str(old_vehicle_id) if old_vehicle_id else None,
                "new_vehicle_id": str(new_vehicle.id),
                "old_weekly_rate": float(old_weekly_rate),
                "new_weekly_rate": float(new_weekly_rate),
                "rate_difference": float(adjustment.rate_difference),
                "adjustment_reason": adjustment.reason,
            }

            store.insert(
                Payment,
                booking_id=booking.id,
                driver_id=booking.driver_id,
                partner_id=booking.partner_id,
                amount=adjustment.amount,
                currency=settings.currency,
                status="completed",
                type=payment_type,
                gateway=gateway_service.gateway_name(),
                stripe_invoice_id=outcome.stripe_payment_id,
                stripe_refund_id=outcome.stripe_refund_id,
                gateway_response=gateway_response,
                payment_metadata={
                    **booking_details,
                    "days_used": adjustment.days_used,
                    "remaining_days": adjustment.remaining_days,
                },
                created_at=now,
            )
            self.record_entries(
                store,
                booking,
                amount=adjustment.amount,
                description=description,
                now=now,
                driver=driver,
                partner=partner,
                booking_details=booking_details,
                vehicle_details=vehicle_details(booking, new_vehicle),
                source=gateway_service.gateway_name(),
                payment_method="card",
                stripe_invoice_id=outcome.stripe_payment_id,
                stripe_refund_id=outcome.stripe_refund_id,
            )

            await store.flush("recording vehicle change adjustment", PAYMENT_FAILED)

        except AppException:
            raise
        except Exception as e:
            logger.exception(f"Payment processing error for booking {booking.id}: {e}")
            raise DependencyWriteError(PAYMENT_FAILED)

        return outcome

    async def process_cancellation_refund(
        self,
        store: RecordStore,
        booking: Booking,
        refund_amount: Decimal,
        insurance_refund: Decimal,
        charge_id: str | None,
        booking_details: dict[str, Any],
        driver: User | None,
        partner: User | None,
        now: datetime,
    ) -> str | None:
        """Refund a cancelled booking and write the negative statement lines.

        Returns the gateway refund id, or None when nothing was refunded.

        Raises:
            DependencyWriteError: Gateway or ledger write failed
        """
        if refund_amount <= 0:
            return None

        try:
            result = await gateway_service.process_refund(
                amount=refund_amount,
                booking_id=str(booking.id),
                charge_id=charge_id,
                reason=f"Booking cancellation ({booking_details.get('cancel_type')})",
            )
            if not result.success:
                logger.error(f"Cancellation refund failed for booking {booking.id}: {result.error_message}")
                raise DependencyWriteError(REFUND_FAILED)

            store.insert(
                Payment,
                booking_id=booking.id,
                driver_id=booking.driver_id,
                partner_id=booking.partner_id,
                amount=-refund_amount,
                currency=settings.currency,
                status="completed",
                type="cancellation_refund",
                gateway=gateway_service.gateway_name(),
                stripe_refund_id=result.refund_id,
                gateway_response=result.raw_response,
                payment_metadata=booking_details,
                created_at=now,
            )
            snapshot = vehicle_details(booking)
            common = dict(
                now=now,
                driver=driver,
                partner=partner,
                booking_details=booking_details,
                vehicle_details=snapshot,
                source=gateway_service.gateway_name(),
                payment_method="card",
                stripe_refund_id=result.refund_id,
            )
            self.record_entries(
                store,
                booking,
                amount=-refund_amount,
                description=f"Booking cancellation refund ({booking_details.get('cancel_type')})",
                **common,
            )
            if insurance_refund > 0:
                self.record_entries(
                    store,
                    booking,
                    amount=-insurance_refund,
                    description="Insurance refund for booking cancellation",
                    category="Insurance",
                    entry_types=("income",),
                    **common,
                )

            await store.flush("recording cancellation refund", REFUND_FAILED)

        except AppException:
            raise
        except Exception as e:
            logger.exception(f"Refund processing error for booking {booking.id}: {e}")
            raise DependencyWriteError(REFUND_FAILED)

        return result.refund_id


ledger_service = LedgerService()
