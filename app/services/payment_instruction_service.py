"""Manual bank transfer confirmation.

The driver marks an instruction as sent once the transfer is made and the
partner confirms receipt. A confirmed weekly payment is settled and the next
week's instruction is issued; a confirmed deposit is held as
deposit_received.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from app.domain.proration import DAYS_PER_WEEK, as_utc, format_amount, to_money
from app.models.booking import Booking
from app.models.payment import PaymentInstruction
from app.models.user import User
from app.services.history_service import history_service
from app.services.ledger_service import ledger_service, vehicle_details
from app.services.notification_service import notification_service
from app.services.record_store import RecordStore

logger = logging.getLogger(__name__)

INSTRUCTION_UPDATE_FAILED = "Failed to update instruction status"
MANUAL_METHOD = "bank_transfer"


@dataclass
class ConfirmationResult:
    instruction: PaymentInstruction
    next_instruction: PaymentInstruction | None

    @property
    def next_due(self) -> datetime | None:
        return self.next_instruction.due_date if self.next_instruction else None


def _is_one_off(instruction: PaymentInstruction) -> bool:
    return instruction.type == "deposit" or instruction.frequency == "one_off"


class PaymentInstructionService:
    """Service for the driver/partner bank transfer handshake."""

    async def mark_sent(
        self,
        db: AsyncSession,
        instruction_id: UUID,
        driver_id: UUID,
        now: datetime | None = None,
    ) -> PaymentInstruction:
        """Driver reports a bank transfer as sent.

        Raises:
            NotFoundError: Instruction missing
            AuthorizationError: Instruction belongs to another driver
            ValidationError: Not a manual transfer, already sent, or not due yet
        """
        store = RecordStore(db)
        now = now or datetime.now(UTC)

        instruction = await store.get(PaymentInstruction, instruction_id)
        if not instruction:
            raise NotFoundError("Instruction")
        if instruction.driver_id != driver_id:
            raise AuthorizationError("Unauthorized")
        if instruction.method != MANUAL_METHOD:
            raise ValidationError("Only manual transfers can be marked sent")
        if instruction.status == "sent":
            raise ValidationError("Already marked sent")
        overdue = instruction.due_date is not None and as_utc(instruction.due_date) < now
        if instruction.status == "pending" and not overdue:
            raise ValidationError("Payment is not due yet")

        store.update(instruction, status="sent", last_sent_at=now, updated_at=now)
        await store.flush("marking payment sent", INSTRUCTION_UPDATE_FAILED)

        amount = format_amount(to_money(instruction.amount))
        async with store.best_effort("creating partner notification", instruction_id=instruction.id):
            await notification_service.create_notification(
                db=db,
                notification_type=notification_service.PAYMENT_SENT,
                recipient_id=instruction.partner_id,
                recipient_type="partner",
                title="Payment Marked as Sent",
                message=f"Driver has marked payment of £{amount} as sent for {instruction.vehicle_reg}",
                data={
                    "instruction_id": str(instruction.id),
                    "booking_id": str(instruction.booking_id),
                    "amount": float(instruction.amount),
                    "vehicle_reg": instruction.vehicle_reg,
                },
                priority=notification_service.MEDIUM,
                created_at=now,
            )

        logger.info(f"Payment instruction {instruction.id} marked sent by driver {driver_id}")
        return instruction

    async def confirm_received(
        self,
        db: AsyncSession,
        instruction_id: UUID | None = None,
        partner_id: UUID | None = None,
        booking_id: UUID | None = None,
        now: datetime | None = None,
    ) -> ConfirmationResult:
        """Partner confirms a sent transfer arrived.

        With only ``booking_id``, the booking's sent deposit is confirmed.

        Raises:
            ValidationError: Neither instruction nor booking given, wrong method or not yet sent
            NotFoundError: Instruction (or the booking's sent deposit) missing
            AuthorizationError: Instruction belongs to another partner
        """
        store = RecordStore(db)
        now = now or datetime.now(UTC)

        if instruction_id is None and booking_id is None:
            raise ValidationError("Missing instructionId or bookingId")

        if instruction_id is None:
            instruction = await store.first(
                PaymentInstruction,
                PaymentInstruction.booking_id == booking_id,
                PaymentInstruction.type == "deposit",
                PaymentInstruction.status == "sent",
            )
            if not instruction:
                raise NotFoundError(detail="No pending deposit instruction found for this booking")
        else:
            instruction = await store.get(PaymentInstruction, instruction_id)
            if not instruction:
                raise NotFoundError("Instruction")
        if partner_id is not None and instruction.partner_id != partner_id:
            raise AuthorizationError("Unauthorized")
        if instruction.method != MANUAL_METHOD:
            raise ValidationError("Only manual transfers require confirmation")
        if instruction.status != "sent":
            raise ValidationError("Payment not marked sent yet")

        booking = await store.get(Booking, instruction.booking_id)
        amount = to_money(instruction.amount)

        next_instruction = None
        if _is_one_off(instruction):
            store.update(instruction, status="deposit_received", received_at=now, updated_at=now)
        else:
            store.update(instruction, status="received", received_at=now, updated_at=now)
            due = as_utc(instruction.due_date) if instruction.due_date else now
            next_instruction = store.insert(
                PaymentInstruction,
                booking_id=instruction.booking_id,
                driver_id=instruction.driver_id,
                partner_id=instruction.partner_id,
                vehicle_reg=instruction.vehicle_reg,
                amount=instruction.amount,
                type=instruction.type,
                method=instruction.method,
                frequency=instruction.frequency,
                status="pending",
                due_date=due + timedelta(days=DAYS_PER_WEEK),
                created_at=now,
                updated_at=now,
            )
        if booking is not None:
            store.update(
                booking,
                last_payment_date=now,
                total_paid=to_money(booking.total_paid) + amount,
                payment_status="active",
                updated_at=now,
            )
        await store.flush("confirming payment received", INSTRUCTION_UPDATE_FAILED)

        if booking is not None:
            driver = await store.get(User, instruction.driver_id)
            partner = await store.get(User, instruction.partner_id)
            common = dict(
                now=now,
                driver=driver,
                partner=partner,
                booking_details={
                    "start_date": booking.start_date.isoformat() if booking.start_date else None,
                    "end_date": booking.end_date.isoformat() if booking.end_date else None,
                    "total_amount": float(booking.total_amount) if booking.total_amount is not None else None,
                    "weekly_rate": float(booking.weekly_rate) if booking.weekly_rate is not None else None,
                },
                vehicle_details={**vehicle_details(booking), "registration": instruction.vehicle_reg},
                source=MANUAL_METHOD,
                payment_method=MANUAL_METHOD,
                instruction_id=instruction.id,
            )
            ledger_service.record_entries(
                store,
                booking,
                amount=amount,
                description=f"Weekly payment received for {instruction.vehicle_reg}",
                category="Booking Revenue",
                entry_types=("income",),
                **common,
            )
            ledger_service.record_entries(
                store,
                booking,
                amount=amount,
                description=f"Weekly rental payment for {instruction.vehicle_reg}",
                entry_types=("expense",),
                **common,
            )
            await store.flush("recording received payment", INSTRUCTION_UPDATE_FAILED)

        amount_text = f"£{format_amount(amount)}"
        data = {
            "instruction_id": str(instruction.id),
            "booking_id": str(instruction.booking_id),
            "amount": float(amount),
        }
        async with store.best_effort("adding to booking history", booking_id=instruction.booking_id):
            await history_service.log_booking_action(
                db=db,
                booking_id=instruction.booking_id,
                action="weekly_payment_received",
                performed_by=instruction.partner_id,
                performed_by_type="partner",
                details={**data, "received_at": now.isoformat()},
                description=f"Weekly payment of {amount_text} received for {instruction.vehicle_reg}",
                created_at=now,
            )

        async with store.best_effort("creating driver notification", booking_id=instruction.booking_id):
            await notification_service.create_notification(
                db=db,
                notification_type=notification_service.PAYMENT_RECEIVED,
                recipient_id=instruction.driver_id,
                recipient_type="driver",
                title="Payment Received",
                message=(
                    f"Partner has confirmed receipt of your weekly payment ({amount_text}) "
                    f"for {instruction.vehicle_reg}."
                ),
                data=data,
                priority=notification_service.MEDIUM,
                created_at=now,
            )

        async with store.best_effort("creating partner notification", booking_id=instruction.booking_id):
            await notification_service.create_notification(
                db=db,
                notification_type=notification_service.PAYMENT_RECEIVED,
                recipient_id=instruction.partner_id,
                recipient_type="partner",
                title="Payment Received",
                message=f"Weekly payment ({amount_text}) for {instruction.vehicle_reg} has been confirmed as received.",
                data=data,
                priority=notification_service.MEDIUM,
                created_at=now,
            )

        logger.info(f"Payment instruction {instruction.id} confirmed received ({instruction.status})")
        return ConfirmationResult(instruction=instruction, next_instruction=next_instruction)


payment_instruction_service = PaymentInstructionService()
