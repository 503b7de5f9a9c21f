"""Booking lifecycle: create, partner response, activation, finish, cancel.

Each operation follows the same shape: load and guard, stage the booking
and vehicle changes, flush them (a version conflict is a 409, any other
write failure a 500), then move money, then write best-effort history and
notifications.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    AuthorizationError,
    NotFoundError,
    RequirementsNotMetError,
    ValidationError,
    VehicleUnavailableError,
)
from app.core.permissions import ActorType, assert_booking_actor
from app.domain.booking_state import (
    BookingStatus,
    activation_checks,
    activation_requirements,
    assert_awaiting_partner_response,
    assert_can_activate,
    assert_can_cancel,
    assert_can_finish,
    can_auto_activate,
)
from app.domain.proration import (
    PAID_INSTRUCTION_STATUSES,
    as_utc,
    format_amount,
    start_of_day,
    sum_actual_paid,
    to_money,
)
from app.domain.settlement import (
    CancelType,
    calculate_cancellation_refund,
    calculate_final_settlement,
    rental_weeks,
)
from app.models.booking import Booking
from app.models.payment import PaymentInstruction, Subscription
from app.models.user import User
from app.models.vehicle import Vehicle
from app.services.history_service import history_service
from app.services.ledger_service import ledger_service, vehicle_details
from app.services.notification_service import notification_service
from app.services.record_store import RecordStore
from app.services.vehicle_assignment_service import BOOKING_UPDATE_FAILED, car_snapshot

logger = logging.getLogger(__name__)

BOOKING_CREATE_FAILED = "Failed to create booking"


@dataclass
class PartnerResponseResult:
    booking: Booking
    response_time_ms: int


@dataclass
class FinishResult:
    booking: Booking
    final_amount: Decimal
    outstanding_amount: Decimal
    total_days: int
    total_weeks: int


@dataclass
class CancelResult:
    """Outcome of a cancellation, echoed back to the caller."""

    booking: Booking
    refund_amount: Decimal
    insurance_refund: Decimal
    stripe_refund_id: str | None
    subscriptions_cancelled: bool


@dataclass
class ActivationReadiness:
    can_activate: bool
    current_status: str
    requirements: list[str] = field(default_factory=list)
    checks: dict[str, bool] = field(default_factory=dict)


def _vehicle_name(booking: Booking) -> str:
    car = booking.car or {}
    return f"{car.get('make') or ''} {car.get('model') or ''}".strip() or "vehicle"


async def _user_name(store: RecordStore, user_id: UUID | None, default: str = "Unknown") -> str:
    user = await store.get(User, user_id)
    return user.display_name if user else default


async def _paid_instructions(store: RecordStore, booking: Booking) -> list[PaymentInstruction]:
    return list(
        await store.find(
            PaymentInstruction,
            PaymentInstruction.booking_id == booking.id,
            PaymentInstruction.status.in_(PAID_INSTRUCTION_STATUSES),
        )
    )


async def _load_booking(store: RecordStore, booking_id: UUID) -> Booking:
    booking = await store.get(Booking, booking_id)
    if not booking:
        raise NotFoundError("Booking")
    return booking


def _free_vehicle(store: RecordStore, vehicle: Vehicle | None, booking: Booking, now: datetime, **values: Any) -> None:
    """Make the booking's vehicle available unless it has been re-let."""
    if vehicle is None:
        return
    if vehicle.current_booking_id not in (None, booking.id):
        logger.info(f"Vehicle {vehicle.id} now belongs to booking {vehicle.current_booking_id}; left as is")
        return
    store.update(vehicle, status="available", current_booking_id=None, updated_at=now, **values)


class BookingLifecycleService:
    """Service for moving bookings through their lifecycle."""

    async def create_booking(
        self,
        db: AsyncSession,
        driver_id: UUID,
        partner_id: UUID,
        vehicle_id: UUID,
        start_date: date,
        end_date: date,
        weekly_rate: Decimal,
        deposit_amount: Decimal = Decimal("0"),
        insurance_required: bool = False,
        partner_provides_insurance: bool = False,
        requires_document_verification: bool = False,
        payment_method: str = "bank_transfer",
        now: datetime | None = None,
    ) -> tuple[Booking, Vehicle]:
        """Create a booking request and reserve the vehicle.

        The booking waits for the partner's response; a deposit instruction
        (when a deposit is due) and the first weekly rent instruction are
        issued straight away.

        Raises:
            ValidationError: Dates out of order or in the past
            NotFoundError: Vehicle, driver or partner missing
            VehicleUnavailableError: Vehicle is not available
            DependencyWriteError: Booking insert failed
        """
        store = RecordStore(db)
        now = now or datetime.now(UTC)

        if start_date < now.date():
            raise ValidationError("Start date cannot be in the past")
        if end_date <= start_date:
            raise ValidationError("End date must be after start date")

        vehicle = await store.get(Vehicle, vehicle_id)
        if not vehicle:
            raise NotFoundError("Vehicle")
        if vehicle.status != "available":
            raise VehicleUnavailableError("Vehicle is not available")

        driver = await store.get(User, driver_id)
        if not driver:
            raise NotFoundError("Driver")
        partner = await store.get(User, partner_id)
        if not partner:
            raise NotFoundError("Partner")

        weekly_rate = to_money(weekly_rate)
        deposit_amount = to_money(deposit_amount)
        total_weeks = rental_weeks(start_date, end_date)

        booking = store.insert(
            Booking,
            driver_id=driver.id,
            partner_id=partner.id,
            driver_email=driver.email,
            partner_email=partner.email,
            status=BookingStatus.PENDING_PARTNER_APPROVAL.value,
            payment_status="pending",
            payment_method=payment_method,
            start_date=start_date,
            end_date=end_date,
            weekly_rate=weekly_rate,
            deposit_amount=deposit_amount,
            total_weeks=total_weeks,
            total_amount=total_weeks * weekly_rate + deposit_amount,
            insurance_required=insurance_required,
            partner_provides_insurance=partner_provides_insurance,
            requires_document_verification=requires_document_verification,
            current_vehicle_id=vehicle.id,
            car_id=vehicle.id,
            car_name=vehicle.display_name,
            car_image=vehicle.primary_image,
            car_plate=vehicle.registration_number,
            car=car_snapshot(vehicle),
            vehicle_history=[],
            created_at=now,
            updated_at=now,
        )
        await store.flush("creating booking", BOOKING_CREATE_FAILED)

        store.update(vehicle, status="booked", current_booking_id=booking.id, updated_at=now)
        if deposit_amount > 0:
            store.insert(
                PaymentInstruction,
                booking_id=booking.id,
                driver_id=driver.id,
                partner_id=partner.id,
                vehicle_reg=vehicle.registration_number,
                amount=deposit_amount,
                type="deposit",
                method=payment_method,
                frequency="one_off",
                status="pending",
                created_at=now,
                updated_at=now,
            )
        store.insert(
            PaymentInstruction,
            booking_id=booking.id,
            driver_id=driver.id,
            partner_id=partner.id,
            vehicle_reg=vehicle.registration_number,
            amount=weekly_rate,
            type="weekly_rent",
            method=payment_method,
            frequency="weekly",
            status="pending",
            due_date=start_of_day(start_date),
            created_at=now,
            updated_at=now,
        )
        await store.flush("reserving vehicle for new booking", BOOKING_CREATE_FAILED)

        driver_name = driver.full_name or driver.email
        async with store.best_effort("adding to booking history", booking_id=booking.id):
            await history_service.log_booking_action(
                db=db,
                booking_id=booking.id,
                action="booking_created",
                performed_by=driver.id,
                performed_by_type="driver",
                details={
                    "vehicle_id": str(vehicle.id),
                    "start_date": start_date.isoformat(),
                    "end_date": end_date.isoformat(),
                    "weekly_rate": float(weekly_rate),
                    "total_amount": float(booking.total_amount),
                    "deposit_amount": float(deposit_amount),
                },
                description=(
                    f"Booking created for {vehicle.make} {vehicle.model} ({vehicle.registration_number})"
                ),
                created_at=now,
            )

        async with store.best_effort("creating partner notification", booking_id=booking.id):
            await notification_service.create_notification(
                db=db,
                notification_type=notification_service.NEW_BOOKING,
                recipient_id=partner.id,
                recipient_type="partner",
                title="New Booking Request",
                message=f"New booking request from {driver_name} for {vehicle.make} {vehicle.model}",
                data={"booking_id": str(booking.id), "driver_name": driver_name},
                priority=notification_service.HIGH,
                created_at=now,
            )

        async with store.best_effort("creating driver notification", booking_id=booking.id):
            await notification_service.create_notification(
                db=db,
                notification_type=notification_service.BOOKING_CREATED,
                recipient_id=driver.id,
                recipient_type="driver",
                title="Booking Created",
                message=(
                    f"Your booking for {vehicle.make} {vehicle.model} has been created. "
                    "Please complete payment to proceed."
                ),
                data={"booking_id": str(booking.id)},
                priority=notification_service.MEDIUM,
                created_at=now,
            )

        logger.info(f"Booking {booking.id} created for vehicle {vehicle.id} by driver {driver.id}")
        return booking, vehicle

    async def partner_response(
        self,
        db: AsyncSession,
        booking_id: UUID,
        partner_id: UUID,
        action: str,
        rejection_reason: str | None = None,
        override_insurance: bool = False,
        now: datetime | None = None,
    ) -> PartnerResponseResult:
        """Accept or reject a pending booking request.

        Raises:
            NotFoundError: Booking missing
            AuthorizationError: Partner does not own the booking
            InvalidStateError: Booking is no longer awaiting a response
        """
        store = RecordStore(db)
        now = now or datetime.now(UTC)

        booking = await _load_booking(store, booking_id)
        if booking.partner_id != partner_id:
            raise AuthorizationError("Unauthorized - not your booking")
        assert_awaiting_partner_response(booking.status)

        partner_name = await _user_name(store, partner_id, default="Partner")
        response_time_ms = int((now - as_utc(booking.created_at)).total_seconds() * 1000)
        vehicle_name = _vehicle_name(booking)
        reason = rejection_reason or "No reason provided"

        store.update(booking, partner_response_time=response_time_ms, updated_at=now)

        if action == "accept":
            if override_insurance:
                store.update(booking, driver_insurance_valid=True)
            store.update(booking, partner_accepted_at=now)
            if booking.insurance_required and not booking.driver_insurance_valid:
                store.update(booking, status=BookingStatus.PENDING_INSURANCE_UPLOAD.value)
                title = "Insurance Required"
                message = (
                    f"Your booking for {vehicle_name} has been accepted, but you must upload "
                    "a valid insurance certificate before pickup."
                )
            elif can_auto_activate(booking):
                store.update(
                    booking,
                    status=BookingStatus.ACTIVE.value,
                    activated_at=now,
                    activated_by=partner_id,
                    activated_by_type="partner",
                    activated_trigger="auto_on_acceptance",
                )
                title = "Booking Active - Ready for Collection!"
                message = (
                    f"Your booking for {vehicle_name} has been accepted and is now active! "
                    "You can collect the vehicle from the partner."
                )
            else:
                store.update(booking, status=BookingStatus.PARTNER_ACCEPTED.value)
                title = "Booking Accepted"
                message = (
                    f"Your booking for {vehicle_name} has been accepted by the partner. "
                    "Please review and sign the rental agreement."
                )
            history_action = "partner_accepted"
            history_details = {
                "response_time_ms": response_time_ms,
                "partner_name": partner_name,
                "override_insurance": bool(override_insurance),
            }
            description = f"Booking accepted by partner {partner_name}"
        else:
            store.update(
                booking,
                status=BookingStatus.REJECTED.value,
                partner_rejected_at=now,
                rejection_reason=reason,
            )
            vehicle = await store.get(Vehicle, booking.current_vehicle_id)
            _free_vehicle(store, vehicle, booking, now)
            await self._stage_rejection_refunds(store, booking, partner_id, reason, now)
            title = "Booking Rejected"
            message = (
                f"Your booking for {vehicle_name} has been rejected by the partner."
                f"{f' Reason: {rejection_reason}' if rejection_reason else ''} Refund(s) will be processed."
            )
            history_action = "partner_rejected"
            history_details = {
                "response_time_ms": response_time_ms,
                "partner_name": partner_name,
                "rejection_reason": reason,
            }
            description = (
                f"Booking rejected by partner {partner_name}"
                f"{f': {rejection_reason}' if rejection_reason else ''}"
            )

        await store.flush("recording partner response", BOOKING_UPDATE_FAILED)

        accepted = action == "accept"
        async with store.best_effort("adding to booking history", booking_id=booking.id):
            await history_service.log_booking_action(
                db=db,
                booking_id=booking.id,
                action=history_action,
                performed_by=partner_id,
                performed_by_type="partner",
                details=history_details,
                description=description,
                created_at=now,
            )

        async with store.best_effort("creating driver notification", booking_id=booking.id):
            await notification_service.create_notification(
                db=db,
                notification_type=(
                    notification_service.BOOKING_ACCEPTED if accepted else notification_service.BOOKING_REJECTED
                ),
                recipient_id=booking.driver_id,
                recipient_type="driver",
                title=title,
                message=message,
                data={"booking_id": str(booking.id)},
                priority=notification_service.HIGH if accepted else notification_service.MEDIUM,
                created_at=now,
            )

        async with store.best_effort("creating admin notification", booking_id=booking.id):
            await notification_service.notify_admins(
                db=db,
                notification_type=(
                    notification_service.BOOKING_ACCEPTED_ADMIN
                    if accepted
                    else notification_service.BOOKING_REJECTED_ADMIN
                ),
                title=f"Booking {'Accepted' if accepted else 'Rejected'}",
                message=f"Partner {partner_name} has {action}ed booking for {vehicle_name}",
                data={"booking_id": str(booking.id), "partner_name": partner_name},
                priority=notification_service.MEDIUM,
                created_at=now,
            )

        logger.info(f"Partner {partner_id} {action}ed booking {booking.id} -> {booking.status}")
        return PartnerResponseResult(booking=booking, response_time_ms=response_time_ms)

    async def _stage_rejection_refunds(
        self,
        store: RecordStore,
        booking: Booking,
        partner_id: UUID,
        reason: str,
        now: datetime,
    ) -> None:
        """Owe the driver back a received deposit and any weekly rent paid."""
        vehicle_reg = (booking.car or {}).get("registration_number") or booking.car_plate or ""
        deposit = await store.first(
            PaymentInstruction,
            PaymentInstruction.booking_id == booking.id,
            PaymentInstruction.type == "deposit",
            PaymentInstruction.status == "deposit_received",
        )
        refunds = []
        if deposit is not None and to_money(deposit.amount) > 0:
            refunds.append(("deposit", to_money(deposit.amount)))
        weekly_paid = sum_actual_paid(await _paid_instructions(store, booking))
        if weekly_paid > 0:
            refunds.append(("weekly", weekly_paid))

        for method, amount in refunds:
            store.insert(
                PaymentInstruction,
                booking_id=booking.id,
                driver_id=booking.driver_id,
                partner_id=partner_id,
                vehicle_reg=vehicle_reg,
                amount=amount,
                type="refund",
                method=method,
                frequency="one_off",
                status="pending",
                reason=f"Refund for rejected booking ({'deposit' if method == 'deposit' else 'weekly paid'}): {reason}",
                created_at=now,
                updated_at=now,
            )

    async def activation_readiness(self, db: AsyncSession, booking_id: UUID) -> ActivationReadiness:
        """Report whether a booking could be activated now, and what is missing."""
        booking = await _load_booking(RecordStore(db), booking_id)
        checks = activation_checks(booking)
        requirements = []
        if not checks["valid_status"]:
            requirements.append(
                "Status must be partner_accepted, pending_insurance_upload, or confirmed "
                f"(current: {booking.status})"
            )
        if not checks["payment_confirmed"]:
            requirements.append(f"Payment must be confirmed (current: {booking.payment_status})")
        if not checks["insurance_valid"]:
            requirements.append("Valid insurance certificate required")
        if not checks["documents_approved"]:
            requirements.append("Document verification must be completed")
        return ActivationReadiness(
            can_activate=not requirements,
            current_status=booking.status,
            requirements=requirements,
            checks=checks,
        )

    async def start_active(
        self,
        db: AsyncSession,
        booking_id: UUID,
        partner_id: UUID,
        triggered_by: str = "partner",
        bypass_requirements: bool = False,
        now: datetime | None = None,
    ) -> Booking:
        """Activate an accepted booking so the driver can collect the vehicle.

        Raises:
            NotFoundError: Booking missing
            AuthorizationError: Partner does not own the booking
            InvalidStateError: Status does not allow activation
            RequirementsNotMetError: Payment, insurance or documents outstanding
        """
        store = RecordStore(db)
        now = now or datetime.now(UTC)

        booking = await _load_booking(store, booking_id)
        if booking.partner_id != partner_id:
            raise AuthorizationError("Not authorized to activate this booking")
        assert_can_activate(booking.status)
        if not bypass_requirements:
            requirements = activation_requirements(booking)
            if requirements:
                raise RequirementsNotMetError(requirements)

        store.update(
            booking,
            status=BookingStatus.ACTIVE.value,
            activated_at=now,
            activated_by=partner_id,
            activated_by_type="partner",
            activated_trigger=triggered_by,
            updated_at=now,
        )
        vehicle = await store.get(Vehicle, booking.current_vehicle_id)
        if vehicle is not None:
            store.update(vehicle, status="booked", current_booking_id=booking.id, updated_at=now)
        await store.flush("activating booking", BOOKING_UPDATE_FAILED)

        async with store.best_effort("adding to booking history", booking_id=booking.id):
            await history_service.log_booking_action(
                db=db,
                booking_id=booking.id,
                action="booking_activated",
                performed_by=partner_id,
                performed_by_type="partner",
                details={
                    "triggered_by": triggered_by,
                    "activated_at": now.isoformat(),
                    "ready_for_collection": True,
                    "bypass_requirements": bypass_requirements,
                },
                description=(
                    "Booking force activated by partner (requirements bypassed)."
                    if bypass_requirements
                    else "Booking activated by partner. Vehicle ready for collection."
                ),
                created_at=now,
            )

        async with store.best_effort("creating driver notification", booking_id=booking.id):
            await notification_service.create_notification(
                db=db,
                notification_type=notification_service.BOOKING_ACTIVATED,
                recipient_id=booking.driver_id,
                recipient_type="driver",
                title="Booking Now Active - Ready for Collection!",
                message=(
                    "Your booking is now active! Please contact your partner to arrange vehicle "
                    "collection. Make sure to complete the handover inspection."
                ),
                data={"booking_id": str(booking.id)},
                priority=notification_service.HIGH,
                created_at=now,
            )

        async with store.best_effort("creating admin notification", booking_id=booking.id):
            await notification_service.notify_admins(
                db=db,
                notification_type=notification_service.BOOKING_ACTIVATED_ADMIN,
                title="Booking Activated",
                message=f"Booking {booking.id} has been activated by partner. Vehicle collection phase started.",
                data={"booking_id": str(booking.id), "partner_id": str(partner_id)},
                priority=notification_service.LOW,
                created_at=now,
            )

        logger.info(f"Booking {booking.id} activated by partner {partner_id} ({triggered_by})")
        return booking

    async def finish_booking(
        self,
        db: AsyncSession,
        booking_id: UUID,
        finished_by: UUID,
        finished_by_type: str,
        final_notes: str | None = None,
        final_mileage: int | None = None,
        final_fuel_level: str | None = None,
        now: datetime | None = None,
    ) -> FinishResult:
        """Complete a booking, bill the weeks used and free the vehicle.

        Raises:
            NotFoundError: Booking missing
            AuthorizationError: Driver/partner does not own the booking
            InvalidStateError: Status does not allow finishing
            DependencyWriteError: Booking or ledger write failed
        """
        store = RecordStore(db)
        now = now or datetime.now(UTC)

        booking = await _load_booking(store, booking_id)
        assert_booking_actor(booking, finished_by, finished_by_type)
        assert_can_finish(booking.status)

        performer_name = await _user_name(store, finished_by)
        actual_paid = sum_actual_paid(await _paid_instructions(store, booking))
        settlement = calculate_final_settlement(
            weekly_rate=booking.weekly_rate,
            actual_paid=actual_paid,
            start_date=booking.start_date,
            now=now,
        )
        outstanding = settlement.outstanding_amount

        store.update(
            booking,
            status=BookingStatus.COMPLETED.value,
            completed_at=now,
            finished_at=now,
            finished_by=finished_by,
            finished_by_type=finished_by_type,
            final_notes=final_notes,
            final_mileage=final_mileage,
            final_fuel_level=final_fuel_level,
            total_days=settlement.total_days,
            total_weeks=settlement.total_weeks,
            final_amount=settlement.final_amount,
            outstanding_amount=outstanding,
            payment_status="outstanding" if outstanding > 0 else "completed",
            updated_at=now,
        )
        vehicle = await store.get(Vehicle, booking.current_vehicle_id)
        _free_vehicle(
            store,
            vehicle,
            booking,
            now,
            **({"mileage": final_mileage} if final_mileage is not None else {}),
        )
        await store.flush("finishing booking", BOOKING_UPDATE_FAILED)

        snapshot = vehicle_details(booking)
        if outstanding > 0:
            store.insert(
                PaymentInstruction,
                booking_id=booking.id,
                driver_id=booking.driver_id,
                partner_id=booking.partner_id,
                vehicle_reg=snapshot["registration"],
                amount=outstanding,
                type="final_payment",
                method=booking.payment_method or "bank_transfer",
                frequency="one_off",
                status="pending",
                reason="Final payment for completed booking",
                created_at=now,
                updated_at=now,
            )
        driver = await store.get(User, booking.driver_id)
        partner = await store.get(User, booking.partner_id)
        ledger_service.record_entries(
            store,
            booking,
            amount=settlement.final_amount,
            description="Final payment for completed booking",
            now=now,
            driver=driver,
            partner=partner,
            booking_details={
                "total_days": settlement.total_days,
                "total_weeks": settlement.total_weeks,
                "final_amount": float(settlement.final_amount),
                "actual_paid": float(actual_paid),
                "outstanding_amount": float(outstanding),
            },
            vehicle_details={**snapshot, "final_mileage": final_mileage},
            source="booking_completion",
            payment_method=booking.payment_method or "bank_transfer",
            entry_types=("income",),
        )
        await store.flush("recording final settlement", BOOKING_UPDATE_FAILED)

        final_text = f"£{format_amount(settlement.final_amount)}"
        outstanding_text = f"£{format_amount(outstanding)}"
        async with store.best_effort("adding to booking history", booking_id=booking.id):
            await history_service.log_booking_action(
                db=db,
                booking_id=booking.id,
                action="booking_finished",
                performed_by=finished_by,
                performed_by_type=finished_by_type,
                details={
                    "performer_name": performer_name,
                    "total_days": settlement.total_days,
                    "total_weeks": settlement.total_weeks,
                    "final_amount": float(settlement.final_amount),
                    "outstanding_amount": float(outstanding),
                    "final_notes": final_notes,
                    "final_mileage": final_mileage,
                    "final_fuel_level": final_fuel_level,
                },
                description=(
                    f"Booking finished by {performer_name}. Total: {settlement.total_days} days, "
                    f"{settlement.total_weeks} weeks. Final amount: {final_text}"
                    f"{f' (Outstanding: {outstanding_text})' if outstanding > 0 else ''}"
                ),
                created_at=now,
            )

        data = {
            "booking_id": str(booking.id),
            "final_amount": float(settlement.final_amount),
            "outstanding_amount": float(outstanding),
        }
        async with store.best_effort("creating driver notification", booking_id=booking.id):
            await notification_service.create_notification(
                db=db,
                notification_type=notification_service.BOOKING_FINISHED,
                recipient_id=booking.driver_id,
                recipient_type="driver",
                title="Booking Completed",
                message=(
                    f"Your booking for {_vehicle_name(booking)} has been completed."
                    f"{f' Outstanding amount: {outstanding_text}' if outstanding > 0 else ''}"
                ),
                data=data,
                priority=notification_service.MEDIUM,
                created_at=now,
            )

        async with store.best_effort("creating partner notification", booking_id=booking.id):
            await notification_service.create_notification(
                db=db,
                notification_type=notification_service.BOOKING_FINISHED,
                recipient_id=booking.partner_id,
                recipient_type="partner",
                title="Booking Completed",
                message=(
                    f"Booking {booking.id} has been completed by {performer_name}. Final amount: {final_text}"
                    f"{f' (Outstanding: {outstanding_text})' if outstanding > 0 else ''}"
                ),
                data=data,
                priority=notification_service.MEDIUM,
                created_at=now,
            )

        async with store.best_effort("creating admin notification", booking_id=booking.id):
            await notification_service.notify_admins(
                db=db,
                notification_type=notification_service.BOOKING_FINISHED_ADMIN,
                title="Booking Completed",
                message=(
                    f"Booking {booking.id} has been completed by {performer_name} "
                    f"({finished_by_type}). Final amount: {final_text}"
                ),
                data={**data, "performer_name": performer_name, "performer_type": finished_by_type},
                priority=notification_service.LOW,
                created_at=now,
            )

        logger.info(
            f"Booking {booking.id} finished by {finished_by_type}: "
            f"final={settlement.final_amount} outstanding={outstanding}"
        )
        return FinishResult(
            booking=booking,
            final_amount=settlement.final_amount,
            outstanding_amount=outstanding,
            total_days=settlement.total_days,
            total_weeks=settlement.total_weeks,
        )

    async def cancel_booking(
        self,
        db: AsyncSession,
        booking_id: UUID,
        reason: str,
        cancel_type: str | CancelType,
        insurance_refund_amount: Decimal | None = None,
        cancelled_by: UUID | None = None,
        cancelled_by_type: str = ActorType.DRIVER.value,
        now: datetime | None = None,
    ) -> CancelResult:
        """Cancel a booking, free its vehicle and refund the driver.

        The actor defaults to the booking's driver.

        Raises:
            NotFoundError: Booking missing
            AuthorizationError: Driver/partner does not own the booking
            InvalidStateError: Booking already finished, cancelled or rejected
            ValidationError: Unknown cancel type
            DependencyWriteError: Booking, refund or ledger write failed
        """
        store = RecordStore(db)
        now = now or datetime.now(UTC)

        booking = await _load_booking(store, booking_id)
        if cancelled_by is None:
            cancelled_by = booking.driver_id
            cancelled_by_type = ActorType.DRIVER.value
        assert_booking_actor(booking, cancelled_by, cancelled_by_type)
        assert_can_cancel(booking.status)

        refund = calculate_cancellation_refund(
            cancel_type=cancel_type,
            weekly_rate=booking.weekly_rate,
            actual_paid=sum_actual_paid(await _paid_instructions(store, booking)),
            start_date=booking.start_date,
            end_date=booking.end_date,
            now=now,
        )
        cancel_type = CancelType(cancel_type).value
        insurance_refund = to_money(insurance_refund_amount) if insurance_refund_amount else Decimal("0")
        insurance_refund = max(Decimal("0"), insurance_refund)

        subscriptions = await store.find(
            Subscription,
            Subscription.booking_id == booking.id,
            Subscription.status == "active",
        )
        charge_id = next((s.stripe_payment_intent_id for s in subscriptions if s.stripe_payment_intent_id), None)
        for subscription in subscriptions:
            store.update(subscription, status="cancelled", cancelled_at=now)

        store.update(
            booking,
            status=BookingStatus.CANCELLED.value,
            cancelled_at=now,
            cancelled_by=cancelled_by,
            cancelled_by_type=cancelled_by_type,
            cancel_reason=reason,
            cancel_type=cancel_type,
            refund_amount=refund.refund_amount,
            insurance_refund=insurance_refund,
            days_used=refund.days_used,
            remaining_days=refund.remaining_days,
            payment_status="refunded" if refund.refund_amount > 0 else booking.payment_status,
            updated_at=now,
        )
        vehicle = await store.get(Vehicle, booking.current_vehicle_id)
        _free_vehicle(store, vehicle, booking, now)
        await store.flush("cancelling booking", BOOKING_UPDATE_FAILED)

        booking_details = {
            "original_amount": float(booking.total_amount) if booking.total_amount is not None else None,
            "days_used": refund.days_used,
            "total_days": refund.total_days,
            "remaining_days": refund.remaining_days,
            "cancel_type": cancel_type,
            "cancel_reason": reason,
        }
        stripe_refund_id = await ledger_service.process_cancellation_refund(
            store=store,
            booking=booking,
            refund_amount=refund.refund_amount,
            insurance_refund=insurance_refund,
            charge_id=charge_id,
            booking_details=booking_details,
            driver=await store.get(User, booking.driver_id),
            partner=await store.get(User, booking.partner_id),
            now=now,
        )
        if stripe_refund_id:
            store.update(booking, stripe_refund_id=stripe_refund_id)
            await store.flush("recording refund on booking", BOOKING_UPDATE_FAILED)

        performer_name = await _user_name(store, cancelled_by)
        refund_text = f" (£{format_amount(refund.refund_amount)} refunded)" if refund.refund_amount > 0 else ""
        insurance_text = (
            f" (Insurance refund: £{format_amount(insurance_refund)})" if insurance_refund > 0 else ""
        )
        data = {
            "booking_id": str(booking.id),
            "cancel_type": cancel_type,
            "refund_amount": float(refund.refund_amount),
            "insurance_refund": float(insurance_refund),
            "reason": reason,
        }

        async with store.best_effort("adding to booking history", booking_id=booking.id):
            await history_service.log_booking_action(
                db=db,
                booking_id=booking.id,
                action="booking_cancelled",
                performed_by=cancelled_by,
                performed_by_type=cancelled_by_type,
                details={
                    **data,
                    "stripe_refund_id": stripe_refund_id,
                    "subscriptions_cancelled": bool(subscriptions),
                    "days_used": refund.days_used,
                    "total_days": refund.total_days,
                    "remaining_days": refund.remaining_days,
                },
                description=f"Booking cancelled by {cancelled_by_type}: {reason}{refund_text}{insurance_text}",
                created_at=now,
            )

        async with store.best_effort("creating partner notification", booking_id=booking.id):
            await notification_service.create_notification(
                db=db,
                notification_type=notification_service.BOOKING_CANCELLED,
                recipient_id=booking.partner_id,
                recipient_type="partner",
                title="Booking Cancelled",
                message=f"Booking {booking.id} has been cancelled by the {cancelled_by_type}. Reason: {reason}",
                data=data,
                priority=notification_service.MEDIUM,
                created_at=now,
            )

        async with store.best_effort("creating admin notification", booking_id=booking.id):
            await notification_service.notify_admins(
                db=db,
                notification_type=notification_service.BOOKING_CANCELLED_ADMIN,
                title=f"Booking Cancelled by {cancelled_by_type.capitalize()}",
                message=f"{cancelled_by_type.capitalize()} {performer_name} cancelled booking {booking.id}. Reason: {reason}",
                data=data,
                priority=notification_service.MEDIUM,
                created_at=now,
            )

        logger.info(f"Booking {booking.id} cancelled ({cancel_type}), refund={refund.refund_amount}")
        return CancelResult(
            booking=booking,
            refund_amount=refund.refund_amount,
            insurance_refund=insurance_refund,
            stripe_refund_id=stripe_refund_id,
            subscriptions_cancelled=bool(subscriptions),
        )


booking_lifecycle_service = BookingLifecycleService()
