"""Vehicle assignment on live bookings.

Critical path (one transaction): booking row and old and new vehicle status
are flushed first, so a version conflict or write failure surfaces before the
gateway is called; the adjustment payment and its ledger rows follow in the
same transaction. Everything after that (history, notifications) is
best-effort: a failure is logged and the request still succeeds.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import InvalidStateError, NotFoundError, VehicleUnavailableError
from app.core.permissions import assert_booking_actor, assert_booking_partner
from app.domain.booking_state import assert_can_change_vehicle, assert_can_release_vehicle
from app.domain.proration import (
    PAID_INSTRUCTION_STATUSES,
    AdjustmentResult,
    AdjustmentType,
    calculate_vehicle_change_adjustment,
    format_rate_change,
    sum_actual_paid,
    to_money,
)
from app.models.booking import Booking
from app.models.payment import PaymentInstruction
from app.models.user import User
from app.models.vehicle import Vehicle
from app.services.history_service import history_service
from app.services.ledger_service import AdjustmentPayment, ledger_service
from app.services.notification_service import notification_service
from app.services.record_store import RecordStore

logger = logging.getLogger(__name__)

BOOKING_UPDATE_FAILED = "Failed to update booking"


@dataclass
class VehicleChangeResult:
    """Outcome of a vehicle reassignment."""

    booking: Booking
    new_vehicle: Vehicle
    adjustment: AdjustmentResult
    payment: AdjustmentPayment


@dataclass
class VehicleReleaseResult:
    """Outcome of releasing a booking's vehicle."""

    booking: Booking
    vehicle_id: UUID
    vehicle: Vehicle | None


def describe_vehicle(make: str | None, model: str | None, registration: str | None = None) -> str:
    """'Toyota Prius (AB12 CDE)'."""
    label = f"{make or ''} {model or ''}".strip() or "Unknown vehicle"
    if registration:
        label = f"{label} ({registration})"
    return label


def car_snapshot(vehicle: Vehicle) -> dict[str, Any]:
    """Denormalized vehicle fields stored on the booking for the driver portal."""
    return {
        "id": str(vehicle.id),
        "make": vehicle.make or "",
        "model": vehicle.model or "",
        "year": vehicle.year or "",
        "registration_number": vehicle.registration_number or "",
        "color": vehicle.color or "",
        "fuel_type": vehicle.fuel_type or "",
        "transmission": vehicle.transmission or "",
        "seats": vehicle.seats or "",
        "mileage": vehicle.mileage or "",
        "image": vehicle.primary_image,
        "price_per_week": float(vehicle.price_per_week or 0),
    }


def _adjustment_suffix(amount: Decimal) -> str:
    if amount == 0:
        return ""
    return f" ({format_rate_change(amount)})"


async def _performer_name(store: RecordStore, user_id: UUID) -> str:
    user = await store.get(User, user_id)
    return user.display_name if user else "Unknown"


class VehicleAssignmentService:
    """Service for changing and releasing the vehicle on a booking."""

    async def change_vehicle(
        self,
        db: AsyncSession,
        booking_id: UUID,
        partner_id: UUID,
        new_vehicle_id: UUID,
        reason: str,
        adjustment_type: str | AdjustmentType = AdjustmentType.PRORATED,
        now: datetime | None = None,
    ) -> VehicleChangeResult:
        """Reassign a booking to another vehicle and bill the rate difference.

        Raises:
            NotFoundError: Booking or new vehicle missing
            AuthorizationError: Partner does not own the booking
            InvalidStateError: Booking status does not allow a change
            VehicleUnavailableError: New vehicle is not available
            DependencyWriteError: Payment or booking update failed
            ConflictError: Booking or vehicle changed concurrently
        """
        store = RecordStore(db)
        now = now or datetime.now(UTC)

        booking = await store.get(Booking, booking_id)
        if not booking:
            raise NotFoundError("Booking")
        assert_booking_partner(booking, partner_id)
        assert_can_change_vehicle(booking.status)

        new_vehicle = await store.get(Vehicle, new_vehicle_id)
        if not new_vehicle:
            raise NotFoundError("New vehicle")
        if new_vehicle.status != "available":
            raise VehicleUnavailableError()

        current_vehicle = await store.get(Vehicle, booking.current_vehicle_id)
        old_weekly_rate = to_money(
            booking.weekly_rate
            if booking.weekly_rate is not None
            else (current_vehicle.price_per_week if current_vehicle else None)
        )
        new_weekly_rate = to_money(new_vehicle.price_per_week)

        instructions = await store.find(
            PaymentInstruction,
            PaymentInstruction.booking_id == booking.id,
            PaymentInstruction.status.in_(PAID_INSTRUCTION_STATUSES),
        )
        adjustment = calculate_vehicle_change_adjustment(
            old_weekly_rate=old_weekly_rate,
            new_weekly_rate=new_weekly_rate,
            adjustment_type=adjustment_type,
            actual_paid=sum_actual_paid(instructions),
            booking_status=booking.status,
            start_date=booking.start_date,
            now=now,
        )

        driver = await store.get(User, booking.driver_id)
        partner = await store.get(User, partner_id)
        performer_name = partner.display_name if partner else "Unknown"

        old_vehicle_id = booking.current_vehicle_id
        old_car = booking.car or {}
        old_vehicle_label = describe_vehicle(
            old_car.get("make"), old_car.get("model"), old_car.get("registration_number")
        )
        old_vehicle_name = describe_vehicle(old_car.get("make"), old_car.get("model"))
        new_vehicle_label = describe_vehicle(
            new_vehicle.make, new_vehicle.model, new_vehicle.registration_number
        )
        new_vehicle_name = describe_vehicle(new_vehicle.make, new_vehicle.model)

        history_entry = {
            "vehicle_id": str(new_vehicle.id),
            "assigned_at": now.isoformat(),
            "assigned_by": str(partner_id),
            "assigned_by_type": "partner",
            "assigned_by_name": performer_name,
            "reason": reason,
            "status": "active",
            "previous_vehicle_id": str(old_vehicle_id) if old_vehicle_id else None,
        }

        store.update(
            booking,
            current_vehicle_id=new_vehicle.id,
            car_id=new_vehicle.id,
            car_name=new_vehicle.display_name,
            car_image=new_vehicle.primary_image,
            car_plate=new_vehicle.registration_number or "",
            car=car_snapshot(new_vehicle),
            vehicle_history=[*(booking.vehicle_history or []), history_entry],
            updated_at=now,
        )
        if old_vehicle_id and old_vehicle_id != new_vehicle.id and current_vehicle:
            store.update(current_vehicle, status="available", current_booking_id=None, updated_at=now)
        store.update(new_vehicle, status="booked", current_booking_id=booking.id, updated_at=now)
        await store.flush("updating booking vehicle assignment", BOOKING_UPDATE_FAILED)

        # Money moves only once the assignment is known to apply cleanly
        payment = await ledger_service.process_vehicle_change_adjustment(
            store=store,
            booking=booking,
            old_vehicle_id=old_vehicle_id,
            new_vehicle=new_vehicle,
            adjustment=adjustment,
            old_weekly_rate=old_weekly_rate,
            new_weekly_rate=new_weekly_rate,
            driver=driver,
            partner=partner,
            now=now,
        )

        suffix = _adjustment_suffix(adjustment.amount)
        adjustment_amount = float(adjustment.amount)

        async with store.best_effort("adding to booking history", booking_id=booking.id):
            await history_service.log_vehicle_assigned(
                db=db,
                booking_id=booking.id,
                partner_id=partner_id,
                performer_name=performer_name,
                old_vehicle_id=old_vehicle_id,
                new_vehicle_id=new_vehicle.id,
                old_vehicle=old_vehicle_label,
                new_vehicle=new_vehicle_label,
                reason=reason,
                adjustment_amount=adjustment_amount,
                adjustment_reason=adjustment.reason,
                description=(
                    f"Vehicle changed from {old_vehicle_name} to {new_vehicle_name} "
                    f"by {performer_name}. Reason: {reason}{suffix}"
                ),
                created_at=now,
            )

        async with store.best_effort("creating driver notification", booking_id=booking.id):
            await notification_service.create_notification(
                db=db,
                notification_type=notification_service.VEHICLE_ASSIGNED,
                recipient_id=booking.driver_id,
                recipient_type="driver",
                title="Vehicle Changed",
                message=f"Your assigned vehicle has been changed to {new_vehicle_label}. Reason: {reason}{suffix}",
                data={
                    "booking_id": str(booking.id),
                    "old_vehicle": old_vehicle_name,
                    "new_vehicle": new_vehicle_name,
                    "adjustment_amount": adjustment_amount,
                },
                priority=notification_service.HIGH,
                created_at=now,
            )

        async with store.best_effort("creating admin notification", booking_id=booking.id):
            await notification_service.notify_admins(
                db=db,
                notification_type=notification_service.VEHICLE_ASSIGNED_ADMIN,
                title="Vehicle Assignment Changed",
                message=(
                    f"Partner {performer_name} changed vehicle for booking {booking.id} "
                    f"from {old_vehicle_name} to {new_vehicle_name}"
                ),
                data={
                    "booking_id": str(booking.id),
                    "partner_name": performer_name,
                    "old_vehicle": old_vehicle_name,
                    "new_vehicle": new_vehicle_name,
                    "adjustment_amount": adjustment_amount,
                },
                priority=notification_service.MEDIUM,
                created_at=now,
            )

        async with store.best_effort("creating enhanced admin notification", booking_id=booking.id):
            await notification_service.create_admin_task(
                db=db,
                level="info",
                task_type="vehicle_changed",
                task_id=booking.id,
                title="Vehicle Assignment Changed",
                message=(
                    f"PARTNER {performer_name} changed the vehicle for booking {booking.id} "
                    f"to {new_vehicle_label}. Reason: {reason}. {adjustment.reason}."
                ),
                data={
                    "booking_id": str(booking.id),
                    "partner_id": str(partner_id),
                    "partner_name": performer_name,
                    "old_vehicle_id": str(old_vehicle_id) if old_vehicle_id else None,
                    "new_vehicle_id": str(new_vehicle.id),
                    "adjustment_amount": adjustment_amount,
                    "payment_processed": payment.payment_processed,
                },
                target_roles=settings.admin_roles_vehicle_changed,
                priority=notification_service.MEDIUM,
                # Billed adjustments need a finance check
                requires_action=payment.payment_processed,
                created_at=now,
            )

        logger.info(
            f"Vehicle changed on booking {booking.id}: {old_vehicle_id} -> {new_vehicle.id}, "
            f"adjustment={adjustment.amount}"
        )
        return VehicleChangeResult(
            booking=booking,
            new_vehicle=new_vehicle,
            adjustment=adjustment,
            payment=payment,
        )

    async def release_vehicle(
        self,
        db: AsyncSession,
        booking_id: UUID,
        released_by: UUID,
        released_by_type: str,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> VehicleReleaseResult:
        """Detach the vehicle from a booking and make it available again.

        Raises:
            NotFoundError: Booking missing
            AuthorizationError: Driver/partner does not own the booking
            InvalidStateError: Status does not allow release, or no vehicle assigned
            DependencyWriteError: Booking update failed
        """
        store = RecordStore(db)
        now = now or datetime.now(UTC)

        booking = await store.get(Booking, booking_id)
        if not booking:
            raise NotFoundError("Booking")
        assert_booking_actor(booking, released_by, released_by_type)
        assert_can_release_vehicle(booking.status)
        if not booking.current_vehicle_id:
            raise InvalidStateError("No vehicle assigned to this booking")

        performer_name = await _performer_name(store, released_by)
        vehicle_id = booking.current_vehicle_id
        vehicle = await store.get(Vehicle, vehicle_id)
        if vehicle is None:
            logger.warning(f"Vehicle {vehicle_id} on booking {booking.id} not found; releasing booking only")
        vehicle_name = vehicle.display_name if vehicle else "Unknown"
        release_reason = reason or "No reason provided"
        reason_suffix = f". Reason: {reason}" if reason else ""

        store.update(
            booking,
            current_vehicle_id=None,
            car_id=None,
            car=None,
            car_name=None,
            car_image=None,
            car_plate=None,
            vehicle_released_at=now,
            vehicle_released_by=released_by,
            vehicle_released_by_type=released_by_type,
            vehicle_release_reason=release_reason,
            updated_at=now,
        )
        if vehicle:
            store.update(vehicle, status="available", current_booking_id=None, updated_at=now)
        await store.flush("releasing booking vehicle", BOOKING_UPDATE_FAILED)

        async with store.best_effort("adding to booking history", booking_id=booking.id):
            await history_service.log_booking_action(
                db=db,
                booking_id=booking.id,
                action="vehicle_released",
                performed_by=released_by,
                performed_by_type=released_by_type,
                details={
                    "performer_name": performer_name,
                    "vehicle_id": str(vehicle_id),
                    "vehicle_name": vehicle_name,
                    "vehicle_registration": (vehicle.registration_number if vehicle else None) or "Unknown",
                    "reason": release_reason,
                },
                description=f"Vehicle released by {performer_name}{f': {reason}' if reason else ''}",
                created_at=now,
            )

        async with store.best_effort("creating driver notification", booking_id=booking.id):
            await notification_service.create_notification(
                db=db,
                notification_type=notification_service.VEHICLE_RELEASED,
                recipient_id=booking.driver_id,
                recipient_type="driver",
                title="Vehicle Released",
                message=f"The vehicle for your booking has been released{reason_suffix}.",
                data={"booking_id": str(booking.id), "vehicle_name": vehicle_name, "reason": reason},
                priority=notification_service.MEDIUM,
                created_at=now,
            )

        async with store.best_effort("creating partner notification", booking_id=booking.id):
            await notification_service.create_notification(
                db=db,
                notification_type=notification_service.VEHICLE_RELEASED,
                recipient_id=booking.partner_id,
                recipient_type="partner",
                title="Vehicle Released",
                message=f"Vehicle has been released from booking {booking.id} by {performer_name}{reason_suffix}",
                data={
                    "booking_id": str(booking.id),
                    "vehicle_name": vehicle_name,
                    "reason": reason,
                    "performer_name": performer_name,
                },
                priority=notification_service.MEDIUM,
                created_at=now,
            )

        async with store.best_effort("creating admin notification", booking_id=booking.id):
            await notification_service.notify_admins(
                db=db,
                notification_type=notification_service.VEHICLE_RELEASED_ADMIN,
                title="Vehicle Released",
                message=(
                    f"Vehicle has been released from booking {booking.id} by "
                    f"{performer_name} ({released_by_type}){reason_suffix}"
                ),
                data={
                    "booking_id": str(booking.id),
                    "vehicle_name": vehicle_name,
                    "reason": reason,
                    "performer_name": performer_name,
                    "performer_type": released_by_type,
                },
                priority=notification_service.LOW,
                created_at=now,
            )

        logger.info(f"Vehicle {vehicle_id} released from booking {booking.id} by {released_by_type}")
        return VehicleReleaseResult(booking=booking, vehicle_id=vehicle_id, vehicle=vehicle)


vehicle_assignment_service = VehicleAssignmentService()
