"""Vehicle return requests.

Drivers or partners request a return; the counterparty (or an admin)
approves or rejects it. Approval completes the booking and frees the
vehicle in the same transaction.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import NotFoundError
from app.core.permissions import ActorType, assert_booking_actor
from app.domain.booking_state import BookingStatus
from app.domain.return_state import ReturnAction, ReturnState, assert_return_transition
from app.models.booking import Booking
from app.models.user import User
from app.models.vehicle import Vehicle
from app.services.history_service import history_service
from app.services.notification_service import notification_service
from app.services.record_store import RecordStore

logger = logging.getLogger(__name__)

NO_REASON = "No reason provided"

SUCCESS_MESSAGES = {
    ReturnAction.REQUEST: "Return requested successfully",
    ReturnAction.APPROVE: "Return approved successfully",
    ReturnAction.REJECT: "Return rejected successfully",
}


@dataclass
class ReturnRequestResult:
    booking: Booking
    action: ReturnAction
    state: ReturnState

    @property
    def message(self) -> str:
        return SUCCESS_MESSAGES[self.action]


class ReturnRequestService:
    """Service for the request/approve/reject return workflow."""

    async def process(
        self,
        db: AsyncSession,
        booking_id: UUID,
        requested_by: UUID,
        requested_by_type: str,
        action: str = ReturnAction.REQUEST.value,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> ReturnRequestResult:
        """Apply a return action to a booking.

        Raises:
            NotFoundError: Booking missing
            AuthorizationError: Driver/partner does not own the booking
            ValidationError: Unknown action
            InvalidStateError: Action not allowed in the current state
            DependencyWriteError: Booking update failed
        """
        store = RecordStore(db)
        now = now or datetime.now(UTC)

        booking = await store.get(Booking, booking_id)
        if not booking:
            raise NotFoundError("Booking")
        assert_booking_actor(booking, requested_by, requested_by_type)
        target = assert_return_transition(booking, action)
        action = ReturnAction(action)

        requester = await store.get(User, requested_by)
        requester_name = requester.display_name if requester else "Unknown"

        if action is ReturnAction.REQUEST:
            await self._request(store, booking, requested_by, requested_by_type, requester_name, reason, now)
        elif action is ReturnAction.APPROVE:
            await self._approve(store, booking, requested_by, requested_by_type, requester_name, reason, now)
        else:
            await self._reject(store, booking, requested_by, requested_by_type, requester_name, reason, now)

        logger.info(f"Return {action.value} on booking {booking.id} by {requested_by_type} {requested_by}")
        return ReturnRequestResult(booking=booking, action=action, state=target)

    async def _request(
        self,
        store: RecordStore,
        booking: Booking,
        requested_by: UUID,
        requested_by_type: str,
        requester_name: str,
        reason: str | None,
        now: datetime,
    ) -> None:
        store.update(
            booking,
            return_requested=True,
            return_requested_at=now,
            return_requested_by=requested_by,
            return_requested_by_type=requested_by_type,
            return_reason=reason or NO_REASON,
            updated_at=now,
        )
        await store.flush("requesting return", "Failed to update booking")

        reason_suffix = f". Reason: {reason}" if reason else ""
        by_driver = requested_by_type == ActorType.DRIVER.value

        async with store.best_effort("adding to booking history", booking_id=booking.id):
            await history_service.log_booking_action(
                db=store.db,
                booking_id=booking.id,
                action="return_requested",
                performed_by=requested_by,
                performed_by_type=requested_by_type,
                details={"reason": reason or NO_REASON, "requester_name": requester_name},
                description=f"Return requested by {requester_name}{f': {reason}' if reason else ''}",
                created_at=now,
            )

        async with store.best_effort("creating notification", booking_id=booking.id):
            await notification_service.create_notification(
                db=store.db,
                notification_type=notification_service.RETURN_REQUESTED,
                recipient_id=booking.partner_id if by_driver else booking.driver_id,
                recipient_type="partner" if by_driver else "driver",
                title="Return Requested",
                message=f"{requester_name} has requested to return the vehicle{reason_suffix}",
                data={"booking_id": str(booking.id)},
                priority=notification_service.HIGH,
                created_at=now,
            )

        async with store.best_effort("creating admin notification", booking_id=booking.id):
            await notification_service.notify_admins(
                db=store.db,
                notification_type=notification_service.RETURN_REQUESTED_ADMIN,
                title="Return Requested",
                message=f"Return requested for booking {booking.id} by {requester_name} ({requested_by_type})",
                data={
                    "booking_id": str(booking.id),
                    "requester_name": requester_name,
                    "requester_type": requested_by_type,
                },
                priority=notification_service.MEDIUM,
                created_at=now,
            )

        follow_up = "Partner must respond within 24 hours" if by_driver else "Driver will be notified"
        async with store.best_effort("creating enhanced admin notification", booking_id=booking.id):
            await notification_service.create_admin_task(
                db=store.db,
                level="warning",
                task_type="return_requested",
                task_id=booking.id,
                title="Vehicle Return Requested - Action Required",
                message=(
                    f"{requested_by_type.upper()} {requester_name} requested vehicle return for booking "
                    f"{booking.id}. Reason: {reason or NO_REASON}. {follow_up}."
                ),
                data={
                    "booking_id": str(booking.id),
                    "requested_by": str(requested_by),
                    "requested_by_type": requested_by_type,
                    "requester_name": requester_name,
                    "return_reason": reason or NO_REASON,
                    "urgency": "high",
                    "requires_partner_response": by_driver,
                },
                target_roles=settings.admin_roles_return_requested,
                priority=notification_service.HIGH,
                requires_action=True,
                created_at=now,
            )

    async def _approve(
        self,
        store: RecordStore,
        booking: Booking,
        approved_by: UUID,
        approved_by_type: str,
        approver_name: str,
        reason: str | None,
        now: datetime,
    ) -> None:
        store.update(
            booking,
            status=BookingStatus.COMPLETED.value,
            completed_at=now,
            return_approved=True,
            return_approved_at=now,
            return_approved_by=approved_by,
            return_approved_by_type=approved_by_type,
            updated_at=now,
        )
        vehicle = await store.get(Vehicle, booking.current_vehicle_id)
        if vehicle is not None and vehicle.current_booking_id in (None, booking.id):
            store.update(vehicle, status="available", current_booking_id=None, updated_at=now)
        await store.flush("approving return", "Failed to update booking")

        async with store.best_effort("adding to booking history", booking_id=booking.id):
            await history_service.log_booking_action(
                db=store.db,
                booking_id=booking.id,
                action="return_approved",
                performed_by=approved_by,
                performed_by_type=approved_by_type,
                details={
                    "approver_name": approver_name,
                    "original_return_reason": booking.return_reason or NO_REASON,
                },
                description=f"Return approved by {approver_name}. Booking completed.",
                created_at=now,
            )

        if approved_by_type != ActorType.DRIVER.value:
            async with store.best_effort("creating driver notification", booking_id=booking.id):
                await notification_service.create_notification(
                    db=store.db,
                    notification_type=notification_service.RETURN_APPROVED,
                    recipient_id=booking.driver_id,
                    recipient_type="driver",
                    title="Return Approved",
                    message=(
                        f"Your return request has been approved by {approver_name}. "
                        "The booking is now complete."
                    ),
                    data={"booking_id": str(booking.id)},
                    priority=notification_service.HIGH,
                    created_at=now,
                )

        if approved_by_type == ActorType.ADMIN.value:
            async with store.best_effort("creating partner notification", booking_id=booking.id):
                await notification_service.create_notification(
                    db=store.db,
                    notification_type=notification_service.RETURN_APPROVED_PARTNER,
                    recipient_id=booking.partner_id,
                    recipient_type="partner",
                    title="Return Approved by Admin",
                    message=f"Admin has approved the return for booking {booking.id}",
                    data={"booking_id": str(booking.id)},
                    priority=notification_service.MEDIUM,
                    created_at=now,
                )

        if approved_by_type == ActorType.PARTNER.value:
            async with store.best_effort("creating admin notification", booking_id=booking.id):
                await notification_service.notify_admins(
                    db=store.db,
                    notification_type=notification_service.RETURN_APPROVED_ADMIN,
                    title="Return Approved",
                    message=f"Partner {approver_name} approved return for booking {booking.id}",
                    data={"booking_id": str(booking.id), "approver_name": approver_name},
                    priority=notification_service.LOW,
                    created_at=now,
                )

        async with store.best_effort("creating enhanced admin notification", booking_id=booking.id):
            await notification_service.create_admin_task(
                db=store.db,
                level="success",
                task_type="return_approved",
                task_id=booking.id,
                title="Vehicle Return Approved",
                message=(
                    f"Return approved for booking {booking.id} by {approved_by_type} {approver_name}. "
                    "Vehicle handover process can begin. Ensure proper return documentation."
                ),
                data={
                    "booking_id": str(booking.id),
                    "approved_by": str(approved_by),
                    "approved_by_type": approved_by_type,
                    "approver_name": approver_name,
                    "return_reason": reason or NO_REASON,
                    "approval_timestamp": now.isoformat(),
                },
                target_roles=settings.admin_roles_return_approved,
                priority=notification_service.MEDIUM,
                requires_action=False,
                created_at=now,
            )

    async def _reject(
        self,
        store: RecordStore,
        booking: Booking,
        rejected_by: UUID,
        rejected_by_type: str,
        rejecter_name: str,
        reason: str | None,
        now: datetime,
    ) -> None:
        original_requester_id = booking.return_requested_by
        original_requester_type = booking.return_requested_by_type
        store.update(
            booking,
            return_requested=False,
            return_rejected_at=now,
            return_rejected_by=rejected_by,
            return_rejected_by_type=rejected_by_type,
            return_rejection_reason=reason or NO_REASON,
            updated_at=now,
        )
        await store.flush("rejecting return", "Failed to update booking")

        async with store.best_effort("adding to booking history", booking_id=booking.id):
            await history_service.log_booking_action(
                db=store.db,
                booking_id=booking.id,
                action="return_rejected",
                performed_by=rejected_by,
                performed_by_type=rejected_by_type,
                details={
                    "rejector_name": rejecter_name,
                    "rejection_reason": reason or NO_REASON,
                    "original_return_reason": booking.return_reason or NO_REASON,
                },
                description=f"Return rejected by {rejecter_name}{f': {reason}' if reason else ''}",
                created_at=now,
            )

        async with store.best_effort("creating requester notification", booking_id=booking.id):
            await notification_service.create_notification(
                db=store.db,
                notification_type=notification_service.RETURN_REJECTED,
                recipient_id=original_requester_id,
                recipient_type=original_requester_type,
                title="Return Rejected",
                message=(
                    f"Your return request has been rejected by {rejecter_name}"
                    f"{f'. Reason: {reason}' if reason else ''}"
                ),
                data={"booking_id": str(booking.id)},
                priority=notification_service.MEDIUM,
                created_at=now,
            )

        async with store.best_effort("creating admin notification", booking_id=booking.id):
            await notification_service.notify_admins(
                db=store.db,
                notification_type=notification_service.RETURN_REJECTED_ADMIN,
                title="Return Rejected",
                message=f"Return rejected for booking {booking.id} by {rejecter_name} ({rejected_by_type})",
                data={
                    "booking_id": str(booking.id),
                    "rejecter_name": rejecter_name,
                    "rejecter_type": rejected_by_type,
                },
                priority=notification_service.LOW,
                created_at=now,
            )

        async with store.best_effort("creating enhanced admin notification", booking_id=booking.id):
            await notification_service.create_admin_task(
                db=store.db,
                level="error",
                task_type="return_rejected",
                task_id=booking.id,
                title="Vehicle Return Rejected",
                message=(
                    f"Return request rejected for booking {booking.id} by {rejected_by_type} "
                    f"{rejecter_name}. Reason: {reason or NO_REASON}. Original requester may need support."
                ),
                data={
                    "booking_id": str(booking.id),
                    "rejected_by": str(rejected_by),
                    "rejected_by_type": rejected_by_type,
                    "rejecter_name": rejecter_name,
                    "rejection_reason": reason or NO_REASON,
                    "rejection_timestamp": now.isoformat(),
                },
                target_roles=settings.admin_roles_return_rejected,
                priority=notification_service.MEDIUM,
                requires_action=False,
                created_at=now,
            )


return_request_service = ReturnRequestService()
