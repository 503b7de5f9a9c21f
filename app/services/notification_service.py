"""Notification service.

Writes in-app notifications for drivers, partners and the admin channel, and
structured admin notifications used for operational triage. Delivery
(push, email, realtime) is handled by downstream consumers of these tables.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.notification import AdminNotification, Notification


class NotificationService:
    """Service for writing notifications."""

    # Notification types
    VEHICLE_ASSIGNED = "vehicle_assigned"
    VEHICLE_ASSIGNED_ADMIN = "vehicle_assigned_admin"
    VEHICLE_RELEASED = "vehicle_released"
    VEHICLE_RELEASED_ADMIN = "vehicle_released_admin"
    RETURN_REQUESTED = "return_requested"
    RETURN_REQUESTED_ADMIN = "return_requested_admin"
    RETURN_APPROVED = "return_approved"
    RETURN_APPROVED_PARTNER = "return_approved_partner"
    RETURN_APPROVED_ADMIN = "return_approved_admin"
    RETURN_REJECTED = "return_rejected"
    RETURN_REJECTED_ADMIN = "return_rejected_admin"
    NEW_BOOKING = "new_booking"
    BOOKING_CREATED = "booking_created"
    BOOKING_ACCEPTED = "booking_accepted"
    BOOKING_ACCEPTED_ADMIN = "booking_accepted_admin"
    BOOKING_REJECTED = "booking_rejected"
    BOOKING_REJECTED_ADMIN = "booking_rejected_admin"
    BOOKING_ACTIVATED = "booking_activated"
    BOOKING_ACTIVATED_ADMIN = "booking_activated_admin"
    BOOKING_FINISHED = "booking_finished"
    BOOKING_FINISHED_ADMIN = "booking_finished_admin"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_CANCELLED_ADMIN = "booking_cancelled_admin"
    PAYMENT_SENT = "payment_sent"
    PAYMENT_RECEIVED = "payment_received"

    # Priorities
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    async def create_notification(
        self,
        db: AsyncSession,
        notification_type: str,
        title: str,
        message: str,
        created_at: datetime,
        recipient_id: UUID | None = None,
        recipient_type: str | None = None,
        data: dict[str, Any] | None = None,
        priority: str = MEDIUM,
    ) -> Notification:
        """Create an in-app notification.

        Args:
            db: Database session
            notification_type: Type of notification
            title: Notification title
            message: Notification body text
            created_at: Creation time
            recipient_id: User to notify (None for the admin channel)
            recipient_type: driver or partner
            data: Structured payload for the client
            priority: low, medium or high

        Returns:
            Notification: Created notification
        """
        notification = Notification(
            type=notification_type,
            recipient_id=recipient_id,
            recipient_type=recipient_type,
            title=title,
            message=message,
            data=data,
            priority=priority,
            created_at=created_at,
        )
        db.add(notification)
        return notification

    async def notify_admins(
        self,
        db: AsyncSession,
        notification_type: str,
        title: str,
        message: str,
        created_at: datetime,
        data: dict[str, Any] | None = None,
        priority: str = MEDIUM,
    ) -> Notification:
        """Create a notification on the shared admin channel."""
        return await self.create_notification(
            db=db,
            notification_type=notification_type,
            title=title,
            message=message,
            created_at=created_at,
            data=data,
            priority=priority,
        )

    async def create_admin_task(
        self,
        db: AsyncSession,
        level: str,
        task_type: str,
        task_id: UUID,
        title: str,
        message: str,
        target_roles: list[str],
        created_at: datetime,
        data: dict[str, Any] | None = None,
        priority: str = MEDIUM,
        requires_action: bool = False,
    ) -> AdminNotification:
        """Create a structured admin notification.

        Args:
            db: Database session
            level: info, warning, success or error
            task_type: Workflow that raised it (e.g., "return_requested")
            task_id: Related booking ID
            title: Notification title
            message: Notification body text
            target_roles: Staff roles that should see it
            created_at: Creation time
            data: Structured payload
            priority: low, medium or high
            requires_action: Whether staff must follow up

        Returns:
            AdminNotification: Created notification
        """
        notification = AdminNotification(
            type=level,
            priority=priority,
            task_type=task_type,
            task_id=task_id,
            title=title,
            message=message,
            data=data,
            target_roles=list(target_roles),
            requires_action=requires_action,
            read_by=[],
            is_completed=False,
            created_at=created_at,
        )
        db.add(notification)
        return notification


# Singleton instance
notification_service = NotificationService()
