"""Booking audit trail service."""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.booking import BookingHistory


class HistoryService:
    """Service for the append-only booking history."""

    async def log_booking_action(
        self,
        db: AsyncSession,
        booking_id: UUID,
        action: str,
        performed_by: UUID | None,
        performed_by_type: str | None,
        description: str,
        created_at: datetime,
        details: dict[str, Any] | None = None,
    ) -> BookingHistory:
        """Append a history entry (immutable).

        Args:
            db: Database session
            booking_id: Booking the action applies to
            action: Action name (e.g., "vehicle_assigned")
            performed_by: Acting user
            performed_by_type: driver, partner or admin
            description: Human-readable summary
            created_at: Time of the action
            details: Structured context

        Returns:
            Created history entry
        """
        entry = BookingHistory(
            booking_id=booking_id,
            action=action,
            performed_by=performed_by,
            performed_by_type=performed_by_type,
            details=details,
            description=description,
            created_at=created_at,
        )
        db.add(entry)
        return entry

    async def log_vehicle_assigned(
        self,
        db: AsyncSession,
        booking_id: UUID,
        partner_id: UUID,
        performer_name: str,
        old_vehicle_id: UUID | None,
        new_vehicle_id: UUID,
        old_vehicle: str,
        new_vehicle: str,
        reason: str,
        adjustment_amount: float,
        adjustment_reason: str,
        description: str,
        created_at: datetime,
    ) -> BookingHistory:
        """Log a vehicle reassignment."""
        return await self.log_booking_action(
            db=db,
            booking_id=booking_id,
            action="vehicle_assigned",
            performed_by=partner_id,
            performed_by_type="partner",
            details={
                "old_vehicle_id": str(old_vehicle_id) if old_vehicle_id else None,
                "new_vehicle_id": str(new_vehicle_id),
                "old_vehicle": old_vehicle,
                "new_vehicle": new_vehicle,
                "reason": reason,
                "performer_name": performer_name,
                "adjustment_amount": adjustment_amount,
                "adjustment_reason": adjustment_reason,
            },
            description=description,
            created_at=created_at,
        )


history_service = HistoryService()
