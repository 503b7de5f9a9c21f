"""Booking-related database models."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.database import Base, JSONType


class Booking(Base):
    """Rental agreement between a driver and a partner for a vehicle."""

    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    driver_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    partner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    driver_email: Mapped[str | None] = mapped_column(String(255))
    partner_email: Mapped[str | None] = mapped_column(String(255))

    # Status
    status: Mapped[str] = mapped_column(
        String(30), default="pending_partner_approval", index=True
    )  # see app.domain.booking_state.BookingStatus

    # Rental period and pricing (GBP)
    start_date: Mapped[date | None] = mapped_column(Date)
    end_date: Mapped[date | None] = mapped_column(Date)
    weekly_rate: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    total_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    deposit_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    total_weeks: Mapped[int | None] = mapped_column(Integer)

    # Payment
    payment_method: Mapped[str] = mapped_column(String(20), default="bank_transfer")
    payment_status: Mapped[str] = mapped_column(
        String(20), default="pending"
    )  # pending, active, paid, completed, confirmed, outstanding
    total_paid: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    last_payment_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Activation requirements
    insurance_required: Mapped[bool] = mapped_column(Boolean, default=False)
    partner_provides_insurance: Mapped[bool] = mapped_column(Boolean, default=False)
    driver_insurance_valid: Mapped[bool] = mapped_column(Boolean, default=False)
    requires_document_verification: Mapped[bool] = mapped_column(Boolean, default=False)
    documents_approved: Mapped[bool] = mapped_column(Boolean, default=False)

    # Partner response
    partner_accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    partner_rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    partner_response_time: Mapped[int | None] = mapped_column(Integer)  # milliseconds

    # Activation
    activated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    activated_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    activated_by_type: Mapped[str | None] = mapped_column(String(10))
    activated_trigger: Mapped[str | None] = mapped_column(String(30))

    # Vehicle assignment
    current_vehicle_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("vehicles.id"), index=True
    )
    # Denormalized display fields read by the driver portal
    car_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    car_name: Mapped[str | None] = mapped_column(String(120))
    car_image: Mapped[str | None] = mapped_column(Text)
    car_plate: Mapped[str | None] = mapped_column(String(20))
    car: Mapped[dict | None] = mapped_column(JSONType)
    # Append-only list of reassignment records
    vehicle_history: Mapped[list | None] = mapped_column(JSONType)

    # Return request
    return_requested: Mapped[bool] = mapped_column(Boolean, default=False)
    return_requested_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    return_requested_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    return_requested_by_type: Mapped[str | None] = mapped_column(String(10))
    return_reason: Mapped[str | None] = mapped_column(Text)
    return_approved: Mapped[bool] = mapped_column(Boolean, default=False)
    return_approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    return_approved_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    return_approved_by_type: Mapped[str | None] = mapped_column(String(10))
    return_rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    return_rejected_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    return_rejected_by_type: Mapped[str | None] = mapped_column(String(10))
    return_rejection_reason: Mapped[str | None] = mapped_column(Text)

    # Vehicle release
    vehicle_released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    vehicle_released_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    vehicle_released_by_type: Mapped[str | None] = mapped_column(String(10))
    vehicle_release_reason: Mapped[str | None] = mapped_column(Text)

    # Finish
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    finished_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    finished_by_type: Mapped[str | None] = mapped_column(String(10))
    final_notes: Mapped[str | None] = mapped_column(Text)
    final_mileage: Mapped[int | None] = mapped_column(Integer)
    final_fuel_level: Mapped[str | None] = mapped_column(String(20))
    total_days: Mapped[int | None] = mapped_column(Integer)
    final_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    outstanding_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))

    # Cancellation
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    cancelled_by_type: Mapped[str | None] = mapped_column(String(10))
    cancel_reason: Mapped[str | None] = mapped_column(Text)
    cancel_type: Mapped[str | None] = mapped_column(String(10))  # full, prorated, none
    refund_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    insurance_refund: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    stripe_refund_id: Mapped[str | None] = mapped_column(String(100))
    days_used: Mapped[int | None] = mapped_column(Integer)
    remaining_days: Mapped[int | None] = mapped_column(Integer)

    # Optimistic concurrency token
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __mapper_args__ = {"version_id_col": version}


class BookingHistory(Base):
    """Immutable audit record of a state-changing action on a booking."""

    __tablename__ = "booking_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    action: Mapped[str] = mapped_column(
        String(50), nullable=False
    )  # booking_created, partner_accepted, booking_activated, vehicle_assigned, return_requested, ...; see services
    performed_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    performed_by_type: Mapped[str | None] = mapped_column(String(10))
    details: Mapped[dict | None] = mapped_column(JSONType)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
