"""Booking-related Pydantic schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

ActorTypeLiteral = Literal["driver", "partner", "admin"]


class CamelRequest(BaseModel):
    """Request bodies posted by the web clients use camelCase keys."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class ChangeVehicleRequest(CamelRequest):
    """Schema for reassigning a booking's vehicle."""

    booking_id: UUID = Field(alias="bookingId")
    partner_id: UUID = Field(alias="partnerId")
    new_vehicle_id: UUID = Field(alias="newVehicleId")
    reason: str = Field(min_length=1, max_length=1000)
    adjustment_type: Literal["prorated", "immediate", "next_cycle"] = Field(
        default="prorated", alias="adjustmentType"
    )


class ReturnRequestRequest(CamelRequest):
    """Schema for requesting, approving or rejecting a vehicle return."""

    booking_id: UUID = Field(alias="bookingId")
    requested_by: UUID = Field(alias="requestedBy")
    requested_by_type: ActorTypeLiteral = Field(alias="requestedByType")
    action: Literal["request", "approve", "reject"] = "request"
    reason: str | None = Field(None, max_length=1000)


class ReleaseVehicleRequest(CamelRequest):
    """Schema for releasing the vehicle from a booking."""

    booking_id: UUID = Field(alias="bookingId")
    released_by: UUID = Field(alias="releasedBy")
    released_by_type: ActorTypeLiteral = Field(alias="releasedByType")
    reason: str | None = Field(None, max_length=1000)


class CreateBookingRequest(CamelRequest):
    """Schema for a driver booking request."""

    driver_id: UUID = Field(alias="driverId")
    partner_id: UUID = Field(alias="partnerId")
    vehicle_id: UUID = Field(alias="vehicleId")
    start_date: date = Field(alias="startDate")
    end_date: date = Field(alias="endDate")
    weekly_rate: Decimal = Field(gt=0, alias="weeklyRate")
    deposit_amount: Decimal = Field(default=Decimal("0"), ge=0, alias="depositAmount")
    insurance_required: bool = Field(default=False, alias="insuranceRequired")
    partner_provides_insurance: bool = Field(default=False, alias="partnerProvidesInsurance")
    requires_document_verification: bool = Field(default=False, alias="requiresDocumentVerification")
    payment_method: Literal["bank_transfer", "stripe"] = Field(default="bank_transfer", alias="paymentMethod")


class PartnerResponseRequest(CamelRequest):
    """Schema for a partner accepting or rejecting a booking request."""

    booking_id: UUID = Field(alias="bookingId")
    partner_id: UUID = Field(alias="partnerId")
    action: Literal["accept", "reject"]
    rejection_reason: str | None = Field(None, max_length=1000, alias="rejectionReason")
    override_insurance: bool = Field(default=False, alias="overrideInsurance")


class StartActiveRequest(CamelRequest):
    booking_id: UUID = Field(alias="bookingId")
    partner_id: UUID = Field(alias="partnerId")
    triggered_by: str = Field(default="partner", max_length=30, alias="triggeredBy")
    bypass_requirements: bool = Field(default=False, alias="bypassRequirements")


class FinishBookingRequest(CamelRequest):
    """Schema for completing a booking."""

    booking_id: UUID = Field(alias="bookingId")
    finished_by: UUID = Field(alias="finishedBy")
    finished_by_type: ActorTypeLiteral = Field(alias="finishedByType")
    final_notes: str | None = Field(None, max_length=2000, alias="finalNotes")
    final_mileage: int | None = Field(None, ge=0, alias="finalMileage")
    final_fuel_level: str | None = Field(None, max_length=20, alias="finalFuelLevel")


class CancelBookingRequest(CamelRequest):
    """Schema for cancelling a booking.

    ``cancelledBy`` defaults to the booking's driver.
    """

    booking_id: UUID = Field(alias="bookingId")
    reason: str = Field(min_length=1, max_length=1000)
    cancel_type: Literal["full", "prorated", "none"] = Field(alias="cancelType")
    insurance_refund_amount: Decimal | None = Field(None, ge=0, alias="insuranceRefundAmount")
    cancelled_by: UUID | None = Field(None, alias="cancelledBy")
    cancelled_by_type: ActorTypeLiteral = Field(default="driver", alias="cancelledByType")


class VehicleSummary(BaseModel):
    """Vehicle fields echoed back to the client."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    make: str | None = None
    model: str | None = None
    registration_number: str | None = None


class ChangeVehicleResponse(BaseModel):
    """Schema for the vehicle change result."""

    success: bool = True
    message: str
    new_vehicle: VehicleSummary
    adjustment_amount: float
    adjustment_reason: str
    payment_processed: bool
    stripe_payment_id: str | None = None
    stripe_refund_id: str | None = None


class ReturnStatus(BaseModel):
    requested: bool
    approved: bool


class ReturnRequestResponse(BaseModel):
    """Schema for the return action result."""

    success: bool = True
    message: str
    status: str
    return_status: ReturnStatus


class ReleaseVehicleResponse(BaseModel):
    """Schema for the vehicle release result."""

    success: bool = True
    message: str
    vehicle: VehicleSummary | None = None


class BookingHistoryResponse(BaseModel):
    """Schema for a booking history entry."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_id: UUID
    action: str
    performed_by: UUID | None = None
    performed_by_type: str | None = None
    details: dict[str, Any] | None = None
    description: str
    created_at: datetime


class BookingSummary(BaseModel):
    """Booking fields echoed back after creation."""

    id: UUID
    status: str
    total_amount: float
    weekly_rate: float
    deposit_amount: float
    vehicle: VehicleSummary


class CreateBookingResponse(BaseModel):
    success: bool = True
    booking_id: UUID
    booking: BookingSummary


class PartnerResponseResponse(BaseModel):
    """Schema for the partner response result."""

    success: bool = True
    status: str
    message: str
    response_time: int  # minutes


class StartActiveResponse(BaseModel):
    success: bool = True
    status: str
    message: str


class ActivationReadinessResponse(BaseModel):
    """Whether a booking can be activated now."""

    can_activate: bool
    current_status: str
    requirements: list[str]
    checks: dict[str, bool]


class FinishBookingResponse(BaseModel):
    """Schema for the booking completion result."""

    success: bool = True
    message: str
    final_amount: float
    outstanding_amount: float
    total_days: int
    total_weeks: int


class CancelBookingResponse(BaseModel):
    """Schema for the cancellation result."""

    success: bool = True
    message: str
    refund_amount: float
    insurance_refund: float
    stripe_refund_id: str | None = None
    subscriptions_cancelled: bool
