"""Pydantic schemas for API validation."""

from app.schemas.booking import (
    ActivationReadinessResponse,
    BookingHistoryResponse,
    BookingSummary,
    CancelBookingRequest,
    CancelBookingResponse,
    ChangeVehicleRequest,
    ChangeVehicleResponse,
    CreateBookingRequest,
    CreateBookingResponse,
    FinishBookingRequest,
    FinishBookingResponse,
    PartnerResponseRequest,
    PartnerResponseResponse,
    ReleaseVehicleRequest,
    ReleaseVehicleResponse,
    ReturnRequestRequest,
    ReturnRequestResponse,
    ReturnStatus,
    StartActiveRequest,
    StartActiveResponse,
    VehicleSummary,
)
from app.schemas.notification import NotificationListResponse, NotificationResponse
from app.schemas.payment import (
    ConfirmReceivedRequest,
    ConfirmReceivedResponse,
    InstructionStatus,
    MarkSentRequest,
    MarkSentResponse,
)

__all__ = [
    # Booking
    "CreateBookingRequest",
    "CreateBookingResponse",
    "BookingSummary",
    "PartnerResponseRequest",
    "PartnerResponseResponse",
    "StartActiveRequest",
    "StartActiveResponse",
    "ActivationReadinessResponse",
    "FinishBookingRequest",
    "FinishBookingResponse",
    "CancelBookingRequest",
    "CancelBookingResponse",
    "ChangeVehicleRequest",
    "ChangeVehicleResponse",
    "ReturnRequestRequest",
    "ReturnRequestResponse",
    "ReturnStatus",
    "ReleaseVehicleRequest",
    "ReleaseVehicleResponse",
    "VehicleSummary",
    "BookingHistoryResponse",
    # Payment
    "MarkSentRequest",
    "MarkSentResponse",
    "InstructionStatus",
    "ConfirmReceivedRequest",
    "ConfirmReceivedResponse",
    # Notification
    "NotificationResponse",
    "NotificationListResponse",
]
