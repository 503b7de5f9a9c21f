"""Booking endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query

from app.api.deps import DbSession
from app.core.exceptions import NotFoundError
from app.models.booking import Booking, BookingHistory
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
from app.services.booking_lifecycle_service import booking_lifecycle_service
from app.services.record_store import RecordStore
from app.services.return_request_service import return_request_service
from app.services.vehicle_assignment_service import vehicle_assignment_service

router = APIRouter()


@router.post("/create", response_model=CreateBookingResponse)
async def create_booking(
    request: CreateBookingRequest,
    db: DbSession,
) -> CreateBookingResponse:
    """Create a booking request for one of a partner's vehicles."""
    booking, vehicle = await booking_lifecycle_service.create_booking(
        db=db,
        driver_id=request.driver_id,
        partner_id=request.partner_id,
        vehicle_id=request.vehicle_id,
        start_date=request.start_date,
        end_date=request.end_date,
        weekly_rate=request.weekly_rate,
        deposit_amount=request.deposit_amount,
        insurance_required=request.insurance_required,
        partner_provides_insurance=request.partner_provides_insurance,
        requires_document_verification=request.requires_document_verification,
        payment_method=request.payment_method,
    )

    return CreateBookingResponse(
        booking_id=booking.id,
        booking=BookingSummary(
            id=booking.id,
            status=booking.status,
            total_amount=float(booking.total_amount),
            weekly_rate=float(booking.weekly_rate),
            deposit_amount=float(booking.deposit_amount),
            vehicle=VehicleSummary.model_validate(vehicle),
        ),
    )


@router.post("/partner-response", response_model=PartnerResponseResponse)
async def partner_response(
    request: PartnerResponseRequest,
    db: DbSession,
) -> PartnerResponseResponse:
    """Accept or reject a pending booking request."""
    result = await booking_lifecycle_service.partner_response(
        db=db,
        booking_id=request.booking_id,
        partner_id=request.partner_id,
        action=request.action,
        rejection_reason=request.rejection_reason,
        override_insurance=request.override_insurance,
    )

    return PartnerResponseResponse(
        status=result.booking.status,
        message=f"Booking {request.action}ed successfully",
        response_time=round(result.response_time_ms / 1000 / 60),
    )


@router.get("/start-active", response_model=ActivationReadinessResponse)
async def get_activation_readiness(
    db: DbSession,
    booking_id: UUID = Query(..., alias="bookingId"),
) -> ActivationReadinessResponse:
    """Check whether a booking is ready to be activated."""
    readiness = await booking_lifecycle_service.activation_readiness(db, booking_id)
    return ActivationReadinessResponse(
        can_activate=readiness.can_activate,
        current_status=readiness.current_status,
        requirements=readiness.requirements,
        checks=readiness.checks,
    )


@router.post("/start-active", response_model=StartActiveResponse)
async def start_active(
    request: StartActiveRequest,
    db: DbSession,
) -> StartActiveResponse:
    """Activate an accepted booking for vehicle collection."""
    booking = await booking_lifecycle_service.start_active(
        db=db,
        booking_id=request.booking_id,
        partner_id=request.partner_id,
        triggered_by=request.triggered_by,
        bypass_requirements=request.bypass_requirements,
    )

    return StartActiveResponse(status=booking.status, message="Booking activated successfully")


@router.post("/finish", response_model=FinishBookingResponse)
async def finish_booking(
    request: FinishBookingRequest,
    db: DbSession,
) -> FinishBookingResponse:
    """Complete a booking and settle the final amount."""
    result = await booking_lifecycle_service.finish_booking(
        db=db,
        booking_id=request.booking_id,
        finished_by=request.finished_by,
        finished_by_type=request.finished_by_type,
        final_notes=request.final_notes,
        final_mileage=request.final_mileage,
        final_fuel_level=request.final_fuel_level,
    )

    return FinishBookingResponse(
        message="Booking completed successfully",
        final_amount=float(result.final_amount),
        outstanding_amount=float(result.outstanding_amount),
        total_days=result.total_days,
        total_weeks=result.total_weeks,
    )


@router.post("/cancel", response_model=CancelBookingResponse)
async def cancel_booking(
    request: CancelBookingRequest,
    db: DbSession,
) -> CancelBookingResponse:
    """Cancel a booking and refund the driver according to ``cancelType``."""
    result = await booking_lifecycle_service.cancel_booking(
        db=db,
        booking_id=request.booking_id,
        reason=request.reason,
        cancel_type=request.cancel_type,
        insurance_refund_amount=request.insurance_refund_amount,
        cancelled_by=request.cancelled_by,
        cancelled_by_type=request.cancelled_by_type,
    )

    return CancelBookingResponse(
        message="Booking cancelled successfully",
        refund_amount=float(result.refund_amount),
        insurance_refund=float(result.insurance_refund),
        stripe_refund_id=result.stripe_refund_id,
        subscriptions_cancelled=result.subscriptions_cancelled,
    )


@router.post("/change-vehicle", response_model=ChangeVehicleResponse)
async def change_vehicle(
    request: ChangeVehicleRequest,
    db: DbSession,
) -> ChangeVehicleResponse:
    """Reassign a booking to another of the partner's vehicles.

    The weekly rate difference is charged or refunded according to
    ``adjustmentType``.
    """
    result = await vehicle_assignment_service.change_vehicle(
        db=db,
        booking_id=request.booking_id,
        partner_id=request.partner_id,
        new_vehicle_id=request.new_vehicle_id,
        reason=request.reason,
        adjustment_type=request.adjustment_type,
    )

    return ChangeVehicleResponse(
        message="Vehicle assigned successfully",
        new_vehicle=VehicleSummary.model_validate(result.new_vehicle),
        adjustment_amount=float(result.adjustment.amount),
        adjustment_reason=result.adjustment.reason,
        payment_processed=result.payment.payment_processed,
        stripe_payment_id=result.payment.stripe_payment_id,
        stripe_refund_id=result.payment.stripe_refund_id,
    )


@router.post("/request-return", response_model=ReturnRequestResponse)
async def request_return(
    request: ReturnRequestRequest,
    db: DbSession,
) -> ReturnRequestResponse:
    """Request, approve or reject a vehicle return."""
    result = await return_request_service.process(
        db=db,
        booking_id=request.booking_id,
        requested_by=request.requested_by,
        requested_by_type=request.requested_by_type,
        action=request.action,
        reason=request.reason,
    )

    booking = result.booking
    return ReturnRequestResponse(
        message=result.message,
        status=booking.status,
        return_status=ReturnStatus(
            requested=bool(booking.return_requested),
            approved=bool(booking.return_approved),
        ),
    )


@router.post("/release-vehicle", response_model=ReleaseVehicleResponse)
async def release_vehicle(
    request: ReleaseVehicleRequest,
    db: DbSession,
) -> ReleaseVehicleResponse:
    """Detach the assigned vehicle from a booking."""
    result = await vehicle_assignment_service.release_vehicle(
        db=db,
        booking_id=request.booking_id,
        released_by=request.released_by,
        released_by_type=request.released_by_type,
        reason=request.reason,
    )

    return ReleaseVehicleResponse(
        message="Vehicle released successfully",
        vehicle=VehicleSummary.model_validate(result.vehicle) if result.vehicle else None,
    )


@router.get("/{booking_id}/history", response_model=list[BookingHistoryResponse])
async def get_booking_history(
    booking_id: UUID,
    db: DbSession,
) -> list[BookingHistoryResponse]:
    """Get a booking's audit trail, oldest first."""
    store = RecordStore(db)
    if not await store.get(Booking, booking_id):
        raise NotFoundError("Booking", str(booking_id))

    entries = await store.find(
        BookingHistory,
        BookingHistory.booking_id == booking_id,
        order_by=BookingHistory.created_at.asc(),
    )
    return [BookingHistoryResponse.model_validate(entry) for entry in entries]
