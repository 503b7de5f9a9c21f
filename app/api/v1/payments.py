"""Payment instruction endpoints."""

from fastapi import APIRouter

from app.api.deps import DbSession
from app.schemas.payment import (
    ConfirmReceivedRequest,
    ConfirmReceivedResponse,
    InstructionStatus,
    MarkSentRequest,
    MarkSentResponse,
)
from app.services.payment_instruction_service import payment_instruction_service

router = APIRouter()


@router.post("/mark-sent", response_model=MarkSentResponse)
async def mark_sent(
    request: MarkSentRequest,
    db: DbSession,
) -> MarkSentResponse:
    """Driver marks a bank transfer as sent."""
    instruction = await payment_instruction_service.mark_sent(
        db=db,
        instruction_id=request.instruction_id,
        driver_id=request.driver_id,
    )

    return MarkSentResponse(
        message="Payment marked as sent successfully",
        instruction=InstructionStatus(
            id=instruction.id,
            status=instruction.status,
            last_sent_at=instruction.last_sent_at,
        ),
    )


@router.post("/confirm-received", response_model=ConfirmReceivedResponse)
async def confirm_received(
    request: ConfirmReceivedRequest,
    db: DbSession,
) -> ConfirmReceivedResponse:
    """Partner confirms a bank transfer arrived."""
    result = await payment_instruction_service.confirm_received(
        db=db,
        instruction_id=request.instruction_id,
        partner_id=request.partner_id,
        booking_id=request.booking_id,
    )

    return ConfirmReceivedResponse(next_due=result.next_due, message="Payment confirmed successfully")
