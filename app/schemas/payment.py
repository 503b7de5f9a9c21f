"""Payment instruction Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.booking import CamelRequest


class MarkSentRequest(CamelRequest):
    """Schema for a driver marking a bank transfer as sent."""

    instruction_id: UUID = Field(alias="instructionId")
    driver_id: UUID = Field(alias="driverId")


class ConfirmReceivedRequest(CamelRequest):
    """Schema for a partner confirming a transfer arrived.

    Either ``instructionId`` or ``bookingId`` (the booking's sent deposit).
    """

    instruction_id: UUID | None = Field(None, alias="instructionId")
    partner_id: UUID | None = Field(None, alias="partnerId")
    booking_id: UUID | None = Field(None, alias="bookingId")


class InstructionStatus(BaseModel):
    id: UUID
    status: str
    last_sent_at: datetime | None = None


class MarkSentResponse(BaseModel):
    success: bool = True
    message: str
    instruction: InstructionStatus


class ConfirmReceivedResponse(BaseModel):
    """Schema for the receipt confirmation result."""

    success: bool = True
    next_due: datetime | None = None
    message: str
