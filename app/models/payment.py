"""Payment-related database models."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.database import Base, JSONType


class PaymentInstruction(Base):
    """Money the driver owes the partner (or a refund owed back).

    Manual bank transfers go pending -> sent (driver) -> received (partner);
    a confirmed deposit ends at deposit_received.
    """

    __tablename__ = "payment_instructions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id"), nullable=False, index=True
    )
    driver_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id"))
    partner_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id"))

    type: Mapped[str] = mapped_column(
        String(20), default="weekly_rent"
    )  # deposit, weekly_rent, final_payment, refund
    method: Mapped[str] = mapped_column(String(20), default="bank_transfer")  # bank_transfer, stripe
    frequency: Mapped[str] = mapped_column(String(10), default="weekly")  # weekly, one_off
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default="pending"
    )  # pending, sent, completed, received, deposit_received, cancelled
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    vehicle_reg: Mapped[str | None] = mapped_column(String(20))
    reason: Mapped[str | None] = mapped_column(Text)

    last_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    received_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class Subscription(Base):
    """Recurring billing subscription attached to a booking."""

    __tablename__ = "subscriptions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(20), default="active")  # active, paused, cancelled
    stripe_customer_id: Mapped[str | None] = mapped_column(String(100))
    stripe_subscription_id: Mapped[str | None] = mapped_column(String(100))
    # Latest captured charge, refunded against on downgrades
    stripe_payment_intent_id: Mapped[str | None] = mapped_column(String(100))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class Payment(Base):
    """Adjustment charge or refund. Immutable once written."""

    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id"), nullable=False, index=True
    )
    driver_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id"))
    partner_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id"))

    # Signed: negative for refunds
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="gbp")
    status: Mapped[str] = mapped_column(String(20), default="completed")
    type: Mapped[str] = mapped_column(
        String(40), nullable=False
    )  # vehicle_change_adjustment, vehicle_change_refund, cancellation_refund

    # Gateway
    gateway: Mapped[str | None] = mapped_column(String(30))
    stripe_invoice_id: Mapped[str | None] = mapped_column(String(100))
    stripe_refund_id: Mapped[str | None] = mapped_column(String(100))
    gateway_response: Mapped[dict | None] = mapped_column(JSONType)

    payment_metadata: Mapped[dict | None] = mapped_column("metadata", JSONType)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class Transaction(Base):
    """Ledger line on a partner or driver statement. Immutable once written."""

    __tablename__ = "transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id"), nullable=False, index=True
    )
    partner_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id"), index=True)
    driver_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id"), index=True)
    instruction_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("payment_instructions.id"))

    type: Mapped[str] = mapped_column(String(10), nullable=False)  # income, expense
    category: Mapped[str] = mapped_column(String(50), default="Vehicle Rental")
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    fees: Mapped[dict | None] = mapped_column(JSONType)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    transaction_date: Mapped[datetime] = mapped_column("date", DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="completed")
    source: Mapped[str | None] = mapped_column(String(30))  # stripe, manual, bank_transfer, booking_completion
    payment_method: Mapped[str | None] = mapped_column(String(20))
    stripe_invoice_id: Mapped[str | None] = mapped_column(String(100))
    stripe_refund_id: Mapped[str | None] = mapped_column(String(100))

    # Snapshots for statements
    booking_details: Mapped[dict | None] = mapped_column(JSONType)
    driver_details: Mapped[dict | None] = mapped_column(JSONType)
    partner_details: Mapped[dict | None] = mapped_column(JSONType)
    vehicle_details: Mapped[dict | None] = mapped_column(JSONType)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
