"""Fleet vehicle model."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.database import Base, JSONType


class Vehicle(Base):
    """A rentable vehicle owned by a partner."""

    __tablename__ = "vehicles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    partner_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id"), index=True
    )

    # Details
    make: Mapped[str | None] = mapped_column(String(50))
    model: Mapped[str | None] = mapped_column(String(50))
    year: Mapped[int | None] = mapped_column(Integer)
    registration_number: Mapped[str | None] = mapped_column(String(20), index=True)
    color: Mapped[str | None] = mapped_column(String(30))
    fuel_type: Mapped[str | None] = mapped_column(String(20))
    transmission: Mapped[str | None] = mapped_column(String(20))
    seats: Mapped[int | None] = mapped_column(Integer)
    mileage: Mapped[int | None] = mapped_column(Integer)
    image_url: Mapped[str | None] = mapped_column(Text)
    image_urls: Mapped[list | None] = mapped_column(JSONType)

    # Pricing (GBP)
    price_per_week: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))

    # Status
    status: Mapped[str] = mapped_column(
        String(20), default="available", index=True
    )  # available, booked, maintenance
    # Owning booking while status is "booked". Not a foreign key: bookings
    # already reference vehicles.
    current_booking_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)

    # Optimistic concurrency token
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __mapper_args__ = {"version_id_col": version}

    @property
    def display_name(self) -> str:
        return f"{self.make or ''} {self.model or ''}".strip()

    @property
    def primary_image(self) -> str:
        if self.image_url:
            return self.image_url
        if self.image_urls:
            return self.image_urls[0]
        return ""
