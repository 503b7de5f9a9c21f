"""Notification models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, JSONType


class Notification(Base):
    """In-app notification. A null recipient addresses the admin channel."""

    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    recipient_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, index=True)
    recipient_type: Mapped[str | None] = mapped_column(String(10))  # driver, partner

    # Content
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[dict | None] = mapped_column(JSONType)
    priority: Mapped[str] = mapped_column(String(10), default="medium")  # low, medium, high

    # Status
    read: Mapped[bool] = mapped_column(Boolean, default=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class AdminNotification(Base):
    """Structured admin task used for operational triage."""

    __tablename__ = "admin_notifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    type: Mapped[str] = mapped_column(String(10), nullable=False)  # info, warning, success, error
    priority: Mapped[str] = mapped_column(String(10), default="medium")
    task_type: Mapped[str] = mapped_column(String(50), nullable=False)
    task_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, index=True)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[dict | None] = mapped_column(JSONType)

    target_roles: Mapped[list] = mapped_column(JSONType, nullable=False)
    requires_action: Mapped[bool] = mapped_column(Boolean, default=False)
    read_by: Mapped[list | None] = mapped_column(JSONType)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
