"""Notification endpoints."""

from datetime import UTC, datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select, update

from app.api.deps import DbSession, PaginationParams
from app.core.exceptions import NotFoundError
from app.models.notification import Notification
from app.schemas.notification import NotificationListResponse, NotificationResponse

router = APIRouter()


@router.get("/", response_model=NotificationListResponse)
async def get_notifications(
    db: DbSession,
    pagination: Annotated[PaginationParams, Depends()],
    recipient_id: UUID = Query(...),
    unread_only: bool = Query(default=False),
) -> NotificationListResponse:
    """Get a user's notifications, newest first."""
    query = select(Notification).where(Notification.recipient_id == recipient_id)

    if unread_only:
        query = query.where(Notification.read == False)  # noqa: E712

    # Count total
    count_result = await db.execute(select(func.count()).select_from(query.subquery()))
    total = count_result.scalar() or 0

    # Count unread
    unread_result = await db.execute(
        select(func.count()).where(
            Notification.recipient_id == recipient_id,
            Notification.read == False,  # noqa: E712
        )
    )
    unread_count = unread_result.scalar() or 0

    # Pagination
    query = (
        query.order_by(Notification.created_at.desc())
        .offset(pagination.offset)
        .limit(pagination.page_size)
    )

    result = await db.execute(query)
    notifications = list(result.scalars().all())

    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        total=total,
        unread_count=unread_count,
        page=pagination.page,
        page_size=pagination.page_size,
    )


@router.patch("/{notification_id}/read", status_code=204)
async def mark_notification_read(
    notification_id: UUID,
    db: DbSession,
) -> None:
    """Mark a notification as read."""
    notification = await db.get(Notification, notification_id)
    if not notification:
        raise NotFoundError("Notification", str(notification_id))

    notification.read = True
    notification.read_at = datetime.now(UTC)


@router.post("/read-all", status_code=204)
async def mark_all_read(
    db: DbSession,
    recipient_id: UUID = Query(...),
) -> None:
    """Mark all of a user's notifications as read."""
    await db.execute(
        update(Notification)
        .where(
            Notification.recipient_id == recipient_id,
            Notification.read == False,  # noqa: E712
        )
        .values(read=True, read_at=datetime.now(UTC))
    )
