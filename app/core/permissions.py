"""Booking ownership checks.

Callers identify themselves in the request body; authentication happens
upstream. Drivers and partners may only act on their own bookings, admins
are trusted.
"""

from enum import Enum
from uuid import UUID

from app.core.exceptions import AuthorizationError
from app.models.booking import Booking


class ActorType(str, Enum):
    """Who is performing a booking action."""

    DRIVER = "driver"
    PARTNER = "partner"
    ADMIN = "admin"


def assert_booking_partner(booking: Booking, partner_id: UUID) -> None:
    """Only the owning partner may modify the booking's fleet assignment."""
    if booking.partner_id != partner_id:
        raise AuthorizationError("Unauthorized: You can only modify your own bookings")


def assert_booking_actor(booking: Booking, actor_id: UUID, actor_type: str | ActorType) -> None:
    """Drivers and partners must own the booking; admins pass."""
    actor_type = ActorType(actor_type)
    if actor_type is ActorType.DRIVER and booking.driver_id != actor_id:
        raise AuthorizationError("Unauthorized - not your booking")
    if actor_type is ActorType.PARTNER and booking.partner_id != actor_id:
        raise AuthorizationError("Unauthorized - not your booking")
