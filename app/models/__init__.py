"""Database models."""

from app.models.booking import Booking, BookingHistory
from app.models.notification import AdminNotification, Notification
from app.models.payment import Payment, PaymentInstruction, Subscription, Transaction
from app.models.user import User
from app.models.vehicle import Vehicle

__all__ = [
    # User
    "User",
    # Fleet
    "Vehicle",
    # Booking
    "Booking",
    "BookingHistory",
    # Payment
    "PaymentInstruction",
    "Subscription",
    "Payment",
    "Transaction",
    # Notification
    "Notification",
    "AdminNotification",
]
