"""Append-only enforcement for ledger and audit records using SQLAlchemy events."""

import logging
from datetime import UTC, datetime

from sqlalchemy import event

from app.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

_registered = False


class ImmutabilityViolationError(ValidationError):
    """Raised when attempting to modify an append-only record."""

    def __init__(self, model_name: str, operation: str, record_id: str):
        self.model_name = model_name
        self.operation = operation
        self.record_id = record_id
        super().__init__(
            f"Immutability violation: Cannot {operation} {model_name} record {record_id}. "
            "Ledger and history records are append-only."
        )


def _guard(model_name: str, operation: str):
    def listener(mapper, connection, target):
        logger.error(
            f"IMMUTABILITY_VIOLATION: Attempted to {operation} {model_name} "
            f"record_id={target.id} at {datetime.now(UTC).isoformat()}"
        )
        raise ImmutabilityViolationError(model_name, operation, str(target.id))

    return listener


def register_immutability_enforcement() -> None:
    """Register before_update/before_delete guards on append-only models.

    Safe to call more than once.
    """
    global _registered
    if _registered:
        return

    from app.models.booking import BookingHistory
    from app.models.payment import Payment, Transaction

    for model in (BookingHistory, Payment, Transaction):
        event.listen(model, "before_update", _guard(model.__name__, "UPDATE"))
        event.listen(model, "before_delete", _guard(model.__name__, "DELETE"))

    _registered = True
    logger.info("Immutability enforcement registered for ledger and history records")
