"""Core utilities: exceptions, ownership checks, write guards."""

from app.core.exceptions import (
    AppException,
    AuthorizationError,
    ConflictError,
    DependencyWriteError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    VehicleUnavailableError,
)
from app.core.immutability import ImmutabilityViolationError, register_immutability_enforcement
from app.core.permissions import ActorType, assert_booking_actor, assert_booking_partner

__all__ = [
    "AppException",
    "AuthorizationError",
    "ConflictError",
    "DependencyWriteError",
    "InvalidStateError",
    "NotFoundError",
    "ValidationError",
    "VehicleUnavailableError",
    "ImmutabilityViolationError",
    "register_immutability_enforcement",
    "ActorType",
    "assert_booking_actor",
    "assert_booking_partner",
]
