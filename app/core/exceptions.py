"""Custom application exceptions."""

from typing import Any

from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base application exception."""

    # Extra keys merged into the error body next to "error"
    extra: dict[str, Any] | None = None

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "An unexpected error occurred",
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class ValidationError(AppException):
    """Missing or malformed input."""

    def __init__(self, detail: str = "Validation failed") -> None:
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class NotFoundError(AppException):
    """Resource not found exception."""

    def __init__(
        self, resource: str = "Resource", identifier: str | None = None, detail: str | None = None
    ) -> None:
        detail = detail or f"{resource} not found"
        if identifier:
            detail = f"{resource} with ID '{identifier}' not found"
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class AuthorizationError(AppException):
    """Caller does not own the resource."""

    def __init__(self, detail: str = "You don't have permission to access this resource") -> None:
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class InvalidStateError(AppException):
    """Action not valid for the booking's current state."""

    def __init__(self, detail: str = "This operation is not allowed for the current booking status") -> None:
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class VehicleUnavailableError(AppException):
    """Vehicle cannot be assigned."""

    def __init__(self, detail: str = "Selected vehicle is not available") -> None:
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class ConflictError(AppException):
    """Record was modified concurrently."""

    def __init__(self, detail: str = "The record was modified by another request. Please retry.") -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class DependencyWriteError(AppException):
    """A downstream write failed on the critical path."""

    def __init__(self, detail: str = "Failed to write record") -> None:
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


class RequirementsNotMetError(InvalidStateError):
    """Booking cannot be activated until the listed requirements are met."""

    def __init__(self, requirements: list[str]) -> None:
        super().__init__("Cannot activate booking. Requirements not met")
        self.extra = {"requirements": requirements}
