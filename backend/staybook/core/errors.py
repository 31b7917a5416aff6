"""Booking-domain error taxonomy.

Every failure the core can report carries an ``ErrorKind`` and a message that is
safe to show to clients. The HTTP layer maps kinds to status codes.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Kinds of failure surfaced to callers."""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    EXTERNAL_SERVICE = "external_service"


class BookingError(Exception):
    """Base class for all reservation-core errors."""

    kind: ErrorKind = ErrorKind.VALIDATION
    status_code: int = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, str]:
        return {"error": self.kind.value, "detail": self.message}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message='{self.message}')"


class ValidationError(BookingError):
    """Malformed input: bad date order, nights or guests out of bounds."""

    kind = ErrorKind.VALIDATION
    status_code = 400


class NotFoundError(BookingError):
    """Unknown listing, booking, block or calendar."""

    kind = ErrorKind.NOT_FOUND
    status_code = 404

    def __init__(self, resource_type: str, message: Optional[str] = None):
        self.resource_type = resource_type
        super().__init__(message or f"{resource_type} not found")


class ForbiddenError(BookingError):
    """Actor lacks the required relationship to the resource."""

    kind = ErrorKind.FORBIDDEN
    status_code = 403


class ConflictError(BookingError):
    """Dates unavailable, duplicate reservation or invalid state transition."""

    kind = ErrorKind.CONFLICT
    status_code = 409


class ExternalServiceError(BookingError):
    """Payment gateway or remote calendar unreachable or malformed."""

    kind = ErrorKind.EXTERNAL_SERVICE
    status_code = 502

    def __init__(self, service: str, message: str):
        self.service = service
        super().__init__(message)
