"""Error taxonomy shared by the booking core and the HTTP layer."""
from __future__ import annotations


class BookingError(Exception):
    """Base class for rejected operations. No state is changed when raised."""

    error = "booking_error"
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"error": self.error, "message": self.message}


class ValidationError(BookingError):
    error = "invalid_payload"
    status_code = 400


class NotFoundError(BookingError):
    error = "not_found"
    status_code = 404


class PermissionDeniedError(BookingError):
    error = "forbidden"
    status_code = 403


class ConflictError(BookingError):
    error = "conflict"
    status_code = 409


class InvalidTransitionError(ValidationError):
    """The booking is not in a state that allows the requested change."""

    error = "invalid_transition"


class PaymentError(ValidationError):
    """Payment could not be verified at booking creation."""

    error = "payment_error"


class ConfigurationError(BookingError):
    error = "server_error"
    status_code = 500
