"""
Domain errors raised by the booking services.

Each class carries the HTTP status and a stable machine-readable code; the
handlers registered in ``cinebook.main`` turn them into ``ErrorResponse``
bodies. Guarded state transitions never raise: a lost race is reported as a
zero count by the service that ran it.
"""

from typing import List, Optional


class BookingError(Exception):
    status_code = 500
    error = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def payload(self) -> dict:
        return {"error": self.error, "message": self.message}


class ValidationFailed(BookingError):
    status_code = 400
    error = "validation_error"


class NotFound(BookingError):
    status_code = 404
    error = "not_found"


class NotAuthenticated(BookingError):
    status_code = 401
    error = "not_authenticated"


class Forbidden(BookingError):
    status_code = 403
    error = "forbidden"


class Conflict(BookingError):
    status_code = 409
    error = "conflict"


class SeatsUnavailable(Conflict):
    error = "seats_unavailable"

    def __init__(self, seat_ids: List[str], message: Optional[str] = None):
        self.seat_ids = sorted(seat_ids)
        super().__init__(message or f"Seats already taken: {', '.join(self.seat_ids)}")

    def payload(self) -> dict:
        return {**super().payload(), "unavailable_seat_ids": self.seat_ids}


class InsufficientAvailability(Conflict):
    error = "sold_out"

    def __init__(self, available: int, requested: int):
        self.available = available
        self.requested = requested
        super().__init__(
            f"Not enough seats available: {available} left, {requested} requested"
        )

    def payload(self) -> dict:
        return {
            **super().payload(),
            "available": self.available,
            "requested": self.requested,
        }


class ShowtimeMismatch(Conflict):
    error = "showtime_mismatch"


class ShowtimeClosed(Conflict):
    error = "showtime_closed"


class PaymentWindowClosed(Conflict):
    error = "payment_window_closed"


class NothingToCancel(Conflict):
    error = "nothing_to_cancel"


class PaymentProviderUnavailable(BookingError):
    status_code = 503
    error = "payment_provider_unavailable"
