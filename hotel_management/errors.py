"""Domain errors raised by the booking, availability and payment services.

The HTTP layer maps each kind to a status code in
:mod:`hotel_management.exceptions`.
"""


class BookingError(Exception):
    """Base class for recoverable, user-facing domain errors."""

    code = "booking_error"
    default_message = "Booking operation failed"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(BookingError):
    code = "not_found"
    default_message = "Not found"


class InvalidRange(BookingError):
    code = "invalid_range"
    default_message = "check_out must be after check_in"


class RoomUnavailable(BookingError):
    code = "room_unavailable"
    default_message = "Room is not available for the selected dates"


class RoomInUse(RoomUnavailable):
    code = "room_in_use"
    default_message = "Cannot delete room with active bookings"


class InvalidTransition(BookingError):
    code = "invalid_transition"
    default_message = "Status transition is not allowed"


class OverPayment(BookingError):
    code = "over_payment"
    default_message = "Payment amount exceeds remaining balance"
