from __future__ import annotations

from typing import Optional


class BookingError(Exception):
    """Base class for rejections raised by the booking core."""


class InvalidIntervalError(BookingError):
    pass


class PastBookingError(BookingError):
    pass


class InvalidPriceError(BookingError):
    pass


class ResourceConflictError(BookingError):
    def __init__(self, field_id: int, blocking_booking_id: int) -> None:
        self.field_id = field_id
        self.blocking_booking_id = blocking_booking_id
        super().__init__(
            f"This time slot is already booked. Conflicting booking: {blocking_booking_id}"
        )


class NotFoundError(BookingError):
    def __init__(self, entity: str, key: object) -> None:
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} {key} not found")


class InvalidTransitionError(BookingError):
    def __init__(self, booking_id: Optional[int], current: str, expected: str, action: str) -> None:
        self.booking_id = booking_id
        self.current = current
        self.expected = expected
        self.action = action
        super().__init__(f"Only {expected} bookings can be {action} (booking is {current})")


class InvalidCodeError(BookingError):
    def __init__(self, booking_id: Optional[int]) -> None:
        self.booking_id = booking_id
        super().__init__("Invalid booking code")


class CodeGenerationExhausted(BookingError):
    """Random draws kept colliding; resolved internally by the time-based fallback."""
