from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Iterable, Optional

from ..models import ACTIVE_BOOKING_STATUSES, Booking, BookingStatus
from .errors import InvalidCodeError, InvalidIntervalError, InvalidTransitionError, PastBookingError


def intervals_overlap(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open overlap test: touching endpoints do not overlap."""
    return start_a < end_b and start_b < end_a


def find_blocking(bookings: Iterable[Booking], start: datetime, end: datetime) -> Optional[Booking]:
    """Return the earliest active booking overlapping ``[start, end)``, if any."""
    candidates = [
        booking
        for booking in bookings
        if booking.status in ACTIVE_BOOKING_STATUSES
        and intervals_overlap(booking.start_time, booking.end_time, start, end)
    ]
    if not candidates:
        return None
    return min(candidates, key=lambda booking: (booking.start_time, booking.id))


def validate_booking_window(start: datetime, end: datetime, *, now: datetime) -> None:
    """
    Input guards for a new booking. The interval is checked before the
    past-booking rule, so an empty interval in the past is an interval error.
    """
    if start.tzinfo is None or end.tzinfo is None:
        raise InvalidIntervalError("start_time and end_time must be timezone-aware")
    if start >= end:
        raise InvalidIntervalError("Start time must be before end time")
    if start < now:
        raise PastBookingError("Cannot book in the past")


class BookingAction(StrEnum):
    CONFIRM = "confirm"
    CANCEL = "cancel"
    COMPLETE = "complete"


@dataclass(frozen=True)
class Transition:
    source: BookingStatus
    target: BookingStatus
    past_tense: str


TRANSITIONS: dict[BookingAction, Transition] = {
    BookingAction.CONFIRM: Transition(BookingStatus.PENDING, BookingStatus.CONFIRMED, "confirmed"),
    # CONFIRMED bookings cannot be cancelled.
    BookingAction.CANCEL: Transition(BookingStatus.PENDING, BookingStatus.CANCELLED, "cancelled"),
    BookingAction.COMPLETE: Transition(BookingStatus.CONFIRMED, BookingStatus.COMPLETED, "completed"),
}


def next_status(current: BookingStatus, action: BookingAction, *, booking_id: Optional[int] = None) -> BookingStatus:
    transition = TRANSITIONS[action]
    if current != transition.source:
        raise InvalidTransitionError(
            booking_id,
            current=BookingStatus(current).value,
            expected=transition.source.value,
            action=transition.past_tense,
        )
    return transition.target


def verify_booking_code(booking_code: str, supplied_code: str, *, booking_id: Optional[int] = None) -> None:
    # Exact, case-sensitive match.
    if supplied_code != booking_code:
        raise InvalidCodeError(booking_id)
