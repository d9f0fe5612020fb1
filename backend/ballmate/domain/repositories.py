from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Protocol

from ..models import Booking, BookingStatus, Field


class FieldRepository(Protocol):
    async def get(self, field_id: int) -> Field | None: ...

    async def get_for_update(self, field_id: int) -> Field | None:
        """Load the field and hold its row lock until the transaction ends.

        Holding this lock is what serializes the overlap check and the insert
        of a new booking for the same field.
        """
        ...


class BookingRepository(Protocol):
    async def get(self, booking_id: int) -> Booking | None: ...

    async def get_for_update(self, booking_id: int) -> Booking | None: ...

    async def get_by_code(self, booking_code: str) -> Booking | None: ...

    async def code_exists(self, booking_code: str) -> bool: ...

    async def find_overlapping_active(
        self,
        field_id: int,
        start: datetime,
        end: datetime,
    ) -> Iterable[Booking]: ...

    async def list_active_between(
        self,
        field_id: int,
        start: datetime,
        end: datetime,
    ) -> list[Booking]: ...

    async def search(
        self,
        *,
        player_id: int | None = None,
        field_id: int | None = None,
        venue_id: int | None = None,
        status: BookingStatus | None = None,
    ) -> list[Booking]: ...

    async def create(
        self,
        *,
        booking_code: str,
        field_id: int,
        player_id: int,
        start_time: datetime,
        end_time: datetime,
        total_price: int,
        note: str | None,
    ) -> Booking: ...

    async def save(self, booking: Booking) -> Booking: ...


class Clock(Protocol):
    def now(self) -> datetime:
        """Current instant, timezone-aware and non-decreasing."""
        ...


class Notifier(Protocol):
    async def notify(self, player_id: int, kind: str, details: dict[str, Any]) -> None: ...
