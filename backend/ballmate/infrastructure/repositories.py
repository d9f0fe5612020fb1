from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..domain.repositories import BookingRepository, FieldRepository
from ..models import ACTIVE_BOOKING_STATUSES, Booking, BookingStatus, Field


def _utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SqlAlchemyFieldRepository(FieldRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _select(self, field_id: int) -> Select[tuple[Field]]:
        # selectinload keeps the venue and pricing rows out of the FOR UPDATE lock.
        return (
            select(Field)
            .options(selectinload(Field.venue), selectinload(Field.pricings))
            .where(Field.id == field_id)
        )

    async def get(self, field_id: int) -> Field | None:
        result = await self.session.scalar(self._select(field_id))
        return result if isinstance(result, Field) else None

    async def get_for_update(self, field_id: int) -> Field | None:
        result = await self.session.scalar(self._select(field_id).with_for_update())
        return result if isinstance(result, Field) else None


class SqlAlchemyBookingRepository(BookingRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, booking_id: int) -> Booking | None:
        result = await self.session.scalar(select(Booking).where(Booking.id == booking_id))
        return result if isinstance(result, Booking) else None

    async def get_for_update(self, booking_id: int) -> Booking | None:
        stmt = select(Booking).where(Booking.id == booking_id).with_for_update()
        result = await self.session.scalar(stmt)
        return result if isinstance(result, Booking) else None

    async def get_by_code(self, booking_code: str) -> Booking | None:
        result = await self.session.scalar(select(Booking).where(Booking.booking_code == booking_code))
        return result if isinstance(result, Booking) else None

    async def code_exists(self, booking_code: str) -> bool:
        stmt = select(Booking.id).where(Booking.booking_code == booking_code)
        return await self.session.scalar(stmt) is not None

    def _active_overlapping(self, field_id: int, start: datetime, end: datetime) -> Select[tuple[Booking]]:
        return select(Booking).where(
            Booking.field_id == field_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            Booking.start_time < end,
            Booking.end_time > start,
        )

    async def find_overlapping_active(self, field_id: int, start: datetime, end: datetime) -> List[Booking]:
        rows = await self.session.scalars(self._active_overlapping(field_id, start, end))
        return list(rows.all())

    async def list_active_between(self, field_id: int, start: datetime, end: datetime) -> List[Booking]:
        stmt = self._active_overlapping(field_id, start, end).order_by(Booking.start_time.asc())
        rows = await self.session.scalars(stmt)
        return list(rows.all())

    async def search(
        self,
        *,
        player_id: Optional[int] = None,
        field_id: Optional[int] = None,
        venue_id: Optional[int] = None,
        status: Optional[BookingStatus] = None,
    ) -> List[Booking]:
        stmt = select(Booking).order_by(Booking.start_time.desc())
        if player_id is not None:
            stmt = stmt.where(Booking.player_id == player_id)
        if field_id is not None:
            stmt = stmt.where(Booking.field_id == field_id)
        if venue_id is not None:
            stmt = stmt.join(Field, Booking.field_id == Field.id).where(Field.venue_id == venue_id)
        if status is not None:
            stmt = stmt.where(Booking.status == status)
        rows = await self.session.scalars(stmt)
        return list(rows.all())

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
    ) -> Booking:
        now = _utc_now_naive()
        booking = Booking(
            booking_code=booking_code,
            field_id=field_id,
            player_id=player_id,
            start_time=start_time,
            end_time=end_time,
            total_price=total_price,
            note=note,
            status=BookingStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def save(self, booking: Booking) -> Booking:
        booking.updated_at = _utc_now_naive()
        self.session.add(booking)
        await self.session.flush()
        return booking
