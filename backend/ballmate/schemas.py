from datetime import date as date_type, datetime, time, timezone, tzinfo
from typing import List, Optional

from pydantic import BaseModel, Field, field_serializer

from .domain.pricing import DayPricing, PriceSlot
from .models import Booking, BookingStatus, DayType
from .utils.time import utc_naive_to_aware


class BookingCreate(BaseModel):
    field_id: int = Field(ge=1)
    start_time: datetime
    end_time: datetime
    total_price: Optional[int] = None
    note: Optional[str] = Field(default=None, max_length=1000)


class BookingComplete(BaseModel):
    booking_code: str = Field(min_length=1, max_length=16)


class BookingRead(BaseModel):
    booking_id: int
    booking_code: Optional[str]
    field_id: int
    player_id: int
    start_time: datetime
    end_time: datetime
    total_price: int
    note: Optional[str]
    status: BookingStatus

    @field_serializer("start_time", "end_time")
    def _ser_datetime(self, dt: datetime) -> str:
        return dt.isoformat()

    @classmethod
    def from_db(cls, *, booking: Booking, tz: tzinfo = timezone.utc) -> "BookingRead":
        # The code stays hidden until the venue confirms the booking.
        status = BookingStatus(booking.status)
        return cls(
            booking_id=booking.id,
            booking_code=None if status == BookingStatus.PENDING else booking.booking_code,
            field_id=booking.field_id,
            player_id=booking.player_id,
            start_time=utc_naive_to_aware(booking.start_time, tz),
            end_time=utc_naive_to_aware(booking.end_time, tz),
            total_price=booking.total_price,
            note=booking.note,
            status=status,
        )


class BookedIntervalRead(BaseModel):
    booking_id: int
    start_time: datetime
    end_time: datetime
    status: BookingStatus

    @field_serializer("start_time", "end_time")
    def _ser_datetime(self, dt: datetime) -> str:
        return dt.isoformat()

    @classmethod
    def from_db(cls, *, booking: Booking, tz: tzinfo = timezone.utc) -> "BookedIntervalRead":
        return cls(
            booking_id=booking.id,
            start_time=utc_naive_to_aware(booking.start_time, tz),
            end_time=utc_naive_to_aware(booking.end_time, tz),
            status=booking.status,
        )


class PriceSlotRead(BaseModel):
    start_time: time
    end_time: time
    price: Optional[int]
    is_peak_hour: bool
    is_available: Optional[bool] = None

    @field_serializer("start_time", "end_time")
    def _ser_time(self, value: time) -> str:
        return value.strftime("%H:%M")

    @classmethod
    def from_slot(cls, slot: PriceSlot) -> "PriceSlotRead":
        return cls(
            start_time=slot.start_time,
            end_time=slot.end_time,
            price=slot.price,
            is_peak_hour=slot.is_peak_hour,
            is_available=slot.is_available,
        )


class FieldSlotsRead(BaseModel):
    field_id: int
    date: date_type
    day_type: DayType
    slots: List[PriceSlotRead]

    @classmethod
    def from_pricing(cls, *, field_id: int, pricing: DayPricing) -> "FieldSlotsRead":
        return cls(
            field_id=field_id,
            date=pricing.day,
            day_type=pricing.day_type,
            slots=[PriceSlotRead.from_slot(slot) for slot in pricing.slots],
        )
