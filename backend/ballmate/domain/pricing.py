"""
Hourly slot pricing and availability for a single field and calendar day.

Everything here is pure: callers load the venue hours, rate rules and active
bookings, and these functions derive the slot grid from them on every call.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Iterable, Optional, Sequence

from ..models import DayType

DEFAULT_OPEN_TIME = time(6, 0)
DEFAULT_CLOSE_TIME = time(23, 0)
SLOT_WIDTH = timedelta(hours=1)

# Global policy shared by every field. Per-field peak windows would need a
# column on fields plus a migration; see DESIGN.md.
PEAK_HOURS = range(17, 21)
PEAK_DEFAULT_PRICE = 500_000
OFF_PEAK_DEFAULT_PRICE = 300_000

_MINUTES_PER_DAY = 24 * 60
_SECONDS_PER_HOUR = 3600


@dataclass(frozen=True)
class RateRule:
    day_type: DayType
    start_time: time
    end_time: time
    price: int

    def covers(self, moment: time) -> bool:
        return self.start_time <= moment < self.end_time


@dataclass(frozen=True)
class PriceSlot:
    start_time: time
    end_time: time
    price: Optional[int]
    is_peak_hour: bool
    is_available: Optional[bool] = None


@dataclass(frozen=True)
class DayPricing:
    day: date
    day_type: DayType
    slots: list[PriceSlot]


def classify_day_type(day: date) -> DayType:
    # Saturday is 5, Sunday is 6.
    return DayType.WEEKEND if day.weekday() >= 5 else DayType.WEEKDAY


def is_peak_hour(moment: time) -> bool:
    return moment.hour in PEAK_HOURS


def default_price(moment: time) -> int:
    return PEAK_DEFAULT_PRICE if is_peak_hour(moment) else OFF_PEAK_DEFAULT_PRICE


def resolve_price(rules: Iterable[RateRule], day_type: DayType, moment: time) -> int:
    """First rule of ``day_type`` covering ``moment`` in the given order, else the default."""
    for rule in rules:
        if rule.day_type == day_type and rule.covers(moment):
            return rule.price
    return default_price(moment)


def _minutes(moment: time) -> int:
    return moment.hour * 60 + moment.minute


def _from_minutes(minutes: int) -> time:
    minutes %= _MINUTES_PER_DAY
    return time(minutes // 60, minutes % 60)


def build_hourly_grid(
    open_time: Optional[time] = None,
    close_time: Optional[time] = None,
    *,
    width: timedelta = SLOT_WIDTH,
) -> list[PriceSlot]:
    """
    Unpriced slots of ``width`` covering ``[open_time, close_time)``.

    A close time of 00:00 means midnight at the end of the day. A trailing
    remainder shorter than ``width`` is not offered. Missing hours fall back
    to 06:00-23:00.
    """
    opens = _minutes(DEFAULT_OPEN_TIME if open_time is None else open_time)
    closes = _minutes(DEFAULT_CLOSE_TIME if close_time is None else close_time)
    if closes == 0:
        closes = _MINUTES_PER_DAY
    step = int(width.total_seconds() // 60)
    if step <= 0:
        raise ValueError("slot width must be at least one minute")

    slots: list[PriceSlot] = []
    start = opens
    while start + step <= closes:
        begins = _from_minutes(start)
        slots.append(
            PriceSlot(
                start_time=begins,
                end_time=_from_minutes(start + step),
                price=None,
                is_peak_hour=is_peak_hour(begins),
            )
        )
        start += step
    return slots


def build_price_slots(
    day: date,
    rules: Sequence[RateRule],
    open_time: Optional[time] = None,
    close_time: Optional[time] = None,
) -> DayPricing:
    day_type = classify_day_type(day)
    slots = [
        replace(slot, price=resolve_price(rules, day_type, slot.start_time))
        for slot in build_hourly_grid(open_time, close_time)
    ]
    return DayPricing(day=day, day_type=day_type, slots=slots)


def day_bounds(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time(0), tzinfo=tz)
    return start, start + timedelta(days=1)


def covered_hours(intervals: Iterable[tuple[datetime, datetime]], day: date, tz: tzinfo) -> set[int]:
    """
    Local hours of ``day`` touched by any of the half-open ``intervals``.

    10:30-11:30 touches 10 and 11; 10:00-11:00 touches only 10. Parts of an
    interval outside ``day`` are ignored.
    """
    day_start, day_end = day_bounds(day, tz)
    hours: set[int] = set()
    for start, end in intervals:
        local_start = max(start.astimezone(tz), day_start)
        local_end = min(end.astimezone(tz), day_end)
        if local_start >= local_end:
            continue
        if local_end >= day_end:
            last = 24
        else:
            partial = (local_end.minute, local_end.second, local_end.microsecond) != (0, 0, 0)
            last = local_end.hour + (1 if partial else 0)
        hours.update(range(local_start.hour, last))
    return hours


def mark_availability(slots: Iterable[PriceSlot], booked_hours: set[int]) -> list[PriceSlot]:
    ordered = sorted(slots, key=lambda slot: slot.start_time)
    return [replace(slot, is_available=slot.start_time.hour not in booked_hours) for slot in ordered]


def quote_interval_price(rules: Sequence[RateRule], start: datetime, end: datetime, tz: tzinfo) -> int:
    """
    Price of ``[start, end)``: each local hour it touches costs that hour's
    slot price, pro-rated by the seconds actually booked (rounded down).

    The walk runs in UTC so elapsed time stays exact across DST changes;
    ``tz`` is only used to find the local hour whose rate applies.
    """
    cursor = start.astimezone(timezone.utc)
    stop = end.astimezone(timezone.utc)
    weighted = 0
    while cursor < stop:
        local = cursor.astimezone(tz)
        into_hour = timedelta(minutes=local.minute, seconds=local.second, microseconds=local.microsecond)
        chunk_end = min(cursor + SLOT_WIDTH - into_hour, stop)
        price = resolve_price(rules, classify_day_type(local.date()), time(local.hour))
        weighted += price * int((chunk_end - cursor).total_seconds())
        cursor = chunk_end
    return weighted // _SECONDS_PER_HOUR
