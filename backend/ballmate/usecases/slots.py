from dataclasses import replace
from datetime import date, time, timezone, tzinfo
from typing import List, Optional, Tuple

from ..domain.errors import NotFoundError
from ..domain.pricing import (
    DayPricing,
    RateRule,
    build_hourly_grid,
    build_price_slots,
    classify_day_type,
    covered_hours,
    day_bounds,
    mark_availability,
)
from ..domain.repositories import BookingRepository, FieldRepository
from ..models import ACTIVE_BOOKING_STATUSES, Booking, Field
from ..utils.time import to_utc_naive, utc_naive_to_aware


def rate_rules_from(field: Field) -> List[RateRule]:
    # Keeps the stored order; the first covering rule wins.
    return [
        RateRule(
            day_type=pricing.day_type,
            start_time=pricing.start_time,
            end_time=pricing.end_time,
            price=pricing.price,
        )
        for pricing in field.pricings
    ]


def venue_hours(field: Field) -> Tuple[Optional[time], Optional[time]]:
    if field.venue is None:
        return None, None
    return field.venue.open_time, field.venue.close_time


async def load_field(field_repo: FieldRepository, field_id: int) -> Field:
    field = await field_repo.get(field_id)
    if field is None:
        raise NotFoundError("Field", field_id)
    return field


async def get_field_pricing(
    field_repo: FieldRepository,
    *,
    field_id: int,
    day: date,
) -> DayPricing:
    field = await load_field(field_repo, field_id)
    open_time, close_time = venue_hours(field)
    return build_price_slots(day, rate_rules_from(field), open_time, close_time)


async def list_field_bookings_for_date(
    booking_repo: BookingRepository,
    *,
    field_id: int,
    day: date,
    tz: tzinfo = timezone.utc,
) -> List[Booking]:
    """Active bookings overlapping the local calendar day, earliest first."""
    day_start, day_end = day_bounds(day, tz)
    rows = await booking_repo.list_active_between(field_id, to_utc_naive(day_start), to_utc_naive(day_end))
    return sorted(
        (b for b in rows if b.status in ACTIVE_BOOKING_STATUSES),
        key=lambda b: b.start_time,
    )


async def get_field_slots(
    field_repo: FieldRepository,
    booking_repo: BookingRepository,
    *,
    field_id: int,
    day: date,
    tz: tzinfo = timezone.utc,
    with_pricing: bool = True,
) -> DayPricing:
    field = await load_field(field_repo, field_id)
    open_time, close_time = venue_hours(field)
    if with_pricing:
        pricing = build_price_slots(day, rate_rules_from(field), open_time, close_time)
    else:
        pricing = DayPricing(day=day, day_type=classify_day_type(day), slots=build_hourly_grid(open_time, close_time))

    bookings = await list_field_bookings_for_date(booking_repo, field_id=field_id, day=day, tz=tz)
    booked = covered_hours(
        ((utc_naive_to_aware(b.start_time), utc_naive_to_aware(b.end_time)) for b in bookings),
        day,
        tz,
    )
    return replace(pricing, slots=mark_availability(pricing.slots, booked))
