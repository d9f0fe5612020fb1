import logging
from datetime import datetime, timezone, tzinfo
from typing import Any, Dict, List, Optional

from ..domain.booking_code import DEFAULT_CODE_PREFIX, generate_booking_code
from ..domain.errors import InvalidPriceError, NotFoundError, ResourceConflictError
from ..domain.pricing import quote_interval_price
from ..domain.repositories import BookingRepository, Clock, FieldRepository, Notifier
from ..domain.services import BookingAction, find_blocking, next_status, validate_booking_window, verify_booking_code
from ..models import Booking, BookingStatus
from ..utils.time import to_utc_naive, utc_naive_to_aware
from .slots import rate_rules_from

logger = logging.getLogger(__name__)


async def create_booking(
    field_repo: FieldRepository,
    booking_repo: BookingRepository,
    *,
    clock: Clock,
    field_id: int,
    player_id: int,
    start_time: datetime,
    end_time: datetime,
    total_price: Optional[int] = None,
    note: Optional[str] = None,
    notifier: Optional[Notifier] = None,
    code_prefix: str = DEFAULT_CODE_PREFIX,
    tz: tzinfo = timezone.utc,
) -> Booking:
    """
    Create a PENDING booking.

    The caller must run this inside one transaction: the field row lock taken
    by ``get_for_update`` is what keeps two concurrent requests for the same
    field from both passing the overlap check. When ``total_price`` is None
    the price is quoted from the field's rate rules.
    """
    validate_booking_window(start_time, end_time, now=clock.now())
    if total_price is not None and total_price < 0:
        raise InvalidPriceError("total_price must be non-negative")

    field = await field_repo.get_for_update(field_id)
    if field is None:
        raise NotFoundError("Field", field_id)

    start = to_utc_naive(start_time)
    end = to_utc_naive(end_time)
    overlapping = await booking_repo.find_overlapping_active(field_id, start, end)
    blocking = find_blocking(overlapping, start, end)
    if blocking is not None:
        logger.info("booking rejected: field %s already held by booking %s", field_id, blocking.id)
        raise ResourceConflictError(field_id, blocking.id)

    if total_price is None:
        total_price = quote_interval_price(rate_rules_from(field), start_time, end_time, tz)

    booking_code = await generate_booking_code(booking_repo.code_exists, clock=clock, prefix=code_prefix)
    booking = await booking_repo.create(
        booking_code=booking_code,
        field_id=field_id,
        player_id=player_id,
        start_time=start,
        end_time=end,
        total_price=total_price,
        note=note,
    )
    await _notify(notifier, booking, "created")
    return booking


async def confirm_booking(booking_repo: BookingRepository, *, booking_id: int) -> Booking:
    booking = await _load_for_update(booking_repo, booking_id)
    booking.status = next_status(booking.status, BookingAction.CONFIRM, booking_id=booking.id)
    return await booking_repo.save(booking)


async def cancel_booking(
    booking_repo: BookingRepository,
    *,
    booking_id: int,
    notifier: Optional[Notifier] = None,
) -> Booking:
    booking = await _load_for_update(booking_repo, booking_id)
    booking.status = next_status(booking.status, BookingAction.CANCEL, booking_id=booking.id)
    updated = await booking_repo.save(booking)
    await _notify(notifier, updated, "cancelled")
    return updated


async def complete_booking(
    booking_repo: BookingRepository,
    *,
    booking_id: int,
    booking_code: str,
) -> Booking:
    booking = await _load_for_update(booking_repo, booking_id)
    # Code mismatch is reported before the state check.
    verify_booking_code(booking.booking_code, booking_code, booking_id=booking.id)
    booking.status = next_status(booking.status, BookingAction.COMPLETE, booking_id=booking.id)
    return await booking_repo.save(booking)


async def get_booking(booking_repo: BookingRepository, *, booking_id: int) -> Booking:
    booking = await booking_repo.get(booking_id)
    if booking is None:
        raise NotFoundError("Booking", booking_id)
    return booking


async def get_booking_by_code(booking_repo: BookingRepository, *, booking_code: str) -> Booking:
    booking = await booking_repo.get_by_code(booking_code)
    if booking is None:
        raise NotFoundError("Booking", booking_code)
    return booking


async def list_bookings(
    booking_repo: BookingRepository,
    *,
    player_id: Optional[int] = None,
    field_id: Optional[int] = None,
    venue_id: Optional[int] = None,
    status: Optional[BookingStatus] = None,
) -> List[Booking]:
    return await booking_repo.search(
        player_id=player_id,
        field_id=field_id,
        venue_id=venue_id,
        status=status,
    )


async def _load_for_update(booking_repo: BookingRepository, booking_id: int) -> Booking:
    booking = await booking_repo.get_for_update(booking_id)
    if booking is None:
        raise NotFoundError("Booking", booking_id)
    return booking


async def _notify(notifier: Optional[Notifier], booking: Booking, kind: str) -> None:
    """Best effort: a failing notifier never fails the booking operation."""
    if notifier is None:
        return
    details: Dict[str, Any] = {
        "booking_id": booking.id,
        "field_id": booking.field_id,
        "start_time": utc_naive_to_aware(booking.start_time).isoformat(),
        "end_time": utc_naive_to_aware(booking.end_time).isoformat(),
        "status": BookingStatus(booking.status).value,
    }
    try:
        await notifier.notify(booking.player_id, kind, details)
    except Exception:
        logger.warning("notification %r for booking %s failed", kind, booking.id, exc_info=True)
