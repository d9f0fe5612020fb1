import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, time, timedelta, timezone
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence, Tuple

import jwt
import pytest
from ballmate.models import ACTIVE_BOOKING_STATUSES, Booking, BookingStatus, DayType, Field, FieldPricing, Venue


def _utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class FixedClock:
    def __init__(self, now: datetime) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta) -> None:
        self.current += delta


class InMemoryFieldRepo:
    """
    Row locks are per-field asyncio locks held by the calling task until its
    ``transaction()`` block exits, like SELECT ... FOR UPDATE until COMMIT.
    """

    def __init__(self, fields: Sequence[Field] = ()) -> None:
        self.fields: Dict[int, Field] = {field.id: field for field in fields}
        self.locked: List[int] = []
        self._row_locks: Dict[int, asyncio.Lock] = {}
        self._held: Dict[Optional[asyncio.Task[Any]], List[asyncio.Lock]] = {}

    async def get(self, field_id: int) -> Optional[Field]:
        return self.fields.get(field_id)

    async def get_for_update(self, field_id: int) -> Optional[Field]:
        self.locked.append(field_id)
        lock = self._row_locks.setdefault(field_id, asyncio.Lock())
        await lock.acquire()
        self._held.setdefault(asyncio.current_task(), []).append(lock)
        return self.fields.get(field_id)

    def release_locks(self) -> None:
        for lock in self._held.pop(asyncio.current_task(), []):
            lock.release()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        try:
            yield
        finally:
            self.release_locks()


class InMemoryBookingRepo:
    def __init__(self) -> None:
        self.bookings: Dict[int, Booking] = {}
        self.saved: List[int] = []
        self._next_id = 1

    def add(self, booking: Booking) -> Booking:
        self.bookings[booking.id] = booking
        self._next_id = max(self._next_id, booking.id + 1)
        return booking

    async def get(self, booking_id: int) -> Optional[Booking]:
        return self.bookings.get(booking_id)

    async def get_for_update(self, booking_id: int) -> Optional[Booking]:
        return self.bookings.get(booking_id)

    async def get_by_code(self, booking_code: str) -> Optional[Booking]:
        return next((b for b in self.bookings.values() if b.booking_code == booking_code), None)

    async def code_exists(self, booking_code: str) -> bool:
        return any(b.booking_code == booking_code for b in self.bookings.values())

    async def find_overlapping_active(self, field_id: int, start: datetime, end: datetime) -> List[Booking]:
        rows = [
            b
            for b in self.bookings.values()
            if b.field_id == field_id
            and b.status in ACTIVE_BOOKING_STATUSES
            and b.start_time < end
            and b.end_time > start
        ]
        # Yield like a real round trip so concurrent callers interleave here.
        await asyncio.sleep(0)
        return rows

    async def list_active_between(self, field_id: int, start: datetime, end: datetime) -> List[Booking]:
        rows = await self.find_overlapping_active(field_id, start, end)
        return sorted(rows, key=lambda b: b.start_time)

    async def search(
        self,
        *,
        player_id: Optional[int] = None,
        field_id: Optional[int] = None,
        venue_id: Optional[int] = None,
        status: Optional[BookingStatus] = None,
    ) -> List[Booking]:
        rows = [
            b
            for b in self.bookings.values()
            if (player_id is None or b.player_id == player_id)
            and (field_id is None or b.field_id == field_id)
            and (status is None or b.status == status)
        ]
        return sorted(rows, key=lambda b: b.start_time, reverse=True)

    async def create(self, **kwargs: Any) -> Booking:
        await asyncio.sleep(0)
        now = _utc_now_naive()
        booking = Booking(
            id=self._next_id,
            status=BookingStatus.PENDING,
            created_at=now,
            updated_at=now,
            **kwargs,
        )
        return self.add(booking)

    async def save(self, booking: Booking) -> Booking:
        self.saved.append(booking.id)
        return booking


class RecordingNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: List[Tuple[int, str, Dict[str, Any]]] = []

    async def notify(self, player_id: int, kind: str, details: Dict[str, Any]) -> None:
        self.calls.append((player_id, kind, details))
        if self.fail:
            raise RuntimeError("notification backend down")


def build_field(
    field_id: int = 1,
    *,
    open_time: Optional[time] = time(6, 0),
    close_time: Optional[time] = time(23, 0),
    pricings: Sequence[Tuple[DayType, time, time, int]] = (),
) -> Field:
    now = _utc_now_naive()
    venue = Venue(id=1, name="Venue 1", open_time=open_time, close_time=close_time, created_at=now, updated_at=now)
    field = Field(id=field_id, venue_id=venue.id, name=f"Field {field_id}", is_active=True, created_at=now, updated_at=now)
    field.venue = venue
    field.pricings = [
        FieldPricing(id=index, field_id=field_id, day_type=day_type, start_time=start, end_time=end, price=price)
        for index, (day_type, start, end, price) in enumerate(pricings, start=1)
    ]
    return field


def build_booking(
    booking_id: int,
    start: datetime,
    end: datetime,
    *,
    field_id: int = 1,
    player_id: int = 1,
    status: BookingStatus = BookingStatus.PENDING,
    booking_code: Optional[str] = None,
    total_price: int = 300000,
) -> Booking:
    now = _utc_now_naive()
    return Booking(
        id=booking_id,
        booking_code=booking_code or f"BM{booking_id:06d}",
        field_id=field_id,
        player_id=player_id,
        start_time=start.astimezone(timezone.utc).replace(tzinfo=None) if start.tzinfo else start,
        end_time=end.astimezone(timezone.utc).replace(tzinfo=None) if end.tzinfo else end,
        total_price=total_price,
        note=None,
        status=status,
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2026, 1, 1, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def make_field() -> Callable[..., Field]:
    return build_field


@pytest.fixture
def make_booking() -> Callable[..., Booking]:
    return build_booking


@pytest.fixture
def booking_repo() -> InMemoryBookingRepo:
    return InMemoryBookingRepo()


@pytest.fixture
def field_repo() -> InMemoryFieldRepo:
    return InMemoryFieldRepo([build_field()])


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def make_field_repo() -> Callable[..., InMemoryFieldRepo]:
    return InMemoryFieldRepo


@pytest.fixture
def failing_notifier() -> RecordingNotifier:
    return RecordingNotifier(fail=True)


def issue_token(
    claims: Dict[str, Any],
    *,
    secret: str = "testsecret",
    algorithm: str = "HS256",
    expires_delta: timedelta = timedelta(minutes=30),
) -> str:
    now = datetime.now(timezone.utc)
    return jwt.encode({"iat": now, "exp": now + expires_delta, **claims}, secret, algorithm=algorithm)


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Bearer token factory; pass ``sub`` (and any other claims) as keyword arguments."""

    def _make(secret: str = "testsecret", expires_delta: timedelta = timedelta(minutes=30), **claims: Any) -> str:
        return issue_token(claims, secret=secret, expires_delta=expires_delta)

    return _make
