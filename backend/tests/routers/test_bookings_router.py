from datetime import datetime, timedelta, timezone
from typing import Any, cast

import pytest
from ballmate.domain.errors import InvalidCodeError, NotFoundError, ResourceConflictError
from ballmate.models import Booking, BookingStatus
from ballmate.routers import bookings as router
from ballmate.schemas import BookingComplete, BookingCreate, BookingRead
from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession


class DummySession:
    async def __aenter__(self) -> "DummySession":
        return self

    async def __aexit__(self, exc_type: object, exc: object, tb: object) -> bool:
        return False

    def begin(self) -> "DummySession":
        return self


class DummyClock:
    def now(self) -> datetime:
        return datetime(2026, 1, 1, tzinfo=timezone.utc)


def _booking(status: BookingStatus = BookingStatus.PENDING) -> Booking:
    starts = datetime(2026, 1, 15, 10, 0)
    return Booking(
        id=100,
        booking_code="BMQ7K2XD",
        field_id=3,
        player_id=200,
        start_time=starts,
        end_time=starts + timedelta(hours=1),
        total_price=300000,
        note=None,
        status=status,
        created_at=starts,
        updated_at=starts,
    )


def _payload() -> BookingCreate:
    return BookingCreate(
        field_id=3,
        start_time=datetime(2026, 1, 15, 10, 0, tzinfo=timezone.utc),
        end_time=datetime(2026, 1, 15, 11, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def audit_calls(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    calls: list[dict[str, Any]] = []

    def fake_emit(**kwargs: Any) -> None:
        calls.append(kwargs)

    monkeypatch.setattr(router, "SqlAlchemyFieldRepository", lambda s: s)  # type: ignore[assignment]
    monkeypatch.setattr(router, "SqlAlchemyBookingRepository", lambda s: s)  # type: ignore[assignment]
    monkeypatch.setattr(router, "SqlAlchemyNotifier", lambda s: s)  # type: ignore[assignment]
    monkeypatch.setattr(router, "emit_audit_log", fake_emit)
    return calls


def _raise(exc: Exception):
    async def fake(*args: object, **kwargs: object) -> Booking:
        raise exc

    return fake


def _return(booking: Booking):
    async def fake(*args: object, **kwargs: object) -> Booking:
        return booking

    return fake


@pytest.mark.asyncio
async def test_create_booking_emits_audit_and_hides_code(
    monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]]
) -> None:
    booking = _booking()
    monkeypatch.setattr(router.booking_usecase, "create_booking", _return(booking))  # type: ignore[attr-defined]

    result: BookingRead = await router.create_booking(
        payload=_payload(),
        session=cast(AsyncSession, DummySession()),
        player_id=booking.player_id,
        clock=DummyClock(),
    )

    assert result.booking_id == booking.id
    assert result.status == BookingStatus.PENDING
    assert result.booking_code is None
    assert len(audit_calls) == 1
    assert audit_calls[0]["action"] == "booking.created"
    assert audit_calls[0]["booking_id"] == booking.id
    assert audit_calls[0]["status_from"] is None
    assert "booking_code" not in audit_calls[0]


@pytest.mark.asyncio
async def test_create_booking_conflict_returns_409_with_blocking_id(
    monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]]
) -> None:
    monkeypatch.setattr(
        router.booking_usecase,  # type: ignore[attr-defined]
        "create_booking",
        _raise(ResourceConflictError(field_id=3, blocking_booking_id=7)),
    )

    with pytest.raises(HTTPException) as excinfo:
        await router.create_booking(
            payload=_payload(),
            session=cast(AsyncSession, DummySession()),
            player_id=200,
            clock=DummyClock(),
        )

    assert excinfo.value.status_code == 409
    assert excinfo.value.detail["blocking_booking_id"] == 7
    assert audit_calls == []


@pytest.mark.asyncio
async def test_create_booking_code_race_returns_409(
    monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]]
) -> None:
    monkeypatch.setattr(
        router.booking_usecase,  # type: ignore[attr-defined]
        "create_booking",
        _raise(IntegrityError("INSERT", None, Exception("duplicate booking_code"))),
    )

    with pytest.raises(HTTPException) as excinfo:
        await router.create_booking(
            payload=_payload(),
            session=cast(AsyncSession, DummySession()),
            player_id=200,
            clock=DummyClock(),
        )
    assert excinfo.value.status_code == 409


@pytest.mark.asyncio
async def test_confirm_missing_booking_returns_404(
    monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]]
) -> None:
    monkeypatch.setattr(router.booking_usecase, "confirm_booking", _raise(NotFoundError("Booking", 5)))  # type: ignore[attr-defined]

    with pytest.raises(HTTPException) as excinfo:
        await router.confirm_booking(booking_id=5, session=cast(AsyncSession, DummySession()), player_id=1)
    assert excinfo.value.status_code == 404
    assert audit_calls == []


@pytest.mark.asyncio
async def test_confirm_reveals_code(monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]]) -> None:
    booking = _booking(BookingStatus.CONFIRMED)
    monkeypatch.setattr(router.booking_usecase, "confirm_booking", _return(booking))  # type: ignore[attr-defined]

    result = await router.confirm_booking(booking_id=booking.id, session=cast(AsyncSession, DummySession()), player_id=9)

    assert result.booking_code == "BMQ7K2XD"
    assert audit_calls[0]["action"] == "booking.confirmed"
    assert audit_calls[0]["status_from"] == BookingStatus.PENDING
    assert audit_calls[0]["actor_id"] == 9


@pytest.mark.asyncio
async def test_complete_with_wrong_code_returns_400(
    monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]]
) -> None:
    monkeypatch.setattr(router.booking_usecase, "complete_booking", _raise(InvalidCodeError(100)))  # type: ignore[attr-defined]

    with pytest.raises(HTTPException) as excinfo:
        await router.complete_booking(
            payload=BookingComplete(booking_code="BMWRONG1"),
            booking_id=100,
            session=cast(AsyncSession, DummySession()),
            player_id=1,
        )
    assert excinfo.value.status_code == 400
    assert excinfo.value.detail == "Invalid booking code"


@pytest.mark.asyncio
async def test_cancel_audit_failure_returns_500(monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]]) -> None:
    booking = _booking(BookingStatus.CANCELLED)

    def fake_emit(**kwargs: Any) -> None:
        raise RuntimeError("fail log")

    monkeypatch.setattr(router.booking_usecase, "cancel_booking", _return(booking))  # type: ignore[attr-defined]
    monkeypatch.setattr(router, "emit_audit_log", fake_emit)

    with pytest.raises(HTTPException) as excinfo:
        await router.cancel_booking(booking_id=booking.id, session=cast(AsyncSession, DummySession()), player_id=1)
    assert excinfo.value.status_code == 500


@pytest.mark.asyncio
async def test_create_booking_negative_price_returns_400(audit_calls: list[dict[str, Any]]) -> None:
    payload = BookingCreate(
        field_id=3,
        start_time=datetime(2026, 1, 15, 10, 0, tzinfo=timezone.utc),
        end_time=datetime(2026, 1, 15, 11, 0, tzinfo=timezone.utc),
        total_price=-1,
    )

    with pytest.raises(HTTPException) as excinfo:
        await router.create_booking(
            payload=payload,
            session=cast(AsyncSession, DummySession()),
            player_id=200,
            clock=DummyClock(),
        )

    assert excinfo.value.status_code == 400
    assert excinfo.value.detail == "total_price must be non-negative"
    assert audit_calls == []
