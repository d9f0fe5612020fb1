from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..deps import get_clock, get_current_player_id, get_session
from ..domain.errors import BookingError, NotFoundError, ResourceConflictError
from ..domain.repositories import Clock
from ..infrastructure.notifier import SqlAlchemyNotifier
from ..infrastructure.repositories import SqlAlchemyBookingRepository, SqlAlchemyFieldRepository
from ..models import Booking, BookingStatus
from ..schemas import BookingComplete, BookingCreate, BookingRead
from ..usecases import bookings as booking_usecase
from ..utils.audit_log import AuditAction, emit_audit_log
from ..utils.time import utc_naive_to_aware, venue_tz

router = APIRouter(
    prefix="/bookings",
    tags=["bookings"],
    dependencies=[Depends(get_current_player_id)],
)


def _http_error(exc: BookingError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ResourceConflictError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": str(exc), "blocking_booking_id": exc.blocking_booking_id},
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _audit(
    action: AuditAction,
    booking: Booking,
    *,
    actor_id: int,
    status_from: Optional[BookingStatus],
) -> None:
    try:
        emit_audit_log(
            action=action,
            booking_id=booking.id,
            field_id=booking.field_id,
            player_id=booking.player_id,
            actor_id=actor_id,
            status_from=status_from,
            status_to=booking.status,
            start_time=utc_naive_to_aware(booking.start_time),
            end_time=utc_naive_to_aware(booking.end_time),
            total_price=booking.total_price,
        )
    except RuntimeError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="failed to write audit log",
        ) from exc


@router.post("", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    session: AsyncSession = Depends(get_session),
    player_id: int = Depends(get_current_player_id),
    clock: Clock = Depends(get_clock),
) -> BookingRead:
    field_repo = SqlAlchemyFieldRepository(session)
    booking_repo = SqlAlchemyBookingRepository(session)
    notifier = SqlAlchemyNotifier(session)
    async with session.begin():
        try:
            booking = await booking_usecase.create_booking(
                field_repo,
                booking_repo,
                clock=clock,
                field_id=payload.field_id,
                player_id=player_id,
                start_time=payload.start_time,
                end_time=payload.end_time,
                total_price=payload.total_price,
                note=payload.note,
                notifier=notifier,
                code_prefix=get_settings().booking_code_prefix,
                tz=venue_tz(),
            )
        except BookingError as exc:
            raise _http_error(exc) from exc
        except IntegrityError as exc:
            # Lost the booking-code race against a concurrent insert.
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="booking could not be stored, retry") from exc

    _audit("booking.created", booking, actor_id=player_id, status_from=None)
    return BookingRead.from_db(booking=booking, tz=venue_tz())


@router.get("", response_model=List[BookingRead])
async def list_bookings(
    player_id: Optional[int] = Query(default=None, ge=1),
    field_id: Optional[int] = Query(default=None, ge=1),
    venue_id: Optional[int] = Query(default=None, ge=1),
    status_filter: Optional[BookingStatus] = Query(default=None, alias="status"),
    session: AsyncSession = Depends(get_session),
) -> list[BookingRead]:
    booking_repo = SqlAlchemyBookingRepository(session)
    rows = await booking_usecase.list_bookings(
        booking_repo,
        player_id=player_id,
        field_id=field_id,
        venue_id=venue_id,
        status=status_filter,
    )
    tz = venue_tz()
    return [BookingRead.from_db(booking=booking, tz=tz) for booking in rows]


@router.get("/code/{booking_code}", response_model=BookingRead)
async def get_booking_by_code(
    booking_code: str = Path(..., min_length=1, max_length=16),
    session: AsyncSession = Depends(get_session),
) -> BookingRead:
    booking_repo = SqlAlchemyBookingRepository(session)
    try:
        booking = await booking_usecase.get_booking_by_code(booking_repo, booking_code=booking_code)
    except BookingError as exc:
        raise _http_error(exc) from exc
    return BookingRead.from_db(booking=booking, tz=venue_tz())


@router.get("/{booking_id}", response_model=BookingRead)
async def get_booking(
    booking_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> BookingRead:
    booking_repo = SqlAlchemyBookingRepository(session)
    try:
        booking = await booking_usecase.get_booking(booking_repo, booking_id=booking_id)
    except BookingError as exc:
        raise _http_error(exc) from exc
    return BookingRead.from_db(booking=booking, tz=venue_tz())


@router.post("/{booking_id}/confirm", response_model=BookingRead)
async def confirm_booking(
    booking_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    player_id: int = Depends(get_current_player_id),
) -> BookingRead:
    booking_repo = SqlAlchemyBookingRepository(session)
    async with session.begin():
        try:
            booking = await booking_usecase.confirm_booking(booking_repo, booking_id=booking_id)
        except BookingError as exc:
            raise _http_error(exc) from exc

    _audit("booking.confirmed", booking, actor_id=player_id, status_from=BookingStatus.PENDING)
    return BookingRead.from_db(booking=booking, tz=venue_tz())


@router.post("/{booking_id}/cancel", response_model=BookingRead)
async def cancel_booking(
    booking_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    player_id: int = Depends(get_current_player_id),
) -> BookingRead:
    booking_repo = SqlAlchemyBookingRepository(session)
    notifier = SqlAlchemyNotifier(session)
    async with session.begin():
        try:
            booking = await booking_usecase.cancel_booking(booking_repo, booking_id=booking_id, notifier=notifier)
        except BookingError as exc:
            raise _http_error(exc) from exc

    _audit("booking.cancelled", booking, actor_id=player_id, status_from=BookingStatus.PENDING)
    return BookingRead.from_db(booking=booking, tz=venue_tz())


@router.post("/{booking_id}/complete", response_model=BookingRead)
async def complete_booking(
    payload: BookingComplete,
    booking_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    player_id: int = Depends(get_current_player_id),
) -> BookingRead:
    booking_repo = SqlAlchemyBookingRepository(session)
    async with session.begin():
        try:
            booking = await booking_usecase.complete_booking(
                booking_repo,
                booking_id=booking_id,
                booking_code=payload.booking_code,
            )
        except BookingError as exc:
            raise _http_error(exc) from exc

    _audit("booking.completed", booking, actor_id=player_id, status_from=BookingStatus.CONFIRMED)
    return BookingRead.from_db(booking=booking, tz=venue_tz())
