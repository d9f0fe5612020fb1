from datetime import date
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_current_player_id, get_session
from ..domain.errors import NotFoundError
from ..infrastructure.repositories import SqlAlchemyBookingRepository, SqlAlchemyFieldRepository
from ..schemas import BookedIntervalRead, FieldSlotsRead
from ..usecases import slots as slot_usecase
from ..utils.time import venue_tz

router = APIRouter(
    prefix="/fields",
    tags=["fields"],
    dependencies=[Depends(get_current_player_id)],
)


@router.get("/{field_id}/pricing", response_model=FieldSlotsRead)
async def get_field_pricing(
    field_id: int,
    day: date = Query(..., alias="date", description="Local calendar date (YYYY-MM-DD)"),
    session: AsyncSession = Depends(get_session),
) -> FieldSlotsRead:
    field_repo = SqlAlchemyFieldRepository(session)
    try:
        pricing = await slot_usecase.get_field_pricing(field_repo, field_id=field_id, day=day)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return FieldSlotsRead.from_pricing(field_id=field_id, pricing=pricing)


@router.get("/{field_id}/slots", response_model=FieldSlotsRead)
async def get_field_slots(
    field_id: int,
    day: date = Query(..., alias="date", description="Local calendar date (YYYY-MM-DD)"),
    with_pricing: bool = Query(default=True),
    session: AsyncSession = Depends(get_session),
) -> FieldSlotsRead:
    field_repo = SqlAlchemyFieldRepository(session)
    booking_repo = SqlAlchemyBookingRepository(session)
    try:
        pricing = await slot_usecase.get_field_slots(
            field_repo,
            booking_repo,
            field_id=field_id,
            day=day,
            tz=venue_tz(),
            with_pricing=with_pricing,
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return FieldSlotsRead.from_pricing(field_id=field_id, pricing=pricing)


@router.get("/{field_id}/bookings", response_model=List[BookedIntervalRead])
async def list_field_bookings(
    field_id: int,
    day: date = Query(..., alias="date", description="Local calendar date (YYYY-MM-DD)"),
    session: AsyncSession = Depends(get_session),
) -> list[BookedIntervalRead]:
    booking_repo = SqlAlchemyBookingRepository(session)
    tz = venue_tz()
    rows = await slot_usecase.list_field_bookings_for_date(booking_repo, field_id=field_id, day=day, tz=tz)
    return [BookedIntervalRead.from_db(booking=booking, tz=tz) for booking in rows]
