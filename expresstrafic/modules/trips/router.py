from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from expresstrafic.db.session import get_session
from expresstrafic.errors import ErrorCode, api_error, validation_error
from expresstrafic.schemas.trip import SeatMapOut, TripSearchOut
from expresstrafic.services import reservations as reservation_service
from expresstrafic.services import trips as trip_service
from expresstrafic.services.rate_limit import api_limiter

router = APIRouter(tags=["trips"])


@router.get("/search", response_model=TripSearchOut, dependencies=[Depends(api_limiter)])
async def search(
    ville_depart: Optional[str] = Query(None, max_length=128),
    ville_arrivee: Optional[str] = Query(None, max_length=128),
    date_depart: Optional[str] = Query(None, description="YYYY-MM-DD"),
    db: AsyncSession = Depends(get_session),
):
    wanted = None
    if date_depart:
        try:
            wanted = date.fromisoformat(date_depart)
        except ValueError:
            validation_error(["date_depart must be a YYYY-MM-DD date"])
    data = await trip_service.search_trips(db, ville_depart, ville_arrivee, wanted)
    return {"success": True, "count": len(data), "data": data}


@router.get("/{trip_id}")
async def trip_detail(trip_id: int, db: AsyncSession = Depends(get_session)):
    trip = await trip_service.get_trip(db, trip_id)
    if trip is None:
        api_error(status.HTTP_404_NOT_FOUND, "Trip not found", code=ErrorCode.TRIP_NOT_FOUND)
    return {"success": True, "data": trip}


@router.get("/{trip_id}/sieges")
async def trip_seats(trip_id: int, db: AsyncSession = Depends(get_session)):
    try:
        seats = await reservation_service.seat_availability(db, trip_id)
    except reservation_service.ReservationError as exc:
        api_error(exc.status_code, exc.message, code=exc.code)
    return {"success": True, "data": SeatMapOut(**seats)}
