from datetime import date
from typing import Dict, List, Optional

from sqlalchemy import func, select as sa_select
from sqlalchemy.ext.asyncio import AsyncSession

from expresstrafic.db.base import utcnow
from expresstrafic.models.models import Reservation, Trip
from expresstrafic.services.reservations import active_hold_clause


def trip_to_dict(trip: Trip, reserved: int = 0) -> Dict:
    bus = trip.bus
    capacity = bus.capacity if bus is not None else 0
    return {
        "id": trip.id,
        "reference": trip.reference,
        "ville_depart": trip.departure_city,
        "ville_arrivee": trip.arrival_city,
        "date_depart": trip.departure_date.isoformat() if trip.departure_date else None,
        "heure_depart": trip.departure_time.strftime("%H:%M") if trip.departure_time else None,
        "prix": float(trip.price) if trip.price is not None else None,
        "duree": trip.duration,
        "statut": trip.status,
        "bus": {
            "numero_immatriculation": bus.registration_number,
            "type_bus": bus.bus_type,
            "capacite": bus.capacity,
            "societe": bus.operator.name if bus.operator is not None else None,
        } if bus is not None else None,
        "places_disponibles": max(capacity - reserved, 0) if capacity else None,
    }


async def _reserved_counts(db: AsyncSession, trip_ids: List[int]) -> Dict[int, int]:
    if not trip_ids:
        return {}
    stmt = (
        sa_select(Reservation.trip_id, func.count(Reservation.id))
        .where(Reservation.trip_id.in_(trip_ids))
        .where(active_hold_clause(utcnow()))
        .group_by(Reservation.trip_id)
    )
    res = await db.execute(stmt)
    return {trip_id: count for trip_id, count in res.all()}


async def search_trips(
    db: AsyncSession,
    departure_city: Optional[str] = None,
    arrival_city: Optional[str] = None,
    departure_date: Optional[date] = None,
) -> List[Dict]:
    stmt = (
        sa_select(Trip)
        .where(Trip.status == "active")
        .where(Trip.departure_date >= utcnow().date())
        .order_by(Trip.departure_date, Trip.departure_time)
    )
    if departure_city:
        stmt = stmt.where(Trip.departure_city.ilike(f"%{departure_city.strip()}%"))
    if arrival_city:
        stmt = stmt.where(Trip.arrival_city.ilike(f"%{arrival_city.strip()}%"))
    if departure_date:
        stmt = stmt.where(Trip.departure_date == departure_date)
    res = await db.execute(stmt)
    trips = list(res.scalars().all())
    counts = await _reserved_counts(db, [t.id for t in trips])
    return [trip_to_dict(t, counts.get(t.id, 0)) for t in trips]


async def get_trip(db: AsyncSession, trip_id: int) -> Optional[Dict]:
    trip = await db.get(Trip, trip_id)
    if trip is None:
        return None
    counts = await _reserved_counts(db, [trip.id])
    return trip_to_dict(trip, counts.get(trip.id, 0))
