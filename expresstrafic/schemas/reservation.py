from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class ReservationCreate(BaseModel):
    # loose types; validate_reservation_data reports field errors as a list
    trajet_id: Optional[Union[int, str]] = None
    siege_numero: Optional[Union[int, str]] = None
    moyen_paiement: Optional[str] = None
    passagers: Optional[List[Dict[str, Any]]] = None


class TicketUrlUpdate(BaseModel):
    ticket_url: str = Field(..., min_length=1, max_length=512)


class TripSummary(BaseModel):
    depart: str
    arrivee: str
    date: Optional[str] = None
    heure: Optional[str] = None
    prix: Optional[float] = None


class ReservationOut(BaseModel):
    id: int
    code_reservation: str
    trajet_id: int
    siege: int
    statut: str
    moyen_paiement: Optional[str] = None
    montant_total: float
    expires_at: Optional[datetime] = None
    ticket_url: Optional[str] = None
    date_reservation: Optional[datetime] = None
    trajet: Optional[TripSummary] = None

    @classmethod
    def from_model(cls, reservation) -> "ReservationOut":
        trip = reservation.trip
        summary = None
        if trip is not None:
            summary = TripSummary(
                depart=trip.departure_city,
                arrivee=trip.arrival_city,
                date=trip.departure_date.isoformat() if trip.departure_date else None,
                heure=trip.departure_time.strftime("%H:%M") if trip.departure_time else None,
                prix=float(trip.price) if trip.price is not None else None,
            )
        return cls(
            id=reservation.id,
            code_reservation=reservation.code,
            trajet_id=reservation.trip_id,
            siege=reservation.seat_number,
            statut=reservation.status,
            moyen_paiement=reservation.payment_method,
            montant_total=float(reservation.total_amount or 0),
            expires_at=reservation.expires_at,
            ticket_url=reservation.ticket_url,
            date_reservation=reservation.created_at,
            trajet=summary,
        )
