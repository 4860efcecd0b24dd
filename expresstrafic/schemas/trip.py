from typing import List, Optional

from pydantic import BaseModel


class BusOut(BaseModel):
    numero_immatriculation: str
    type_bus: Optional[str] = None
    capacite: int
    societe: Optional[str] = None


class TripOut(BaseModel):
    id: int
    reference: Optional[str] = None
    ville_depart: str
    ville_arrivee: str
    date_depart: Optional[str] = None
    heure_depart: Optional[str] = None
    prix: Optional[float] = None
    duree: Optional[str] = None
    statut: str
    bus: Optional[BusOut] = None
    places_disponibles: Optional[int] = None


class TripSearchOut(BaseModel):
    success: bool = True
    count: int
    data: List[TripOut]


class SeatMapOut(BaseModel):
    trajet_id: int
    capacite: int
    sieges_reserves: List[int]
    sieges_disponibles: List[int]
    places_disponibles: Optional[int] = None
