import logging
import secrets
from datetime import timedelta
from typing import Dict, List, Optional, Union

from fastapi import status
from sqlalchemy import and_, or_, select as sa_select, update as sa_update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from expresstrafic.config import settings
from expresstrafic.db.base import utcnow
from expresstrafic.errors import ErrorCode
from expresstrafic.metrics import RESERVATION_CONFLICTS, RESERVATIONS_CREATED, RESERVATIONS_EXPIRED
from expresstrafic.models.models import (
    ACTIVE_RESERVATION_STATUSES,
    Reservation,
    ReservationStatus,
    Trip,
    User,
)
from expresstrafic.services.notification_service import NotificationService
from expresstrafic.services.validators import is_valid_url

logger = logging.getLogger(__name__)

CODE_ATTEMPTS = 5


class ReservationError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    code = ErrorCode.BAD_REQUEST
    message = "Reservation error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)


class TripNotFound(ReservationError):
    status_code = status.HTTP_404_NOT_FOUND
    code = ErrorCode.TRIP_NOT_FOUND
    message = "Trip not found"


class TripNotBookable(ReservationError):
    code = ErrorCode.TRIP_NOT_BOOKABLE
    message = "Trip is not open for booking"


class InvalidSeat(ReservationError):
    code = ErrorCode.INVALID_SEAT
    message = "Invalid seat number"


class SeatUnavailable(ReservationError):
    code = ErrorCode.SEAT_UNAVAILABLE
    message = "This seat is already reserved"


class ReservationNotFound(ReservationError):
    status_code = status.HTTP_404_NOT_FOUND
    code = ErrorCode.RESERVATION_NOT_FOUND
    message = "Reservation not found"


class ReservationNotCancellable(ReservationError):
    status_code = status.HTTP_409_CONFLICT
    code = ErrorCode.RESERVATION_NOT_CANCELLABLE
    message = "Only pending or confirmed reservations can be cancelled"


def generate_reservation_code() -> str:
    raw = secrets.token_hex(6).upper()
    return f"RES-{raw[0:4]}-{raw[4:8]}-{raw[8:12]}"


async def generate_unique_reservation_code(db: AsyncSession) -> str:
    for _ in range(CODE_ATTEMPTS):
        code = generate_reservation_code()
        res = await db.execute(sa_select(Reservation.id).where(Reservation.code == code))
        if res.first() is None:
            return code
    raise RuntimeError("Could not generate a unique reservation code")


def active_hold_clause(now):
    """Rows that currently block their seat.

    Confirmed rows block regardless of ``expires_at``, matching
    ``uq_reservations_active_seat``; only pending holds lapse.
    """
    return or_(
        Reservation.status == ReservationStatus.CONFIRMED.value,
        and_(
            Reservation.status == ReservationStatus.PENDING.value,
            or_(Reservation.expires_at.is_(None), Reservation.expires_at > now),
        ),
    )


async def load_trip(db: AsyncSession, trip_ref: Union[int, str]) -> Optional[Trip]:
    if isinstance(trip_ref, str) and not trip_ref.isdigit():
        res = await db.execute(sa_select(Trip).where(Trip.reference == trip_ref))
        return res.scalars().first()
    return await db.get(Trip, int(trip_ref))


async def create_reservation(
    db: AsyncSession,
    notifications: Optional[NotificationService],
    user: User,
    trip_id: Union[int, str],
    seat_number: int,
    payment_method: Optional[str] = None,
) -> Reservation:
    """Place a pending hold on one seat.

    The partial unique index on active holds decides between concurrent
    requests; pending holds past their expiry are flipped first so they do
    not block the insert.
    """
    user_id, user_email = user.id, user.email
    user_name = " ".join(part for part in (user.first_name, user.last_name) if part)

    trip = await load_trip(db, trip_id)
    if trip is None:
        raise TripNotFound()
    if trip.status != "active":
        raise TripNotBookable()
    capacity = trip.bus.capacity if trip.bus is not None else 0
    if capacity and seat_number > capacity:
        raise InvalidSeat(f"Seat {seat_number} does not exist on this bus (capacity {capacity})")

    code = await generate_unique_reservation_code(db)
    now = utcnow()
    flipped = await db.execute(
        sa_update(Reservation)
        .where(Reservation.trip_id == trip.id)
        .where(Reservation.seat_number == seat_number)
        .where(Reservation.status == ReservationStatus.PENDING.value)
        .where(Reservation.expires_at <= now)
        .values(status=ReservationStatus.EXPIRED.value)
        .execution_options(synchronize_session=False)
    )
    if flipped.rowcount:
        RESERVATIONS_EXPIRED.labels(source="booking").inc(flipped.rowcount)
    reservation = Reservation(
        user_id=user_id,
        trip_id=trip.id,
        seat_number=seat_number,
        payment_method=payment_method,
        total_amount=trip.price,
        code=code,
        status=ReservationStatus.PENDING.value,
        expires_at=now + timedelta(minutes=settings.RESERVATION_HOLD_MINUTES),
        created_at=now,
    )
    reservation.trip = trip
    db.add(reservation)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        RESERVATION_CONFLICTS.inc()
        logger.info("Seat conflict trip_id=%s seat=%s user_id=%s", trip_id, seat_number, user_id)
        raise SeatUnavailable()

    RESERVATIONS_CREATED.inc()
    logger.info("Reservation created code=%s user_id=%s", reservation.code, user_id)

    if notifications is not None and user_email:
        try:
            await notifications.send_email(
                to=user_email,
                subject=f"Your reservation {reservation.code}",
                template_name="reservation_confirmation.html",
                context={
                    "name": user_name,
                    "reservation": reservation_summary(reservation),
                },
            )
        except Exception:
            logger.warning("Confirmation email failed for reservation %s", reservation.code, exc_info=True)
    return reservation


def reservation_summary(reservation: Reservation) -> Dict:
    trip = reservation.trip
    return {
        "id": reservation.id,
        "code_reservation": reservation.code,
        "trajet": {
            "depart": trip.departure_city,
            "arrivee": trip.arrival_city,
            "date": trip.departure_date.isoformat() if trip.departure_date else None,
            "heure": trip.departure_time.strftime("%H:%M") if trip.departure_time else None,
            "prix": float(trip.price) if trip.price is not None else None,
        },
        "siege": reservation.seat_number,
        "statut": reservation.status,
    }


def _owned(user_id: int):
    return sa_select(Reservation).join(Trip, Reservation.trip_id == Trip.id).where(Reservation.user_id == user_id)


async def get_by_code(db: AsyncSession, code: str) -> Reservation:
    res = await db.execute(sa_select(Reservation).where(Reservation.code == code))
    reservation = res.scalars().first()
    if reservation is None:
        raise ReservationNotFound("No reservation found with this code")
    return reservation


async def list_for_user(db: AsyncSession, user_id: int) -> List[Reservation]:
    stmt = (
        _owned(user_id)
        .where(Reservation.status != ReservationStatus.DELETED.value)
        .order_by(Reservation.created_at.desc(), Reservation.id.desc())
    )
    res = await db.execute(stmt)
    return list(res.scalars().all())


async def list_current(db: AsyncSession, user_id: int) -> List[Reservation]:
    stmt = (
        _owned(user_id)
        .where(Reservation.status == ReservationStatus.CONFIRMED.value)
        .where(Trip.departure_date >= utcnow().date())
        .order_by(Trip.departure_date, Trip.departure_time)
    )
    res = await db.execute(stmt)
    return list(res.scalars().all())


async def list_history(db: AsyncSession, user_id: int) -> List[Reservation]:
    stmt = (
        _owned(user_id)
        .where(
            or_(
                Reservation.status == ReservationStatus.COMPLETED.value,
                Trip.departure_date < utcnow().date(),
            )
        )
        .order_by(Trip.departure_date.desc(), Trip.departure_time.desc())
    )
    res = await db.execute(stmt)
    return list(res.scalars().all())


async def list_archives(db: AsyncSession, user_id: int) -> List[Reservation]:
    stmt = (
        _owned(user_id)
        .where(Reservation.status == ReservationStatus.CANCELLED.value)
        .order_by(Reservation.created_at.desc(), Reservation.id.desc())
    )
    res = await db.execute(stmt)
    return list(res.scalars().all())


async def get_for_user(db: AsyncSession, reservation_id: int, user_id: int) -> Reservation:
    res = await db.execute(_owned(user_id).where(Reservation.id == reservation_id))
    reservation = res.scalars().first()
    if reservation is None:
        raise ReservationNotFound()
    return reservation


async def cancel(db: AsyncSession, reservation_id: int, user_id: int) -> Reservation:
    reservation = await get_for_user(db, reservation_id, user_id)
    if reservation.status not in ACTIVE_RESERVATION_STATUSES:
        raise ReservationNotCancellable()
    reservation.status = ReservationStatus.CANCELLED.value
    reservation.updated_at = utcnow()
    await db.commit()
    logger.info("Reservation cancelled code=%s user_id=%s", reservation.code, user_id)
    return reservation


async def update_ticket_url(db: AsyncSession, reservation_id: int, user_id: int, url: str) -> Reservation:
    if not is_valid_url(url):
        raise ReservationError("Invalid ticket URL")
    reservation = await get_for_user(db, reservation_id, user_id)
    reservation.ticket_url = url.strip()
    reservation.updated_at = utcnow()
    await db.commit()
    return reservation


async def reserved_seats(db: AsyncSession, trip_id: int) -> List[int]:
    stmt = (
        sa_select(Reservation.seat_number)
        .where(Reservation.trip_id == trip_id)
        .where(active_hold_clause(utcnow()))
        .order_by(Reservation.seat_number)
    )
    res = await db.execute(stmt)
    return [row[0] for row in res.all()]


async def seat_availability(db: AsyncSession, trip_id: Union[int, str]) -> Dict:
    trip = await load_trip(db, trip_id)
    if trip is None:
        raise TripNotFound()
    capacity = trip.bus.capacity if trip.bus is not None else 0
    taken = await reserved_seats(db, trip.id)
    held = set(taken)
    free = [seat for seat in range(1, capacity + 1) if seat not in held]
    return {
        "trajet_id": trip.id,
        "capacite": capacity,
        "sieges_reserves": taken,
        "sieges_disponibles": free,
        "places_disponibles": len(free) if capacity else None,
    }


async def release_expired_reservations(db: AsyncSession, source: str = "sweep") -> int:
    """Move every pending hold past its expiry to ``expired``."""
    res = await db.execute(
        sa_update(Reservation)
        .where(Reservation.status == ReservationStatus.PENDING.value)
        .where(Reservation.expires_at <= utcnow())
        .values(status=ReservationStatus.EXPIRED.value)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    released = res.rowcount or 0
    if released:
        RESERVATIONS_EXPIRED.labels(source=source).inc(released)
        logger.info("Released %s expired reservation holds", released)
    return released
