import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from expresstrafic.auth.deps import require_client
from expresstrafic.db.session import get_session
from expresstrafic.errors import ErrorCode, api_error, validation_error
from expresstrafic.models.models import User
from expresstrafic.schemas.reservation import ReservationCreate, ReservationOut, TicketUrlUpdate
from expresstrafic.services import reservations as reservation_service
from expresstrafic.services.notification_service import NotificationService, get_notification_service
from expresstrafic.services.rate_limit import api_limiter, reservation_limiter
from expresstrafic.services.validators import PAYMENT_METHODS, validate_reservation_data

logger = logging.getLogger(__name__)

router = APIRouter(tags=["reservations"])


def _raise(exc: reservation_service.ReservationError):
    api_error(exc.status_code, exc.message, code=exc.code)


@router.post("", status_code=status.HTTP_201_CREATED, dependencies=[Depends(reservation_limiter)])
async def create_reservation(
    payload: ReservationCreate,
    current_user: User = Depends(require_client),
    db: AsyncSession = Depends(get_session),
    notifications: NotificationService = Depends(get_notification_service),
):
    """Hold a seat for the signed-in client; the hold expires if not confirmed in time."""
    if payload.trajet_id is None or payload.siege_numero is None:
        validation_error(["trajet_id and siege_numero are required"], message="Trip and seat are required")
    report = validate_reservation_data(payload.model_dump())
    if payload.moyen_paiement is not None and payload.moyen_paiement not in PAYMENT_METHODS:
        report.errors.append("Unsupported payment method")
    if not report.is_valid:
        validation_error(report.errors)

    try:
        reservation = await reservation_service.create_reservation(
            db,
            notifications,
            current_user,
            payload.trajet_id,
            int(payload.siege_numero),
            payload.moyen_paiement,
        )
    except reservation_service.ReservationError as exc:
        _raise(exc)

    return {
        "success": True,
        "message": "Reservation created",
        "reservation_id": reservation.id,
        "code": reservation.code,
        "data": reservation_service.reservation_summary(reservation),
    }


@router.post("/sans-compte", status_code=status.HTTP_403_FORBIDDEN)
async def guest_reservation():
    logger.warning("Blocked guest reservation attempt")
    api_error(
        status.HTTP_403_FORBIDDEN,
        "Booking without an account is no longer allowed. Please sign in to book.",
        code=ErrorCode.GUEST_BOOKING_DISABLED,
    )


@router.get("/code/{code}", dependencies=[Depends(api_limiter)])
async def get_by_code(code: str, db: AsyncSession = Depends(get_session)):
    try:
        reservation = await reservation_service.get_by_code(db, code.strip().upper())
    except reservation_service.ReservationError as exc:
        _raise(exc)
    return {"success": True, "data": ReservationOut.from_model(reservation)}


@router.get("/mes-reservations")
async def my_reservations(current_user: User = Depends(require_client), db: AsyncSession = Depends(get_session)):
    rows = await reservation_service.list_for_user(db, current_user.id)
    return {"success": True, "data": [ReservationOut.from_model(r) for r in rows]}


@router.get("/encours")
async def current_reservations(current_user: User = Depends(require_client), db: AsyncSession = Depends(get_session)):
    rows = await reservation_service.list_current(db, current_user.id)
    return {"success": True, "data": [ReservationOut.from_model(r) for r in rows]}


@router.get("/historique")
async def reservation_history(current_user: User = Depends(require_client), db: AsyncSession = Depends(get_session)):
    rows = await reservation_service.list_history(db, current_user.id)
    return {"success": True, "data": [ReservationOut.from_model(r) for r in rows]}


@router.get("/archives")
async def reservation_archives(current_user: User = Depends(require_client), db: AsyncSession = Depends(get_session)):
    rows = await reservation_service.list_archives(db, current_user.id)
    return {"success": True, "data": [ReservationOut.from_model(r) for r in rows]}


@router.get("/{reservation_id}")
async def reservation_detail(reservation_id: int, current_user: User = Depends(require_client), db: AsyncSession = Depends(get_session)):
    try:
        reservation = await reservation_service.get_for_user(db, reservation_id, current_user.id)
    except reservation_service.ReservationError as exc:
        _raise(exc)
    return {"success": True, "data": ReservationOut.from_model(reservation)}


@router.put("/{reservation_id}/annuler")
async def cancel_reservation(reservation_id: int, current_user: User = Depends(require_client), db: AsyncSession = Depends(get_session)):
    try:
        reservation = await reservation_service.cancel(db, reservation_id, current_user.id)
    except reservation_service.ReservationError as exc:
        _raise(exc)
    return {"success": True, "message": "Reservation cancelled", "data": ReservationOut.from_model(reservation)}


@router.put("/{reservation_id}/ticket-url")
async def update_ticket_url(
    reservation_id: int,
    payload: TicketUrlUpdate,
    current_user: User = Depends(require_client),
    db: AsyncSession = Depends(get_session),
):
    try:
        await reservation_service.update_ticket_url(db, reservation_id, current_user.id, payload.ticket_url)
    except reservation_service.ReservationError as exc:
        _raise(exc)
    return {"success": True, "message": "Ticket updated"}
