from .models import *

__all__ = [
    "Base",
    "User",
    "Operator",
    "Bus",
    "Trip",
    "Reservation",
    "VerificationToken",
    "ContactMessage",
    "ReservationStatus",
    "UserStatus",
    "TokenType",
    "ACTIVE_RESERVATION_STATUSES",
]
