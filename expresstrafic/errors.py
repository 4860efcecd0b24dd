from enum import Enum
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status


class ErrorCode(str, Enum):
    # --- Generic / HTTP-ish ---
    INTERNAL_ERROR = "INTERNAL_ERROR"
    BAD_REQUEST = "BAD_REQUEST"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    RATE_LIMITED = "RATE_LIMITED"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    DATABASE_ERROR = "DATABASE_ERROR"

    # --- Auth ---
    EMAIL_ALREADY_REGISTERED = "EMAIL_ALREADY_REGISTERED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    LOGIN_BLOCKED = "LOGIN_BLOCKED"

    # --- Reservations ---
    TRIP_NOT_FOUND = "TRIP_NOT_FOUND"
    TRIP_NOT_BOOKABLE = "TRIP_NOT_BOOKABLE"
    INVALID_SEAT = "INVALID_SEAT"
    SEAT_UNAVAILABLE = "SEAT_UNAVAILABLE"
    RESERVATION_NOT_FOUND = "RESERVATION_NOT_FOUND"
    RESERVATION_NOT_CANCELLABLE = "RESERVATION_NOT_CANCELLABLE"
    GUEST_BOOKING_DISABLED = "GUEST_BOOKING_DISABLED"


STATUS_CODE_MAP = {
    400: ErrorCode.BAD_REQUEST,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    409: ErrorCode.CONFLICT,
    429: ErrorCode.RATE_LIMITED,
}


def error_body(message: str, code: Optional[ErrorCode] = None, errors: Optional[List[Any]] = None, **extra) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "message": message}
    if code is not None:
        body["code"] = code.value if isinstance(code, ErrorCode) else code
    if errors:
        body["errors"] = errors
    body.update(extra)
    return body


def api_error(
    status_code: int,
    message: str,
    code: Optional[ErrorCode] = None,
    errors: Optional[List[Any]] = None,
    headers: Optional[Dict[str, str]] = None,
):
    """Raise an HTTPException whose detail is already the response envelope."""
    raise HTTPException(
        status_code=status_code,
        detail=error_body(message, code=code or STATUS_CODE_MAP.get(status_code, ErrorCode.BAD_REQUEST), errors=errors),
        headers=headers,
    )


def validation_error(errors: List[str], message: str = "Invalid data"):
    api_error(status.HTTP_400_BAD_REQUEST, message, code=ErrorCode.VALIDATION_ERROR, errors=errors)
