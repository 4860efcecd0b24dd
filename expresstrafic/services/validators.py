"""Input predicates shared by the HTTP layer and the services.

Every ``is_valid_*`` function is deterministic and returns a bool. Only the
email and password checks have a side effect: a rejected value emits one
security event through :func:`expresstrafic.logging_setup.log_security_event`.
"""
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, List, Mapping, Optional
from urllib.parse import urlparse

from expresstrafic.logging_setup import log_security_event


EMAIL_RE = re.compile(
    r"[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*"
)
PHONE_RE = re.compile(r"\+?\(?[0-9]{1,4}\)?[-\s.]?[0-9]{1,4}[-\s.]?[0-9]{1,9}")
NAME_RE = re.compile(r"[a-zA-ZÀ-ÿ\s\-']{2,50}")
PASSWORD_SPECIALS_RE = re.compile(r"[!@#$%^&*(),.?\":{}|<>]")
PROMO_RE = re.compile(r"[A-Z0-9_-]{4,20}", re.IGNORECASE)
TRIP_ID_RE = re.compile(r"TR[A-Z0-9]{4,6}")
BUS_ID_RE = re.compile(r"BUS[A-Z0-9]{2,4}")
CARD_EXPIRY_RE = re.compile(r"(\d{2})/(\d{2})")
TAG_RE = re.compile(r"<[^>]*>?")

POSTAL_CODE_PATTERNS = {
    "FR": re.compile(r"\d{5}"),
    "BE": re.compile(r"\d{4}"),
    "CH": re.compile(r"\d{4}"),
    "LU": re.compile(r"\d{4}"),
    "CA": re.compile(r"[A-Za-z]\d[A-Za-z][ -]?\d[A-Za-z]\d"),
    "US": re.compile(r"\d{5}(-\d{4})?"),
}
GENERIC_POSTAL_CODE = re.compile(r"[0-9A-Za-z\s\-]{3,10}")

CVC_LENGTHS = {"visa": 3, "mastercard": 3, "amex": 4, "discover": 3, "generic": 3}

PAYMENT_METHODS = ("carte", "mobile_money", "paypal", "especes")


@dataclass
class ValidationReport:
    errors: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def is_valid_email(email: Any) -> bool:
    valid = isinstance(email, str) and EMAIL_RE.fullmatch(email.strip().lower()) is not None
    if not valid:
        log_security_event("INVALID_EMAIL_ATTEMPT", email=email if isinstance(email, str) else None)
    return valid


def is_valid_phone(phone: Any) -> bool:
    if not phone or not isinstance(phone, str):
        return False
    cleaned = re.sub(r"[\s\-()]", "", phone)
    return PHONE_RE.fullmatch(cleaned) is not None and 8 <= len(cleaned) <= 15


def is_valid_password(password: Any) -> bool:
    if not isinstance(password, str):
        log_security_event("WEAK_PASSWORD_ATTEMPT", length=0)
        return False
    requirements = {
        "min_length": len(password) >= 8,
        "has_upper": re.search(r"[A-Z]", password) is not None,
        "has_lower": re.search(r"[a-z]", password) is not None,
        "has_number": re.search(r"\d", password) is not None,
        "has_special": PASSWORD_SPECIALS_RE.search(password) is not None,
        "no_spaces": re.search(r"\s", password) is None,
    }
    valid = all(requirements.values())
    if not valid:
        log_security_event("WEAK_PASSWORD_ATTEMPT", length=len(password), **requirements)
    return valid


def is_valid_name(name: Any) -> bool:
    if not name or not isinstance(name, str):
        return False
    return NAME_RE.fullmatch(name.strip()) is not None


def is_valid_postal_code(code: Any, country: str = "FR") -> bool:
    if not code or not isinstance(code, str):
        return False
    cleaned = re.sub(r"\s", "", code.strip())
    pattern = POSTAL_CODE_PATTERNS.get((country or "").upper(), GENERIC_POSTAL_CODE)
    return pattern.fullmatch(cleaned) is not None


def _parse_birth_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    value = value.strip()
    try:
        if "/" in value:
            day, month, year = (int(part) for part in value.split("/"))
            return date(year, month, day)
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def is_valid_birth_date(value: Any, min_age: int = 18, today: Optional[date] = None) -> bool:
    """True when ``value`` (DD/MM/YYYY or ISO) is at least ``min_age`` years before ``today``."""
    born = _parse_birth_date(value)
    if born is None:
        return False
    today = today or date.today()
    age = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        age -= 1
    return age >= min_age


def luhn_checksum_ok(digits: str) -> bool:
    total = 0
    for index, char in enumerate(reversed(digits)):
        digit = int(char)
        if index % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def is_valid_credit_card(number: Any) -> bool:
    if not number or not isinstance(number, str):
        return False
    cleaned = re.sub(r"\s", "", number)
    if not cleaned.isdigit() or not 12 <= len(cleaned) <= 19:
        return False
    return luhn_checksum_ok(cleaned)


def is_valid_card_expiry(expiry: Any, today: Optional[date] = None) -> bool:
    if not expiry or not isinstance(expiry, str):
        return False
    match = CARD_EXPIRY_RE.fullmatch(expiry.strip())
    if not match:
        return False
    month, year = int(match.group(1)), 2000 + int(match.group(2))
    if not 1 <= month <= 12:
        return False
    today = today or date.today()
    # valid through the last day of the expiry month
    return (year, month) >= (today.year, today.month)


def is_valid_cvc(cvc: Any, card_type: str = "generic") -> bool:
    if not cvc or not isinstance(cvc, str):
        return False
    length = CVC_LENGTHS.get((card_type or "generic").lower(), 3)
    cleaned = cvc.strip()
    return len(cleaned) == length and cleaned.isdigit()


def is_valid_amount(amount: Any, minimum: float = 0.01, maximum: float = 10000) -> bool:
    if isinstance(amount, bool) or not isinstance(amount, (int, float, Decimal, str)):
        return False
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation:
        return False
    if not value.is_finite():
        return False
    return Decimal(str(minimum)) <= value <= Decimal(str(maximum))


def is_valid_url(url: Any) -> bool:
    if not url or not isinstance(url, str):
        return False
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_valid_promo_code(code: Any) -> bool:
    if not code or not isinstance(code, str):
        return False
    return PROMO_RE.fullmatch(code.strip()) is not None


def is_valid_seat_number(seat: Any, max_seats: int = 60) -> bool:
    if isinstance(seat, bool):
        return False
    if isinstance(seat, str):
        if not seat.strip().isdigit():
            return False
        seat = int(seat.strip())
    if not isinstance(seat, int):
        return False
    return 1 <= seat <= max_seats


def is_valid_trip_id(value: Any) -> bool:
    return isinstance(value, str) and TRIP_ID_RE.fullmatch(value) is not None


def is_valid_bus_id(value: Any) -> bool:
    return isinstance(value, str) and BUS_ID_RE.fullmatch(value) is not None


def sanitize_input(value: Any, max_length: int = 1000, allow_html: bool = False, trim: bool = True, case: str = "preserve") -> str:
    if value is None:
        return ""
    sanitized = str(value)
    if trim:
        sanitized = sanitized.strip()
    if not allow_html:
        sanitized = TAG_RE.sub("", sanitized)
    sanitized = (
        sanitized.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&#x27;")
        .replace("/", "&#x2F;")
    )
    sanitized = sanitized[:max_length]
    if case == "lower":
        return sanitized.lower()
    if case == "upper":
        return sanitized.upper()
    return sanitized


def _is_trip_reference(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return value > 0
    if isinstance(value, str) and value.isdigit():
        return int(value) > 0
    return is_valid_trip_id(value)


def validate_reservation_data(data: Mapping[str, Any]) -> ValidationReport:
    report = ValidationReport()
    if not _is_trip_reference(data.get("trajet_id")):
        report.errors.append("Invalid trip identifier")
    if not is_valid_seat_number(data.get("siege_numero")):
        report.errors.append("Invalid seat number")
    passengers = data.get("passagers")
    if isinstance(passengers, list):
        for index, passenger in enumerate(passengers, start=1):
            passenger = passenger or {}
            if not is_valid_name(passenger.get("nom")):
                report.errors.append(f"Invalid last name for passenger {index}")
            if not is_valid_name(passenger.get("prenom")):
                report.errors.append(f"Invalid first name for passenger {index}")
    return report


def validate_payment_data(data: Mapping[str, Any]) -> ValidationReport:
    report = ValidationReport()
    method = data.get("method")
    if not is_valid_amount(data.get("amount")):
        report.errors.append("Invalid amount")
    if method not in PAYMENT_METHODS:
        report.errors.append("Unsupported payment method")
    if method == "carte":
        if not is_valid_credit_card(data.get("card_number", data.get("cardNumber"))):
            report.errors.append("Invalid card number")
        if not is_valid_card_expiry(data.get("expiry")):
            report.errors.append("Invalid expiry date")
        if not is_valid_cvc(data.get("cvc"), data.get("card_type", data.get("cardType")) or "generic"):
            report.errors.append("Invalid CVC")
    if method == "mobile_money" and not is_valid_phone(data.get("phone")):
        report.errors.append("Invalid phone number for Mobile Money")
    return report
