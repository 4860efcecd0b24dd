import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

from pythonjsonlogger import jsonlogger

# trace id contextvar
TRACE_ID_CTX: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)

security_logger = logging.getLogger("expresstrafic.security")

_WARNING_EVENTS = {"BRUTEFORCE_ATTEMPT", "UNAUTHORIZED_ADMIN_ACCESS", "RATE_LIMIT_EXCEEDED"}
_ALERT_EVENTS = {"SUSPICIOUS_ACTIVITY", "ACCOUNT_LOCKOUT"}


class TraceIdFilter(logging.Filter):
    def filter(self, record):
        trace_id = TRACE_ID_CTX.get(None)
        record.trace_id = trace_id
        return True


def setup_logging(level: int = logging.INFO):
    root = logging.getLogger()
    handler = logging.StreamHandler(sys.stdout)
    fmt = jsonlogger.JsonFormatter('%(asctime)s %(levelname)s %(name)s %(message)s %(trace_id)s')
    handler.setFormatter(fmt)
    handler.addFilter(TraceIdFilter())
    root.setLevel(level)
    root.handlers = []
    root.addHandler(handler)


def log_security_event(event_type: str, ip: Optional[str] = None, user_id: Optional[int] = None, **details) -> dict:
    """Write one structured security record; severity depends on the event type."""
    event = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type,
        "ip": ip,
        "user_id": user_id,
        **details,
    }
    if event_type in _ALERT_EVENTS:
        level = logging.ERROR
    elif event_type in _WARNING_EVENTS:
        level = logging.WARNING
    else:
        level = logging.INFO
    security_logger.log(level, "security event %s", event_type, extra={"security_event": event})
    return event
