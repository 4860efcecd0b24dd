from datetime import datetime, timezone

from sqlalchemy.orm import declarative_base


Base = declarative_base()


def utcnow() -> datetime:
    """Timezone-aware UTC now; every timestamp the app writes or compares goes through here."""
    return datetime.now(timezone.utc)
