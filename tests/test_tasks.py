from datetime import timedelta

import pytest

from expresstrafic.celery_app import celery_app
from expresstrafic.tasks import reservations as tasks
from factories import make_reservation, make_trip, make_user


def test_sweep_is_registered_and_scheduled():
    assert "expresstrafic.release_expired_reservations" in celery_app.tasks
    entry = celery_app.conf.beat_schedule["release-expired-reservations"]
    assert entry["task"] == "expresstrafic.release_expired_reservations"
    assert entry["schedule"] == 60.0


@pytest.mark.asyncio
async def test_sweep_uses_its_own_session(db, session_factory, monkeypatch):
    user = await make_user(db)
    trip = await make_trip(db)
    stale = await make_reservation(db, user, trip, 1, expires_in=timedelta(minutes=-2))

    monkeypatch.setattr(tasks, "async_session", session_factory)
    monkeypatch.setattr(tasks, "engine", _NoDispose())

    assert await tasks._sweep() == 1
    await db.refresh(stale)
    assert stale.status == "expired"


class _NoDispose:
    """Stands in for the module engine so the test engine survives the sweep."""

    disposed = False

    async def dispose(self):
        self.disposed = True
