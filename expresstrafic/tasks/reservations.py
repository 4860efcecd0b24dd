import asyncio

from celery.utils.log import get_task_logger

from expresstrafic.celery_app import celery_app
from expresstrafic.db.session import async_session, engine
from expresstrafic.services.reservations import release_expired_reservations

logger = get_task_logger(__name__)


async def _sweep() -> int:
    try:
        async with async_session() as db:
            return await release_expired_reservations(db, source="sweep")
    finally:
        # pooled connections are bound to this run's event loop
        await engine.dispose()


@celery_app.task(name="expresstrafic.release_expired_reservations", bind=True, autoretry_for=(Exception,), retry_backoff=True, max_retries=3)
def release_expired_reservations_task(self) -> int:
    """Periodic sweep: pending holds past their expiry become ``expired``."""
    released = asyncio.run(_sweep())
    if released:
        logger.info("Sweep released %s expired holds", released)
    return released
