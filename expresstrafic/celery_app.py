from celery import Celery

from expresstrafic.config import settings


celery_app = Celery(
    "expresstrafic_tasks",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["expresstrafic.tasks.reservations"],
)

celery_app.conf.update(
    task_track_started=True,
    timezone="UTC",
    beat_schedule={
        "release-expired-reservations": {
            "task": "expresstrafic.release_expired_reservations",
            "schedule": float(settings.RESERVATION_SWEEP_INTERVAL_SECONDS),
        },
    },
)
