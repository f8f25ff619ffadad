from __future__ import annotations

from celery import Celery
from celery.schedules import crontab

from marketstall.config import settings


def make_celery() -> Celery:
    """Create the Celery app.

    Kept in a function so tests can import tasks without eagerly touching
    global state beyond settings.
    """

    celery = Celery(
        "marketstall",
        broker=settings.redis_url,
        backend=settings.redis_url,
        include=["marketstall.worker.tasks"],
    )

    celery.conf.update(
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        timezone="UTC",
        enable_utc=True,
        task_always_eager=settings.celery_task_always_eager,
        task_ignore_result=True,
        beat_schedule={
            "session-expiry-sweep": {
                "task": "marketstall.run_expiry_sweep",
                "schedule": float(settings.expiry_sweep_interval_seconds),
            },
            "rejected-applicant-cleanup": {
                "task": "marketstall.run_cleanup_sweep",
                "schedule": crontab(hour=settings.cleanup_sweep_hour_utc, minute=0),
            },
        },
    )

    return celery


celery_app = make_celery()
