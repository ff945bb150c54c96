"""Celery application configuration.

- One maintenance queue for scheduled export housekeeping
- Import-safe defaults (memory broker) for unit tests
"""

from __future__ import annotations

from celery import Celery
from celery.schedules import crontab
from kombu import Queue

from timefly_exports.core.config import settings


def _default_broker() -> str:
    # Keep imports safe in dev/tests even without Redis.
    return settings.CELERY_BROKER_URL or "memory://"


def _default_backend() -> str:
    # Cache-like in-memory backend for tests.
    return settings.CELERY_RESULT_BACKEND or "cache+memory://"


celery_app = Celery(
    "timefly_exports",
    broker=_default_broker(),
    backend=_default_backend(),
    include=[
        "timefly_exports.tasks.maintenance",
    ],
)


celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_default_queue="q.maintenance",
    task_queues=(Queue("q.maintenance"),),
    task_routes={
        "timefly_exports.tasks.maintenance.cleanup_expired_exports_task": {"queue": "q.maintenance"},
    },
    beat_schedule={
        # Hourly, on the hour
        "cleanup-expired-exports": {
            "task": "timefly_exports.tasks.maintenance.cleanup_expired_exports_task",
            "schedule": crontab(minute=0),
            "args": (),
        },
    },
)
