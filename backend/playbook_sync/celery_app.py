"""Playbook Sync Celery application.

Celery beat triggers the weekly sync (Sunday 00:00 UTC). When
CELERY_BROKER_URL is empty, Celery is disabled and the API process runs the
in-process SyncScheduler instead.

Usage:
    celery -A playbook_sync.celery_app worker --loglevel=info --concurrency=1
    celery -A playbook_sync.celery_app beat --loglevel=info
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.schedules import crontab

from playbook_sync.config import settings

logger = logging.getLogger(__name__)

SYNC_TASK_NAME = "playbook_sync.tasks.sync_tasks.run_playbook_sync"


def is_celery_enabled() -> bool:
    """Check if Celery is configured (broker URL set)."""
    return bool(settings.celery_broker_url)


def create_celery_app() -> Celery:
    """Create and configure the Celery application."""
    broker = settings.celery_broker_url or "memory://"
    backend = settings.celery_result_backend or "rpc://"

    app = Celery(
        "playbook_sync",
        broker=broker,
        backend=backend,
    )

    app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,
        task_time_limit=settings.sync_max_duration_seconds + 60,
        task_soft_time_limit=settings.sync_max_duration_seconds,
        task_track_started=True,
        # One sync at a time
        worker_concurrency=1,
        task_routes={
            "playbook_sync.tasks.sync_tasks.*": {"queue": "playbook_sync"},
        },
        task_default_queue="default",
        beat_schedule={
            "weekly-playbook-sync": {
                "task": SYNC_TASK_NAME,
                "schedule": crontab(minute=0, hour=0, day_of_week="sun"),
            },
        },
    )

    app.autodiscover_tasks(["playbook_sync.tasks"], related_name="sync_tasks")

    return app


celery_app = create_celery_app()
