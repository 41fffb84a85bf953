"""Celery task for the weekly playbook sync.

Wraps the async pipeline inside a synchronous Celery task using
asyncio.run(). Each task gets its own event loop. Failures are re-raised so
Celery records them; the next beat invocation resumes from the last
successful window.
"""

from __future__ import annotations

import asyncio
import logging

from playbook_sync.celery_app import SYNC_TASK_NAME, celery_app
from playbook_sync.config import settings

logger = logging.getLogger(__name__)


@celery_app.task(name=SYNC_TASK_NAME, bind=True)
def run_playbook_sync(self) -> dict:
    """Execute one playbook sync run."""
    logger.info("Celery task started: playbook sync (task_id=%s)", self.request.id)

    try:
        result = asyncio.run(_execute_sync())
        logger.info("Celery task completed: playbook sync run %s (%s)", result["run_id"], result["status"])
        return result
    except Exception as exc:
        logger.error("Celery task failed: playbook sync: %s", exc, exc_info=True)
        raise


async def _execute_sync() -> dict:
    from playbook_sync.db.database import create_db_and_tables
    from playbook_sync.sync.pipeline import create_pipeline

    create_db_and_tables()
    pipeline = create_pipeline()
    result = await asyncio.wait_for(pipeline.run(), timeout=settings.sync_max_duration_seconds)
    return result.to_dict()
