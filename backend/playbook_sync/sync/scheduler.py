"""Sync Scheduler — weekly playbook sync using asyncio.

In-process fallback for deployments without a Celery broker. Checks every
``check_interval_minutes`` whether ``interval_hours`` have passed since the
latest run started (whatever its status) and, if so, runs the pipeline under
the run-duration ceiling. Only one run is ever in flight.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone

from playbook_sync.config import settings
from playbook_sync.sync.ledger import RunLedger

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Runs the playbook sync on a weekly cadence.

    Usage:
        scheduler = SyncScheduler(pipeline_factory=create_pipeline)
        await scheduler.start()
        # ... app runs ...
        scheduler.stop()
    """

    def __init__(
        self,
        pipeline_factory,
        ledger: RunLedger | None = None,
        interval_hours: float | None = None,
        check_interval_minutes: float | None = None,
        max_duration_seconds: float | None = None,
        enabled: bool = True,
        startup_delay_seconds: float = 60.0,
    ) -> None:
        self.pipeline_factory = pipeline_factory
        self.ledger = ledger or RunLedger()
        self.interval_hours = interval_hours or settings.sync_interval_hours
        self.check_interval_seconds = (check_interval_minutes or settings.sync_check_interval_minutes) * 60
        self.max_duration_seconds = max_duration_seconds or settings.sync_max_duration_seconds
        self.enabled = enabled
        self.startup_delay_seconds = startup_delay_seconds
        self._task: asyncio.Task | None = None
        self._running = False
        self._in_progress = False
        self.last_result: dict | None = None
        self.last_error: str | None = None

    async def start(self) -> None:
        """Start the sync scheduler as a background task."""
        if not self.enabled:
            logger.info("Playbook sync scheduler disabled")
            return

        if self._running:
            logger.warning("Playbook sync scheduler already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "Playbook sync scheduler started (every %.0f h, check interval: %.1f min)",
            self.interval_hours, self.check_interval_seconds / 60,
        )

    def stop(self) -> None:
        """Stop the sync scheduler."""
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            logger.info("Playbook sync scheduler stopped")

    async def _loop(self) -> None:
        await asyncio.sleep(self.startup_delay_seconds)
        while self._running:
            try:
                await self._check_and_run()
                await asyncio.sleep(self.check_interval_seconds)
                if not self._running:
                    break
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Playbook sync scheduler error: %s", e, exc_info=True)
                await asyncio.sleep(60)

    async def _check_and_run(self) -> None:
        """Run the pipeline if a sync is due and none is in progress."""
        if self._in_progress:
            logger.info("Playbook sync already in progress; skipping check")
            return
        if not await self._is_due(datetime.now(timezone.utc)):
            return
        await self.run_once()

    async def run_once(self) -> dict | None:
        """Run one sync under the duration ceiling. Returns the result dict, or None if skipped."""
        if self._in_progress:
            logger.warning("Refusing to start a playbook sync while another is running")
            return None

        self._in_progress = True
        try:
            pipeline = self.pipeline_factory()
            result = await asyncio.wait_for(pipeline.run(), timeout=self.max_duration_seconds)
            self.last_result = result.to_dict()
            self.last_error = None
            return self.last_result
        except asyncio.TimeoutError:
            self.last_error = f"Run exceeded {self.max_duration_seconds}s and was aborted"
            logger.error("Playbook sync aborted after %ss", self.max_duration_seconds)
            return None
        except Exception as e:
            self.last_error = str(e)
            logger.error("Playbook sync failed: %s", e, exc_info=True)
            return None
        finally:
            self._in_progress = False

    async def _is_due(self, now: datetime) -> bool:
        latest = await asyncio.to_thread(self.ledger.latest_run)
        if latest is None:
            return True  # Never run before
        cutoff = now - timedelta(hours=self.interval_hours)
        return RunLedger.started_at_utc(latest) <= cutoff

    @property
    def is_running(self) -> bool:
        return self._running and self._task is not None and not self._task.done()

    def get_status(self) -> dict:
        """Get scheduler status for health checks."""
        latest = self.ledger.latest_run()
        return {
            "enabled": self.enabled,
            "running": self.is_running,
            "in_progress": self._in_progress,
            "interval_hours": self.interval_hours,
            "check_interval_minutes": self.check_interval_seconds / 60,
            "max_duration_seconds": self.max_duration_seconds,
            "last_run_id": latest.id if latest else None,
            "last_run_status": latest.status if latest else None,
            "last_error": self.last_error,
        }
