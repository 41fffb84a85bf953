"""Run Ledger — one SyncRun row per execution.

The ledger is the only place the "last run" lives: the next run's window
lower bound is the start time of the latest ``success``/``partial`` run,
so a failed run never advances the window and no entries are skipped.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from playbook_sync.config import settings
from playbook_sync.db.database import engine as db_engine
from playbook_sync.models.sync import WINDOW_STATUSES, SyncRun

logger = logging.getLogger(__name__)


def epoch_sentinel() -> datetime:
    """Window lower bound used before any successful run exists."""
    return datetime.fromisoformat(settings.window_epoch.replace("Z", "+00:00"))


def resolve_status(error_count: int, entries_enriched: int, docs_created: int) -> str:
    """success when error-free; partial when something was still produced; else failed."""
    if error_count == 0:
        return "success"
    if entries_enriched + docs_created > 0:
        return "partial"
    return "failed"


def _aware(value: datetime) -> datetime:
    # SQLite returns naive datetimes; make them timezone-aware before comparing
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class RunLedger:
    """Persists and queries SyncRun records."""

    def __init__(self, engine: Engine | None = None) -> None:
        self.engine = engine or db_engine

    def resolve_window_start(self) -> datetime:
        """Start of the latest success/partial run, else the epoch sentinel."""
        with Session(self.engine) as session:
            last = session.exec(
                select(SyncRun)
                .where(SyncRun.status.in_(WINDOW_STATUSES))
                .order_by(SyncRun.started_at.desc())
                .limit(1)
            ).first()
        if last is None:
            return epoch_sentinel()
        return _aware(last.started_at)

    def start_run(self, window_start: datetime | None = None) -> SyncRun:
        """Create the run record in ``running`` state."""
        run = SyncRun(status="running", window_start=window_start)
        with Session(self.engine) as session:
            session.add(run)
            session.commit()
            session.refresh(run)
            session.expunge(run)
        logger.info("Created sync run %s (window start %s)", run.id, window_start)
        return run

    def finalize_run(self, run_id: str, status: str, **fields) -> SyncRun:
        """Write final status, counts and artifacts. Raises if the run is missing."""
        with Session(self.engine) as session:
            run = session.get(SyncRun, run_id)
            if run is None:
                raise LookupError(f"Sync run {run_id} not found")
            run.status = status
            run.finished_at = datetime.now(timezone.utc)
            for name, value in fields.items():
                if not hasattr(run, name):
                    raise AttributeError(f"SyncRun has no field '{name}'")
                setattr(run, name, value)
            session.add(run)
            session.commit()
            session.refresh(run)
            session.expunge(run)
        return run

    def get_run(self, run_id: str) -> SyncRun | None:
        with Session(self.engine) as session:
            run = session.get(SyncRun, run_id)
            if run is not None:
                session.expunge(run)
        return run

    def latest_run(self) -> SyncRun | None:
        """Most recent run regardless of status."""
        runs = self.list_runs(limit=1)
        return runs[0] if runs else None

    def list_runs(self, limit: int = 20, status: str | None = None) -> list[SyncRun]:
        """Runs, newest first."""
        with Session(self.engine) as session:
            query = select(SyncRun)
            if status:
                query = query.where(SyncRun.status == status)
            runs = session.exec(query.order_by(SyncRun.started_at.desc()).limit(limit)).all()
            for run in runs:
                session.expunge(run)
        return list(runs)

    @staticmethod
    def started_at_utc(run: SyncRun) -> datetime:
        return _aware(run.started_at)
