"""Playbook Sync API — read-only run history.

GET    /api/v1/playbook-sync/runs                 — list runs (filter by ?status=)
GET    /api/v1/playbook-sync/runs/{id}            — get single run
GET    /api/v1/playbook-sync/runs/{id}/matches    — match records written by a run
GET    /api/v1/playbook-sync/scheduler            — scheduler status

Runs are started only by the weekly trigger (Celery beat or SyncScheduler).
"""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from playbook_sync.celery_app import is_celery_enabled
from playbook_sync.knowledge.store import KnowledgeStore
from playbook_sync.models.knowledge import KnowledgeMatch
from playbook_sync.models.sync import SyncRun
from playbook_sync.sync.ledger import RunLedger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/playbook-sync", tags=["playbook-sync"])

# Module-level references (set during app startup via lifespan)
_ledger: RunLedger | None = None
_store: KnowledgeStore | None = None
_scheduler = None


def set_ledger(ledger: RunLedger) -> None:
    """Wire up the run ledger (called from main.py lifespan)."""
    global _ledger
    _ledger = ledger


def set_store(store: KnowledgeStore) -> None:
    """Wire up the knowledge store (called from main.py lifespan)."""
    global _store
    _store = store


def set_scheduler(scheduler) -> None:
    """Wire up the asyncio sync scheduler (None when Celery beat is used)."""
    global _scheduler
    _scheduler = scheduler


def _get_ledger() -> RunLedger:
    global _ledger
    if _ledger is None:
        _ledger = RunLedger()
    return _ledger


def _get_store() -> KnowledgeStore:
    global _store
    if _store is None:
        _store = KnowledgeStore()
    return _store


# === Response Models ===


class RunResponse(BaseModel):
    id: str
    status: str
    started_at: datetime
    finished_at: datetime | None = None
    window_start: datetime | None = None
    entries_processed: int
    entries_enriched: int
    entries_redundant: int
    entries_orphaned: int
    docs_enriched: list[str] = Field(default_factory=list)
    docs_created: list[str] = Field(default_factory=list)
    commit_sha: str | None = None
    commit_message: str | None = None
    errors: list[str] = Field(default_factory=list)
    llm_cost: float = 0.0


class MatchResponse(BaseModel):
    id: str
    knowledge_entry_id: str
    document_path: str | None = None
    similarity_score: float
    action: str
    rationale: str
    created_at: datetime


# === Runs ===


@router.get("/runs", response_model=list[RunResponse])
async def list_runs(
    status: str | None = Query(default=None, pattern=r"^(running|success|partial|failed)$"),
    limit: int = Query(default=20, ge=1, le=100),
) -> list[RunResponse]:
    """List sync runs, newest first."""
    runs = _get_ledger().list_runs(limit=limit, status=status)
    return [_run_response(r) for r in runs]


@router.get("/runs/{run_id}", response_model=RunResponse)
async def get_run(run_id: str) -> RunResponse:
    """Get a single sync run."""
    run = _get_ledger().get_run(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail=f"Sync run not found: {run_id}")
    return _run_response(run)


@router.get("/runs/{run_id}/matches", response_model=list[MatchResponse])
async def list_run_matches(
    run_id: str,
    action: str | None = Query(default=None, pattern=r"^(enrich|redundant|tangential|orphaned|new_doc)$"),
) -> list[MatchResponse]:
    """Match records written by a run, in processing order."""
    if _get_ledger().get_run(run_id) is None:
        raise HTTPException(status_code=404, detail=f"Sync run not found: {run_id}")
    matches = _get_store().list_matches_for_run(run_id)
    if action:
        matches = [m for m in matches if m.action == action]
    return [_match_response(m) for m in matches]


# === Scheduler Status ===


@router.get("/scheduler")
async def get_scheduler_status() -> dict:
    """Which trigger is active and, for the asyncio scheduler, its state."""
    if _scheduler is not None:
        return {"mode": "asyncio", **_scheduler.get_status()}
    if is_celery_enabled():
        return {"mode": "celery", "schedule": "Sunday 00:00 UTC"}
    return {"mode": "disabled"}


# === Helpers ===


def _run_response(run: SyncRun) -> RunResponse:
    return RunResponse(
        id=run.id,
        status=run.status,
        started_at=run.started_at,
        finished_at=run.finished_at,
        window_start=run.window_start,
        entries_processed=run.entries_processed,
        entries_enriched=run.entries_enriched,
        entries_redundant=run.entries_redundant,
        entries_orphaned=run.entries_orphaned,
        docs_enriched=run.docs_enriched or [],
        docs_created=run.docs_created or [],
        commit_sha=run.commit_sha,
        commit_message=run.commit_message,
        errors=run.error_log.split("\n") if run.error_log else [],
        llm_cost=run.llm_cost,
    )


def _match_response(match: KnowledgeMatch) -> MatchResponse:
    return MatchResponse(
        id=match.id,
        knowledge_entry_id=match.knowledge_entry_id,
        document_path=match.document_path,
        similarity_score=match.similarity_score,
        action=match.action,
        rationale=match.rationale,
        created_at=match.created_at,
    )
