"""Playbook Sync FastAPI Application.

Serves health and read-only run history. When Celery is not configured the
weekly sync runs in-process via SyncScheduler.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from playbook_sync.api.health import router as health_router
from playbook_sync.api.v1.sync import router as sync_router
from playbook_sync.config import settings
from playbook_sync.db.database import create_db_and_tables

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    create_db_and_tables()

    scheduler = None
    try:
        from playbook_sync.api.v1.sync import set_ledger, set_scheduler, set_store
        from playbook_sync.celery_app import is_celery_enabled
        from playbook_sync.knowledge.store import KnowledgeStore
        from playbook_sync.sync.ledger import RunLedger
        from playbook_sync.sync.pipeline import create_pipeline
        from playbook_sync.sync.scheduler import SyncScheduler

        ledger = RunLedger()
        set_ledger(ledger)
        set_store(KnowledgeStore())

        if is_celery_enabled():
            logger.info("Celery configured; weekly sync triggered by beat")
        else:
            scheduler = SyncScheduler(
                pipeline_factory=create_pipeline,
                ledger=ledger,
                enabled=settings.sync_enabled,
            )
            set_scheduler(scheduler)
            await scheduler.start()
    except Exception as e:
        logger.warning("Sync scheduler init skipped (non-fatal): %s", e)

    yield

    if scheduler is not None:
        scheduler.stop()


app = FastAPI(
    title="Playbook Sync",
    description="Weekly knowledge-to-playbook synchronization",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)


# Global exception handler: internal details never reach the client
@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    if isinstance(exc, HTTPException):
        raise exc
    logger.error("Unhandled exception on %s %s: %s", request.method, request.url.path, exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error."},
    )


# Routes
app.include_router(health_router)
app.include_router(sync_router)


@app.get("/")
async def root():
    return {"name": "Playbook Sync", "version": "0.1.0", "status": "running"}
