"""Sync run ledger model.

One SyncRun row per execution of the playbook sync job. The latest
``success``/``partial`` row defines the next run's window lower bound.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal
from uuid import uuid4

from sqlmodel import JSON, Column, SQLModel
from sqlmodel import Field as SQLField

SyncStatus = Literal["running", "success", "partial", "failed"]

# Statuses whose start time may serve as the next window's lower bound
WINDOW_STATUSES = ("success", "partial")


class SyncRun(SQLModel, table=True):
    """A single playbook sync execution."""

    __tablename__ = "sync_run"

    id: str = SQLField(default_factory=lambda: str(uuid4()), primary_key=True)
    started_at: datetime = SQLField(
        default_factory=lambda: datetime.now(timezone.utc), index=True
    )
    finished_at: datetime | None = None
    window_start: datetime | None = None
    status: str = "running"  # SyncStatus value

    entries_processed: int = 0
    entries_enriched: int = 0
    entries_redundant: int = 0
    entries_orphaned: int = 0
    docs_enriched: list[str] = SQLField(default_factory=list, sa_column=Column(JSON))
    docs_created: list[str] = SQLField(default_factory=list, sa_column=Column(JSON))

    commit_sha: str | None = None
    commit_message: str | None = None
    error_log: str | None = None
    llm_cost: float = 0.0
