"""Knowledge models.

Includes:
- KnowledgeEntry: an atomic fact captured upstream (read-only here)
- KnowledgeMatch: one row per (entry, sync run) recording the match decision
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal
from uuid import uuid4

from sqlmodel import JSON, Column, SQLModel
from sqlmodel import Field as SQLField

KnowledgeCategory = Literal["insight", "question", "product_intel", "tip"]
KnowledgeSpeaker = Literal["host", "participant", "unknown"]
MatchAction = Literal["enrich", "redundant", "tangential", "orphaned", "new_doc"]


class KnowledgeEntry(SQLModel, table=True):
    """An atomic fact or insight harvested from a call or other source."""

    __tablename__ = "knowledge_entry"

    id: str = SQLField(default_factory=lambda: str(uuid4()), primary_key=True)
    category: str  # KnowledgeCategory value
    speaker: str = "unknown"  # KnowledgeSpeaker value
    content: str
    context: str | None = None
    tags: list[str] = SQLField(default_factory=list, sa_column=Column(JSON))
    created_at: datetime = SQLField(
        default_factory=lambda: datetime.now(timezone.utc), index=True
    )

    def embedding_text(self) -> str:
        """Text used to embed the entry for document matching."""
        return f"{self.category}: {self.content}\nContext: {self.context or 'N/A'}"


class KnowledgeMatch(SQLModel, table=True):
    """Match decision for one entry in one sync run.

    Append-only, except that orphans absorbed into a new document have
    their action and document path rewritten to ``new_doc``.
    """

    __tablename__ = "knowledge_match"

    id: str = SQLField(default_factory=lambda: str(uuid4()), primary_key=True)
    knowledge_entry_id: str = SQLField(index=True)  # FK to KnowledgeEntry.id
    document_path: str | None = None
    similarity_score: float = 0.0
    action: str  # MatchAction value
    rationale: str = ""
    sync_run_id: str = SQLField(index=True)  # FK to SyncRun.id
    created_at: datetime = SQLField(default_factory=lambda: datetime.now(timezone.utc))
