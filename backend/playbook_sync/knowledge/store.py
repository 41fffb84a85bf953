"""Knowledge store — reads entries and reads/writes match records."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import and_, func
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from playbook_sync.db.database import engine as db_engine
from playbook_sync.models.knowledge import KnowledgeEntry, KnowledgeMatch

logger = logging.getLogger(__name__)


def as_utc(value: datetime) -> datetime:
    """Timezone-aware UTC; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class KnowledgeStore:
    """Access to knowledge entries and their match history."""

    def __init__(self, engine: Engine | None = None) -> None:
        self.engine = engine or db_engine

    def list_entries_created_after(self, timestamp: datetime) -> list[KnowledgeEntry]:
        """Entries created strictly after ``timestamp``, oldest first."""
        with Session(self.engine) as session:
            entries = session.exec(
                select(KnowledgeEntry)
                .where(KnowledgeEntry.created_at > as_utc(timestamp))
                .order_by(KnowledgeEntry.created_at)
            ).all()
            for entry in entries:
                session.expunge(entry)
        return list(entries)

    def list_entries_with_latest_action(self, action: str) -> list[KnowledgeEntry]:
        """Entries whose most recent match record has the given action."""
        latest = (
            select(
                KnowledgeMatch.knowledge_entry_id,
                func.max(KnowledgeMatch.created_at).label("latest_at"),
            )
            .group_by(KnowledgeMatch.knowledge_entry_id)
            .subquery()
        )
        with Session(self.engine) as session:
            entries = session.exec(
                select(KnowledgeEntry)
                .join(KnowledgeMatch, KnowledgeMatch.knowledge_entry_id == KnowledgeEntry.id)
                .join(
                    latest,
                    and_(
                        latest.c.knowledge_entry_id == KnowledgeMatch.knowledge_entry_id,
                        latest.c.latest_at == KnowledgeMatch.created_at,
                    ),
                )
                .where(KnowledgeMatch.action == action)
                .order_by(KnowledgeEntry.created_at)
                .distinct()
            ).all()
            for entry in entries:
                session.expunge(entry)
        return list(entries)

    def record_match(
        self,
        entry_id: str,
        run_id: str,
        action: str,
        document_path: str | None,
        similarity: float,
        rationale: str,
    ) -> KnowledgeMatch:
        """Append a match record."""
        match = KnowledgeMatch(
            knowledge_entry_id=entry_id,
            document_path=document_path,
            similarity_score=similarity,
            action=action,
            rationale=rationale,
            sync_run_id=run_id,
        )
        with Session(self.engine) as session:
            session.add(match)
            session.commit()
            session.refresh(match)
            session.expunge(match)
        return match

    def mark_absorbed(
        self,
        entry_ids: list[str],
        run_id: str,
        document_path: str,
        rationale: str,
    ) -> int:
        """Rewrite this run's orphan records for entries absorbed into a new document."""
        if not entry_ids:
            return 0
        with Session(self.engine) as session:
            matches = session.exec(
                select(KnowledgeMatch)
                .where(KnowledgeMatch.sync_run_id == run_id)
                .where(KnowledgeMatch.knowledge_entry_id.in_(entry_ids))
            ).all()
            for match in matches:
                match.action = "new_doc"
                match.document_path = document_path
                match.rationale = rationale
                session.add(match)
            session.commit()
        logger.debug("Marked %d match records as new_doc → %s", len(matches), document_path)
        return len(matches)

    def list_matches_for_run(self, run_id: str) -> list[KnowledgeMatch]:
        with Session(self.engine) as session:
            matches = session.exec(
                select(KnowledgeMatch)
                .where(KnowledgeMatch.sync_run_id == run_id)
                .order_by(KnowledgeMatch.created_at)
            ).all()
            for match in matches:
                session.expunge(match)
        return list(matches)
