"""Publisher — one commit per run, retried once."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from playbook_sync.models.playbook import FileChange

logger = logging.getLogger(__name__)

COMMIT_PREFIX = "[playbook-sync]"


def commit_summary(enriched: int, created: int) -> str:
    """Short form stored on the SyncRun record."""
    return f"{enriched} enrichments, {created} new docs"


def build_commit_message(
    entries_processed: int,
    window_start: datetime,
    enriched: dict[str, str],
    created: list[str],
    entries_enriched: int = 0,
    entries_redundant: int = 0,
    entries_orphaned: int = 0,
) -> str:
    """Commit message with headline, counts, window and changelog.

    ``enriched`` maps document path to the edit summary.
    """
    lines = [
        f"{COMMIT_PREFIX} {commit_summary(len(enriched), len(created))}",
        "",
        f"Processed {entries_processed} knowledge entries (window: {window_start.isoformat()} to now)",
        f"- Enriched: {entries_enriched}",
        f"- Redundant: {entries_redundant}",
        f"- Orphaned: {entries_orphaned}",
    ]
    if enriched:
        lines += ["", "Enriched:"]
        for path, summary in enriched.items():
            lines.append(f"- {path}: {summary}" if summary else f"- {path}")
    if created:
        lines += ["", "Created:"]
        lines += [f"- {path}" for path in created]
    return "\n".join(lines)


class Publisher:
    """Commits a change set through the document repository."""

    def __init__(self, repository, max_attempts: int = 2) -> None:
        self.repository = repository
        self.max_attempts = max_attempts

    async def publish(self, changes: list[FileChange], message: str) -> tuple[str | None, str | None]:
        """Returns ``(commit_sha, None)`` on success or ``(None, error)`` after the retry fails."""
        if not changes:
            logger.info("No changes to commit")
            return None, None

        last_error: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                sha = await asyncio.to_thread(self.repository.commit_files, changes, message)
                logger.info("Committed %d files: %s", len(changes), sha)
                return sha, None
            except Exception as e:
                last_error = e
                logger.warning("Commit attempt %d/%d failed: %s", attempt, self.max_attempts, e)

        logger.error("Commit failed after %d attempts: %s", self.max_attempts, last_error)
        return None, str(last_error)
