"""In-memory value types passed between playbook sync stages.

None of these are persisted; they live for the duration of one run.
"""

from __future__ import annotations

import hashlib
import re
from collections import Counter
from dataclasses import asdict, dataclass, field
from pathlib import PurePosixPath

from playbook_sync.models.knowledge import KnowledgeEntry

_FRONTMATTER_RE = re.compile(r"^---\s*\n(.*?)\n---\s*(?:\n|$)", re.DOTALL)
_HEADING_RE = re.compile(r"^#\s+(.+?)\s*$", re.MULTILINE)


def content_hash(content: str) -> str:
    """SHA-256 hex digest used to detect changed documents."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def _frontmatter_value(content: str, key: str) -> str:
    match = _FRONTMATTER_RE.match(content)
    if not match:
        return ""
    for line in match.group(1).splitlines():
        name, sep, value = line.partition(":")
        if sep and name.strip() == key:
            return value.strip().strip("'\"")
    return ""


@dataclass
class DocumentFile:
    """A raw file as listed by the document repository."""

    path: str
    content: str


@dataclass
class ProceduralDocument:
    """A playbook document with its embedding, as held by the document cache."""

    path: str
    title: str
    content: str
    embedding: list[float] = field(default_factory=list)
    content_hash: str = ""

    @classmethod
    def from_file(cls, file: DocumentFile, embedding: list[float] | None = None) -> ProceduralDocument:
        return cls(
            path=file.path,
            title=extract_title(file.path, file.content),
            content=file.content,
            embedding=list(embedding or []),
            content_hash=content_hash(file.content),
        )

    @property
    def doc_id(self) -> str:
        """Front-matter ``id:`` value, or empty string."""
        return _frontmatter_value(self.content, "id")


def extract_title(path: str, content: str) -> str:
    """Title from front-matter, else the first H1, else the file stem."""
    title = _frontmatter_value(content, "title")
    if title:
        return title
    heading = _HEADING_RE.search(content)
    if heading:
        return heading.group(1)
    return PurePosixPath(path).stem


@dataclass
class FileChange:
    """One file in the commit change set."""

    path: str
    content: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class EnrichmentGroup:
    """Entries classified ``enrich`` against the same document."""

    document_path: str
    entries: list[KnowledgeEntry] = field(default_factory=list)
    target_sections: list[str] = field(default_factory=list)

    def add(self, entry: KnowledgeEntry, section: str | None) -> None:
        self.entries.append(entry)
        self.target_sections.append(section or "General")

    def primary_section(self) -> str:
        """Majority vote over target sections; ties go to the first seen."""
        if not self.target_sections:
            return "General"
        counts = Counter(self.target_sections)
        best = max(counts.values())
        for section in self.target_sections:
            if counts[section] == best:
                return section
        return self.target_sections[0]


@dataclass
class OrphanCluster:
    """Orphaned entries sharing a theme, proposed as a new document."""

    entries: list[KnowledgeEntry]
    suggested_module: str
    suggested_title: str


@dataclass
class NewDocument:
    """A drafted document ready to be committed and indexed."""

    path: str
    title: str
    doc_id: str
    module: str
    content: str
    index_entry: str


@dataclass
class SyncResult:
    """Outcome of one orchestrator run."""

    run_id: str
    status: str
    entries_processed: int = 0
    entries_enriched: int = 0
    entries_redundant: int = 0
    entries_orphaned: int = 0
    docs_enriched: list[str] = field(default_factory=list)
    docs_created: list[str] = field(default_factory=list)
    commit_sha: str | None = None
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)
