"""Shared test fixtures for Playbook Sync backend tests."""

import os
import sys
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

# Ensure backend is on the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
os.environ.setdefault("DATABASE_URL", "sqlite:///test.db")
os.environ.setdefault("ANTHROPIC_API_KEY", "test")
os.environ.setdefault("OPENAI_API_KEY", "test")

from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from playbook_sync.db.database import create_db_and_tables
from playbook_sync.knowledge.store import KnowledgeStore
from playbook_sync.llm.mock_layer import MockLLMLayer
from playbook_sync.memory.document_cache import DocumentCache
from playbook_sync.models.knowledge import KnowledgeEntry
from playbook_sync.models.playbook import DocumentFile
from playbook_sync.sync.ledger import RunLedger


class FakeEmbedder:
    """Deterministic embedder: the first key found in the text picks the vector."""

    def __init__(self, vectors: dict[str, list[float]], default: list[float] | None = None) -> None:
        self.vectors = vectors
        self.default = default or [0.0, 0.0, 0.0, 1.0]
        self.embedded_texts: list[str] = []
        self.fail_on: set[str] = set()

    def _vector(self, text: str) -> list[float]:
        for key in self.fail_on:
            if key in text:
                raise RuntimeError(f"embedding service unavailable for '{key}'")
        for key, vector in self.vectors.items():
            if key in text:
                return list(vector)
        return list(self.default)

    async def embed(self, text: str) -> list[float]:
        self.embedded_texts.append(text)
        return self._vector(text)

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        self.embedded_texts.extend(texts)
        return [self._vector(t) for t in texts]


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database per test."""
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_db_and_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def store(engine):
    return KnowledgeStore(engine)


@pytest.fixture
def ledger(engine):
    return RunLedger(engine)


@pytest.fixture
def add_entry(engine):
    """Insert a KnowledgeEntry; ``age`` is how long ago it was captured."""

    def _add(content: str, category: str = "insight", tags=None, context=None,
             age: timedelta = timedelta(hours=1)) -> KnowledgeEntry:
        entry = KnowledgeEntry(
            category=category,
            content=content,
            context=context,
            tags=tags or [],
            created_at=datetime.now(timezone.utc) - age,
        )
        with Session(engine) as session:
            session.add(entry)
            session.commit()
            session.refresh(entry)
            session.expunge(entry)
        return entry

    return _add


@pytest.fixture
def mock_llm():
    """MockLLMLayer with no responses; tests configure ``mock_llm.responses``."""
    return MockLLMLayer()


@pytest.fixture
def make_cache(tmp_path):
    """DocumentCache over a temp ChromaDB directory (auto-cleaned)."""

    def _make(embedder) -> DocumentCache:
        return DocumentCache(embedder, persist_dir=str(tmp_path / "chroma"), collection_name="test_documents")

    return _make


SUBJECT_LINES_DOC = """---
title: Subject Lines
---

# Subject Lines

## Subject Line Guidance

- Keep it short.

## Examples

- "quick question"
"""

OFFER_DOC = """---
id: sop-4-101-offer
title: "SOP 4.101: Offer Design"
---

# Offer Design

## Steps

1. **Pick one problem** — Lead with the pain.
"""

SIDEBARS_JS = """module.exports = {
  playbook: [
    {
      type: 'category',
      label: 'Module 3: LinkedIn Outreach',
      link: {type: 'doc', id: 'sops/module-3-linkedin-outreach/index'},
      items: [
        'sops/module-3-linkedin-outreach/sop-3-1-connection-requests',
      ],
    },
    {
      type: 'category',
      label: 'Module 4: Cold Email',
      link: {type: 'doc', id: 'sops/module-4-cold-email/index'},
      items: [
        'sops/module-4-cold-email/sop-4-101-offer',
      ],
    },
  ],
};
"""


@pytest.fixture
def documents():
    return [
        DocumentFile(path="email-module/subject-lines.md", content=SUBJECT_LINES_DOC),
        DocumentFile(path="docs/sops/module-4-cold-email/sop-4-101-offer.md", content=OFFER_DOC),
    ]


@pytest.fixture
def repository(documents):
    """Document repository double; commits succeed with sha ``abc123``."""
    repo = MagicMock()
    repo.list_document_files.return_value = list(documents)
    repo.fetch_sidebars.return_value = DocumentFile(path="sidebars.js", content=SIDEBARS_JS)
    repo.commit_files.return_value = "abc123"
    return repo
