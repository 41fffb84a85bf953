"""Database setup — SQLite with WAL mode via SQLModel/SQLAlchemy.

What goes where:
- SQLite: KnowledgeEntry, KnowledgeMatch, SyncRun
- ChromaDB: document embeddings keyed by repository path (see memory/document_cache.py)
"""

from __future__ import annotations

import os

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from playbook_sync.config import settings


def get_database_url() -> str:
    """Get database URL, ensuring the data directory exists."""
    url = settings.database_url
    if url.startswith("sqlite:///"):
        db_path = url.replace("sqlite:///", "")
        db_dir = os.path.dirname(db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)
    return url


@event.listens_for(Engine, "connect")
def set_sqlite_wal(dbapi_connection, connection_record):
    """Enable WAL mode so the API can read run history while a sync writes."""
    if not type(dbapi_connection).__module__.startswith("sqlite3"):
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


_DATABASE_URL = get_database_url()

engine = create_engine(
    _DATABASE_URL,
    echo=False,
    # Sync stages run in worker threads
    connect_args={"check_same_thread": False} if _DATABASE_URL.startswith("sqlite") else {},
)


def create_db_and_tables(bind: Engine | None = None):
    """Create all tables defined by SQLModel metadata."""
    # Import table models so their metadata is registered
    from playbook_sync.models.knowledge import KnowledgeEntry, KnowledgeMatch  # noqa: F401
    from playbook_sync.models.sync import SyncRun  # noqa: F401

    SQLModel.metadata.create_all(bind or engine)


def get_session():
    """Dependency for FastAPI endpoints."""
    with Session(engine) as session:
        yield session
