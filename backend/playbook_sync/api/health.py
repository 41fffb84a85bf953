"""Health check endpoint — dependency checks for the sync worker.

Checks: SQLite DB, ChromaDB document cache, LLM and embedding API keys,
document repository configuration, trigger mode.
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter
from pydantic import BaseModel

from playbook_sync.config import settings

router = APIRouter()

VERSION = "0.1.0"


class HealthStatus(BaseModel):
    status: str  # "healthy" | "degraded" | "unhealthy"
    version: str
    checks: dict[str, dict]
    dependencies: dict[str, str]
    timestamp: datetime


def _key_check(value: str, env_name: str) -> dict:
    if value == "test":
        return {"status": "ok", "detail": "test mode"}
    if value:
        return {"status": "ok", "detail": "API key configured"}
    return {"status": "warning", "detail": f"{env_name} not set"}


@router.get("/health", response_model=HealthStatus)
async def health_check() -> HealthStatus:
    """Check all sync dependencies."""
    checks: dict[str, dict] = {}
    overall_healthy = True

    # 1. SQLite DB
    try:
        from sqlalchemy import text

        from playbook_sync.db.database import engine
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
            detail = "connected"
            if engine.dialect.name == "sqlite":
                wal = conn.execute(text("PRAGMA journal_mode")).fetchone()
                detail = f"journal_mode={wal[0]}"
            checks["database"] = {"status": "ok", "detail": detail}
    except Exception as e:
        checks["database"] = {"status": "error", "detail": str(e)}
        overall_healthy = False

    # 2. ChromaDB
    try:
        import chromadb
        version = getattr(chromadb, "__version__", "unknown")
        checks["chromadb"] = {"status": "ok", "detail": f"v{version}, dir={settings.chroma_dir}"}
    except Exception as e:
        checks["chromadb"] = {"status": "error", "detail": str(e)}
        overall_healthy = False

    # 3. API keys
    checks["llm_api"] = _key_check(settings.anthropic_api_key, "ANTHROPIC_API_KEY")
    checks["embeddings_api"] = _key_check(settings.openai_api_key, "OPENAI_API_KEY")

    # 4. Document repository
    if settings.github_repo:
        detail = f"{settings.github_repo}@{settings.github_branch}"
        if not settings.github_token:
            checks["github"] = {"status": "warning", "detail": f"{detail} (GITHUB_TOKEN not set)"}
        else:
            checks["github"] = {"status": "ok", "detail": detail}
    else:
        checks["github"] = {"status": "warning", "detail": "GITHUB_REPO not set"}

    # 5. Trigger
    from playbook_sync.celery_app import is_celery_enabled
    if is_celery_enabled():
        checks["trigger"] = {"status": "ok", "detail": "Celery beat"}
    elif settings.sync_enabled:
        checks["trigger"] = {"status": "ok", "detail": "asyncio scheduler"}
    else:
        checks["trigger"] = {"status": "disabled", "detail": "set SYNC_ENABLED=true to schedule runs"}

    has_warning = any(check["status"] == "warning" for check in checks.values())
    dependencies = {name: check["status"] for name, check in checks.items()}

    if overall_healthy:
        status = "degraded" if has_warning else "healthy"
    else:
        status = "unhealthy"

    return HealthStatus(
        status=status,
        version=VERSION,
        checks=checks,
        dependencies=dependencies,
        timestamp=datetime.now(timezone.utc),
    )
