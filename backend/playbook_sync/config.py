"""Playbook Sync configuration — settings, model tiers, thresholds."""

from typing import Literal

from pydantic_settings import BaseSettings

ModelTier = Literal["opus", "sonnet", "haiku"]

DEFAULT_KNOWN_MODULES = [
    "module-0-positioning",
    "module-1-lead-magnets",
    "module-2-tam-building",
    "module-3-linkedin-outreach",
    "module-4-cold-email",
    "module-5-linkedin-ads",
    "module-6-operating-system",
    "module-7-daily-content",
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Keys
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    github_token: str = ""

    # Database
    database_url: str = "sqlite:///data/playbook_sync.db"

    # ChromaDB (document embedding cache)
    chroma_dir: str = "data/chroma"
    document_collection: str = "playbook_documents"

    # CORS (comma-separated origins)
    cors_origins: str = "http://localhost:3000"

    # Document repository (GitHub)
    github_repo: str = ""  # "owner/name"
    github_branch: str = "main"
    github_api_url: str = "https://api.github.com"
    github_timeout_seconds: float = 30.0
    docs_root: str = "docs/sops"
    sidebars_path: str = "sidebars.js"
    index_item_prefix: str = "sops"  # sidebar ids are "<prefix>/<module>/<doc id>"
    known_modules: list[str] = list(DEFAULT_KNOWN_MODULES)

    # Matching thresholds (empirical, tunable)
    similarity_threshold: float = 0.75
    fuzzy_match_threshold: float = 0.4
    min_orphans_for_clustering: int = 3
    new_doc_counter_seed: int = 100
    window_epoch: str = "2020-01-01T00:00:00Z"

    # Embeddings
    embedding_model: str = "text-embedding-3-small"
    embedding_dim: int = 1536

    # LLM defaults
    default_max_tokens: int = 4096
    default_max_retries: int = 2
    default_temperature: float = 0.0
    llm_api_retries: int = 3  # transport-level retries (rate limit, connection, 5xx)
    llm_breaker_failures: int = 5
    llm_breaker_reset_seconds: float = 60.0
    model_opus: str = "claude-opus-4-6"
    model_sonnet: str = "claude-sonnet-4-6"
    model_haiku: str = "claude-haiku-4-5-20251001"
    classifier_tier: ModelTier = "opus"
    edit_tier: ModelTier = "opus"
    cluster_tier: ModelTier = "sonnet"
    draft_tier: ModelTier = "opus"

    # Scheduling
    sync_enabled: bool = True
    sync_interval_hours: float = 168.0  # weekly
    sync_check_interval_minutes: float = 60.0
    sync_max_duration_seconds: int = 900

    # Celery / Redis
    celery_broker_url: str = ""  # Empty = Celery disabled (uses asyncio scheduler)
    celery_result_backend: str = ""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()


def get_model_map() -> dict[str, str]:
    """Resolve model map from settings (env-overridable)."""
    return {
        "opus": settings.model_opus,
        "sonnet": settings.model_sonnet,
        "haiku": settings.model_haiku,
    }


MODEL_MAP: dict[str, str] = get_model_map()
