"""
Central feature flags. One file controls every external dependency.

Set via environment variables (prefix FF_) or .env file.
When a flag is OFF, the system uses a local fallback. Nothing crashes.
"""

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeatureFlags(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Auth ─────────────────────────────────────────────────────────
    use_auth: bool = Field(default=True, alias="FF_USE_AUTH")
    # ON  → Bearer token / session cookie validated with AUTH_SECRET.
    # OFF → Dev user injected (user_id="dev-user"). No token needed.

    # ── Realtime ─────────────────────────────────────────────────────
    use_redis: bool = Field(default=True, alias="FF_USE_REDIS")
    # ON  → Redis pub/sub for document/resource change events. Needs REDIS_URL.
    # OFF → Notifications silently skipped. Nothing breaks.

    # ── Embeddings ───────────────────────────────────────────────────
    embedding_provider: str = Field(default="openai", alias="FF_EMBEDDING_PROVIDER")
    # "openai" → OpenAI-compatible /embeddings API. Needs OPENAI_API_KEY.
    # "local"  → Deterministic hashed bag-of-words vectors. No network.

    # ── Retrieval ────────────────────────────────────────────────────
    use_vector_index: bool = Field(default=True, alias="FF_USE_VECTOR_INDEX")
    # ON  → pgvector cosine distance in SQL (PostgreSQL only, HNSW index available).
    # OFF → Exact linear scan in numpy. Always used on SQLite.

    # ── Schema ───────────────────────────────────────────────────────
    auto_create_schema: bool = Field(default=True, alias="FF_AUTO_CREATE_SCHEMA")
    # ON  → Tables, pgvector extension and HNSW index created on startup.
    # OFF → Schema managed externally.


@lru_cache
def get_flags() -> FeatureFlags:
    return FeatureFlags()
