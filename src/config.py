from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings validated via Pydantic.

    Values are loaded from environment variables and/or a .env file.
    """

    # API Keys
    openai_api_key: str = ""
    youtube_api_key: str = ""

    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""

    # App config
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"
    chat_base_url: str = "http://localhost:3002"

    # Embeddings / vector index
    embedding_model: str = "text-embedding-3-large"
    embedding_dimensions: int = 3072
    vector_index_name: str = "creator-transcripts-v2"
    vector_metric: str = "cosine"
    similarity_threshold: float = 0.25
    vector_text_limit: int = 5000
    upsert_batch_size: int = 100
    upsert_batch_delay_seconds: float = 1.0

    # Chunking
    chunk_max_tokens: int = 400

    # Jobs
    job_ttl_seconds: int = 86400
    processing_timeout_seconds: int = 30 * 60
    default_max_videos: int = 20
    min_duration_minutes: int = 2
    max_duration_minutes: int = 25
    kv_prefix: str = "yt-processor:"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Gracefully handles missing .env files (e.g. in CI/testing) by falling
    back to environment variables and defaults.
    """
    try:
        return Settings()
    except Exception:
        # If .env is missing or unreadable, build settings from env vars only.
        return Settings(_env_file=None)  # type: ignore[call-arg]


settings = get_settings()
