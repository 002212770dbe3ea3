"""Application configuration and settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Logging
    log_level: str = "INFO"

    # Qdrant Configuration
    qdrant_url: str = "http://localhost:6333"
    qdrant_api_key: str | None = None
    qdrant_prefer_grpc: bool = False
    qdrant_local_mode: bool = False
    qdrant_timeout: int = 30  # Timeout in seconds
    qdrant_collection_prefix: str = "embeddings"  # One collection per dimension

    # OpenAI Configuration
    openai_api_key: str | None = None
    openai_embedding_model: str = "text-embedding-3-small"
    embedding_dimension: int = 1536

    # Sparse (BM25) text encoder
    sparse_model: str = "Qdrant/bm25"  # fastembed sparse model name

    # Chunker defaults
    chunk_min_lines: int = 1
    chunk_min_chars_soft_limit: int = 200
    chunk_max_chars_soft_limit: int = 2000
    chunk_max_chars_hard_limit: int | None = None
    chunk_delimiter: str = "\n\n"

    # Search Configuration
    rrf_k: float = 10.0  # Reciprocal Rank Fusion damping constant
    strict_filters: bool = False  # Raise on unknown filter names instead of dropping

    # Ingestion / Worker Configuration
    chunk_insert_batch_size: int = 100
    worker_concurrency: int = 8
    worker_max_retries: int = 3
    worker_retry_delay: float = 0.5  # Seconds, doubled per attempt


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
