"""
Runtime configuration for memory-merge.

Settings are read from the environment (prefix ``MEMORY_MERGE_``) or a
``.env`` file. Library components take plain constructor arguments; only the
factory, web and CLI layers read settings.
"""

import logging
from functools import lru_cache
from typing import Literal, Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MEMORY_MERGE_", env_file=".env", extra="ignore"
    )

    # Embeddings
    openai_api_key: Optional[str] = Field(default=None, validation_alias="OPENAI_API_KEY")
    openai_base_url: Optional[str] = None
    embedding_model: str = "text-embedding-3-large"
    embedding_dimensions: int = 1536
    embedding_timeout: float = 30.0

    # Vector store
    vector_backend: Literal["memory", "qdrant"] = "memory"
    qdrant_url: str = "http://localhost:6333"
    qdrant_api_key: Optional[str] = None
    qdrant_collection: str = "knowledge_vectors"

    # Document store
    document_backend: Literal["memory", "sqlalchemy"] = "memory"
    database_url: str = "sqlite:///memory_merge.db"

    # Search result cache
    cache_backend: Literal["none", "memory", "redis"] = "none"
    redis_url: str = "redis://localhost:6379/0"
    search_cache_ttl: int = 120

    # Hybrid search
    default_match_threshold: float = 0.5
    default_match_count: int = 10
    threshold_ladder: Tuple[float, ...] = (0.4, 0.3, 0.2, 0.1, 0.0)
    tag_match_score: float = -2.0
    max_tag_results: int = 100

    # Edge policy
    retry_attempts: int = 3
    retry_backoff_min: float = 1.0
    retry_backoff_max: float = 4.0
    request_timeout: float = 60.0

    log_level: str = "INFO"

    @field_validator("threshold_ladder")
    @classmethod
    def _ladder_descending(cls, value: Tuple[float, ...]) -> Tuple[float, ...]:
        if list(value) != sorted(value, reverse=True):
            raise ValueError("threshold_ladder must be in descending order")
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, loaded once."""
    return Settings()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
