"""
Configuration management for ArticleRAG.
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator


class Config(BaseModel):
    """Configuration container for ArticleRAG."""

    # OpenAI settings
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    embedding_model: str = Field(
        default="text-embedding-3-small", description="Embedding model name"
    )

    # Qdrant settings
    qdrant_url: str = Field(
        default="http://localhost:6333", description="Qdrant server URL"
    )
    qdrant_api_key: Optional[str] = Field(default=None, description="Qdrant API key")
    qdrant_collection: str = Field(
        default="articles", description="Collection holding article chunks"
    )
    qdrant_timeout: float = Field(
        default=60.0, gt=0.0, description="Qdrant request timeout in seconds"
    )

    # Redis settings
    redis_url: str = Field(
        default="redis://localhost:6379", description="Redis server URL"
    )
    redis_connect_timeout: float = Field(
        default=5.0, gt=0.0, description="Redis connect timeout in seconds"
    )
    cache_enabled: bool = Field(default=True, description="Cache query responses")

    # Content settings
    article_base_url: str = Field(
        default="/posts/", description="Prefix joined with the article slug"
    )
    default_locale: str = Field(
        default="en", description="Locale assumed when detection is inconclusive"
    )

    # Retrieval settings
    hybrid_candidate_pool: int = Field(
        default=100, gt=0, description="Candidates fetched per signal in hybrid mode"
    )

    @field_validator("default_locale")
    @classmethod
    def validate_locale(cls, v: str) -> str:
        """Validate locale value."""
        valid_values = {"zh", "en"}
        if v not in valid_values:
            raise ValueError(f"default_locale must be one of {valid_values}, got {v}")
        return v

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Config":
        """Load configuration from environment variables."""
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()

        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            embedding_model=os.getenv("EMBEDDING_MODEL", "text-embedding-3-small"),
            qdrant_url=os.getenv("QDRANT_URL", "http://localhost:6333"),
            qdrant_api_key=os.getenv("QDRANT_API_KEY"),
            qdrant_collection=os.getenv("QDRANT_COLLECTION", "articles"),
            qdrant_timeout=float(os.getenv("QDRANT_TIMEOUT", "60.0")),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379"),
            cache_enabled=os.getenv("CACHE_ENABLED", "true").lower()
            not in {"0", "false", "no"},
            article_base_url=os.getenv("ARTICLE_BASE_URL", "/posts/"),
            default_locale=os.getenv("DEFAULT_LOCALE", "en"),
        )

    class Config:
        """Pydantic config."""

        frozen = False
        extra = "forbid"
