"""
Pydantic models for ArticleRAG data structures.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

Locale = Literal["zh", "en"]
SearchMethod = Literal["vector", "hybrid"]


class Chunk(BaseModel):
    """A slice of an ingested article."""

    chunk_id: str = Field(description="Chunk identifier")
    article_id: str = Field(description="Owning article identifier")
    article_slug: str = Field(description="Article slug")
    article_title: str = Field(default="", description="Article title")
    content: str = Field(default="", description="Chunk text content")
    locale: str = Field(default="en", description="Article locale")
    chunk_index: int = Field(default=0, ge=0, description="Position in article")
    token_count: int = Field(default=0, ge=0, description="Token count of content")

    class Config:
        """Pydantic config."""

        frozen = True
        extra = "ignore"


class RetrievedChunk(Chunk):
    """A chunk scored against one query (vector similarity or hybrid score)."""

    similarity: float = Field(default=0.0, description="Similarity or hybrid score")


class QueryConfig(BaseModel):
    """Retrieval, budgeting and generation settings for one query."""

    # Retrieval
    top_k: int = Field(default=5, gt=0, description="Maximum chunks to retrieve")
    similarity_threshold: float = Field(
        default=0.3, description="Minimum similarity for a chunk to be retrieved"
    )

    # Hybrid search
    vector_weight: Optional[float] = Field(
        default=0.7, ge=0.0, description="Weight of the vector score"
    )
    keyword_weight: Optional[float] = Field(
        default=0.3, ge=0.0, description="Weight of the keyword score"
    )

    # Token budgets
    max_context_tokens: int = Field(
        default=3000, gt=0, description="Token budget for the context"
    )
    max_response_tokens: int = Field(
        default=1000, gt=0, description="Maximum tokens in the answer"
    )

    # Generation
    model: str = Field(default="gpt-4o-mini", description="Completion model")
    temperature: float = Field(
        default=0.3, ge=0.0, le=2.0, description="Generation temperature"
    )

    def merged(self, overrides: Optional[Dict[str, Any]] = None) -> "QueryConfig":
        """Return a copy with the non-None overrides applied."""
        if not overrides:
            return self.model_copy()
        values = self.model_dump()
        values.update({k: v for k, v in overrides.items() if v is not None})
        return QueryConfig(**values)

    class Config:
        """Pydantic config."""

        frozen = False
        extra = "forbid"


class QueryContext(BaseModel):
    """Chunks that fit the token budget plus their formatted prompt text."""

    chunks: List[RetrievedChunk] = Field(default_factory=list)
    total_tokens: int = Field(default=0, ge=0)
    formatted_context: str = Field(default="")


class Source(BaseModel):
    """One cited article; ``id`` is the citation number used in the answer."""

    id: int = Field(ge=1, description="1-based citation index")
    article_slug: str
    article_title: str
    chunk_content: str
    similarity: float
    locale: str
    url: Optional[str] = None


class TokenUsage(BaseModel):
    """Token accounting for one query."""

    context: int = Field(default=0, ge=0)
    prompt: int = Field(default=0, ge=0)
    completion: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)


class CompletionResult(BaseModel):
    """Text and usage returned by the completion service."""

    text: str = Field(default="")
    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)


class GenerationResult(BaseModel):
    """Result from answer generation."""

    answer: str = Field(description="Generated answer")
    tokens_used: TokenUsage = Field(default_factory=TokenUsage)


class QueryEnhancement(BaseModel):
    """Rewritten form of a short or ambiguous query."""

    original_query: str
    enhanced_query: str
    expansions: List[str] = Field(default_factory=list)
    synonyms: List[str] = Field(default_factory=list)
    related_terms: List[str] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        """Keep model-reported confidence inside [0, 1]."""
        try:
            v = float(v)
        except (TypeError, ValueError):
            return 0.5
        return max(0.0, min(1.0, v))


class ResponseMetadata(BaseModel):
    """Diagnostics returned alongside an answer."""

    query_locale: Optional[str] = None
    chunks_retrieved: int = Field(default=0, ge=0)
    chunks_used: int = Field(default=0, ge=0)
    model: str
    tokens_used: TokenUsage = Field(default_factory=TokenUsage)
    response_time: int = Field(default=0, ge=0, description="Milliseconds")
    search_method: Optional[SearchMethod] = None
    similarity_threshold: Optional[float] = None
    query_enhancement: Optional[QueryEnhancement] = None

    # Set only on payloads served from the cache
    cached: Optional[bool] = None
    cached_at: Optional[str] = None
    cache_ttl: Optional[int] = None


class QueryResponse(BaseModel):
    """Answer, its sources and metadata."""

    answer: str
    sources: List[Source] = Field(default_factory=list)
    metadata: ResponseMetadata


class QueryInput(BaseModel):
    """Input accepted by the query pipeline."""

    query: str = Field(description="User question")
    locale: Optional[str] = Field(default=None, description="Locale filter")
    use_hybrid_search: bool = Field(default=False)
    config: Optional[Dict[str, Any]] = Field(
        default=None, description="Overrides merged over the default QueryConfig"
    )

    @field_validator("query")
    @classmethod
    def validate_query(cls, v: str) -> str:
        """Reject blank queries."""
        if not v or not v.strip():
            raise ValueError("query cannot be empty")
        return v


class QueryPerformance(BaseModel):
    """One retrieval outcome remembered by the threshold optimizer."""

    query: str
    threshold: float
    result_count: int
    avg_similarity: float
    max_similarity: float
    min_similarity: float
    user_rating: Optional[float] = None
    timestamp: datetime = Field(default_factory=datetime.now)


class PerformanceStats(BaseModel):
    """Aggregate view over the optimizer history."""

    total_queries: int = 0
    avg_result_count: float = 0.0
    avg_similarity: float = 0.0
    avg_threshold: float = 0.0
    rated_queries: int = 0
    avg_rating: float = 0.0


class CacheMetrics(BaseModel):
    """Counters persisted in the cache store."""

    hits: int = 0
    misses: int = 0
    errors: int = 0
    hit_rate: float = 0.0


class EnhancementConfig(BaseModel):
    """Configuration for query enhancement."""

    enabled: bool = Field(default=True, description="Enable query enhancement")
    min_query_length: int = Field(
        default=2, ge=0, description="Shortest query (chars) eligible for enhancement"
    )
    max_query_length: int = Field(
        default=15, ge=0, description="Longest query (chars) eligible for enhancement"
    )
    max_word_count: int = Field(
        default=3, gt=0, description="Most words an eligible query may have"
    )
    expansion_model: str = Field(default="gpt-4o-mini", description="OpenAI model")
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    max_tokens: int = Field(default=150, gt=0)

    class Config:
        """Pydantic config."""

        frozen = False
        extra = "forbid"


class ThresholdConfig(BaseModel):
    """Configuration for the similarity threshold optimizer."""

    enabled: bool = Field(default=True)
    min_threshold: float = Field(default=0.2, ge=0.0, le=1.0)
    max_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    base_threshold: float = Field(default=0.3, ge=0.0, le=1.0)

    # Adjustment factors
    query_length_factor: float = Field(default=0.1, ge=0.0)
    result_count_factor: float = Field(default=0.05, ge=0.0)
    similarity_spread_factor: float = Field(default=0.15, ge=0.0)
    hybrid_adjustment: float = Field(
        default=0.05, ge=0.0, description="Subtracted for hybrid search"
    )
    locale_adjustment: float = Field(
        default=0.02, ge=0.0, description="Subtracted for non-default locales"
    )
    default_locale: str = Field(default="en")

    # Adaptive learning
    adaptive_enabled: bool = Field(default=True)
    learning_rate: float = Field(default=0.1, ge=0.0)
    history_size: int = Field(default=100, gt=0)
    history_window_hours: float = Field(default=24.0, gt=0.0)
    min_history: int = Field(
        default=10, gt=0, description="Records needed before learning kicks in"
    )
    similar_query_cutoff: float = Field(default=0.7, ge=0.0, le=1.0)

    @field_validator("max_threshold")
    @classmethod
    def validate_bounds(cls, v: float, info) -> float:
        """Ensure max_threshold is not below min_threshold."""
        low = info.data.get("min_threshold")
        if low is not None and v < low:
            raise ValueError(
                f"max_threshold ({v}) must be >= min_threshold ({low})"
            )
        return v

    class Config:
        """Pydantic config."""

        frozen = False
        extra = "forbid"


class CacheTtlConfig(BaseModel):
    """TTL policy for cached query responses, in seconds."""

    default: int = Field(default=3600, gt=0)

    # Query length based
    short_query: int = Field(default=1800, gt=0, description="< 10 characters")
    medium_query: int = Field(default=3600, gt=0)
    long_query: int = Field(default=7200, gt=0, description=">= 50 characters")

    # Result quality based
    high_quality: int = Field(default=7200, gt=0, description="similarity > 0.7")
    medium_quality: int = Field(default=3600, gt=0)
    low_quality: int = Field(default=1800, gt=0, description="similarity < 0.5")

    # Search method based
    vector_search: int = Field(default=3600, gt=0)
    hybrid_search: int = Field(default=5400, gt=0)

    max: int = Field(default=86400, gt=0)
    min: int = Field(default=300, gt=0)

    class Config:
        """Pydantic config."""

        frozen = False
        extra = "forbid"


class InvalidationStrategy(BaseModel):
    """When cached responses are dropped."""

    patterns: List[str] = Field(default_factory=lambda: ["query:*"])
    on_content_update: bool = Field(default=True)
    on_low_hit_rate: float = Field(
        default=0.3, ge=0.0, le=1.0, description="Hit-rate floor"
    )
    min_requests: int = Field(
        default=10, ge=0, description="Requests observed before the hit-rate check"
    )
    on_size_exceeded: float = Field(default=100.0, gt=0.0, description="Megabytes")
    eviction_fraction: float = Field(default=0.25, gt=0.0, le=1.0)

    class Config:
        """Pydantic config."""

        frozen = False
        extra = "forbid"
