"""
Base pipeline class for ArticleRAG.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from articlerag.cache import CacheService, RedisCacheStore
from articlerag.components.completion import CompletionClient
from articlerag.components.embedding import EmbeddingClient
from articlerag.components.enhancement import QueryEnhancer
from articlerag.components.generation import AnswerGenerator
from articlerag.components.retrieval import Retriever
from articlerag.components.store import ChunkStore, QdrantChunkStore
from articlerag.components.threshold import ThresholdOptimizer
from articlerag.config import Config
from articlerag.models import (
    EnhancementConfig,
    QueryConfig,
    QueryResponse,
    ThresholdConfig,
)

# Configure logging
logger = logging.getLogger(__name__)


class BasePipeline(ABC):
    """
    Abstract base class for query pipelines.

    Collaborators may be injected; anything left out is built lazily from
    Config on first use.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        query_config: Optional[QueryConfig] = None,
        # Collaborators
        embedding_client: Optional[EmbeddingClient] = None,
        completion_client: Optional[CompletionClient] = None,
        store: Optional[ChunkStore] = None,
        cache: Optional[CacheService] = None,
        # Component settings
        enhancement_config: Optional[EnhancementConfig] = None,
        threshold_config: Optional[ThresholdConfig] = None,
        cache_enabled: Optional[bool] = None,
        # Environment
        env_file: Optional[str] = None,
    ):
        """Initialize base pipeline with common settings."""
        self.config = config or Config.from_env(env_file)
        self.query_config = query_config or QueryConfig()
        self.enhancement_config = enhancement_config or EnhancementConfig()
        self.threshold_config = threshold_config or ThresholdConfig(
            default_locale=self.config.default_locale
        )
        # An injected cache turns caching on unless explicitly disabled
        if cache_enabled is None:
            cache_enabled = cache is not None or self.config.cache_enabled
        self.cache_enabled = cache_enabled

        # Lazy initialization
        self._embedding_client = embedding_client
        self._completion_client = completion_client
        self._store = store
        self._cache = cache
        self._retriever = None
        self._enhancer = None
        self._threshold_optimizer = None
        self._generator = None

    @property
    def embedding_client(self) -> EmbeddingClient:
        """Lazy load embedding client (OpenAI)."""
        if self._embedding_client is None:
            self._embedding_client = EmbeddingClient(
                model=self.config.embedding_model,
                api_key=self.config.openai_api_key,
            )
        return self._embedding_client

    @property
    def completion_client(self) -> CompletionClient:
        """Lazy load completion client (OpenAI)."""
        if self._completion_client is None:
            self._completion_client = CompletionClient(
                api_key=self.config.openai_api_key
            )
        return self._completion_client

    @property
    def store(self) -> ChunkStore:
        """Lazy load chunk store (Qdrant)."""
        if self._store is None:
            logger.info(
                f"Connecting to chunk store: {self.config.qdrant_url} "
                f"(collection: {self.config.qdrant_collection})"
            )
            self._store = QdrantChunkStore(
                collection_name=self.config.qdrant_collection,
                url=self.config.qdrant_url,
                api_key=self.config.qdrant_api_key,
                timeout=self.config.qdrant_timeout,
            )
        return self._store

    @property
    def cache(self) -> Optional[CacheService]:
        """Lazy load response cache (Redis); None when caching is disabled."""
        if not self.cache_enabled:
            return None
        if self._cache is None:
            self._cache = CacheService(
                RedisCacheStore(
                    url=self.config.redis_url,
                    connect_timeout=self.config.redis_connect_timeout,
                )
            )
        return self._cache

    @property
    def retriever(self) -> Retriever:
        if self._retriever is None:
            self._retriever = Retriever(
                embedding_client=self.embedding_client,
                store=self.store,
                candidate_pool=self.config.hybrid_candidate_pool,
            )
        return self._retriever

    @property
    def enhancer(self) -> QueryEnhancer:
        if self._enhancer is None:
            self._enhancer = QueryEnhancer(
                self.completion_client, self.enhancement_config
            )
        return self._enhancer

    @property
    def threshold_optimizer(self) -> ThresholdOptimizer:
        if self._threshold_optimizer is None:
            self._threshold_optimizer = ThresholdOptimizer(self.threshold_config)
        return self._threshold_optimizer

    @property
    def generator(self) -> AnswerGenerator:
        if self._generator is None:
            self._generator = AnswerGenerator(self.completion_client)
        return self._generator

    async def close(self) -> None:
        """Close store and cache connections that were opened."""
        if self._store is not None:
            await self._store.close()
        if self._cache is not None:
            await self._cache.close()

    @abstractmethod
    async def run(self, query: str, **kwargs) -> QueryResponse:
        """Run the pipeline. Must be implemented by subclasses."""
        pass
