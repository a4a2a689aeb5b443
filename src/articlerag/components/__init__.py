"""
RAG building blocks for ArticleRAG.

Components:
- embedding: Query embedding with the OpenAI embeddings API
- completion: Chat completions with the OpenAI API
- store: Chunk storage (Qdrant, in-memory)
- enhancement: LLM expansion of short or ambiguous queries
- threshold: Adaptive similarity threshold
- retrieval: Vector and hybrid (vector + keyword) retrieval
- augmentation: Token-budgeted context assembly
- generation: Citation-aware answer generation
- citation: Source list and [N] citation checks
"""

from articlerag.components.embedding import EmbeddingClient, estimate_embedding_cost
from articlerag.components.completion import CompletionClient
from articlerag.components.store import (
    ChunkStore,
    InMemoryChunkStore,
    QdrantChunkStore,
    get_qdrant_client,
)
from articlerag.components.enhancement import QueryEnhancer
from articlerag.components.threshold import ThresholdOptimizer
from articlerag.components.retrieval import Retriever
from articlerag.components.augmentation import build_context
from articlerag.components.generation import AnswerGenerator
from articlerag.components.citation import (
    build_sources,
    extract_citations,
    format_sources_for_display,
    validate_citations,
)

__all__ = [
    "EmbeddingClient",
    "estimate_embedding_cost",
    "CompletionClient",
    "ChunkStore",
    "InMemoryChunkStore",
    "QdrantChunkStore",
    "get_qdrant_client",
    "QueryEnhancer",
    "ThresholdOptimizer",
    "Retriever",
    "build_context",
    "AnswerGenerator",
    "build_sources",
    "extract_citations",
    "format_sources_for_display",
    "validate_citations",
]
