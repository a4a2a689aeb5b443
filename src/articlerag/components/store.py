"""
Chunk store component for ArticleRAG.
Vector similarity and full-text lookups over ingested article chunks.

The ingestion side owns writes; the query pipeline only reads through the
ChunkStore interface. Two implementations are provided:
- QdrantChunkStore: cosine collection in Qdrant, payload carries chunk metadata
- InMemoryChunkStore: numpy-backed store for tests and local experiments
"""

import logging
import os
import re
from abc import ABC, abstractmethod
from collections import Counter
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from articlerag.models import Chunk, RetrievedChunk

# Configure logging
logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"\w+", re.UNICODE)

# Per-occurrence weight, mirrors the default D weight of Postgres ts_rank_cd
KEYWORD_OCCURRENCE_WEIGHT = 0.1


def tokenize(text: str) -> List[str]:
    return TOKEN_PATTERN.findall(text.lower())


def keyword_score(content: str, terms: Sequence[str]) -> float:
    """
    Score content against an AND-conjunction of terms.

    Returns 0.0 unless every term occurs; otherwise each occurrence of each
    term contributes KEYWORD_OCCURRENCE_WEIGHT.
    """
    if not terms:
        return 0.0
    counts = Counter(tokenize(content))
    occurrences = [counts.get(term.lower(), 0) for term in terms]
    if min(occurrences) == 0:
        return 0.0
    return KEYWORD_OCCURRENCE_WEIGHT * sum(occurrences)


class ChunkStore(ABC):
    """Read interface the retriever needs from chunk storage."""

    @abstractmethod
    async def vector_search(
        self,
        embedding: Sequence[float],
        limit: int,
        threshold: Optional[float] = None,
        locale: Optional[str] = None,
    ) -> List[RetrievedChunk]:
        """Chunks ordered by cosine similarity descending, similarity >= threshold."""

    @abstractmethod
    async def keyword_search(
        self,
        terms: Sequence[str],
        limit: int,
        locale: Optional[str] = None,
    ) -> List[RetrievedChunk]:
        """Chunks containing every term, ordered by keyword score descending."""

    @abstractmethod
    async def vector_similarities(
        self, embedding: Sequence[float], chunk_ids: Sequence[str]
    ) -> Dict[str, float]:
        """Cosine similarity for the given chunk ids; chunks without a vector are omitted."""

    @abstractmethod
    async def top_similarities(
        self, embedding: Sequence[float], limit: int = 5
    ) -> List[float]:
        """Best similarities with no threshold or locale filter (diagnostics)."""

    async def close(self) -> None:
        """Release any held connections."""


class InMemoryChunkStore(ChunkStore):
    """Numpy-backed chunk store."""

    def __init__(self):
        self._chunks: List[Chunk] = []
        self._vectors: List[Optional[np.ndarray]] = []

    def __len__(self) -> int:
        return len(self._chunks)

    def add(
        self,
        chunks: Sequence[Chunk],
        embeddings: Sequence[Optional[Sequence[float]]],
    ) -> None:
        """Store chunks; a None embedding leaves the chunk keyword-only."""
        if len(chunks) != len(embeddings):
            raise ValueError("Chunks and embeddings must have the same length")
        for chunk, embedding in zip(chunks, embeddings):
            self._chunks.append(chunk)
            self._vectors.append(
                None if embedding is None else np.asarray(embedding, dtype=float)
            )

    def _similarities(
        self, embedding: Sequence[float]
    ) -> List[Tuple[Chunk, float]]:
        query = np.asarray(embedding, dtype=float)
        query_norm = np.linalg.norm(query)
        scored = []
        for chunk, vector in zip(self._chunks, self._vectors):
            if vector is None:
                continue
            denom = query_norm * np.linalg.norm(vector)
            similarity = float(np.dot(query, vector) / denom) if denom else 0.0
            scored.append((chunk, similarity))
        return scored

    async def vector_search(
        self,
        embedding: Sequence[float],
        limit: int,
        threshold: Optional[float] = None,
        locale: Optional[str] = None,
    ) -> List[RetrievedChunk]:
        results = [
            RetrievedChunk(**{**chunk.model_dump(), "similarity": similarity})
            for chunk, similarity in self._similarities(embedding)
            if (threshold is None or similarity >= threshold)
            and (locale is None or chunk.locale == locale)
        ]
        results.sort(key=lambda c: c.similarity, reverse=True)
        return results[:limit]

    async def keyword_search(
        self,
        terms: Sequence[str],
        limit: int,
        locale: Optional[str] = None,
    ) -> List[RetrievedChunk]:
        results = []
        for chunk in self._chunks:
            if locale is not None and chunk.locale != locale:
                continue
            score = keyword_score(chunk.content, terms)
            if score > 0:
                results.append(
                    RetrievedChunk(**{**chunk.model_dump(), "similarity": score})
                )
        results.sort(key=lambda c: c.similarity, reverse=True)
        return results[:limit]

    async def vector_similarities(
        self, embedding: Sequence[float], chunk_ids: Sequence[str]
    ) -> Dict[str, float]:
        wanted = set(chunk_ids)
        return {
            chunk.chunk_id: similarity
            for chunk, similarity in self._similarities(embedding)
            if chunk.chunk_id in wanted
        }

    async def top_similarities(
        self, embedding: Sequence[float], limit: int = 5
    ) -> List[float]:
        scores = sorted(
            (similarity for _, similarity in self._similarities(embedding)),
            reverse=True,
        )
        return scores[:limit]


def get_qdrant_client(
    url: Optional[str] = None,
    api_key: Optional[str] = None,
    timeout: Optional[float] = None,
) -> "AsyncQdrantClient":
    """
    Get async Qdrant client instance.

    Args:
        url: Qdrant server URL
        api_key: Qdrant API key
        timeout: Request timeout in seconds (default: 60.0)

    Returns:
        AsyncQdrantClient instance
    """
    from qdrant_client import AsyncQdrantClient

    url = url or os.getenv("QDRANT_URL", "http://localhost:6333")
    api_key = api_key or os.getenv("QDRANT_API_KEY")
    timeout = timeout or float(os.getenv("QDRANT_TIMEOUT", "60.0"))

    logger.debug(f"Connecting to Qdrant at {url} (timeout: {timeout}s)")

    if api_key:
        return AsyncQdrantClient(url=url, api_key=api_key, timeout=int(timeout))
    return AsyncQdrantClient(url=url, timeout=int(timeout))


class QdrantChunkStore(ChunkStore):
    """
    Chunk store backed by a Qdrant cosine collection.

    Expected payload fields: chunk_id, article_id, article_slug, article_title,
    content, locale, chunk_index, token_count. Keyword search needs a full-text
    payload index on "content".
    """

    def __init__(
        self,
        collection_name: str,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        keyword_page_size: int = 1000,
        client: Optional[Any] = None,
    ):
        if not collection_name or not collection_name.strip():
            raise ValueError("collection_name is required")
        self.collection_name = collection_name
        self.keyword_page_size = keyword_page_size
        self.client = client or get_qdrant_client(url, api_key, timeout)

    @staticmethod
    def _locale_condition(locale: Optional[str]) -> List[Any]:
        from qdrant_client.models import FieldCondition, MatchValue

        if not locale:
            return []
        return [FieldCondition(key="locale", match=MatchValue(value=locale))]

    @staticmethod
    def _to_chunk(point_id: Any, payload: Optional[Dict], score: float) -> RetrievedChunk:
        payload = payload or {}
        return RetrievedChunk(
            chunk_id=str(payload.get("chunk_id", point_id)),
            article_id=str(payload.get("article_id", "")),
            article_slug=payload.get("article_slug", ""),
            article_title=payload.get("article_title", ""),
            content=payload.get("content", ""),
            locale=payload.get("locale", "en"),
            chunk_index=int(payload.get("chunk_index", 0)),
            token_count=int(payload.get("token_count", 0)),
            similarity=float(score) if score is not None else 0.0,
        )

    async def vector_search(
        self,
        embedding: Sequence[float],
        limit: int,
        threshold: Optional[float] = None,
        locale: Optional[str] = None,
    ) -> List[RetrievedChunk]:
        from qdrant_client.models import Filter

        conditions = self._locale_condition(locale)
        response = await self.client.query_points(
            collection_name=self.collection_name,
            query=list(embedding),
            query_filter=Filter(must=conditions) if conditions else None,
            limit=limit,
            with_payload=True,
            score_threshold=threshold,
        )
        return [
            self._to_chunk(point.id, point.payload, point.score)
            for point in response.points
        ]

    async def keyword_search(
        self,
        terms: Sequence[str],
        limit: int,
        locale: Optional[str] = None,
    ) -> List[RetrievedChunk]:
        from qdrant_client.models import FieldCondition, Filter, MatchText

        if not terms:
            return []

        conditions = [
            FieldCondition(key="content", match=MatchText(text=term)) for term in terms
        ]
        conditions.extend(self._locale_condition(locale))

        # Scroll order is by point id, so every page is scored before ranking
        results = []
        offset = None
        while True:
            records, offset = await self.client.scroll(
                collection_name=self.collection_name,
                scroll_filter=Filter(must=conditions),
                limit=self.keyword_page_size,
                offset=offset,
                with_payload=True,
                with_vectors=False,
            )
            for record in records:
                payload = record.payload or {}
                score = keyword_score(payload.get("content", ""), terms)
                if score > 0:
                    results.append(self._to_chunk(record.id, payload, score))
            if offset is None:
                break
        results.sort(key=lambda c: c.similarity, reverse=True)
        return results[:limit]

    async def vector_similarities(
        self, embedding: Sequence[float], chunk_ids: Sequence[str]
    ) -> Dict[str, float]:
        from qdrant_client.models import FieldCondition, Filter, MatchAny

        if not chunk_ids:
            return {}

        response = await self.client.query_points(
            collection_name=self.collection_name,
            query=list(embedding),
            query_filter=Filter(
                must=[FieldCondition(key="chunk_id", match=MatchAny(any=list(chunk_ids)))]
            ),
            limit=len(chunk_ids),
            with_payload=True,
        )
        return {
            str((point.payload or {}).get("chunk_id", point.id)): float(point.score)
            for point in response.points
        }

    async def top_similarities(
        self, embedding: Sequence[float], limit: int = 5
    ) -> List[float]:
        response = await self.client.query_points(
            collection_name=self.collection_name,
            query=list(embedding),
            limit=limit,
            with_payload=False,
        )
        return [float(point.score) for point in response.points]

    async def close(self) -> None:
        await self.client.close()
