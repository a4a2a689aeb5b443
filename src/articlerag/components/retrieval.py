"""
Retrieval component for ArticleRAG.
Vector similarity search and hybrid (vector + keyword) ranking.

Hybrid scoring:
    hybrid_score = vector_weight * vector_score + keyword_weight * keyword_score
Both signals are fetched independently and combined with full outer join
semantics. Keyword hits outside the vector candidate pool get their actual
cosine similarity looked up; only a chunk with no stored vector or no keyword
match contributes 0 for that signal.
"""

import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from articlerag.components.embedding import EmbeddingClient
from articlerag.components.store import ChunkStore, tokenize
from articlerag.exceptions import RetrievalError
from articlerag.models import QueryConfig, RetrievedChunk

# Configure logging
logger = logging.getLogger(__name__)

# Tokens of this length or shorter are dropped from the keyword query
MIN_KEYWORD_LENGTH = 2
DIAGNOSTIC_LIMIT = 5
HYBRID_DIAGNOSTIC_LIMIT = 3


@dataclass
class FusedScore:
    """One row of the vector/keyword outer join."""

    chunk: RetrievedChunk
    vector_similarity: float
    weighted_vector: float
    weighted_keyword: float

    @property
    def hybrid_score(self) -> float:
        return self.weighted_vector + self.weighted_keyword


def build_keyword_terms(query_text: str) -> List[str]:
    """Lowercase word tokens of the query, punctuation and tokens of length <= 2 dropped."""
    terms = [token for token in tokenize(query_text) if len(token) > MIN_KEYWORD_LENGTH]
    return list(dict.fromkeys(terms))


def fuse_scores(
    vector_hits: Sequence[RetrievedChunk],
    keyword_hits: Sequence[RetrievedChunk],
    vector_weight: float,
    keyword_weight: float,
) -> List[FusedScore]:
    """
    Full outer join of vector and keyword results on chunk_id.

    Args:
        vector_hits: Chunks scored by cosine similarity
        keyword_hits: Chunks scored by keyword relevance
        vector_weight: Weight applied to the vector score
        keyword_weight: Weight applied to the keyword score

    Returns:
        One FusedScore per distinct chunk, unordered
    """
    vector_scores: Dict[str, float] = {c.chunk_id: c.similarity for c in vector_hits}
    keyword_scores: Dict[str, float] = {c.chunk_id: c.similarity for c in keyword_hits}

    chunks: Dict[str, RetrievedChunk] = {}
    for chunk in list(vector_hits) + list(keyword_hits):
        chunks.setdefault(chunk.chunk_id, chunk)

    fused = []
    for chunk_id, chunk in chunks.items():
        vector_similarity = vector_scores.get(chunk_id, 0.0)
        keyword_relevance = keyword_scores.get(chunk_id, 0.0)
        fused.append(
            FusedScore(
                chunk=chunk,
                vector_similarity=vector_similarity,
                weighted_vector=vector_similarity * vector_weight,
                weighted_keyword=keyword_relevance * keyword_weight,
            )
        )
    return fused


def rank_fused(
    fused: Sequence[FusedScore],
    threshold: float,
    top_k: int,
    locale: Optional[str] = None,
) -> List[FusedScore]:
    """Filter by threshold and locale, order by hybrid score, cap at top_k."""
    kept = [
        row
        for row in fused
        if row.hybrid_score >= threshold
        and (locale is None or row.chunk.locale == locale)
    ]
    kept.sort(key=lambda row: row.hybrid_score, reverse=True)
    return kept[:top_k]


class Retriever:
    """Finds chunks relevant to a query through a ChunkStore."""

    def __init__(
        self,
        embedding_client: EmbeddingClient,
        store: ChunkStore,
        candidate_pool: int = 100,
    ):
        """
        Initialize retriever.

        Args:
            embedding_client: Client used to embed queries
            store: Chunk store to search
            candidate_pool: Rows fetched per signal before hybrid fusion
        """
        self.embedding_client = embedding_client
        self.store = store
        self.candidate_pool = candidate_pool

    async def retrieve_relevant_chunks(
        self,
        query_text: str,
        locale: Optional[str],
        config: QueryConfig,
    ) -> List[RetrievedChunk]:
        """
        Retrieve chunks by vector similarity.

        Args:
            query_text: The text of the query
            locale: Optional locale filter
            config: Query configuration (top_k, similarity_threshold)

        Returns:
            Chunks with similarity >= threshold, best first, at most top_k

        Raises:
            RetrievalError: If embedding or the store lookup fails
        """
        start_time = time.monotonic()

        try:
            logger.info("Generating query embedding...")
            query_embedding = await self.embedding_client.embed(query_text)

            logger.info(f"Searching for top {config.top_k} chunks...")
            chunks = await self.store.vector_search(
                query_embedding,
                limit=config.top_k,
                threshold=config.similarity_threshold,
                locale=locale,
            )

            elapsed = int((time.monotonic() - start_time) * 1000)
            logger.info(f"Retrieved {len(chunks)} chunks in {elapsed}ms")

            if not chunks:
                logger.warning(
                    "No chunks found with threshold. Checking best similarities without it..."
                )
                similarities = await self.store.top_similarities(
                    query_embedding, limit=DIAGNOSTIC_LIMIT
                )
                logger.info(
                    f"Top {DIAGNOSTIC_LIMIT} similarities without threshold: "
                    f"{[round(s, 3) for s in similarities]}"
                )
            else:
                logger.info(
                    f"Similarity range: {chunks[-1].similarity:.3f} - {chunks[0].similarity:.3f}"
                )

            return chunks

        except Exception as e:
            logger.error(f"Error retrieving chunks: {e}")
            raise RetrievalError(f"Retrieval failed: {e}") from e

    async def hybrid_retrieve_chunks(
        self,
        query_text: str,
        locale: Optional[str],
        config: QueryConfig,
    ) -> List[RetrievedChunk]:
        """
        Retrieve chunks by weighted vector + keyword score.

        Returns:
            Chunks whose similarity field holds the hybrid score, best first

        Raises:
            RetrievalError: If embedding or a store lookup fails
        """
        start_time = time.monotonic()
        vector_weight = config.vector_weight if config.vector_weight is not None else 0.7
        keyword_weight = (
            config.keyword_weight if config.keyword_weight is not None else 0.3
        )

        try:
            logger.info("Generating query embedding...")
            query_embedding = await self.embedding_client.embed(query_text)

            terms = build_keyword_terms(query_text)
            logger.info(
                f"Hybrid search: topK={config.top_k}, "
                f"weights=[vector:{vector_weight}, keyword:{keyword_weight}], "
                f"terms={terms}"
            )

            vector_hits = await self.store.vector_search(
                query_embedding, limit=self.candidate_pool, locale=locale
            )
            keyword_hits = (
                await self.store.keyword_search(
                    terms, limit=self.candidate_pool, locale=locale
                )
                if terms
                else []
            )
            vector_hits = vector_hits + await self._vector_scores_for_keyword_hits(
                query_embedding, vector_hits, keyword_hits
            )

            ranked = rank_fused(
                fuse_scores(vector_hits, keyword_hits, vector_weight, keyword_weight),
                threshold=config.similarity_threshold,
                top_k=config.top_k,
                locale=locale,
            )

            if not ranked:
                logger.warning("No chunks found with hybrid search")
                similarities = await self.store.top_similarities(
                    query_embedding, limit=HYBRID_DIAGNOSTIC_LIMIT
                )
                logger.info(
                    f"Top {HYBRID_DIAGNOSTIC_LIMIT} vector similarities: "
                    f"{[round(s, 3) for s in similarities]}"
                )

            chunks = [
                row.chunk.model_copy(update={"similarity": row.hybrid_score})
                for row in ranked
            ]

            elapsed = int((time.monotonic() - start_time) * 1000)
            logger.info(f"Retrieved {len(chunks)} chunks in {elapsed}ms")

            if ranked:
                top = ranked[0]
                logger.info(
                    f"Top result: similarity={top.hybrid_score:.3f} "
                    f"(vector={top.weighted_vector:.3f}, keyword={top.weighted_keyword:.3f})"
                )

            return chunks

        except Exception as e:
            logger.error(f"Hybrid retrieval error: {e}")
            raise RetrievalError(f"Hybrid retrieval failed: {e}") from e

    async def _vector_scores_for_keyword_hits(
        self,
        query_embedding: List[float],
        vector_hits: Sequence[RetrievedChunk],
        keyword_hits: Sequence[RetrievedChunk],
    ) -> List[RetrievedChunk]:
        """Vector-scored copies of keyword hits that fell outside the vector pool."""
        seen = {c.chunk_id for c in vector_hits}
        missing = [c for c in keyword_hits if c.chunk_id not in seen]
        if not missing:
            return []

        similarities = await self.store.vector_similarities(
            query_embedding, [c.chunk_id for c in missing]
        )
        logger.debug(
            f"Looked up vector scores for {len(similarities)}/{len(missing)} keyword-only hits"
        )
        return [
            c.model_copy(update={"similarity": similarities[c.chunk_id]})
            for c in missing
            if c.chunk_id in similarities
        ]
