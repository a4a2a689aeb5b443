"""
Tests for vector and hybrid retrieval over the in-memory chunk store.
"""

import pytest

from articlerag.components.retrieval import (
    Retriever,
    build_keyword_terms,
    fuse_scores,
    rank_fused,
)
from articlerag.components.store import InMemoryChunkStore, keyword_score
from articlerag.exceptions import RetrievalError
from articlerag.models import QueryConfig

from conftest import FakeEmbeddingClient, make_chunk


# =============================================================================
# Pure scoring helpers
# =============================================================================


class TestKeywordTerms:
    """Test keyword query construction."""

    def test_drops_short_tokens(self):
        assert build_keyword_terms("how do I use React hooks") == ["how", "use", "react", "hooks"]

    def test_strips_punctuation(self):
        terms = build_keyword_terms("What are React hooks?")

        assert terms == ["what", "are", "react", "hooks"]
        assert keyword_score(
            "React hooks manage component state. What are they?", terms
        ) == pytest.approx(0.4)

    def test_repeated_words_kept_once(self):
        assert build_keyword_terms("hooks, hooks and more hooks") == ["hooks", "and", "more"]

    def test_all_short(self):
        assert build_keyword_terms("is it ok") == []


class TestKeywordScore:
    """Test AND-conjunction keyword scoring."""

    def test_all_terms_required(self):
        assert keyword_score("react hooks manage state", ["react", "redux"]) == 0.0

    def test_counts_occurrences(self):
        assert keyword_score("React hooks. Hooks everywhere.", ["hooks"]) == pytest.approx(0.2)


class TestFuseScores:
    """Test full outer join semantics."""

    def test_missing_signal_contributes_zero(self):
        both = make_chunk("both", similarity=0.8)
        vector_only = make_chunk("vector", similarity=0.5)
        keyword_only = make_chunk("keyword", similarity=0.4)
        both_keyword = make_chunk("both", similarity=0.2)

        fused = {
            row.chunk.chunk_id: row
            for row in fuse_scores([both, vector_only], [both_keyword, keyword_only], 0.7, 0.3)
        }

        assert fused["both"].hybrid_score == pytest.approx(0.7 * 0.8 + 0.3 * 0.2)
        assert fused["vector"].hybrid_score == pytest.approx(0.7 * 0.5)
        assert fused["keyword"].hybrid_score == pytest.approx(0.3 * 0.4)
        assert fused["keyword"].vector_similarity == 0.0

    def test_rank_filters_orders_and_caps(self):
        rows = fuse_scores(
            [
                make_chunk("a", similarity=0.9),
                make_chunk("b", similarity=0.5),
                make_chunk("c", similarity=0.1),
                make_chunk("d", similarity=0.95, locale="zh"),
            ],
            [],
            1.0,
            0.0,
        )

        ranked = rank_fused(rows, threshold=0.3, top_k=1, locale="en")

        assert [row.chunk.chunk_id for row in ranked] == ["a"]
        assert [row.chunk.chunk_id for row in rank_fused(rows, 0.3, 5)] == ["d", "a", "b"]


# =============================================================================
# Vector mode
# =============================================================================


class TestVectorRetrieval:
    """Test retrieve_relevant_chunks."""

    @pytest.mark.asyncio
    async def test_threshold_order_and_top_k(self, chunk_store):
        retriever = Retriever(FakeEmbeddingClient(), chunk_store)

        chunks = await retriever.retrieve_relevant_chunks(
            "staff engineer", None, QueryConfig(similarity_threshold=0.5)
        )

        assert [c.chunk_id for c in chunks] == ["c1", "c4", "c2"]
        assert chunks[0].similarity == pytest.approx(1.0)

        capped = await retriever.retrieve_relevant_chunks(
            "staff engineer", None, QueryConfig(similarity_threshold=0.5, top_k=2)
        )
        assert [c.chunk_id for c in capped] == ["c1", "c4"]

    @pytest.mark.asyncio
    async def test_locale_filter(self, chunk_store):
        retriever = Retriever(FakeEmbeddingClient(), chunk_store)

        chunks = await retriever.retrieve_relevant_chunks(
            "系統設計", "zh", QueryConfig(similarity_threshold=0.5)
        )

        assert [c.chunk_id for c in chunks] == ["c4"]

    @pytest.mark.asyncio
    async def test_nothing_above_threshold(self, chunk_store):
        retriever = Retriever(FakeEmbeddingClient(default=[-1.0, 0.0]), chunk_store)

        chunks = await retriever.retrieve_relevant_chunks(
            "unrelated", None, QueryConfig(similarity_threshold=0.3)
        )

        assert chunks == []

    @pytest.mark.asyncio
    async def test_embedding_failure(self, chunk_store):
        retriever = Retriever(
            FakeEmbeddingClient(error=RuntimeError("embedding service down")), chunk_store
        )

        with pytest.raises(RetrievalError, match="Retrieval failed: embedding service down"):
            await retriever.retrieve_relevant_chunks("staff", None, QueryConfig())


# =============================================================================
# Hybrid mode
# =============================================================================


class TestHybridRetrieval:
    """Test hybrid_retrieve_chunks."""

    @pytest.mark.asyncio
    async def test_keyword_only_chunk_scores_weighted_keyword(self):
        store = InMemoryChunkStore()
        store.add(
            [
                make_chunk("vec", content="Scaling web services."),
                make_chunk("kw", slug="k8s", content="Kubernetes operators. Kubernetes upgrades."),
            ],
            [[1.0, 0.0], None],
        )
        retriever = Retriever(FakeEmbeddingClient(default=[0.0, 1.0]), store)

        chunks = await retriever.hybrid_retrieve_chunks(
            "kubernetes",
            None,
            QueryConfig(similarity_threshold=0.0, vector_weight=0.7, keyword_weight=0.3),
        )

        by_id = {c.chunk_id: c for c in chunks}
        assert by_id["kw"].similarity == pytest.approx(0.3 * keyword_score(
            "Kubernetes operators. Kubernetes upgrades.", ["kubernetes"]
        ))
        assert by_id["kw"].similarity == pytest.approx(0.06)

    @pytest.mark.asyncio
    async def test_keyword_hit_outside_vector_pool_keeps_vector_score(self):
        store = InMemoryChunkStore()
        store.add(
            [
                make_chunk("a", content="Scaling web services."),
                make_chunk("b", slug="b", content="Service meshes."),
                make_chunk("kw", slug="hooks", content="React hooks manage state."),
            ],
            [[1.0, 0.0], [0.8, 0.6], [0.6, 0.8]],
        )
        retriever = Retriever(FakeEmbeddingClient(), store, candidate_pool=2)

        chunks = await retriever.hybrid_retrieve_chunks(
            "React hooks?",
            None,
            QueryConfig(similarity_threshold=0.3, vector_weight=0.7, keyword_weight=0.3),
        )

        by_id = {c.chunk_id: c.similarity for c in chunks}
        # kw is third by vector similarity, outside the pool of two
        assert by_id["kw"] == pytest.approx(0.7 * 0.6 + 0.3 * 0.2)
        assert [c.chunk_id for c in chunks] == ["a", "b", "kw"]

    @pytest.mark.asyncio
    async def test_keywords_boost_ranking(self, chunk_store):
        retriever = Retriever(FakeEmbeddingClient(default=[0.6, 0.8]), chunk_store)

        chunks = await retriever.hybrid_retrieve_chunks(
            "React hooks",
            "en",
            QueryConfig(similarity_threshold=0.4, vector_weight=0.7, keyword_weight=0.3),
        )

        # c3 vector 0.8 plus keywords, c2 vector 1.0 alone
        assert [c.chunk_id for c in chunks] == ["c2", "c3", "c1"]
        assert chunks[1].similarity == pytest.approx(0.7 * 0.8 + 0.3 * 0.2)
        assert all(c.locale == "en" for c in chunks)

    @pytest.mark.asyncio
    async def test_short_tokens_only_uses_vector_signal(self, chunk_store):
        retriever = Retriever(FakeEmbeddingClient(), chunk_store)

        chunks = await retriever.hybrid_retrieve_chunks(
            "is it", None, QueryConfig(similarity_threshold=0.5)
        )

        assert [c.chunk_id for c in chunks] == ["c1", "c4"]
        assert chunks[0].similarity == pytest.approx(0.7)

    @pytest.mark.asyncio
    async def test_failure_is_wrapped(self, chunk_store):
        retriever = Retriever(FakeEmbeddingClient(error=RuntimeError("boom")), chunk_store)

        with pytest.raises(RetrievalError, match="Hybrid retrieval failed: boom"):
            await retriever.hybrid_retrieve_chunks("staff", None, QueryConfig())
