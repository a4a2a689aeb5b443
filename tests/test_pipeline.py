"""
End-to-end tests for the query pipeline with fake collaborators.
"""

import pytest

from articlerag.cache import CacheService, InMemoryCacheStore
from articlerag.exceptions import GenerationError, RetrievalError
from articlerag.models import (
    CompletionResult,
    EnhancementConfig,
    QueryInput,
    ThresholdConfig,
)
from articlerag.pipelines import QueryPipeline, query
from articlerag.pipelines.query import NO_CONTENT_MESSAGES

from conftest import FakeCompletionClient, FakeEmbeddingClient

LONG_QUESTION = "How do staff engineers set technical direction?"
UNKNOWN_QUESTION = "What is the airspeed velocity of an unladen swallow?"
HUNDRED_CHAR_QUESTION = (
    "How do staff engineers set technical direction across several teams "
    "while still writing production code?"
)


def make_pipeline(app_config, chunk_store, embedding=None, completion=None, **kwargs):
    return QueryPipeline(
        config=app_config,
        embedding_client=embedding or FakeEmbeddingClient(),
        completion_client=completion or FakeCompletionClient(),
        store=chunk_store,
        **kwargs,
    )


# =============================================================================
# Happy path
# =============================================================================


class TestQueryPipeline:
    """Test the full vector-mode flow."""

    @pytest.mark.asyncio
    async def test_answer_sources_and_metadata(self, app_config, chunk_store):
        completion = FakeCompletionClient()
        pipeline = make_pipeline(app_config, chunk_store, completion=completion)

        response = await pipeline.run(LONG_QUESTION)

        assert response.answer == "Answer citing [1]."
        assert [s.article_slug for s in response.sources] == [
            "staff-engineer",
            "system-design",
            "tech-lead",
        ]
        assert [s.id for s in response.sources] == [1, 2, 3]
        assert response.sources[0].url == "/posts/staff-engineer"

        metadata = response.metadata
        assert metadata.query_locale == "en"
        assert metadata.chunks_retrieved == 3
        assert metadata.chunks_used == 3
        assert metadata.model == "gpt-4o-mini"
        assert metadata.search_method == "vector"
        assert metadata.similarity_threshold == pytest.approx(0.3)
        assert metadata.query_enhancement is None
        assert metadata.cached is None
        assert metadata.tokens_used.context == 450
        assert metadata.tokens_used.prompt == 120
        assert metadata.tokens_used.completion == 30
        assert metadata.tokens_used.total == 150

        # only generation hit the completion client
        assert len(completion.calls) == 1
        assert LONG_QUESTION in completion.calls[0]["user_prompt"]
        assert "[1] Article: Staff Engineer Path" in completion.calls[0]["user_prompt"]

    @pytest.mark.asyncio
    async def test_accepts_query_input(self, app_config, chunk_store):
        pipeline = make_pipeline(app_config, chunk_store)

        response = await pipeline.run(QueryInput(query=LONG_QUESTION, locale="en"))

        assert {s.locale for s in response.sources} == {"en"}

    @pytest.mark.asyncio
    async def test_caller_threshold_wins(self, app_config, chunk_store):
        pipeline = make_pipeline(app_config, chunk_store)

        response = await pipeline.run(
            LONG_QUESTION, config={"similarity_threshold": 0.9, "top_k": None}
        )

        assert response.metadata.similarity_threshold == 0.9
        assert response.metadata.chunks_retrieved == 1

    @pytest.mark.asyncio
    async def test_hybrid_mode(self, app_config, chunk_store):
        pipeline = make_pipeline(app_config, chunk_store)

        response = await pipeline.run(LONG_QUESTION, use_hybrid_search=True)

        assert response.metadata.search_method == "hybrid"
        assert response.metadata.similarity_threshold == pytest.approx(0.25)
        assert response.sources[0].article_slug == "staff-engineer"

    @pytest.mark.asyncio
    async def test_invalid_citations_are_returned_as_is(self, app_config, chunk_store):
        pipeline = make_pipeline(
            app_config, chunk_store, completion=FakeCompletionClient("See [9].")
        )

        response = await pipeline.run(LONG_QUESTION)

        assert response.answer == "See [9]."

    @pytest.mark.asyncio
    async def test_records_performance(self, app_config, chunk_store):
        pipeline = make_pipeline(app_config, chunk_store)

        await pipeline.run(LONG_QUESTION)

        history = pipeline.threshold_optimizer.export_history()
        assert len(history) == 1
        assert history[0].query == LONG_QUESTION
        assert history[0].result_count == 3

    @pytest.mark.asyncio
    async def test_empty_query_rejected(self, app_config, chunk_store):
        pipeline = make_pipeline(app_config, chunk_store)

        with pytest.raises(ValueError):
            await pipeline.run("   ")

    @pytest.mark.asyncio
    async def test_module_level_query(self, app_config, chunk_store):
        pipeline = make_pipeline(app_config, chunk_store)

        response = await query(LONG_QUESTION, pipeline=pipeline)

        assert response.metadata.chunks_used == 3


# =============================================================================
# Enhancement
# =============================================================================


class TestEnhancementInPipeline:
    """Test enhanced-query substitution for short questions."""

    @pytest.mark.asyncio
    async def test_short_query_is_enhanced_and_gets_lower_threshold(self, app_config, chunk_store):
        embedding = FakeEmbeddingClient(
            vectors={"artificial intelligence engineering": [1.0, 0.0]},
            default=[-1.0, 0.0],
        )
        completion = FakeCompletionClient(
            '{"enhanced_query": "artificial intelligence engineering", "confidence": 0.9}',
            CompletionResult(text="AI answer [1].", total_tokens=10),
        )
        pipeline = make_pipeline(app_config, chunk_store, embedding, completion)

        assert pipeline.enhancer.should_enhance("AI")
        response = await pipeline.run("AI")

        assert embedding.calls == ["artificial intelligence engineering"]
        assert response.answer == "AI answer [1]."
        assert response.metadata.query_enhancement.confidence == 0.9
        # the model answers the original question
        assert "===== User Question =====\nAI\n" in completion.calls[1]["user_prompt"]

        long_threshold = pipeline.threshold_optimizer.calculate_optimal_threshold(
            HUNDRED_CHAR_QUESTION, len(HUNDRED_CHAR_QUESTION), "en"
        )
        assert response.metadata.similarity_threshold < long_threshold

    @pytest.mark.asyncio
    async def test_low_confidence_keeps_original_query(self, app_config, chunk_store):
        embedding = FakeEmbeddingClient()
        completion = FakeCompletionClient("artificial intelligence", "Answer [1].")
        pipeline = make_pipeline(app_config, chunk_store, embedding, completion)

        response = await pipeline.run("AI")

        assert embedding.calls == ["AI"]
        assert response.metadata.query_enhancement.confidence == 0.3

    @pytest.mark.asyncio
    async def test_enhancement_failure_is_not_fatal(self, app_config, chunk_store):
        pipeline = make_pipeline(app_config, chunk_store)
        pipeline.enhancer.completion_client = FakeCompletionClient(error=RuntimeError("down"))

        response = await pipeline.run("AI")

        assert response.answer == "Answer citing [1]."
        assert response.metadata.query_enhancement.confidence == 0.0


# =============================================================================
# Empty retrieval and failures
# =============================================================================


class TestEmptyRetrieval:
    """Test the no-content response."""

    @pytest.mark.asyncio
    async def test_english_no_content(self, app_config, chunk_store):
        completion = FakeCompletionClient()
        pipeline = make_pipeline(
            app_config, chunk_store, FakeEmbeddingClient(default=[-1.0, 0.0]), completion
        )

        response = await pipeline.run(UNKNOWN_QUESTION)

        assert response.answer == NO_CONTENT_MESSAGES["en"]
        assert response.sources == []
        assert response.metadata.chunks_retrieved == 0
        assert response.metadata.chunks_used == 0
        tokens = response.metadata.tokens_used
        assert (tokens.context, tokens.prompt, tokens.completion, tokens.total) == (0, 0, 0, 0)
        assert completion.calls == []

    @pytest.mark.asyncio
    async def test_chinese_no_content(self, app_config, chunk_store):
        pipeline = make_pipeline(
            app_config,
            chunk_store,
            FakeEmbeddingClient(default=[-1.0, 0.0]),
            enhancement_config=EnhancementConfig(enabled=False),
        )

        response = await pipeline.run("什麼是量子計算的未來發展方向")

        assert response.metadata.query_locale == "zh"
        assert response.answer == NO_CONTENT_MESSAGES["zh"]


class BrokenOptimizer:
    """Threshold optimizer whose every call raises."""

    def calculate_optimal_threshold(self, *args, **kwargs):
        raise RuntimeError("optimizer down")

    def record_performance(self, *args, **kwargs):
        raise RuntimeError("optimizer down")


class TestFailures:
    """Test upstream failure handling."""

    @pytest.mark.asyncio
    async def test_retrieval_failure(self, app_config, chunk_store):
        pipeline = make_pipeline(
            app_config, chunk_store, FakeEmbeddingClient(error=RuntimeError("down"))
        )

        with pytest.raises(RetrievalError):
            await pipeline.run(LONG_QUESTION)

    @pytest.mark.asyncio
    async def test_generation_failure(self, app_config, chunk_store):
        pipeline = make_pipeline(
            app_config, chunk_store, completion=FakeCompletionClient(error=RuntimeError("down"))
        )

        with pytest.raises(GenerationError):
            await pipeline.run(LONG_QUESTION)

    @pytest.mark.asyncio
    async def test_optimizer_failure_uses_base_threshold(self, app_config, chunk_store):
        pipeline = make_pipeline(
            app_config, chunk_store, threshold_config=ThresholdConfig(base_threshold=0.7)
        )
        pipeline._threshold_optimizer = BrokenOptimizer()

        response = await pipeline.run(LONG_QUESTION)

        assert response.metadata.similarity_threshold == 0.7
        assert response.metadata.chunks_retrieved == 2
        assert response.answer == "Answer citing [1]."


# =============================================================================
# Caching
# =============================================================================


class TestPipelineCache:
    """Test cache lookup and store around the pipeline."""

    @pytest.mark.asyncio
    async def test_second_run_is_served_from_cache(self, app_config, chunk_store):
        embedding = FakeEmbeddingClient()
        completion = FakeCompletionClient()
        cache = CacheService(InMemoryCacheStore())
        pipeline = make_pipeline(app_config, chunk_store, embedding, completion, cache=cache)

        first = await pipeline.run(LONG_QUESTION)
        second = await pipeline.run("  how do STAFF engineers set technical direction? ")

        assert first.metadata.cached is None
        assert second.metadata.cached is True
        assert second.answer == first.answer
        assert len(embedding.calls) == 1
        assert len(completion.calls) == 1
        assert (await cache.get_metrics()).hits == 1

    @pytest.mark.asyncio
    async def test_overrides_are_part_of_the_key(self, app_config, chunk_store):
        completion = FakeCompletionClient()
        cache = CacheService(InMemoryCacheStore())
        pipeline = make_pipeline(app_config, chunk_store, completion=completion, cache=cache)

        await pipeline.run(LONG_QUESTION)
        await pipeline.run(LONG_QUESTION, config={"top_k": 2})

        assert len(completion.calls) == 2

    @pytest.mark.asyncio
    async def test_empty_results_are_not_cached(self, app_config, chunk_store):
        cache = CacheService(InMemoryCacheStore())
        pipeline = make_pipeline(
            app_config, chunk_store, FakeEmbeddingClient(default=[-1.0, 0.0]), cache=cache
        )

        await pipeline.run(UNKNOWN_QUESTION)
        await pipeline.run(UNKNOWN_QUESTION)

        metrics = await cache.get_metrics()
        assert (metrics.hits, metrics.misses) == (0, 2)

    @pytest.mark.asyncio
    async def test_cache_can_be_disabled(self, app_config, chunk_store):
        completion = FakeCompletionClient()
        pipeline = make_pipeline(
            app_config,
            chunk_store,
            completion=completion,
            cache=CacheService(InMemoryCacheStore()),
            cache_enabled=False,
        )

        await pipeline.run(LONG_QUESTION)
        await pipeline.run(LONG_QUESTION)

        assert pipeline.cache is None
        assert len(completion.calls) == 2
