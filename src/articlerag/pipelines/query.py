"""
Query Pipeline for ArticleRAG.
Flow: Cache → Enhance → Threshold → Retrieve → Augment → Generate → Cite
"""

import logging
import time
from typing import Any, Dict, Optional, Union

from articlerag.components.augmentation import build_context
from articlerag.components.citation import build_sources, validate_citations
from articlerag.models import (
    QueryConfig,
    QueryEnhancement,
    QueryInput,
    QueryResponse,
    ResponseMetadata,
    TokenUsage,
)
from articlerag.pipelines.base import BasePipeline
from articlerag.utils import detect_query_language

# Configure logging
logger = logging.getLogger(__name__)

NO_CONTENT_MESSAGES = {
    "zh": "抱歉，我沒有找到與您問題相關的內容。這個問題可能超出了現有文章的範圍。",
    "en": (
        "Sorry, I could not find any relevant content for your question. "
        "This topic may be outside the scope of the available articles."
    ),
}

# Enhanced text replaces the query for retrieval only above this confidence
ENHANCEMENT_CONFIDENCE_CUTOFF = 0.5


def no_content_message(locale: str) -> str:
    return NO_CONTENT_MESSAGES["zh"] if locale == "zh" else NO_CONTENT_MESSAGES["en"]


class QueryPipeline(BasePipeline):
    """
    Question answering over ingested articles.

    Stages run sequentially per request. The cache, the enhancer and the
    threshold optimizer degrade silently; retrieval and generation failures
    propagate.
    """

    async def run(
        self,
        query: Union[str, QueryInput],
        locale: Optional[str] = None,
        use_hybrid_search: bool = False,
        config: Optional[Dict[str, Any]] = None,
    ) -> QueryResponse:
        """
        Answer a question.

        Args:
            query: Question text or a complete QueryInput
            locale: Restrict retrieval to this locale (detected for labels if omitted)
            use_hybrid_search: Fuse vector and keyword scores
            config: QueryConfig overrides; None values are ignored

        Returns:
            QueryResponse with answer, sources and metadata

        Raises:
            ValueError: If the query is empty
            RetrievalError: If embedding or store lookup fails
            GenerationError: If the completion fails or returns no text
        """
        if isinstance(query, QueryInput):
            query_input = query
        else:
            query_input = QueryInput(
                query=query,
                locale=locale,
                use_hybrid_search=use_hybrid_search,
                config=config,
            )

        start_time = time.monotonic()
        question = query_input.query
        overrides = query_input.config
        query_config = self.query_config.merged(overrides)
        search_method = "hybrid" if query_input.use_hybrid_search else "vector"

        query_locale = query_input.locale or detect_query_language(question)
        logger.info(f"Query language detected: {query_locale}")
        logger.info(f"Search method: {search_method}")

        # Cache lookup
        cache = self.cache
        if cache is not None:
            cached = await cache.get(
                question, query_locale, query_input.use_hybrid_search, overrides
            )
            if cached is not None:
                return cached

        # Query enhancement
        enhancement = await self._enhance(question)
        retrieval_query = question
        if enhancement is not None and enhancement.confidence > ENHANCEMENT_CONFIDENCE_CUTOFF:
            retrieval_query = enhancement.enhanced_query
            logger.info(f"Using enhanced query for retrieval: '{retrieval_query}'")

        # Threshold
        query_config = self._resolve_threshold(
            question, query_locale, query_input.use_hybrid_search, query_config, overrides
        )
        logger.info(
            f"Using config: topK={query_config.top_k}, model={query_config.model}, "
            f"threshold={query_config.similarity_threshold:.3f}"
        )

        # Retrieval
        logger.info("=== Step 1: Retrieval ===")
        if query_input.use_hybrid_search:
            chunks = await self.retriever.hybrid_retrieve_chunks(
                retrieval_query, query_input.locale, query_config
            )
        else:
            chunks = await self.retriever.retrieve_relevant_chunks(
                retrieval_query, query_input.locale, query_config
            )

        try:
            self.threshold_optimizer.record_performance(
                question, query_config.similarity_threshold, chunks
            )
        except Exception as e:
            logger.warning(f"Failed to record threshold performance: {e}")

        metadata = ResponseMetadata(
            query_locale=query_locale,
            chunks_retrieved=len(chunks),
            model=query_config.model,
            search_method=search_method,
            similarity_threshold=query_config.similarity_threshold,
            query_enhancement=enhancement,
        )

        if not chunks:
            logger.warning("No relevant chunks found")
            metadata.response_time = self._elapsed_ms(start_time)
            return QueryResponse(
                answer=no_content_message(query_locale),
                sources=[],
                metadata=metadata,
            )

        # Augmentation
        logger.info("=== Step 2: Augmentation ===")
        context = build_context(chunks, query_config, query_locale)

        # Generation
        logger.info("=== Step 3: Generation ===")
        generation = await self.generator.generate_answer(
            question, context.formatted_context, query_config
        )

        # Citation
        logger.info("=== Step 4: Citation ===")
        sources = build_sources(context.chunks, self.config.article_base_url)
        if not validate_citations(generation.answer, sources):
            logger.warning("Some citations in answer are invalid")

        metadata.chunks_used = len(context.chunks)
        metadata.tokens_used = TokenUsage(
            context=context.total_tokens,
            prompt=generation.tokens_used.prompt,
            completion=generation.tokens_used.completion,
            total=generation.tokens_used.total,
        )
        metadata.response_time = self._elapsed_ms(start_time)
        logger.info(f"Total query time: {metadata.response_time}ms")

        response = QueryResponse(
            answer=generation.answer,
            sources=sources,
            metadata=metadata,
        )

        if cache is not None:
            await cache.set(
                question,
                query_locale,
                query_input.use_hybrid_search,
                response,
                overrides,
            )

        return response

    async def _enhance(self, question: str) -> Optional[QueryEnhancement]:
        if not self.enhancer.should_enhance(question):
            return None
        logger.info("=== Step 0: Query enhancement ===")
        return await self.enhancer.enhance(question)

    def _resolve_threshold(
        self,
        question: str,
        locale: str,
        use_hybrid_search: bool,
        query_config: QueryConfig,
        overrides: Optional[Dict[str, Any]],
    ) -> QueryConfig:
        """Threshold fixed by the caller wins; otherwise ask the optimizer."""
        if overrides and overrides.get("similarity_threshold") is not None:
            return query_config

        try:
            threshold = self.threshold_optimizer.calculate_optimal_threshold(
                question,
                len(question.strip()),
                locale,
                use_hybrid_search,
            )
        except Exception as e:
            threshold = self.threshold_config.base_threshold
            logger.warning(
                f"Threshold optimization failed, using base threshold {threshold}: {e}"
            )
        return query_config.model_copy(update={"similarity_threshold": threshold})

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int((time.monotonic() - start_time) * 1000)


# Singleton for convenience
_pipeline: Optional[QueryPipeline] = None


def get_pipeline(**kwargs) -> QueryPipeline:
    """Get or create the default pipeline singleton."""
    global _pipeline
    if _pipeline is None:
        _pipeline = QueryPipeline(**kwargs)
    return _pipeline


async def query(
    query: Union[str, QueryInput],
    locale: Optional[str] = None,
    use_hybrid_search: bool = False,
    config: Optional[Dict[str, Any]] = None,
    pipeline: Optional[QueryPipeline] = None,
) -> QueryResponse:
    """
    Convenience function to answer a question.

    Args:
        query: Question text or QueryInput
        locale: Optional locale filter
        use_hybrid_search: Fuse vector and keyword scores
        config: QueryConfig overrides
        pipeline: Optional pre-built pipeline (default: get_pipeline())

    Returns:
        QueryResponse
    """
    pipeline = pipeline or get_pipeline()
    return await pipeline.run(
        query,
        locale=locale,
        use_hybrid_search=use_hybrid_search,
        config=config,
    )
