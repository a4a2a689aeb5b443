#!/usr/bin/env python3
"""
CLI for ArticleRAG.

Usage:
    articlerag ask --query "What is a staff engineer?"
    articlerag ask --query "React 效能優化" --hybrid --locale zh
    articlerag cache_metrics
    articlerag cache_clear --pattern "query:en:*"
    articlerag cache_maintenance
"""

import asyncio
import json
import logging
import os
import sys
import traceback

import fire

from articlerag.cache import CacheService, RedisCacheStore
from articlerag.components.citation import format_sources_for_display
from articlerag.config import Config
from articlerag.exceptions import ConfigurationError, GenerationError, RetrievalError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def _set_debug(debug: bool) -> None:
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logging.getLogger("articlerag").setLevel(logging.DEBUG)
        logger.debug("Debug logging enabled")


def _cache_service(env_file: str = None) -> CacheService:
    config = Config.from_env(env_file)
    return CacheService(
        RedisCacheStore(
            url=config.redis_url, connect_timeout=config.redis_connect_timeout
        )
    )


async def _with_cache(env_file, action):
    cache = _cache_service(env_file)
    try:
        return await action(cache)
    finally:
        await cache.close()


def ask(
    query: str,
    locale: str = None,
    hybrid: bool = False,
    # QueryConfig overrides
    top_k: int = None,
    threshold: float = None,
    model: str = None,
    temperature: float = None,
    max_context_tokens: int = None,
    max_response_tokens: int = None,
    # Behaviour
    no_cache: bool = False,
    output_json: str = None,
    env_file: str = None,
    debug: bool = False,
):
    """
    Answer a question from the ingested articles.

    Args:
        query: User question (required)
        locale: Restrict retrieval to one locale (zh, en)
        hybrid: Use hybrid (vector + keyword) search
        top_k: Chunks to retrieve
        threshold: Fixed similarity threshold (disables the optimizer)
        model: Completion model
        temperature: Generation temperature
        max_context_tokens: Context token budget
        max_response_tokens: Max answer tokens
        no_cache: Skip the Redis response cache
        output_json: Save the response to JSON
        env_file: Path to .env file
        debug: Enable debug logging
    """
    _set_debug(debug)

    if not query or not str(query).strip():
        logger.error("Query is required")
        print("ERROR: --query is required and cannot be empty")
        sys.exit(1)

    overrides = {
        "top_k": top_k,
        "similarity_threshold": threshold,
        "model": model,
        "temperature": temperature,
        "max_context_tokens": max_context_tokens,
        "max_response_tokens": max_response_tokens,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None} or None

    async def _run():
        from articlerag.pipelines import QueryPipeline

        pipeline = QueryPipeline(
            config=Config.from_env(env_file),
            cache_enabled=False if no_cache else None,
        )
        try:
            return await pipeline.run(
                str(query),
                locale=locale,
                use_hybrid_search=hybrid,
                config=overrides,
            )
        finally:
            await pipeline.close()

    try:
        result = asyncio.run(_run())

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        print(f"\nERROR: {e}")
        print("\nCheck your configuration:")
        print("  - Ensure OPENAI_API_KEY is set")
        print("  - Check QDRANT_URL and QDRANT_COLLECTION")
        sys.exit(1)

    except (RetrievalError, GenerationError) as e:
        logger.error(f"Upstream service error: {e}")
        print(f"\nERROR: {e}")
        print("\nCheck your connections:")
        print("  - Is Qdrant server running?")
        print("  - Is the OpenAI API reachable?")
        sys.exit(1)

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        print("\nInterrupted by user")
        sys.exit(130)

    except Exception as e:
        logger.error(f"Query failed: {type(e).__name__}: {e}")
        logger.debug(traceback.format_exc())
        print(f"\nERROR: Query failed: {e}")
        sys.exit(1)

    display_locale = result.metadata.query_locale or "en"

    print(f"\n{'='*80}")
    print("ANSWER")
    print(f"{'='*80}")
    print(result.answer)
    print(format_sources_for_display(result.sources, display_locale))

    result_dict = result.model_dump(mode="json")
    print("\n[METADATA]")
    print(json.dumps(result_dict["metadata"], indent=2, ensure_ascii=False))

    if output_json:
        try:
            os.makedirs(os.path.dirname(output_json) or ".", exist_ok=True)
            with open(output_json, "w", encoding="utf-8") as f:
                json.dump(result_dict, f, indent=2, ensure_ascii=False)
            print(f"\nResults saved to: {output_json}")
        except OSError as e:
            logger.warning(f"Failed to save output JSON: {e}")
            print(f"\nWarning: Failed to save results to {output_json}: {e}")


def cache_info(env_file: str = None, debug: bool = False):
    """Show Redis memory info."""
    _set_debug(debug)
    return asyncio.run(_with_cache(env_file, lambda cache: cache.get_info()))


def cache_metrics(env_file: str = None, debug: bool = False):
    """Show cache hits, misses, errors and hit rate."""
    _set_debug(debug)
    metrics = asyncio.run(_with_cache(env_file, lambda cache: cache.get_metrics()))
    return metrics.model_dump()


def cache_clear(pattern: str = None, env_file: str = None, debug: bool = False):
    """
    Delete cached responses.

    Args:
        pattern: Key glob under the cache prefix (e.g. "query:zh:*"); all keys if omitted
        env_file: Path to .env file
        debug: Enable debug logging
    """
    _set_debug(debug)

    async def _clear(cache: CacheService):
        if pattern:
            return await cache.invalidate_pattern(pattern)
        return await cache.clear()

    deleted = asyncio.run(_with_cache(env_file, _clear))
    print(f"Deleted {deleted} keys")
    return deleted


def cache_maintenance(env_file: str = None, debug: bool = False):
    """Run the low-hit-rate and size checks once."""
    _set_debug(debug)

    async def _maintain(cache: CacheService):
        await cache.run_maintenance()
        return await cache.get_metrics()

    metrics = asyncio.run(_with_cache(env_file, _maintain))
    return metrics.model_dump()


def main():
    """Main entry point."""
    fire.Fire(
        {
            "ask": ask,
            "cache_info": cache_info,
            "cache_metrics": cache_metrics,
            "cache_clear": cache_clear,
            "cache_maintenance": cache_maintenance,
        }
    )


if __name__ == "__main__":
    main()
