"""
Cache Service for ArticleRAG.
Caches full query responses with quality-aware TTL and invalidation policy.

Key layout:
    articles-assistant:query:{locale}:{method}:{config_hash}:{query_hash}
    articles-assistant:metrics   (hash: hits, misses, errors)

Every public method degrades instead of raising: a failing store turns reads
into misses and writes into no-ops.
"""

import asyncio
import json
import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from articlerag.cache.store import CacheStore
from articlerag.models import (
    CacheMetrics,
    CacheTtlConfig,
    InvalidationStrategy,
    QueryResponse,
)
from articlerag.utils import md5_hex, normalize_query

# Configure logging
logger = logging.getLogger(__name__)

PREFIX = "articles-assistant"
METRICS_KEY = f"{PREFIX}:metrics"

SHORT_QUERY_LENGTH = 10
LONG_QUERY_LENGTH = 50
HIGH_QUALITY_SIMILARITY = 0.7
LOW_QUALITY_SIMILARITY = 0.5


class CacheService:
    """Response cache in front of the query pipeline."""

    def __init__(
        self,
        store: CacheStore,
        ttl_config: Optional[CacheTtlConfig] = None,
        strategy: Optional[InvalidationStrategy] = None,
    ):
        """
        Initialize cache service.

        Args:
            store: Backing key-value store
            ttl_config: TTL policy (default: CacheTtlConfig())
            strategy: Invalidation triggers (default: InvalidationStrategy())
        """
        self.store = store
        self.ttl_config = ttl_config or CacheTtlConfig()
        self.strategy = strategy or InvalidationStrategy()

    @staticmethod
    def generate_cache_key(
        query: str,
        locale: str,
        use_hybrid_search: bool,
        config: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Derive the cache key for a query.

        Queries that differ only in case or whitespace map to the same key.
        """
        search_method = "hybrid" if use_hybrid_search else "vector"
        config_hash = (
            md5_hex(json.dumps(config, sort_keys=True, default=str))[:8]
            if config
            else "default"
        )
        query_hash = md5_hex(normalize_query(query))
        return f"{PREFIX}:query:{locale}:{search_method}:{config_hash}:{query_hash}"

    async def get(
        self,
        query: str,
        locale: str,
        use_hybrid_search: bool,
        config: Optional[Dict[str, Any]] = None,
    ) -> Optional[QueryResponse]:
        """Cached response, or None on miss or any cache error."""
        try:
            key = self.generate_cache_key(query, locale, use_hybrid_search, config)
            cached = await self.store.get(key)

            if cached:
                response = QueryResponse.model_validate_json(cached)
                await self._increment_metric("hits")
                logger.info(f"Cache hit for query: '{query[:50]}' ({key})")
                return response

            await self._increment_metric("misses")
            logger.info(f"Cache miss for query: '{query[:50]}' ({key})")
            return None

        except Exception as e:
            await self._increment_metric("errors")
            logger.error(f"Cache get error: {e}")
            return None

    def calculate_ttl(
        self, query: str, use_hybrid_search: bool, result: QueryResponse
    ) -> int:
        """
        Pick a TTL from query length, mean source similarity and search method.

        Rules are applied in order, each one min/max-ing or replacing the
        running value, then the result is clamped to [min, max].
        """
        cfg = self.ttl_config
        ttl = cfg.default

        query_length = len(query.strip())
        if query_length < SHORT_QUERY_LENGTH:
            ttl = min(ttl, cfg.short_query)
        elif query_length >= LONG_QUERY_LENGTH:
            ttl = max(ttl, cfg.long_query)
        else:
            ttl = cfg.medium_query

        if result.sources:
            avg_similarity = sum(s.similarity for s in result.sources) / len(
                result.sources
            )
            if avg_similarity > HIGH_QUALITY_SIMILARITY:
                ttl = max(ttl, cfg.high_quality)
            elif avg_similarity < LOW_QUALITY_SIMILARITY:
                ttl = min(ttl, cfg.low_quality)
            else:
                ttl = cfg.medium_quality

        if use_hybrid_search:
            ttl = max(ttl, cfg.hybrid_search)
        else:
            ttl = max(ttl, cfg.vector_search)

        return max(cfg.min, min(cfg.max, ttl))

    async def set(
        self,
        query: str,
        locale: str,
        use_hybrid_search: bool,
        result: QueryResponse,
        config: Optional[Dict[str, Any]] = None,
        custom_ttl: Optional[int] = None,
    ) -> None:
        """Store a response with cache metadata embedded. Never raises."""
        try:
            key = self.generate_cache_key(query, locale, use_hybrid_search, config)
            ttl = custom_ttl or self.calculate_ttl(query, use_hybrid_search, result)

            cached_result = result.model_copy(
                update={
                    "metadata": result.metadata.model_copy(
                        update={
                            "cached": True,
                            "cached_at": datetime.now(timezone.utc).isoformat(),
                            "cache_ttl": ttl,
                        }
                    )
                }
            )

            await self.store.set_with_ttl(key, ttl, cached_result.model_dump_json())

            avg_similarity = (
                f"{sum(s.similarity for s in result.sources) / len(result.sources):.3f}"
                if result.sources
                else "N/A"
            )
            logger.info(
                f"Cache set for query: '{query[:50]}' (key ...{key[-20:]}, "
                f"ttl={ttl}, avgSimilarity={avg_similarity})"
            )

        except Exception as e:
            await self._increment_metric("errors")
            logger.error(f"Cache set error: {e}")

    async def invalidate_pattern(self, pattern: str) -> int:
        """Delete keys matching PREFIX:pattern; returns the number deleted."""
        try:
            keys = await self.store.keys(f"{PREFIX}:{pattern}")
            if not keys:
                return 0
            deleted = await self.store.delete(*keys)
            logger.info(f"Cache invalidated: pattern={pattern}, deleted={deleted}")
            return deleted
        except Exception as e:
            logger.error(f"Cache invalidation error: {e}")
            return 0

    async def clear(self) -> int:
        """Delete every key under the prefix, metrics included."""
        try:
            keys = await self.store.keys(f"{PREFIX}:*")
            if not keys:
                return 0
            deleted = await self.store.delete(*keys)
            logger.info(f"All cache cleared: {len(keys)} keys")
            return deleted
        except Exception as e:
            logger.error(f"Cache clear error: {e}")
            return 0

    async def get_metrics(self) -> CacheMetrics:
        try:
            metrics = await self.store.hgetall(METRICS_KEY)
            hits = int(metrics.get("hits", 0))
            misses = int(metrics.get("misses", 0))
            errors = int(metrics.get("errors", 0))
            total = hits + misses
            return CacheMetrics(
                hits=hits,
                misses=misses,
                errors=errors,
                hit_rate=hits / total if total > 0 else 0.0,
            )
        except Exception as e:
            logger.error(f"Cache metrics error: {e}")
            return CacheMetrics()

    async def _increment_metric(self, metric: str) -> None:
        try:
            await self.store.hincrby(METRICS_KEY, metric, 1)
        except Exception as e:
            logger.error(f"Cache metric increment error: {e}")

    async def reset_metrics(self) -> None:
        try:
            await self.store.delete(METRICS_KEY)
            logger.info("Cache metrics reset")
        except Exception as e:
            logger.error(f"Cache metrics reset error: {e}")

    async def get_info(self) -> Dict[str, Any]:
        """Memory statistics reported by the store ({} on error)."""
        try:
            return dict(await self.store.info_memory())
        except Exception as e:
            logger.error(f"Cache info error: {e}")
            return {}

    async def invalidate_on_content_update(self) -> int:
        """Drop every cached query after new content is ingested."""
        if not self.strategy.on_content_update:
            return 0
        deleted = 0
        for pattern in self.strategy.patterns:
            deleted += await self.invalidate_pattern(pattern)
        logger.info(f"Cache invalidated due to content update: deleted={deleted}")
        return deleted

    async def check_and_invalidate_on_low_hit_rate(self) -> bool:
        """Clear the cache and metrics if the hit rate fell below the floor."""
        metrics = await self.get_metrics()
        total = metrics.hits + metrics.misses
        threshold = self.strategy.on_low_hit_rate

        if metrics.hit_rate < threshold and total >= self.strategy.min_requests:
            logger.warning(
                f"Cache hit rate below threshold, invalidating cache: "
                f"hitRate={metrics.hit_rate:.3f}, threshold={threshold}, "
                f"totalRequests={total}"
            )
            await self.clear()
            await self.reset_metrics()
            return True
        return False

    async def check_and_invalidate_on_size_exceeded(self) -> int:
        """Evict the entries closest to expiry when memory use is over the limit."""
        try:
            info = await self.get_info()
            used_memory_mb = int(info.get("used_memory", 0)) / 1024 / 1024
            threshold = self.strategy.on_size_exceeded

            if used_memory_mb > threshold:
                logger.warning(
                    f"Cache size exceeded threshold, performing cleanup: "
                    f"usedMemoryMb={used_memory_mb:.2f}, threshold={threshold}"
                )
                return await self._cleanup_oldest_entries()
        except Exception as e:
            logger.error(f"Cache size check error: {e}")
        return 0

    async def _cleanup_oldest_entries(self) -> int:
        try:
            keys = await self.store.keys(f"{PREFIX}:query:*")
            if not keys:
                return 0

            ttls = await asyncio.gather(*(self.store.ttl(key) for key in keys))
            by_ttl = sorted(zip(keys, ttls), key=lambda item: item[1])
            count = math.ceil(len(by_ttl) * self.strategy.eviction_fraction)
            to_remove = [key for key, _ in by_ttl[:count]]

            removed = await self.store.delete(*to_remove)
            logger.info(f"Cleaned up oldest cache entries: removed={removed}")
            return removed
        except Exception as e:
            logger.error(f"Cache cleanup error: {e}")
            return 0

    async def run_maintenance(self) -> None:
        """Run the hit-rate and size checks concurrently."""
        try:
            await asyncio.gather(
                self.check_and_invalidate_on_low_hit_rate(),
                self.check_and_invalidate_on_size_exceeded(),
            )
        except Exception as e:
            logger.error(f"Cache maintenance error: {e}")

    def update_config(self, **changes) -> CacheTtlConfig:
        self.ttl_config = self.ttl_config.model_copy(update=changes)
        logger.info(f"Cache configuration updated: {changes}")
        return self.ttl_config

    def get_config(self) -> CacheTtlConfig:
        return self.ttl_config.model_copy()

    async def close(self) -> None:
        await self.store.close()
