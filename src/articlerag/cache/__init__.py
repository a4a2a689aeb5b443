"""
Response cache for ArticleRAG.

- store: CacheStore interface with Redis and in-memory implementations
- service: CacheService (key derivation, TTL policy, invalidation, metrics)
"""

from articlerag.cache.store import (
    CacheStore,
    InMemoryCacheStore,
    RedisCacheStore,
    get_redis_client,
)
from articlerag.cache.service import CacheService

__all__ = [
    "CacheStore",
    "InMemoryCacheStore",
    "RedisCacheStore",
    "get_redis_client",
    "CacheService",
]
