"""
Research Result Caching

Redis-backed cache for keyword research sessions:
- RedisCache: async Redis operations with compression and a circuit breaker
- ResearchCache: per-user/per-session keys with component TTLs

Usage:
    cache = ResearchCache(RedisCache())
    await cache.cache_session_result(user_id, session_id, result)
    result = await cache.get_session_result(user_id, session_id)
"""

from src.cache.config import CacheConfig, CacheTTL, get_cache_config
from src.cache.compression import CacheCompressor, serialize_value, deserialize_value
from src.cache.redis_cache import RedisCache, CircuitBreaker, CacheStats
from src.cache.research_cache import ResearchCache, SessionCacheInfo

__all__ = [
    # Config
    "CacheConfig",
    "CacheTTL",
    "get_cache_config",
    # Compression
    "CacheCompressor",
    "serialize_value",
    "deserialize_value",
    # Redis
    "RedisCache",
    "CircuitBreaker",
    "CacheStats",
    # Research
    "ResearchCache",
    "SessionCacheInfo",
]
