"""
Redis Cache Implementation

Async Redis cache with:
- Automatic compression for large values
- Circuit breaker for resilience
- Namespace isolation
- Hit/miss/latency statistics
- Graceful degradation: errors are logged and treated as misses
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

from src.cache.compression import CacheCompressor, deserialize_value, serialize_value
from src.cache.config import CacheConfig, get_cache_config


logger = logging.getLogger(__name__)


@dataclass
class CacheStats:
    """Cache operation statistics."""
    hits: int = 0
    misses: int = 0
    errors: int = 0
    bytes_written: int = 0
    bytes_read: int = 0
    bytes_saved_compression: int = 0
    latency_samples: List[float] = field(default_factory=list)

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    @property
    def avg_latency_ms(self) -> float:
        recent = self.latency_samples[-100:]
        if not recent:
            return 0.0
        return sum(recent) / len(recent) * 1000

    def record_latency(self, seconds: float):
        self.latency_samples.append(seconds)
        if len(self.latency_samples) > 1000:
            self.latency_samples = self.latency_samples[-1000:]


class CircuitBreaker:
    """
    Fails fast after `threshold` consecutive Redis failures.

    After `timeout` seconds the breaker half-opens and lets requests
    through again; one success closes it.
    """

    def __init__(
        self,
        threshold: int = 5,
        timeout: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.threshold = threshold
        self.timeout = timeout
        self.failures = 0
        self.is_open = False
        self.opened_at = 0.0
        self._clock = clock

    def is_available(self) -> bool:
        if not self.is_open:
            return True
        if self._clock() - self.opened_at >= self.timeout:
            self.is_open = False
            self.failures = 0
            logger.info("Circuit breaker half-open, allowing requests")
            return True
        return False

    def record_success(self):
        self.failures = 0
        self.is_open = False

    def record_failure(self):
        self.failures += 1
        if self.failures >= self.threshold and not self.is_open:
            self.is_open = True
            self.opened_at = self._clock()
            logger.warning(
                f"Circuit breaker opened after {self.failures} failures. "
                f"Will retry in {self.timeout} seconds."
            )


class RedisCache:
    """
    Redis cache for JSON-serializable values.

    Every public operation returns a neutral value (None / False / 0 / -2)
    instead of raising when Redis misbehaves.

    Usage:
        cache = RedisCache()
        await cache.set(cache.make_key("user", "u1"), {"a": 1}, timedelta(minutes=5))
        value = await cache.get(cache.make_key("user", "u1"))
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        client: Optional[Redis] = None,
    ):
        self.config = config or get_cache_config()
        self._pool: Optional[ConnectionPool] = None
        self._redis: Optional[Redis] = client
        self._compressor = CacheCompressor(
            enabled=self.config.compression_enabled,
            threshold=self.config.compression_threshold,
        )
        self._circuit_breaker = CircuitBreaker(
            threshold=self.config.circuit_breaker_threshold,
            timeout=self.config.circuit_breaker_timeout,
        ) if self.config.circuit_breaker_enabled else None
        self._stats = CacheStats()
        self._initialized = client is not None
        self._lock = asyncio.Lock()

    async def initialize(self):
        """Create the connection pool and ping Redis."""
        if self._initialized:
            return

        async with self._lock:
            if self._initialized:
                return

            self._pool = ConnectionPool.from_url(
                self.config.redis_url,
                max_connections=self.config.redis_max_connections,
                socket_timeout=self.config.redis_socket_timeout,
                socket_connect_timeout=self.config.redis_connect_timeout,
                decode_responses=False,  # We handle bytes directly
            )
            self._redis = Redis(connection_pool=self._pool)
            await self._redis.ping()
            self._initialized = True
            logger.info(f"Redis cache initialized: {self.config.redis_url}")

    async def _ensure_ready(self) -> bool:
        if not self.config.enabled:
            return False
        if self._initialized:
            return True
        try:
            await self.initialize()
            return True
        except Exception as e:
            self._stats.errors += 1
            logger.error(f"Failed to initialize Redis: {e}")
            return False

    async def close(self):
        """Close Redis connection pool."""
        if self._redis:
            await self._redis.close()
        if self._pool:
            await self._pool.disconnect()
        self._initialized = False
        logger.info("Redis cache closed")

    @asynccontextmanager
    async def _with_circuit_breaker(self):
        if self._circuit_breaker and not self._circuit_breaker.is_available():
            raise RedisConnectionError("Circuit breaker is open")

        try:
            yield
        except RedisError:
            if self._circuit_breaker:
                self._circuit_breaker.record_failure()
            raise
        if self._circuit_breaker:
            self._circuit_breaker.record_success()

    def make_key(self, *parts: Any) -> str:
        """Create namespaced cache key."""
        return f"{self.config.namespace}:{':'.join(str(p) for p in parts)}"

    # =========================================================================
    # Core Operations
    # =========================================================================

    async def get(self, key: str) -> Optional[Any]:
        """Get a value, or None on miss, when disabled, or on any error."""
        if not await self._ensure_ready():
            return None

        start_time = time.monotonic()
        try:
            async with self._with_circuit_breaker():
                data = await self._redis.get(key)
            self._stats.record_latency(time.monotonic() - start_time)

            if data is None:
                self._stats.misses += 1
                return None

            self._stats.hits += 1
            self._stats.bytes_read += len(data)
            return deserialize_value(self._compressor.decompress(data))

        except RedisConnectionError:
            self._stats.errors += 1
            logger.warning(f"Redis unavailable, treating {key} as a miss")
            return None
        except Exception as e:
            self._stats.errors += 1
            logger.error(f"Cache get error for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: Optional[timedelta] = None) -> bool:
        """Set a value with optional TTL. Returns True on success."""
        if not await self._ensure_ready():
            return False

        start_time = time.monotonic()
        try:
            payload, stats = self._compressor.compress(serialize_value(value))
            if stats:
                self._stats.bytes_saved_compression += stats.bytes_saved

            async with self._with_circuit_breaker():
                if ttl:
                    await self._redis.setex(key, ttl, payload)
                else:
                    await self._redis.set(key, payload)

            self._stats.record_latency(time.monotonic() - start_time)
            self._stats.bytes_written += len(payload)
            return True

        except RedisConnectionError:
            self._stats.errors += 1
            logger.warning(f"Redis unavailable, cache set failed for {key}")
            return False
        except Exception as e:
            self._stats.errors += 1
            logger.error(f"Cache set error for {key}: {e}")
            return False

    async def delete(self, *keys: str) -> int:
        """Delete keys. Returns the number removed."""
        if not keys or not await self._ensure_ready():
            return 0
        try:
            async with self._with_circuit_breaker():
                return await self._redis.delete(*keys)
        except Exception as e:
            self._stats.errors += 1
            logger.error(f"Cache delete error for {keys}: {e}")
            return 0

    async def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching pattern. Returns count deleted."""
        if not await self._ensure_ready():
            return 0
        try:
            async with self._with_circuit_breaker():
                keys = [key async for key in self._redis.scan_iter(match=pattern, count=100)]
                if not keys:
                    return 0
                deleted = await self._redis.delete(*keys)
            logger.info(f"Deleted {deleted} keys matching {pattern}")
            return deleted
        except Exception as e:
            self._stats.errors += 1
            logger.error(f"Cache delete pattern error for {pattern}: {e}")
            return 0

    async def exists(self, key: str) -> bool:
        if not await self._ensure_ready():
            return False
        try:
            async with self._with_circuit_breaker():
                return await self._redis.exists(key) > 0
        except Exception as e:
            self._stats.errors += 1
            logger.warning(f"Cache exists error for {key}: {e}")
            return False

    async def ttl(self, key: str) -> int:
        """Remaining TTL in seconds. -1 if no TTL, -2 if missing or on error."""
        if not await self._ensure_ready():
            return -2
        try:
            async with self._with_circuit_breaker():
                return await self._redis.ttl(key)
        except Exception as e:
            self._stats.errors += 1
            logger.warning(f"Cache ttl error for {key}: {e}")
            return -2

    # =========================================================================
    # Statistics and Health
    # =========================================================================

    def get_stats(self) -> Dict:
        """Get cache statistics."""
        return {
            "enabled": self.config.enabled,
            "initialized": self._initialized,
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "errors": self._stats.errors,
            "hit_rate_percent": round(self._stats.hit_rate * 100, 2),
            "avg_latency_ms": round(self._stats.avg_latency_ms, 2),
            "bytes_written": self._stats.bytes_written,
            "bytes_read": self._stats.bytes_read,
            "bytes_saved_compression": self._stats.bytes_saved_compression,
            "circuit_breaker_open": (
                self._circuit_breaker.is_open if self._circuit_breaker else False
            ),
        }

    async def health_check(self) -> Dict:
        """Ping Redis and report latency."""
        if not self.config.enabled:
            return {"healthy": True, "status": "disabled"}

        try:
            if not self._initialized:
                await self.initialize()
            start = time.monotonic()
            async with self._with_circuit_breaker():
                await self._redis.ping()
            return {
                "healthy": True,
                "status": "connected",
                "latency_ms": round((time.monotonic() - start) * 1000, 2),
                "stats": self.get_stats(),
            }
        except Exception as e:
            return {
                "healthy": False,
                "status": "error",
                "error": str(e),
                "stats": self.get_stats(),
            }
