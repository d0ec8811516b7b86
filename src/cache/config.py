"""
Cache Configuration

Centralized configuration for the research result cache (Redis).
TTLs are per component: the full result lives longest, the cheap-to-rebuild
views expire sooner, and the session list is kept short so renames and
deletes show up quickly.
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from functools import lru_cache


@dataclass(frozen=True)
class CacheTTL:
    """Cache TTL configuration by component."""

    # Full assembled result
    SESSION_RESULT: timedelta = timedelta(minutes=30)

    # Individual views
    AGGREGATED: timedelta = timedelta(minutes=15)
    COMPARISON: timedelta = timedelta(minutes=15)
    OPPORTUNITIES: timedelta = timedelta(minutes=30)
    GAPS: timedelta = timedelta(minutes=60)

    # Per-user session list
    SESSION_LIST: timedelta = timedelta(minutes=5)

    @classmethod
    def for_component(cls, component: str) -> timedelta:
        """Get TTL for a component name."""
        mapping = {
            "result": cls.SESSION_RESULT,
            "aggregated": cls.AGGREGATED,
            "comparison": cls.COMPARISON,
            "opportunities": cls.OPPORTUNITIES,
            "gaps": cls.GAPS,
            "sessions": cls.SESSION_LIST,
        }
        return mapping.get(component, cls.SESSION_RESULT)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class CacheConfig:
    """
    Main cache configuration.

    Settings can be overridden via environment variables:
    - REDIS_URL: Redis connection URL
    - CACHE_ENABLED: Enable/disable caching globally
    - CACHE_NAMESPACE: Key prefix
    - CACHE_COMPRESSION_ENABLED / CACHE_COMPRESSION_THRESHOLD
    - CACHE_CIRCUIT_BREAKER_THRESHOLD / CACHE_CIRCUIT_BREAKER_TIMEOUT
    """

    # Connection
    redis_url: str = field(default_factory=lambda: os.getenv(
        "REDIS_URL",
        "redis://localhost:6379/0"
    ))
    redis_max_connections: int = field(default_factory=lambda: int(os.getenv(
        "REDIS_MAX_CONNECTIONS",
        "20"
    )))
    redis_socket_timeout: float = field(default_factory=lambda: float(os.getenv(
        "REDIS_SOCKET_TIMEOUT",
        "5"
    )))
    redis_connect_timeout: float = field(default_factory=lambda: float(os.getenv(
        "REDIS_CONNECT_TIMEOUT",
        "5"
    )))

    # Cache namespace (for key prefixes)
    namespace: str = field(default_factory=lambda: os.getenv(
        "CACHE_NAMESPACE",
        "kw_research"
    ))

    # Global cache toggle
    enabled: bool = field(default_factory=lambda: _env_bool("CACHE_ENABLED", "true"))

    # Compression
    compression_enabled: bool = field(default_factory=lambda: _env_bool(
        "CACHE_COMPRESSION_ENABLED", "true"
    ))
    compression_threshold: int = field(default_factory=lambda: int(os.getenv(
        "CACHE_COMPRESSION_THRESHOLD",
        "1024"
    )))

    # Circuit breaker
    circuit_breaker_enabled: bool = field(default_factory=lambda: _env_bool(
        "CACHE_CIRCUIT_BREAKER_ENABLED", "true"
    ))
    circuit_breaker_threshold: int = field(default_factory=lambda: int(os.getenv(
        "CACHE_CIRCUIT_BREAKER_THRESHOLD",
        "5"
    )))
    circuit_breaker_timeout: int = field(default_factory=lambda: int(os.getenv(
        "CACHE_CIRCUIT_BREAKER_TIMEOUT",
        "60"
    )))


@lru_cache(maxsize=1)
def get_cache_config() -> CacheConfig:
    """Get cached cache configuration."""
    return CacheConfig()
