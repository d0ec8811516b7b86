"""
Research Result Cache

Write-through cache for research sessions on top of RedisCache.

Key layout (namespace defaults to "kw_research"):
    {ns}:user:{user_id}:session:{session_id}:result
    {ns}:user:{user_id}:session:{session_id}:aggregated
    {ns}:user:{user_id}:session:{session_id}:comparison
    {ns}:user:{user_id}:session:{session_id}:opportunities
    {ns}:user:{user_id}:session:{session_id}:gaps
    {ns}:user:{user_id}:sessions

Nothing here raises: failures are logged by RedisCache and surface as
misses, False, 0 or empty containers.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from src.cache.config import CacheTTL
from src.cache.redis_cache import RedisCache
from src.research.models import ResearchResult, utc_now

logger = logging.getLogger(__name__)

COMPONENTS = ("aggregated", "comparison", "opportunities", "gaps")


def _component_payloads(result: ResearchResult) -> Dict[str, Any]:
    return {
        "aggregated": [k.to_dict() for k in result.aggregated_keywords],
        "comparison": [c.to_dict() for c in result.comparison_view],
        "opportunities": [o.to_dict() for o in result.opportunities],
        "gaps": result.gap_analysis.to_dict() if result.gap_analysis else None,
    }


@dataclass
class SessionCacheInfo:
    """Freshness of a cached session result."""
    has_cache: bool
    cache_age: Optional[int] = None
    last_researched: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_cache": self.has_cache,
            "cache_age": self.cache_age,
            "last_researched": self.last_researched.isoformat() if self.last_researched else None,
        }


class ResearchCache:
    """Session-scoped facade over RedisCache."""

    def __init__(self, redis_cache: RedisCache, ttl: CacheTTL = CacheTTL()):
        self.redis = redis_cache
        self.ttl = ttl

    # =========================================================================
    # Keys
    # =========================================================================

    def session_key(self, user_id: str, session_id: str, component: str = "result") -> str:
        return self.redis.make_key("user", user_id, "session", session_id, component)

    def sessions_key(self, user_id: str) -> str:
        return self.redis.make_key("user", user_id, "sessions")

    def _ttl_for(self, component: str) -> timedelta:
        return {
            "result": self.ttl.SESSION_RESULT,
            "aggregated": self.ttl.AGGREGATED,
            "comparison": self.ttl.COMPARISON,
            "opportunities": self.ttl.OPPORTUNITIES,
            "gaps": self.ttl.GAPS,
        }[component]

    # =========================================================================
    # Session results
    # =========================================================================

    async def cache_session_result(
        self,
        user_id: str,
        session_id: str,
        result: ResearchResult,
    ) -> bool:
        """Write the full result and every component. True when the full result was stored."""
        stored = await self.redis.set(
            self.session_key(user_id, session_id),
            result.to_dict(),
            self._ttl_for("result"),
        )
        for component, payload in _component_payloads(result).items():
            if payload is None:
                continue
            await self.redis.set(
                self.session_key(user_id, session_id, component),
                payload,
                self._ttl_for(component),
            )
        if stored:
            logger.debug(f"Cached session {session_id} for user {user_id}")
        return stored

    async def get_session_result(self, user_id: str, session_id: str) -> Optional[ResearchResult]:
        data = await self.redis.get(self.session_key(user_id, session_id))
        if data is None:
            return None
        try:
            return ResearchResult.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Discarding unreadable cached result for session {session_id}: {e}")
            await self.redis.delete(self.session_key(user_id, session_id))
            return None

    async def get_components(
        self,
        user_id: str,
        session_id: str,
        components: Sequence[str] = COMPONENTS,
    ) -> Dict[str, Any]:
        """Raw cached component payloads; missing components are omitted."""
        found = {}
        for component in components:
            if component not in COMPONENTS:
                continue
            value = await self.redis.get(self.session_key(user_id, session_id, component))
            if value is not None:
                found[component] = value
        return found

    async def get_session_cache_info(self, user_id: str, session_id: str) -> SessionCacheInfo:
        key = self.session_key(user_id, session_id)
        if not await self.redis.exists(key):
            return SessionCacheInfo(has_cache=False)

        remaining = await self.redis.ttl(key)
        if remaining < 0:
            return SessionCacheInfo(has_cache=True)

        full = int(self.ttl.SESSION_RESULT.total_seconds())
        age = max(0, full - remaining)
        return SessionCacheInfo(
            has_cache=True,
            cache_age=age,
            last_researched=utc_now() - timedelta(seconds=age),
        )

    # =========================================================================
    # Session lists
    # =========================================================================

    async def cache_user_sessions(self, user_id: str, sessions: List[Dict[str, Any]]) -> bool:
        return await self.redis.set(self.sessions_key(user_id), sessions, self.ttl.SESSION_LIST)

    async def get_user_sessions(self, user_id: str) -> Optional[List[Dict[str, Any]]]:
        return await self.redis.get(self.sessions_key(user_id))

    async def invalidate_user_sessions(self, user_id: str) -> int:
        return await self.redis.delete(self.sessions_key(user_id))

    # =========================================================================
    # Invalidation
    # =========================================================================

    async def invalidate_session(self, user_id: str, session_id: str) -> int:
        keys = [self.session_key(user_id, session_id)] + [
            self.session_key(user_id, session_id, c) for c in COMPONENTS
        ]
        keys.append(self.sessions_key(user_id))
        count = await self.redis.delete(*keys)
        logger.info(f"Invalidated {count} cache entries for session {session_id}")
        return count

    async def invalidate_user(self, user_id: str) -> int:
        count = await self.redis.delete_pattern(self.redis.make_key("user", user_id, "*"))
        logger.info(f"Invalidated {count} cache entries for user {user_id}")
        return count

    def get_stats(self) -> Dict[str, Any]:
        return self.redis.get_stats()
