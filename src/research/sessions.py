"""
Research Session Manager

Coordinates the pipeline, the session store and the result cache:

- analyze_decision: reload a recent cached run, or research again
- load_results: cache first, then reconstruction from the store
- perform_fresh_research: run, persist, cache
- session list / delete / rename with a coherent session-list cache
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .errors import validate_asins, validate_session_name, validate_user_id
from .models import ResearchResult
from .options import ResearchOptions
from .progress import ProgressReporter

logger = logging.getLogger(__name__)

RELOAD_WINDOW_SECONDS = 20 * 60


def format_cache_age(seconds: int) -> str:
    """45 -> '45s', 300 -> '5m', 7200 -> '2h'."""
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{round(seconds / 60)}m"
    return f"{round(seconds / 3600)}h"


def should_recommend_reload(cache_age: Optional[int]) -> bool:
    return cache_age is not None and cache_age < RELOAD_WINDOW_SECONDS


@dataclass
class ResearchSessionInfo:
    """Stored session plus the freshness of its cached result."""
    session_id: str
    name: str
    asins: List[str]
    created_at: Optional[str] = None
    has_cache: bool = False
    cache_age: Optional[int] = None
    last_researched: Optional[str] = None
    can_reload: bool = False
    recommend_reload: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "name": self.name,
            "asins": list(self.asins),
            "created_at": self.created_at,
            "has_cache": self.has_cache,
            "cache_age": self.cache_age,
            "last_researched": self.last_researched,
            "can_reload": self.can_reload,
            "recommend_reload": self.recommend_reload,
        }


@dataclass
class ResearchDecision:
    action: str  # new_session, research, reload
    reason: str
    session_info: Optional[ResearchSessionInfo] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "reason": self.reason,
            "session_info": self.session_info.to_dict() if self.session_info else None,
        }


class ResearchSessionManager:
    """
    Session-level operations over pipeline, store and cache.

    Usage:
        manager = ResearchSessionManager(pipeline, SessionStore(), ResearchCache(RedisCache()))
        decision = await manager.analyze_decision(user_id, asins)
        if decision.action == "reload":
            result = await manager.load_results(user_id, decision.session_info.session_id)
        else:
            session_id, result = await manager.perform_fresh_research(user_id, asins)
    """

    def __init__(self, pipeline, store, cache):
        self.pipeline = pipeline
        self.store = store
        self.cache = cache

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    async def analyze_decision(self, user_id: str, asins: Sequence[str]) -> ResearchDecision:
        """Never raises; any failure yields a plain 'research' decision."""
        try:
            user_id = validate_user_id(user_id)
            asin_list = validate_asins(list(asins))

            matches = self.store.find_matching_sessions(user_id, asin_list)
            if not matches:
                return ResearchDecision(
                    action="new_session",
                    reason="No existing research found for these ASINs",
                )

            latest = matches[0]
            cache_info = await self.cache.get_session_cache_info(user_id, latest.id)
            recommend = cache_info.has_cache and should_recommend_reload(cache_info.cache_age)
            info = ResearchSessionInfo(
                session_id=latest.id,
                name=latest.name,
                asins=latest.asin_list,
                created_at=latest.created_at.isoformat() if latest.created_at else None,
                has_cache=cache_info.has_cache,
                cache_age=cache_info.cache_age,
                last_researched=(
                    cache_info.last_researched.isoformat() if cache_info.last_researched else None
                ),
                can_reload=cache_info.has_cache,
                recommend_reload=recommend,
            )

            if not cache_info.has_cache:
                return ResearchDecision(
                    action="research",
                    reason="Previous research data expired - fresh research needed",
                    session_info=info,
                )

            if recommend:
                return ResearchDecision(
                    action="reload",
                    reason=f"Recent data available ({format_cache_age(cache_info.cache_age)} ago)",
                    session_info=info,
                )

            age = format_cache_age(cache_info.cache_age) if cache_info.cache_age is not None else "unknown age"
            return ResearchDecision(
                action="research",
                reason=f"Data is getting stale ({age} old) - consider fresh research",
                session_info=info,
            )

        except Exception as e:
            logger.error(f"Failed to analyze research decision: {e}")
            return ResearchDecision(
                action="research",
                reason="Unable to check existing data - proceeding with fresh research",
            )

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    async def load_results(self, user_id: str, session_id: str) -> Optional[ResearchResult]:
        """Cached result, else a reconstruction (written back to the cache), else None."""
        cached = await self.cache.get_session_result(user_id, session_id)
        if cached is not None:
            logger.info(f"Loaded session {session_id} from cache")
            return cached

        logger.info(f"Cache miss for session {session_id}, reconstructing from store")
        result = self.store.reconstruct(user_id, session_id)
        if result is not None:
            await self.cache.cache_session_result(user_id, session_id, result)
        return result

    async def perform_fresh_research(
        self,
        user_id: str,
        asins: Sequence[str],
        options: Optional[Union[ResearchOptions, Dict[str, Any]]] = None,
        name: Optional[str] = None,
        progress: Optional[ProgressReporter] = None,
    ) -> Tuple[str, ResearchResult]:
        """
        Run the pipeline, persist and cache the result.

        Returns:
            (session_id, result)

        Raises:
            ValidationError, DatabaseError, ResearchCancelled, or whatever the pipeline raises
        """
        user_id = validate_user_id(user_id)
        asin_list = validate_asins(list(asins))
        name = validate_session_name(name)
        if not isinstance(options, ResearchOptions):
            options = ResearchOptions.from_dict(options)

        await self.cache.invalidate_user(user_id)

        result = await self.pipeline.research(asin_list, options, progress=progress)
        session_id = self.store.save_session(user_id, asin_list, result, options, name)
        await self.cache.cache_session_result(user_id, session_id, result)

        logger.info(f"Fresh research saved as session {session_id} for user {user_id}")
        return session_id, result

    # ------------------------------------------------------------------
    # Session list
    # ------------------------------------------------------------------

    async def get_user_sessions(self, user_id: str) -> List[Dict[str, Any]]:
        cached = await self.cache.get_user_sessions(user_id)
        if cached is not None:
            return cached

        sessions = [s.to_dict() for s in self.store.load_sessions(user_id)]
        await self.cache.cache_user_sessions(user_id, sessions)
        return sessions

    async def delete_session(self, user_id: str, session_id: str) -> None:
        self.store.delete_session(user_id, session_id)
        await self.cache.invalidate_session(user_id, session_id)

    async def rename_session(self, user_id: str, session_id: str, name: str) -> str:
        new_name = self.store.rename_session(user_id, session_id, name)
        await self.cache.invalidate_user_sessions(user_id)
        logger.info(f"Session {session_id} renamed to '{new_name}'")
        return new_name
