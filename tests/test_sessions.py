"""
Tests for the session manager: reload decisions, loading and fresh runs.
"""

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.cache.research_cache import SessionCacheInfo
from src.database.repository import SavedSession
from src.research.errors import ValidationError
from src.research.options import ResearchOptions
from src.research.sessions import (
    ResearchSessionManager,
    format_cache_age,
    should_recommend_reload,
)


USER = "user-1"
ASINS = ["B08N5WRWNW", "B07ZPKN6YR"]


def _saved(session_id="s-1"):
    return SavedSession(
        id=session_id,
        name="Yoga mats",
        user_id=USER,
        created_at=datetime(2026, 2, 1, 12, 0),
        updated_at=None,
        asins=[{"asin": a, "order_index": i, "is_user_product": i == 0, "status": "success"}
               for i, a in enumerate(ASINS)],
    )


@pytest.fixture
def store():
    store = MagicMock()
    store.find_matching_sessions.return_value = []
    return store


@pytest.fixture
def cache():
    cache = MagicMock()
    cache.get_session_cache_info = AsyncMock(return_value=SessionCacheInfo(has_cache=False))
    cache.get_session_result = AsyncMock(return_value=None)
    cache.cache_session_result = AsyncMock(return_value=True)
    cache.get_user_sessions = AsyncMock(return_value=None)
    cache.cache_user_sessions = AsyncMock(return_value=True)
    cache.invalidate_user = AsyncMock(return_value=0)
    cache.invalidate_session = AsyncMock(return_value=0)
    cache.invalidate_user_sessions = AsyncMock(return_value=0)
    return cache


@pytest.fixture
def pipeline(sample_result):
    pipeline = MagicMock()
    pipeline.research = AsyncMock(return_value=sample_result)
    return pipeline


@pytest.fixture
def manager(pipeline, store, cache):
    return ResearchSessionManager(pipeline, store, cache)


class TestCacheAge:
    """Test age formatting and the reload window."""

    @pytest.mark.parametrize("seconds,expected", [
        (0, "0s"),
        (45, "45s"),
        (300, "5m"),
        (90, "2m"),
        (3600, "1h"),
        (7200, "2h"),
    ])
    def test_format(self, seconds, expected):
        assert format_cache_age(seconds) == expected

    def test_reload_window(self):
        assert should_recommend_reload(0)
        assert should_recommend_reload(1199)
        assert not should_recommend_reload(1200)
        assert not should_recommend_reload(None)


class TestDecision:
    """Test reload-or-research decisions."""

    @pytest.mark.asyncio
    async def test_no_previous_session(self, manager):
        decision = await manager.analyze_decision(USER, ASINS)

        assert decision.action == "new_session"
        assert decision.reason == "No existing research found for these ASINs"
        assert decision.session_info is None

    @pytest.mark.asyncio
    async def test_expired_cache(self, manager, store):
        store.find_matching_sessions.return_value = [_saved()]
        decision = await manager.analyze_decision(USER, ASINS)

        assert decision.action == "research"
        assert decision.reason == "Previous research data expired - fresh research needed"
        assert decision.session_info.session_id == "s-1"
        assert decision.session_info.can_reload is False

    @pytest.mark.asyncio
    async def test_recent_cache_recommends_reload(self, manager, store, cache):
        store.find_matching_sessions.return_value = [_saved()]
        cache.get_session_cache_info.return_value = SessionCacheInfo(
            has_cache=True, cache_age=300, last_researched=datetime(2026, 2, 1, 12, 0)
        )
        decision = await manager.analyze_decision(USER, ASINS)

        assert decision.action == "reload"
        assert decision.reason == "Recent data available (5m ago)"
        assert decision.session_info.recommend_reload is True
        assert decision.session_info.asins == ASINS

    @pytest.mark.asyncio
    async def test_stale_cache(self, manager, store, cache):
        store.find_matching_sessions.return_value = [_saved()]
        cache.get_session_cache_info.return_value = SessionCacheInfo(has_cache=True, cache_age=3600)
        decision = await manager.analyze_decision(USER, ASINS)

        assert decision.action == "research"
        assert decision.reason == "Data is getting stale (1h old) - consider fresh research"
        assert decision.session_info.can_reload is True

    @pytest.mark.asyncio
    async def test_failure_falls_back_to_research(self, manager, store):
        store.find_matching_sessions.side_effect = RuntimeError("db down")
        decision = await manager.analyze_decision(USER, ASINS)

        assert decision.action == "research"
        assert decision.reason == "Unable to check existing data - proceeding with fresh research"

    @pytest.mark.asyncio
    async def test_invalid_asins_fall_back(self, manager, store):
        decision = await manager.analyze_decision(USER, ["bad"])

        assert decision.action == "research"
        store.find_matching_sessions.assert_not_called()

    @pytest.mark.asyncio
    async def test_decision_serializes(self, manager, store):
        store.find_matching_sessions.return_value = [_saved()]
        data = (await manager.analyze_decision(USER, ASINS)).to_dict()

        assert data["session_info"]["created_at"] == "2026-02-01T12:00:00"


class TestLoadResults:
    """Test cache-first loading."""

    @pytest.mark.asyncio
    async def test_cache_hit(self, manager, store, cache, sample_result):
        cache.get_session_result.return_value = sample_result

        assert await manager.load_results(USER, "s-1") is sample_result
        store.reconstruct.assert_not_called()

    @pytest.mark.asyncio
    async def test_cache_miss_reconstructs_and_caches(self, manager, store, cache, sample_result):
        store.reconstruct.return_value = sample_result

        assert await manager.load_results(USER, "s-1") is sample_result
        cache.cache_session_result.assert_awaited_once_with(USER, "s-1", sample_result)

    @pytest.mark.asyncio
    async def test_nothing_found(self, manager, store, cache):
        store.reconstruct.return_value = None

        assert await manager.load_results(USER, "s-1") is None
        cache.cache_session_result.assert_not_awaited()


class TestFreshResearch:
    """Test run, persist and cache."""

    @pytest.mark.asyncio
    async def test_fresh_research(self, manager, pipeline, store, cache, sample_result):
        store.save_session.return_value = "s-9"

        session_id, result = await manager.perform_fresh_research(
            USER, [a.lower() for a in ASINS], {"maxKeywordsPerAsin": 20}, name="Spring"
        )

        assert session_id == "s-9"
        assert result is sample_result
        cache.invalidate_user.assert_awaited_once_with(USER)
        args = pipeline.research.await_args.args
        assert args[0] == ASINS
        assert isinstance(args[1], ResearchOptions)
        assert args[1].max_keywords_per_asin == 20
        store.save_session.assert_called_once_with(USER, ASINS, sample_result, args[1], "Spring")
        cache.cache_session_result.assert_awaited_once_with(USER, "s-9", sample_result)

    @pytest.mark.asyncio
    async def test_validation_happens_before_work(self, manager, pipeline, cache):
        with pytest.raises(ValidationError):
            await manager.perform_fresh_research("", ASINS)

        pipeline.research.assert_not_awaited()
        cache.invalidate_user.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_pipeline_failure_saves_nothing(self, manager, pipeline, store):
        pipeline.research.side_effect = RuntimeError("provider down")

        with pytest.raises(RuntimeError):
            await manager.perform_fresh_research(USER, ASINS)
        store.save_session.assert_not_called()


class TestSessionList:
    """Test listing, deleting and renaming."""

    @pytest.mark.asyncio
    async def test_list_from_store_then_cached(self, manager, store, cache):
        store.load_sessions.return_value = [_saved()]

        sessions = await manager.get_user_sessions(USER)

        assert sessions[0]["id"] == "s-1"
        cache.cache_user_sessions.assert_awaited_once_with(USER, sessions)

    @pytest.mark.asyncio
    async def test_list_from_cache(self, manager, store, cache):
        cache.get_user_sessions.return_value = [{"id": "cached"}]

        assert await manager.get_user_sessions(USER) == [{"id": "cached"}]
        store.load_sessions.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete_invalidates_session(self, manager, store, cache):
        await manager.delete_session(USER, "s-1")

        store.delete_session.assert_called_once_with(USER, "s-1")
        cache.invalidate_session.assert_awaited_once_with(USER, "s-1")

    @pytest.mark.asyncio
    async def test_rename_invalidates_list(self, manager, store, cache):
        store.rename_session.return_value = "New name"

        assert await manager.rename_session(USER, "s-1", "New name") == "New name"
        cache.invalidate_user_sessions.assert_awaited_once_with(USER)
