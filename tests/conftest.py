"""
Pytest Configuration and Shared Fixtures

Provides sample keyword data, a mocked keyword provider, an in-memory
SQLite session store and an in-memory Redis double for all test modules.
"""

import fnmatch
from datetime import timedelta
from typing import Dict, List
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.cache.config import CacheConfig
from src.cache.redis_cache import RedisCache
from src.cache.research_cache import ResearchCache
from src.database.repository import SessionStore
from src.database.session import create_db_engine, init_db, make_session_factory
from src.research.aggregator import aggregate_occurrences, build_overview
from src.research.comparison import build_comparison_view
from src.research.gaps import GapAnalyzer
from src.research.models import (
    KeywordMetrics,
    KeywordOccurrence,
    ProductKeywordResult,
    ResearchResult,
)
from src.research.opportunities import OpportunityFinder


USER_ASIN = "B08N5WRWNW"
COMPETITOR_ASIN = "B07ZPKN6YR"
THIRD_ASIN = "B09XYZ1234"


# ============================================================================
# Mock Data Fixtures
# ============================================================================

def make_occurrence(
    keyword: str,
    volume: int = 1000,
    cpc: float = 1.0,
    position=None,
    traffic=None,
    **metrics,
) -> KeywordOccurrence:
    return KeywordOccurrence(
        keyword=keyword,
        search_volume=volume,
        cpc=cpc,
        ranking_position=position,
        traffic_percentage=traffic,
        metrics=KeywordMetrics(**metrics),
    )


@pytest.fixture
def occurrence():
    """Factory for KeywordOccurrence records."""
    return make_occurrence


@pytest.fixture
def user_keywords() -> List[KeywordOccurrence]:
    """Keywords of the user's product."""
    return [
        make_occurrence("yoga mat", 8000, 1.40, 4, 12.5, products=80, supply_demand_ratio=6.0),
        make_occurrence("Non Slip Yoga Mat", 3200, 1.10, 18, 4.0, products=60),
        make_occurrence("thick yoga mat", 2400, 0.45, 35, 1.5, ad_products=12.0),
        make_occurrence("exercise mat", 12000, 2.20, None, None, products=95),
        make_occurrence("yoga mat bag", 900, 0.80, 9, 2.0),
    ]


@pytest.fixture
def competitor_keywords() -> List[KeywordOccurrence]:
    """Keywords of the first competitor."""
    return [
        make_occurrence("Yoga Mat", 8000, 1.60, 2, 20.0, products=120, supply_demand_ratio=4.0),
        make_occurrence("non slip yoga mat", 3200, 1.30, 60, 0.5, products=55),
        make_occurrence("exercise mat", 12000, 2.00, 7, 8.0, products=90),
        make_occurrence("pilates mat", 6000, 1.50, 80, 0.4),
        make_occurrence("travel yoga mat", 1500, 0.40, 12, 3.0),
    ]


@pytest.fixture
def sample_products(user_keywords, competitor_keywords) -> List[ProductKeywordResult]:
    """Two successfully collected products, user first."""
    return [
        ProductKeywordResult(asin=USER_ASIN, keywords=user_keywords),
        ProductKeywordResult(asin=COMPETITOR_ASIN, keywords=competitor_keywords),
    ]


@pytest.fixture
def sample_result(sample_products) -> ResearchResult:
    """A research result assembled from sample_products without a provider."""
    aggregated = aggregate_occurrences(sample_products)
    universe = OpportunityFinder().build_universe(sample_products)
    return ResearchResult(
        overview=build_overview(sample_products, aggregated, processing_time_ms=1234),
        asin_results=sample_products,
        aggregated_keywords=aggregated,
        comparison_view=build_comparison_view(sample_products),
        opportunities=universe[:2],
        gap_analysis=GapAnalyzer().analyze(sample_products),
        all_keywords_with_competition=universe,
    )


@pytest.fixture
def mock_provider(user_keywords, competitor_keywords):
    """KeywordDataProvider double keyed by ASIN; mining returns nothing."""
    by_asin: Dict[str, List[KeywordOccurrence]] = {
        USER_ASIN: user_keywords,
        COMPETITOR_ASIN: competitor_keywords,
    }

    async def reverse_asin(asin, page=1, size=200):
        if asin not in by_asin:
            raise RuntimeError(f"Unknown ASIN {asin}")
        return list(by_asin[asin])

    provider = MagicMock()
    provider.reverse_asin = AsyncMock(side_effect=reverse_asin)
    provider.keyword_mining = AsyncMock(return_value=[])
    provider.by_asin = by_asin
    return provider


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def db_engine():
    """Fresh in-memory SQLite database with all tables."""
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return make_session_factory(db_engine)


@pytest.fixture
def session_store(session_factory) -> SessionStore:
    return SessionStore(session_factory)


# ============================================================================
# Cache Fixtures
# ============================================================================

class FakeRedis:
    """In-memory stand-in for redis.asyncio.Redis covering the calls RedisCache makes."""

    def __init__(self):
        self.data: Dict[str, bytes] = {}
        self.ttls: Dict[str, int] = {}

    async def ping(self):
        return True

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value):
        self.data[key] = value
        self.ttls[key] = -1
        return True

    async def setex(self, key, ttl, value):
        seconds = int(ttl.total_seconds()) if isinstance(ttl, timedelta) else int(ttl)
        self.data[key] = value
        self.ttls[key] = seconds
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if key in self.data:
                del self.data[key]
                self.ttls.pop(key, None)
                removed += 1
        return removed

    async def exists(self, key):
        return 1 if key in self.data else 0

    async def ttl(self, key):
        if key not in self.data:
            return -2
        return self.ttls.get(key, -1)

    async def scan_iter(self, match=None, count=None):
        for key in list(self.data):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def close(self):
        pass


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache_config() -> CacheConfig:
    return CacheConfig(
        redis_url="redis://localhost:6379/15",
        namespace="test_kw",
        enabled=True,
        compression_enabled=True,
        compression_threshold=256,
        circuit_breaker_enabled=True,
        circuit_breaker_threshold=3,
        circuit_breaker_timeout=60,
    )


@pytest.fixture
def redis_cache(cache_config, fake_redis) -> RedisCache:
    return RedisCache(config=cache_config, client=fake_redis)


@pytest.fixture
def research_cache(redis_cache) -> ResearchCache:
    return ResearchCache(redis_cache)
