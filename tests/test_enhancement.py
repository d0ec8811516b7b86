"""
Tests for enhancement target selection, provider calls and merging.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.research.enhancement import (
    KeywordEnhancer,
    enrichment_metrics,
    find_exact_match,
    select_enhancement_targets,
)
from src.research.models import (
    CompetitorPerformance,
    GapAnalysisResult,
    GapRanking,
    GapRecord,
    GapSummary,
    GapType,
    ImpactLevel,
    KeywordMetrics,
    OpportunityCandidate,
    OpportunityType,
)
from src.research.progress import ProgressReporter
from src.utils.rate_limit import RateLimiter


def _opportunity(keyword, volume=3000, competition=2.0, cpc=1.4):
    return OpportunityCandidate(
        keyword=keyword,
        search_volume=volume,
        avg_cpc=cpc,
        opportunity_type=OpportunityType.WEAK_COMPETITORS,
        competition_score=competition,
        competitor_performance=CompetitorPerformance(
            avg_competitor_rank=30, competitors_ranking=2,
            competitors_in_top15=1, competitor_strength=competition,
        ),
        metrics=KeywordMetrics(products=40),
    )


def _gap(keyword, volume=6000, score=8):
    return GapRecord(
        keyword=keyword,
        search_volume=volume,
        avg_cpc=1.0,
        gap_type=GapType.MARKET_GAP,
        gap_score=score,
        user_ranking=GapRanking(asin="B08N5WRWNW"),
        competitor_rankings=[GapRanking(asin="B07ZPKN6YR", position=70)],
        recommendation="Market opportunity",
        potential_impact=ImpactLevel.HIGH,
        metrics=KeywordMetrics(products=70),
    )


def _gap_analysis(*gaps):
    return GapAnalysisResult(
        user_asin="B08N5WRWNW",
        competitor_asins=["B07ZPKN6YR"],
        analysis=GapSummary(total_gaps_found=len(gaps)),
        gaps=list(gaps),
    )


def _mining_provider(occurrence, **by_keyword):
    """Mining returns an exact match for every keyword unless overridden."""
    async def keyword_mining(keyword, **kwargs):
        if keyword in by_keyword:
            result = by_keyword[keyword]
            if isinstance(result, Exception):
                raise result
            return result
        return [occurrence(keyword, 5000, 1.1, purchases=321, avg_price=24.99, relevancy=0.8)]

    provider = MagicMock()
    provider.keyword_mining = AsyncMock(side_effect=keyword_mining)
    return provider


def _enhancer(provider, **kwargs):
    return KeywordEnhancer(provider, item_delay=0, batch_delay=0, **kwargs)


# =============================================================================
# SELECTION
# =============================================================================

class TestTargetSelection:
    """Test picking and deduplicating keywords."""

    def test_keyword_in_both_sets_selected_once(self):
        keywords, duplicates = select_enhancement_targets(
            [_opportunity("yoga mat")], [_gap("Yoga Mat")]
        )
        assert keywords == ["yoga mat"]
        assert duplicates == 1

    def test_caps_per_source(self):
        opportunities = [_opportunity(f"opp {i}") for i in range(25)]
        gaps = [_gap(f"gap {i}") for i in range(8)]
        keywords, _ = select_enhancement_targets(opportunities, gaps)

        assert len([k for k in keywords if k.startswith("opp")]) == 20
        assert len([k for k in keywords if k.startswith("gap")]) == 5

    def test_highest_priority_first(self):
        keywords, _ = select_enhancement_targets(
            [_opportunity("weak", volume=600, competition=9.0), _opportunity("strong", volume=9000)],
            [],
        )
        assert keywords == ["strong", "weak"]

    def test_exact_match_is_case_insensitive(self, occurrence):
        results = [occurrence("yoga mats"), occurrence("YOGA MAT")]
        assert find_exact_match("yoga mat", results).keyword == "YOGA MAT"
        assert find_exact_match("cork mat", results) is None
        assert find_exact_match("cork mat", None) is None

    def test_enrichment_metrics_only_known_fields(self, occurrence):
        match = occurrence("mat", purchases=5, badges=["best seller"], traffic_keyword_type="traffic")
        metrics = enrichment_metrics(match)

        assert metrics.purchases == 5
        assert metrics.badges is None
        assert metrics.traffic_keyword_type is None


# =============================================================================
# ENHANCER
# =============================================================================

class TestKeywordEnhancer:
    """Test calls, failure handling and merge semantics."""

    @pytest.mark.asyncio
    async def test_merge_preserves_gap_fields(self, occurrence):
        provider = _mining_provider(occurrence)
        analysis = _gap_analysis(_gap("pilates mat", score=9))

        outcome = await _enhancer(provider).enhance([], analysis)

        gap = outcome.gap_analysis.gaps[0]
        assert gap.gap_type == GapType.MARKET_GAP
        assert gap.gap_score == 9
        assert gap.competitor_rankings[0].position == 70
        assert gap.metrics.purchases == 321
        assert gap.metrics.products == 70
        assert outcome.enhanced == 1

    @pytest.mark.asyncio
    async def test_merge_preserves_opportunity_statistics(self, occurrence):
        provider = _mining_provider(occurrence)
        outcome = await _enhancer(provider).enhance([_opportunity("yoga mat")], None)

        opportunity = outcome.opportunities[0]
        assert opportunity.opportunity_type == OpportunityType.WEAK_COMPETITORS
        assert opportunity.competitor_performance.competitors_in_top15 == 1
        assert opportunity.search_volume == 3000
        assert opportunity.metrics.avg_price == 24.99
        assert outcome.gap_analysis is None

    @pytest.mark.asyncio
    async def test_no_exact_match_leaves_record_unchanged(self, occurrence):
        provider = _mining_provider(occurrence, **{"yoga mat": [occurrence("yoga mats", 100)]})
        original = _opportunity("yoga mat")

        outcome = await _enhancer(provider).enhance([original], None)

        assert outcome.opportunities[0] == original
        assert outcome.enhanced == 0

    @pytest.mark.asyncio
    async def test_failing_keyword_does_not_stop_others(self, occurrence):
        provider = _mining_provider(occurrence, **{"opp 0": RuntimeError("quota")})
        opportunities = [_opportunity(f"opp {i}", volume=5000 - i) for i in range(4)]

        outcome = await _enhancer(provider).enhance(opportunities, None)

        assert outcome.attempted == 4
        assert outcome.enhanced == 3
        assert outcome.opportunities[0] == opportunities[0]

    @pytest.mark.asyncio
    async def test_each_keyword_called_once(self, occurrence):
        provider = _mining_provider(occurrence)
        await _enhancer(provider).enhance(
            [_opportunity("yoga mat"), _opportunity("cork mat")],
            _gap_analysis(_gap("YOGA MAT"), _gap("cork mat")),
        )
        called = [c.args[0].lower() for c in provider.keyword_mining.await_args_list]
        assert sorted(called) == ["cork mat", "yoga mat"]

    @pytest.mark.asyncio
    async def test_mining_asked_for_single_result(self, occurrence):
        provider = _mining_provider(occurrence)
        await _enhancer(provider).enhance([_opportunity("yoga mat")], None)

        kwargs = provider.keyword_mining.await_args.kwargs
        assert kwargs["size"] == 1
        assert kwargs["min_search"] == 100
        assert kwargs["max_supply_demand_ratio"] == 20

    @pytest.mark.asyncio
    async def test_nothing_to_enhance(self):
        provider = MagicMock()
        provider.keyword_mining = AsyncMock()
        outcome = await _enhancer(provider).enhance([], None)

        provider.keyword_mining.assert_not_awaited()
        assert outcome.attempted == 0

    @pytest.mark.asyncio
    async def test_cancelled_reporter_stops_before_calls(self, occurrence):
        provider = _mining_provider(occurrence)
        progress = ProgressReporter()
        progress.cancel()

        outcome = await _enhancer(provider).enhance([_opportunity("yoga mat")], None, progress)

        assert outcome.stopped_early is True
        provider.keyword_mining.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_batch_spacing(self, occurrence):
        """1s between items in a batch, 2s before each new batch."""
        provider = _mining_provider(occurrence)
        limiter = RateLimiter(1.0, clock=lambda: 0.0)
        enhancer = KeywordEnhancer(provider, limiter, item_delay=1.0, batch_delay=2.0)
        opportunities = [_opportunity(f"opp {i}", volume=5000 - i) for i in range(4)]

        with patch("src.utils.rate_limit.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await enhancer.enhance(opportunities, None)

        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 1.0, 2.0]

    @pytest.mark.asyncio
    async def test_batch_failure_drops_whole_batch(self, occurrence):
        """Keywords already enriched in a failing batch pass through unenhanced."""
        provider = _mining_provider(occurrence)
        limiter = MagicMock()
        limiter.acquire = AsyncMock(side_effect=[None, RuntimeError("limiter broke"), None])
        enhancer = KeywordEnhancer(provider, limiter, item_delay=0, batch_delay=0)

        enrichments, stopped_early = await enhancer.fetch_enrichments(
            ["opp 0", "opp 1", "opp 2", "opp 3"]
        )

        assert stopped_early is False
        assert set(enrichments) == {"opp 3"}
        assert [c.args[0] for c in provider.keyword_mining.await_args_list] == ["opp 0", "opp 3"]
