"""
Tests for the opportunity universe, filters, mining and the primary cut.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.research.aggregator import aggregate_occurrences
from src.research.models import (
    CompetitorPerformance,
    KeywordMetrics,
    OpportunityCandidate,
    OpportunityType,
    ProductKeywordResult,
    ProductStatus,
    normalize_keyword,
)
from src.research.opportunities import OpportunityFinder, UniverseEntry
from src.research.options import OpportunityFilters


def _permissive_filters(**overrides) -> OpportunityFilters:
    values = dict(
        min_search_volume=500,
        max_search_volume=20000,
        max_competitors_in_top15=15,
        min_competitors_ranking=0,
        max_competitor_strength=10,
    )
    values.update(overrides)
    return OpportunityFilters(**values)


def _candidate(keyword="yoga mat", volume=1000, top15=0, ranking=2, strength=2.0, **metrics):
    return OpportunityCandidate(
        keyword=keyword,
        search_volume=volume,
        avg_cpc=1.0,
        opportunity_type=OpportunityType.LOW_COMPETITION,
        competition_score=strength,
        supply_demand_ratio=metrics.pop("supply_demand_ratio", 5.0),
        competitor_performance=CompetitorPerformance(
            avg_competitor_rank=40,
            competitors_ranking=ranking,
            competitors_in_top15=top15,
            competitor_strength=strength,
        ),
        metrics=KeywordMetrics(**metrics),
    )


# =============================================================================
# UNIVERSE
# =============================================================================

class TestUniverse:
    """Test competitor statistics per keyword."""

    def test_strength_from_average_rank(self):
        entry = UniverseEntry(keyword="mat", positions=[10, 30])
        candidate = entry.to_candidate()

        assert candidate.competition_score == 9.0
        assert candidate.competitor_performance.avg_competitor_rank == 20
        assert candidate.competitor_performance.competitors_in_top15 == 1
        assert candidate.competitor_performance.competitors_ranking == 2
        assert candidate.opportunity_type == OpportunityType.LOW_COMPETITION

    def test_nobody_ranking_is_market_gap(self):
        candidate = UniverseEntry(keyword="mat").to_candidate()

        assert candidate.opportunity_type == OpportunityType.MARKET_GAP
        assert candidate.competition_score == 1.0
        assert candidate.competitor_performance.avg_competitor_rank == 0

    def test_weak_competitors(self):
        """A top-15 competitor with a low average strength."""
        candidate = UniverseEntry(keyword="mat", positions=[1, 100, 100, 100, 100]).to_candidate()

        assert candidate.opportunity_type == OpportunityType.WEAK_COMPETITORS
        assert candidate.competition_score == pytest.approx(2.98)

    def test_positions_beyond_100_ignored(self, occurrence):
        entry = UniverseEntry(keyword="mat")
        entry.add(occurrence("mat", position=150))
        entry.add(occurrence("mat", position=0))
        entry.add(occurrence("mat", position=40))

        assert entry.positions == [40]

    def test_running_means_and_bid_range(self, occurrence):
        entry = UniverseEntry(keyword="mat")
        entry.add(occurrence("mat", 1000, 1.0, supply_demand_ratio=4.0, ad_products=10.0))
        entry.add(occurrence("mat", 1400, 2.0, supply_demand_ratio=8.0, bid_min=0.5, bid_max=3.0))
        candidate = entry.to_candidate()

        assert candidate.search_volume == 1400
        assert candidate.avg_cpc == 1.5
        assert candidate.supply_demand_ratio == 6.0
        assert candidate.metrics.ad_products == 10.0
        assert candidate.metrics.bid_min == 0.5
        assert candidate.metrics.bid_max == 3.0

    def test_growth_trend_from_traffic_type(self, occurrence):
        entry = UniverseEntry(keyword="mat")
        entry.add(occurrence("mat", traffic_keyword_type="traffic"))
        assert entry.to_candidate().growth_trend == "growing"

    def test_build_universe_skips_failed_and_low_volume(self, sample_products, occurrence):
        failed = ProductKeywordResult(
            asin="B09XYZ1234",
            keywords=[occurrence("ghost", 5000)],
            status=ProductStatus.FAILED,
        )
        universe = OpportunityFinder().build_universe(sample_products + [failed], min_search_volume=1000)
        keys = {normalize_keyword(c.keyword) for c in universe}

        assert "ghost" not in keys
        assert "yoga mat bag" not in keys  # 900 < 1000
        assert "yoga mat" in keys
        assert len(keys) == len(universe)


# =============================================================================
# FILTERS
# =============================================================================

class TestFilters:
    """Test the opportunity filter conjunction."""

    def test_passes_permissive_filters(self):
        candidate = _candidate(products=50, ad_products=10.0)
        assert OpportunityFinder.passes_filters(candidate, _permissive_filters())

    def test_default_filters_require_fifteen_ranking_competitors(self):
        candidate = _candidate(products=50, ad_products=10.0)
        assert not OpportunityFinder.passes_filters(candidate, OpportunityFilters())

    def test_missing_supply_demand_fails(self):
        candidate = _candidate(products=50, supply_demand_ratio=None)
        assert not OpportunityFinder.passes_filters(candidate, _permissive_filters())

    def test_missing_products_fails(self):
        candidate = _candidate()
        assert not OpportunityFinder.passes_filters(candidate, _permissive_filters())

    @pytest.mark.parametrize("overrides", [
        {"volume": 400},
        {"volume": 25000},
        {"top15": 3, "strength": 2.0},
        {"ad_products": 25.0},
        {"products": 150},
    ])
    def test_each_condition_can_reject(self, overrides):
        values = {"products": 50}
        values.update(overrides)
        candidate = _candidate(**values)
        filters = _permissive_filters(max_competitors_in_top15=2)
        assert not OpportunityFinder.passes_filters(candidate, filters)


# =============================================================================
# MINING AND PRIMARY CUT
# =============================================================================

class TestMining:
    """Test the related-keyword mining call."""

    @pytest.mark.asyncio
    async def test_mines_top_three_and_survives_failures(self, sample_products, occurrence):
        aggregated = aggregate_occurrences(sample_products)
        provider = MagicMock()
        provider.keyword_mining = AsyncMock(side_effect=[
            RuntimeError("quota"),
            [occurrence("cork yoga mat", 2500, 1.2), occurrence("huge keyword", 90000)],
            [],
        ])

        mined = await OpportunityFinder(provider).mine_related(aggregated, _permissive_filters())

        assert provider.keyword_mining.await_count == 3
        seeds = [c.args[0] for c in provider.keyword_mining.await_args_list]
        assert seeds == [k.keyword for k in aggregated[:3]]
        assert [m.keyword for m in mined] == ["cork yoga mat"]
        assert mined[0].opportunity_type == OpportunityType.KEYWORD_MINING

    @pytest.mark.asyncio
    async def test_no_provider_means_no_mining(self, sample_products):
        aggregated = aggregate_occurrences(sample_products)
        assert await OpportunityFinder().mine_related(aggregated, _permissive_filters()) == []


class TestPrimarySelection:
    """Test the final cut for the user's product."""

    def test_only_primary_keywords_survive(self, sample_products):
        finder = OpportunityFinder()
        universe = finder.build_universe(sample_products)
        selected = finder.select_for_primary(sample_products[0], universe)

        primary_keys = {k.normalized for k in sample_products[0].keywords}
        assert {normalize_keyword(c.keyword) for c in selected} <= primary_keys
        assert "pilates mat" not in {c.keyword for c in selected}

    def test_sorted_by_volume_and_capped(self, occurrence):
        primary = ProductKeywordResult(
            asin="A000000001",
            keywords=[occurrence(f"kw {i}", 1000 + i) for i in range(20)],
        )
        filtered = [_candidate(f"kw {i}", 1000 + i) for i in range(20)]
        selected = OpportunityFinder.select_for_primary(primary, filtered)

        assert len(selected) == 15
        assert selected[0].keyword == "kw 19"

    def test_mined_keywords_appended_without_duplicates(self, occurrence):
        primary = ProductKeywordResult(asin="A000000001", keywords=[occurrence("yoga mat", 1000)])
        filtered = [_candidate("yoga mat", 1000)]
        mined = [_candidate("Yoga Mat", 1000), _candidate("cork mat", 3000)]

        selected = OpportunityFinder.select_for_primary(primary, filtered, mined)

        assert [c.keyword for c in selected] == ["cork mat", "yoga mat"]

    @pytest.mark.asyncio
    async def test_no_successful_products(self):
        failed = ProductKeywordResult(asin="A000000001", status=ProductStatus.FAILED)
        findings = await OpportunityFinder().find_targeted_opportunities(
            [failed], [], OpportunityFilters()
        )
        assert findings.opportunities == []
        assert findings.all_keywords_with_competition == []

    @pytest.mark.asyncio
    async def test_full_phase(self, sample_products, mock_provider):
        aggregated = aggregate_occurrences(sample_products)
        finder = OpportunityFinder(mock_provider)

        findings = await finder.find_targeted_opportunities(
            sample_products, aggregated, _permissive_filters(max_products=1000, max_supply_demand_ratio=1000)
        )

        assert findings.all_keywords_with_competition
        assert findings.opportunities
        volumes = [o.search_volume for o in findings.opportunities]
        assert volumes == sorted(volumes, reverse=True)

    @pytest.mark.asyncio
    async def test_failed_primary_keeps_only_mined(self, sample_products, mock_provider, occurrence):
        """Competitor keywords are not re-derived as the primary's opportunities."""
        failed = ProductKeywordResult(asin="A000000001", status=ProductStatus.FAILED, error="boom")
        mock_provider.keyword_mining = AsyncMock(return_value=[occurrence("cork yoga mat", 2500, 1.0)])
        products = [failed] + sample_products
        finder = OpportunityFinder(mock_provider)

        findings = await finder.find_targeted_opportunities(
            products,
            aggregate_occurrences(products),
            _permissive_filters(max_products=1000, max_supply_demand_ratio=1000),
        )

        assert findings.all_keywords_with_competition
        assert [o.keyword for o in findings.opportunities] == ["cork yoga mat"]
