"""
Opportunity Finder

Builds the cross-product keyword universe with competitor statistics and
cuts it down to targeted opportunities for the primary product.

Flow:
    1. Universe: every keyword from every successful product, with
       competitor rankings (0 < position <= 100), CPC / supply-demand /
       ad-product means and the bid range.
    2. Every universe keyword becomes an OpportunityCandidate tagged
       market_gap / weak_competitors / low_competition. This full list is
       returned as all_keywords_with_competition.
    3. Filtered subset: volume window, competitor counts and strength, plus
       fixed market-quality ceilings (ads <= 20, supply/demand <= 15,
       products <= 100).
    4. Mining: the top 3 aggregated keywords are sent to the provider's
       mining endpoint for related keywords (best effort).
    5. Final cut: the primary product's own keywords that survived the
       filter, plus mined keywords, sorted by volume, capped at 15.

Competitor strength:
    strength = clamp(1, 10, 11 - avg_rank / 10)     (1 when nobody ranks)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from src.scoring.helpers import clamp

from .models import (
    AggregatedKeyword,
    CompetitorPerformance,
    KeywordMetrics,
    KeywordOccurrence,
    OpportunityCandidate,
    OpportunityType,
    ProductKeywordResult,
    normalize_keyword,
)
from .options import OpportunityFilters
from .provider import KeywordDataProvider

logger = logging.getLogger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

MAX_TRACKED_POSITION = 100
TOP15_POSITION = 15
RANKING_POSITION = 50
WEAK_COMPETITOR_STRENGTH = 3

MINING_SEED_KEYWORDS = 3
MINING_MAX_SUPPLY_DEMAND_RATIO = 8
MINING_RESULT_SIZE = 15

MAX_PRIMARY_OPPORTUNITIES = 15

# Values substituted for missing market data when filtering
MISSING_AD_PRODUCTS = 0
MISSING_SUPPLY_DEMAND_RATIO = 999
MISSING_PRODUCTS = 999

GROWTH_TRENDS = {
    "traffic": "growing",
    "conversion": "stable",
}


@dataclass
class _Mean:
    total: float = 0.0
    count: int = 0

    def add(self, value: Optional[float]) -> None:
        if value is None:
            return
        self.total += value
        self.count += 1

    @property
    def value(self) -> Optional[float]:
        return self.total / self.count if self.count else None


@dataclass
class UniverseEntry:
    """Accumulated market and competitor data for one keyword."""
    keyword: str
    search_volume: int = 0
    cpc: _Mean = field(default_factory=_Mean)
    supply_demand: _Mean = field(default_factory=_Mean)
    ad_products: _Mean = field(default_factory=_Mean)
    positions: List[int] = field(default_factory=list)
    products: Optional[int] = None
    bid_min: Optional[float] = None
    bid_max: Optional[float] = None
    purchase_rate: Optional[float] = None
    avg_price: Optional[float] = None
    traffic_keyword_type: Optional[str] = None

    def add(self, occurrence: KeywordOccurrence) -> None:
        m = occurrence.metrics
        cpc = occurrence.cpc or 0.0

        self.search_volume = max(self.search_volume, occurrence.search_volume or 0)
        self.cpc.add(cpc)
        self.supply_demand.add(m.supply_demand_ratio)
        self.ad_products.add(m.ad_products)

        position = occurrence.ranking_position
        if position is not None and 0 < position <= MAX_TRACKED_POSITION:
            self.positions.append(position)

        if m.products is not None:
            self.products = max(self.products or 0, m.products)

        low = m.bid_min if m.bid_min is not None else cpc
        high = m.bid_max if m.bid_max is not None else cpc
        self.bid_min = low if self.bid_min is None else min(self.bid_min, low)
        self.bid_max = high if self.bid_max is None else max(self.bid_max, high)

        if self.purchase_rate is None:
            self.purchase_rate = m.purchase_rate
        if self.avg_price is None:
            self.avg_price = m.avg_price
        if self.traffic_keyword_type is None:
            self.traffic_keyword_type = m.traffic_keyword_type

    def to_candidate(self) -> OpportunityCandidate:
        top15 = sum(1 for p in self.positions if p <= TOP15_POSITION)
        ranking = sum(1 for p in self.positions if p <= RANKING_POSITION)

        if self.positions:
            avg_rank = sum(self.positions) / len(self.positions)
            strength = clamp(11 - avg_rank / 10, 1, 10)
        else:
            avg_rank = 0.0
            strength = 1.0

        if top15 == 0:
            opportunity_type = OpportunityType.MARKET_GAP
        elif strength <= WEAK_COMPETITOR_STRENGTH:
            opportunity_type = OpportunityType.WEAK_COMPETITORS
        else:
            opportunity_type = OpportunityType.LOW_COMPETITION

        supply_demand = self.supply_demand.value
        ad_products = self.ad_products.value

        return OpportunityCandidate(
            keyword=self.keyword,
            search_volume=self.search_volume,
            avg_cpc=round(self.cpc.value or 0.0, 2),
            opportunity_type=opportunity_type,
            competition_score=round(strength, 2),
            supply_demand_ratio=round(supply_demand, 2) if supply_demand is not None else None,
            growth_trend=GROWTH_TRENDS.get(self.traffic_keyword_type, "unknown"),
            competitor_performance=CompetitorPerformance(
                avg_competitor_rank=round(avg_rank),
                competitors_ranking=ranking,
                competitors_in_top15=top15,
                competitor_strength=round(strength, 2),
            ),
            metrics=KeywordMetrics(
                products=self.products,
                ad_products=round(ad_products, 2) if ad_products is not None else None,
                bid_min=self.bid_min,
                bid_max=self.bid_max,
                purchase_rate=self.purchase_rate,
                avg_price=self.avg_price,
                supply_demand_ratio=supply_demand,
                traffic_keyword_type=self.traffic_keyword_type,
            ),
        )


@dataclass
class OpportunityFindings:
    """Output of the opportunity phase."""
    opportunities: List[OpportunityCandidate]
    all_keywords_with_competition: List[OpportunityCandidate]


# ============================================================================
# FINDER
# ============================================================================

class OpportunityFinder:
    """
    Finds targeted opportunities for the primary product.

    Usage:
        finder = OpportunityFinder(provider)
        findings = await finder.find_targeted_opportunities(products, aggregated, filters)
    """

    def __init__(self, provider: Optional[KeywordDataProvider] = None):
        self.provider = provider

    def build_universe(
        self,
        products: Sequence[ProductKeywordResult],
        min_search_volume: int = 0,
    ) -> List[OpportunityCandidate]:
        """Every keyword of every successful product, with competitor statistics."""
        universe: Dict[str, UniverseEntry] = {}
        for product in products:
            if not product.succeeded:
                continue
            for occurrence in product.keywords:
                if (occurrence.search_volume or 0) < min_search_volume:
                    continue
                key = occurrence.normalized
                if not key:
                    continue
                entry = universe.get(key)
                if entry is None:
                    entry = universe[key] = UniverseEntry(keyword=occurrence.keyword)
                entry.add(occurrence)

        return [entry.to_candidate() for entry in universe.values()]

    @staticmethod
    def passes_filters(candidate: OpportunityCandidate, filters: OpportunityFilters) -> bool:
        perf = candidate.competitor_performance or CompetitorPerformance()
        m = candidate.metrics

        ad_products = m.ad_products if m.ad_products is not None else MISSING_AD_PRODUCTS
        # A zero ratio means "unknown" to the provider, same as missing
        supply_demand = candidate.supply_demand_ratio or MISSING_SUPPLY_DEMAND_RATIO
        total_products = m.products or MISSING_PRODUCTS

        return (
            filters.min_search_volume <= candidate.search_volume <= filters.max_search_volume
            and perf.competitors_in_top15 <= filters.max_competitors_in_top15
            and perf.competitors_ranking >= filters.min_competitors_ranking
            and candidate.competition_score <= filters.max_competitor_strength
            and ad_products <= filters.max_ad_products
            and supply_demand <= filters.max_supply_demand_ratio
            and total_products <= filters.max_products
        )

    def filter_opportunities(
        self,
        universe: Sequence[OpportunityCandidate],
        filters: OpportunityFilters,
    ) -> List[OpportunityCandidate]:
        return [c for c in universe if self.passes_filters(c, filters)]

    async def mine_related(
        self,
        aggregated: Sequence[AggregatedKeyword],
        filters: OpportunityFilters,
    ) -> List[OpportunityCandidate]:
        """
        Ask the mining endpoint for keywords related to the top aggregated ones.

        Failures are logged and dropped; sibling calls still count.
        """
        if self.provider is None or not aggregated:
            return []

        seeds = [kw.keyword for kw in aggregated[:MINING_SEED_KEYWORDS]]
        results = await asyncio.gather(
            *(
                self.provider.keyword_mining(
                    seed,
                    min_search=filters.min_search_volume,
                    max_supply_demand_ratio=MINING_MAX_SUPPLY_DEMAND_RATIO,
                    size=MINING_RESULT_SIZE,
                )
                for seed in seeds
            ),
            return_exceptions=True,
        )

        mined: List[OpportunityCandidate] = []
        for seed, result in zip(seeds, results):
            if isinstance(result, BaseException):
                logger.error(f"Keyword mining failed for '{seed}': {result}")
                continue
            for occurrence in result or []:
                volume = occurrence.search_volume or 0
                if not filters.min_search_volume <= volume <= filters.max_search_volume:
                    continue
                mined.append(OpportunityCandidate(
                    keyword=occurrence.keyword,
                    search_volume=volume,
                    avg_cpc=occurrence.cpc or 0.0,
                    opportunity_type=OpportunityType.KEYWORD_MINING,
                    supply_demand_ratio=occurrence.metrics.supply_demand_ratio,
                    growth_trend=GROWTH_TRENDS.get(
                        occurrence.metrics.traffic_keyword_type, "unknown"
                    ),
                    metrics=occurrence.metrics,
                ))

        logger.info(f"Keyword mining returned {len(mined)} related keywords from {len(seeds)} seeds")
        return mined

    @staticmethod
    def select_for_primary(
        primary: Optional[ProductKeywordResult],
        filtered: Sequence[OpportunityCandidate],
        mined: Sequence[OpportunityCandidate] = (),
        limit: int = MAX_PRIMARY_OPPORTUNITIES,
    ) -> List[OpportunityCandidate]:
        """
        Re-scan the primary product's keywords against the filtered set.

        Each surviving keyword carries its universe statistics. Mined keywords
        are appended unless already present; the result is sorted by volume.
        """
        by_key = {normalize_keyword(c.keyword): c for c in filtered}
        selected: Dict[str, OpportunityCandidate] = {}

        if primary is not None:
            for occurrence in primary.keywords:
                key = occurrence.normalized
                if key in by_key and key not in selected:
                    selected[key] = by_key[key]

        for candidate in mined:
            key = normalize_keyword(candidate.keyword)
            if key and key not in selected:
                selected[key] = candidate

        ordered = sorted(selected.values(), key=lambda c: c.search_volume, reverse=True)
        return ordered[:limit]

    async def find_targeted_opportunities(
        self,
        products: Sequence[ProductKeywordResult],
        aggregated: Sequence[AggregatedKeyword],
        filters: OpportunityFilters,
    ) -> OpportunityFindings:
        """
        Run the full opportunity phase.

        Args:
            products: Product results in caller order (index 0 = primary)
            aggregated: Aggregated keywords, best first (mining seeds)
            filters: Opportunity filters

        Returns:
            OpportunityFindings with the primary's opportunities and the universe
        """
        successful = [p for p in products if p.succeeded]
        if not successful:
            return OpportunityFindings(opportunities=[], all_keywords_with_competition=[])

        universe = self.build_universe(successful, min_search_volume=filters.min_search_volume)
        filtered = self.filter_opportunities(universe, filters)
        mined = await self.mine_related(aggregated, filters)

        # Index 0 stays the baseline; when it failed only mined keywords remain
        primary = products[0] if products[0].succeeded else None
        opportunities = self.select_for_primary(primary, filtered, mined)

        logger.info(
            f"Opportunity universe: {len(universe)} keywords, {len(filtered)} passed filters, "
            f"{len(opportunities)} selected for {products[0].asin}"
        )
        return OpportunityFindings(
            opportunities=opportunities,
            all_keywords_with_competition=universe,
        )
