"""
Session Reconstruction

Rebuilds a ResearchResult from normalized store rows when the cache has
nothing for a session.

Stored ranking rows are turned back into per-product keyword occurrences
(ordered by ASIN order, then row order) and pushed through the same
aggregation, comparison, universe and gap code as a live run. Identical
rows therefore give identical scores. Stored opportunity rows are used as
saved, since mined keywords cannot be recomputed without the provider;
enrichment metrics saved with gap rows are overlaid onto the recomputed
gaps.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from .aggregator import aggregate_occurrences, build_overview
from .comparison import build_comparison_view
from .gaps import GapAnalyzer
from .models import (
    CompetitorPerformance,
    GapAnalysisResult,
    KeywordMetrics,
    KeywordOccurrence,
    OpportunityCandidate,
    OpportunityType,
    ProductKeywordResult,
    ProductStatus,
    ResearchResult,
    normalize_keyword,
)
from .opportunities import OpportunityFinder
from .options import ResearchOptions

logger = logging.getLogger(__name__)


# ============================================================================
# STORED ROW SHAPES
# ============================================================================

@dataclass
class StoredAsin:
    asin: str
    order_index: int
    is_user_product: bool = False
    status: str = "success"


@dataclass
class StoredRanking:
    asin: str
    keyword: str
    search_volume: int = 0
    cpc: float = 0.0
    ranking_position: Optional[int] = None
    traffic_percentage: Optional[float] = None
    metrics: KeywordMetrics = field(default_factory=KeywordMetrics)
    row_index: int = 0


@dataclass
class StoredOpportunity:
    keyword: str
    search_volume: int = 0
    cpc: float = 0.0
    opportunity_type: str = "low_competition"
    competition_score: float = 0.0
    supply_demand_ratio: Optional[float] = None
    competitor_performance: Optional[Dict[str, Any]] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StoredGap:
    keyword: str
    gap_type: str
    gap_score: int
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SessionRows:
    """Everything the store holds for one session."""
    session_id: str
    user_id: str
    name: str
    settings: Dict[str, Any]
    created_at: datetime
    asins: List[StoredAsin]
    rankings: List[StoredRanking]
    opportunities: List[StoredOpportunity] = field(default_factory=list)
    gaps: List[StoredGap] = field(default_factory=list)

    @property
    def options(self) -> ResearchOptions:
        return ResearchOptions.from_dict(self.settings.get("options"))


# ============================================================================
# RECONSTRUCTOR
# ============================================================================

class SessionReconstructor:
    """Deterministic rebuild of a research result from stored rows."""

    def rebuild_products(self, rows: SessionRows) -> List[ProductKeywordResult]:
        by_asin: Dict[str, List[StoredRanking]] = {}
        for ranking in rows.rankings:
            by_asin.setdefault(ranking.asin, []).append(ranking)

        products = []
        for stored in sorted(rows.asins, key=lambda a: a.order_index):
            try:
                status = ProductStatus(stored.status)
            except ValueError:
                status = ProductStatus.SUCCESS

            keywords = [
                KeywordOccurrence(
                    keyword=r.keyword,
                    search_volume=r.search_volume or 0,
                    cpc=r.cpc or 0.0,
                    ranking_position=r.ranking_position,
                    traffic_percentage=r.traffic_percentage,
                    metrics=r.metrics,
                )
                for r in sorted(by_asin.get(stored.asin, []), key=lambda r: r.row_index)
            ]
            products.append(ProductKeywordResult(
                asin=stored.asin,
                keywords=keywords if status == ProductStatus.SUCCESS else [],
                status=status,
            ))
        return products

    @staticmethod
    def rebuild_opportunity(stored: StoredOpportunity) -> OpportunityCandidate:
        try:
            opportunity_type = OpportunityType(stored.opportunity_type)
        except ValueError:
            opportunity_type = OpportunityType.LOW_COMPETITION
        return OpportunityCandidate(
            keyword=stored.keyword,
            search_volume=stored.search_volume or 0,
            avg_cpc=stored.cpc or 0.0,
            opportunity_type=opportunity_type,
            competition_score=stored.competition_score or 0.0,
            supply_demand_ratio=stored.supply_demand_ratio,
            growth_trend=stored.details.get("growth_trend", "unknown"),
            competitor_performance=CompetitorPerformance.from_dict(stored.competitor_performance),
            metrics=KeywordMetrics.from_dict(stored.details.get("metrics")),
        )

    @staticmethod
    def _overlay_gap_metrics(
        gap_analysis: GapAnalysisResult,
        stored_gaps: List[StoredGap],
    ) -> GapAnalysisResult:
        saved = {
            normalize_keyword(g.keyword): KeywordMetrics.from_dict(g.details.get("metrics"))
            for g in stored_gaps
        }
        gaps = []
        for gap in gap_analysis.gaps:
            metrics = saved.get(normalize_keyword(gap.keyword))
            if metrics is not None:
                gap = replace(gap, metrics=gap.metrics.overlay(metrics))
            gaps.append(gap)
        return replace(gap_analysis, gaps=gaps)

    def reconstruct(self, rows: SessionRows) -> ResearchResult:
        """
        Rebuild the full result.

        Args:
            rows: Stored rows of one session

        Returns:
            ResearchResult equivalent to the live run that produced the rows
        """
        options = rows.options
        products = self.rebuild_products(rows)

        aggregated = aggregate_occurrences(products)
        comparison = build_comparison_view(products)

        universe_floor = (
            options.opportunity_filters.min_search_volume
            if options.include_opportunities else 0
        )
        universe = OpportunityFinder().build_universe(products, min_search_volume=universe_floor)
        opportunities = [self.rebuild_opportunity(o) for o in rows.opportunities]

        gap_analysis = None
        if options.include_gap_analysis:
            gap_analysis = GapAnalyzer(options.gap_analysis_options).analyze(products)
            if gap_analysis is not None and rows.gaps:
                gap_analysis = self._overlay_gap_metrics(gap_analysis, rows.gaps)

        overview = build_overview(
            products,
            aggregated,
            processing_time_ms=int(rows.settings.get("processing_time_ms") or 0),
        )

        logger.info(
            f"Reconstructed session {rows.session_id}: {len(products)} products, "
            f"{len(aggregated)} keywords, {len(opportunities)} opportunities"
        )
        return ResearchResult(
            overview=overview,
            asin_results=products,
            aggregated_keywords=aggregated,
            comparison_view=comparison,
            opportunities=opportunities,
            gap_analysis=gap_analysis,
            all_keywords_with_competition=universe,
            generated_at=rows.created_at,
        )
