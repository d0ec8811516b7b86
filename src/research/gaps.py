"""
Gap Analyzer

Compares the primary ("user") product against its competitors keyword by
keyword and classifies each into a gap scenario. Needs at least two
successfully collected products; with fewer, analysis is absent (None).

Scenario rules and scores live in src.scoring.gap; this module builds the
per-keyword ranking map, runs the classifier and assembles the summary.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from src.scoring.gap import assess_keyword_gap

from .models import (
    GapAnalysisResult,
    GapRanking,
    GapRecord,
    GapSummary,
    GapType,
    ImpactLevel,
    KeywordMetrics,
    ProductKeywordResult,
)
from .options import GapAnalysisOptions

logger = logging.getLogger(__name__)

MAX_GAPS = 50


@dataclass
class _GapKeyword:
    keyword: str
    search_volume: int = 0
    cpc_total: float = 0.0
    cpc_count: int = 0
    rankings: Dict[str, GapRanking] = field(default_factory=dict)
    metrics: KeywordMetrics = field(default_factory=KeywordMetrics)

    @property
    def avg_cpc(self) -> float:
        return self.cpc_total / self.cpc_count if self.cpc_count else 0.0


class GapAnalyzer:
    """Classifies keywords into market_gap / user_advantage / competitor_weakness."""

    def __init__(self, options: Optional[GapAnalysisOptions] = None):
        self.options = options or GapAnalysisOptions()

    def _build_universe(self, products: Sequence[ProductKeywordResult]) -> Dict[str, _GapKeyword]:
        universe: Dict[str, _GapKeyword] = {}
        for product in products:
            for occurrence in product.keywords:
                volume = occurrence.search_volume or 0
                if volume < self.options.min_gap_volume:
                    continue
                key = occurrence.normalized
                if not key:
                    continue
                entry = universe.get(key)
                if entry is None:
                    entry = universe[key] = _GapKeyword(keyword=occurrence.keyword)
                entry.search_volume = max(entry.search_volume, volume)
                entry.cpc_total += occurrence.cpc or 0.0
                entry.cpc_count += 1
                entry.metrics = entry.metrics.best_of(occurrence.metrics)

                position = occurrence.ranking_position
                entry.rankings.setdefault(product.asin, GapRanking(
                    asin=product.asin,
                    position=position if position and position > 0 else None,
                    traffic_percentage=occurrence.traffic_percentage or 0.0,
                ))
        return universe

    def _classify(
        self,
        entry: _GapKeyword,
        user_asin: str,
        competitor_asins: List[str],
    ) -> Optional[GapRecord]:
        user_ranking = entry.rankings.get(user_asin) or GapRanking(asin=user_asin)
        competitor_rankings = [
            entry.rankings.get(asin) or GapRanking(asin=asin) for asin in competitor_asins
        ]
        avg_cpc = entry.avg_cpc

        assessment = assess_keyword_gap(
            entry.keyword,
            entry.search_volume,
            avg_cpc,
            user_position=user_ranking.position,
            competitor_positions=[c.position for c in competitor_rankings],
            max_gap_position=self.options.max_gap_position,
            focus_volume_threshold=self.options.focus_volume_threshold,
        )
        if assessment is None:
            return None

        return GapRecord(
            keyword=entry.keyword,
            search_volume=entry.search_volume,
            avg_cpc=round(avg_cpc, 2),
            gap_type=GapType(assessment.gap_type),
            gap_score=assessment.gap_score,
            user_ranking=user_ranking,
            competitor_rankings=competitor_rankings,
            recommendation=assessment.recommendation,
            potential_impact=ImpactLevel(assessment.potential_impact),
            metrics=entry.metrics,
        )

    def _summarize(self, gaps: List[GapRecord]) -> GapSummary:
        focus = self.options.focus_volume_threshold
        total_potential = sum(g.search_volume for g in gaps)
        return GapSummary(
            total_gaps_found=len(gaps),
            high_volume_gaps=sum(1 for g in gaps if g.search_volume >= focus),
            medium_volume_gaps=sum(
                1 for g in gaps if self.options.min_gap_volume <= g.search_volume < focus
            ),
            avg_gap_volume=round(total_potential / len(gaps)) if gaps else 0,
            total_gap_potential=total_potential,
        )

    def analyze(self, products: Sequence[ProductKeywordResult]) -> Optional[GapAnalysisResult]:
        """
        Run gap analysis.

        Args:
            products: Product results in caller order; index 0 is the user's
                product, the rest are competitors

        Returns:
            GapAnalysisResult, or None when the user's product failed or
            fewer than 2 products succeeded
        """
        if not products or not products[0].succeeded:
            logger.info("Skipping gap analysis: the user's product has no keyword data")
            return None

        successful = [p for p in products if p.succeeded]
        if len(successful) < 2:
            logger.info("Skipping gap analysis: need at least 2 successful products")
            return None

        user_asin = successful[0].asin
        competitor_asins = [p.asin for p in successful[1:]]

        universe = self._build_universe(successful)
        gaps = []
        for entry in universe.values():
            record = self._classify(entry, user_asin, competitor_asins)
            if record is not None:
                gaps.append(record)

        # Stable sort keeps universe order among equal scores
        gaps.sort(key=lambda g: g.gap_score, reverse=True)
        summary = self._summarize(gaps)

        logger.info(
            f"Gap analysis for {user_asin} vs {len(competitor_asins)} competitors: "
            f"{summary.total_gaps_found} gaps, {summary.high_volume_gaps} high-volume"
        )
        return GapAnalysisResult(
            user_asin=user_asin,
            competitor_asins=competitor_asins,
            analysis=summary,
            gaps=gaps[:MAX_GAPS],
        )
