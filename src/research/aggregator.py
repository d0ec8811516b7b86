"""
Keyword Aggregator

Merges per-product keyword occurrences into one cross-product record per
keyword and scores each record with the opportunity formula.

Keywords are matched on folded text (case and whitespace), so
"Yoga Mat" and "yoga  mat" collapse into one record. The first spelling
seen is kept for display.

Per keyword:
    search_volume = max observed (volumes come from one provider, so they
                    should agree; max guards against partial rows)
    avg_cpc       = true mean of every observed CPC
    ranking_asins = one entry per product that returned the keyword, in
                    product order
    metrics       = best-of (maximum) of each tracked market metric

The session reconstructor feeds stored rows through the same
KeywordAccumulator, so a rebuilt session scores identically to the live run.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from src.scoring.opportunity import calculate_opportunity_score

from .models import (
    AggregatedKeyword,
    KeywordMetrics,
    KeywordOccurrence,
    ProductKeywordResult,
    RankingEntry,
    ResearchOverview,
    normalize_keyword,
)

logger = logging.getLogger(__name__)


@dataclass
class KeywordAccumulator:
    """Mutable per-keyword state; frozen into an AggregatedKeyword by finalize()."""
    keyword: str
    search_volume: int = 0
    cpc_total: float = 0.0
    cpc_count: int = 0
    rankings: List[RankingEntry] = field(default_factory=list)
    metrics: KeywordMetrics = field(default_factory=KeywordMetrics)
    _seen_asins: set = field(default_factory=set, repr=False)

    def add(self, asin: str, occurrence: KeywordOccurrence) -> None:
        self.search_volume = max(self.search_volume, occurrence.search_volume or 0)
        self.cpc_total += occurrence.cpc or 0.0
        self.cpc_count += 1
        self.metrics = self.metrics.best_of(occurrence.metrics)

        if asin not in self._seen_asins:
            self._seen_asins.add(asin)
            self.rankings.append(RankingEntry(
                asin=asin,
                position=occurrence.ranking_position,
                traffic_percentage=occurrence.traffic_percentage or 0.0,
            ))

    @property
    def avg_cpc(self) -> float:
        return self.cpc_total / self.cpc_count if self.cpc_count else 0.0

    @property
    def competitor_count(self) -> int:
        """Products that actually rank (position > 0) for this keyword."""
        return sum(1 for r in self.rankings if r.is_ranking)

    def finalize(self, products_analyzed: int) -> AggregatedKeyword:
        avg_cpc = self.avg_cpc
        return AggregatedKeyword(
            keyword=self.keyword,
            search_volume=self.search_volume,
            avg_cpc=round(avg_cpc, 4),
            ranking_asins=list(self.rankings),
            opportunity_score=calculate_opportunity_score(
                self.search_volume, avg_cpc, self.competitor_count, products_analyzed,
            ),
            metrics=self.metrics,
        )


def _sort_key(kw: AggregatedKeyword):
    return (-kw.opportunity_score, -kw.search_volume, normalize_keyword(kw.keyword))


def aggregate_occurrences(
    products: Iterable[ProductKeywordResult],
    products_analyzed: Optional[int] = None,
) -> List[AggregatedKeyword]:
    """
    Aggregate keyword occurrences across products.

    Args:
        products: Product results; only successful ones participate
        products_analyzed: Override for the confidence factor (defaults to
            the number of successful products)

    Returns:
        Aggregated keywords sorted by opportunity score descending
    """
    successful = [p for p in products if p.succeeded]
    if products_analyzed is None:
        products_analyzed = len(successful)

    accumulators: Dict[str, KeywordAccumulator] = {}
    for product in successful:
        for occurrence in product.keywords:
            key = occurrence.normalized
            if not key:
                continue
            acc = accumulators.get(key)
            if acc is None:
                acc = accumulators[key] = KeywordAccumulator(keyword=occurrence.keyword)
            acc.add(product.asin, occurrence)

    aggregated = [acc.finalize(products_analyzed) for acc in accumulators.values()]
    aggregated.sort(key=_sort_key)

    logger.debug(
        f"Aggregated {len(aggregated)} keywords from {len(successful)} products"
    )
    return aggregated


def build_overview(
    products: List[ProductKeywordResult],
    aggregated: List[AggregatedKeyword],
    processing_time_ms: int = 0,
) -> ResearchOverview:
    """Headline statistics for a run."""
    total_keywords = sum(p.keyword_count for p in products if p.succeeded)
    avg_volume = (
        round(sum(k.search_volume for k in aggregated) / len(aggregated))
        if aggregated else 0
    )
    return ResearchOverview(
        total_asins=len(products),
        total_keywords=total_keywords,
        avg_search_volume=avg_volume,
        processing_time_ms=processing_time_ms,
    )
