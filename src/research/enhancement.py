"""
Keyword Enhancement

Enriches the most promising opportunities and gaps with mining data.

Selection:
    up to 20 opportunities and 5 gaps, ranked by calculate_enhancement_score(),
    deduplicated by folded keyword (opportunities first).

Calls:
    sequential, batches of 3; 1s spacing inside a batch, 2s before each new
    batch. The mining lookup is asked for one result and only an exact
    (case-insensitive) keyword match is used; anything else leaves the
    keyword unenhanced.

Merge:
    the original record is kept and only the enrichment metrics are
    overlaid, so gap_type, gap_score, opportunity_type and the competitor
    statistics always survive.
"""

import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence, Tuple

from src.scoring.enhancement import calculate_enhancement_score
from src.utils.rate_limit import RateLimiter

from .models import (
    ENRICHMENT_FIELDS,
    GapAnalysisResult,
    GapRecord,
    KeywordMetrics,
    KeywordOccurrence,
    OpportunityCandidate,
    normalize_keyword,
)
from .progress import ProgressReporter
from .provider import KeywordDataProvider

logger = logging.getLogger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

MAX_OPPORTUNITY_TARGETS = 20
MAX_GAP_TARGETS = 5
BATCH_SIZE = 3
ITEM_DELAY_SECONDS = 1.0
BATCH_DELAY_SECONDS = 2.0

MINING_MIN_SEARCH = 100
MINING_MAX_SUPPLY_DEMAND_RATIO = 20
MINING_SIZE = 1


@dataclass
class EnhancementOutcome:
    """Records after enhancement plus call statistics."""
    opportunities: List[OpportunityCandidate]
    gap_analysis: Optional[GapAnalysisResult]
    attempted: int = 0
    enhanced: int = 0
    duplicates_avoided: int = 0
    stopped_early: bool = False


# ============================================================================
# SELECTION
# ============================================================================

def opportunity_priority(candidate: OpportunityCandidate) -> float:
    return calculate_enhancement_score(
        candidate.search_volume,
        competition_score=candidate.competition_score,
        avg_cpc=candidate.avg_cpc,
    )


def gap_priority(gap: GapRecord) -> float:
    return calculate_enhancement_score(
        gap.search_volume,
        gap_score=gap.gap_score,
        avg_cpc=gap.avg_cpc,
    )


def select_enhancement_targets(
    opportunities: Sequence[OpportunityCandidate],
    gaps: Sequence[GapRecord],
    max_opportunities: int = MAX_OPPORTUNITY_TARGETS,
    max_gaps: int = MAX_GAP_TARGETS,
) -> Tuple[List[str], int]:
    """
    Pick the keywords to enrich.

    Returns:
        (keywords in call order, number of duplicates skipped)
    """
    top_opportunities = sorted(opportunities, key=opportunity_priority, reverse=True)[:max_opportunities]
    top_gaps = sorted(gaps, key=gap_priority, reverse=True)[:max_gaps]

    selected: List[str] = []
    seen = set()
    duplicates = 0
    for keyword in [o.keyword for o in top_opportunities] + [g.keyword for g in top_gaps]:
        key = normalize_keyword(keyword)
        if not key:
            continue
        if key in seen:
            duplicates += 1
            continue
        seen.add(key)
        selected.append(keyword)
    return selected, duplicates


def enrichment_metrics(match: KeywordOccurrence) -> KeywordMetrics:
    """Keep only the fields the mining lookup is trusted to contribute."""
    values = {name: getattr(match.metrics, name) for name in ENRICHMENT_FIELDS}
    return KeywordMetrics(**{k: v for k, v in values.items() if v is not None})


def find_exact_match(keyword: str, results: Sequence[KeywordOccurrence]) -> Optional[KeywordOccurrence]:
    wanted = normalize_keyword(keyword)
    for result in results or []:
        if normalize_keyword(result.keyword) == wanted:
            return result
    return None


# ============================================================================
# ENHANCER
# ============================================================================

class KeywordEnhancer:
    """
    Calls the mining lookup for selected keywords and merges the results.

    Usage:
        enhancer = KeywordEnhancer(provider)
        outcome = await enhancer.enhance(opportunities, gap_analysis)
    """

    def __init__(
        self,
        provider: KeywordDataProvider,
        rate_limiter: Optional[RateLimiter] = None,
        item_delay: float = ITEM_DELAY_SECONDS,
        batch_delay: float = BATCH_DELAY_SECONDS,
        batch_size: int = BATCH_SIZE,
    ):
        self.provider = provider
        self.rate_limiter = rate_limiter or RateLimiter(item_delay)
        self.item_delay = item_delay
        self.batch_delay = batch_delay
        self.batch_size = max(1, batch_size)

    async def _enhance_one(self, keyword: str) -> Optional[KeywordMetrics]:
        try:
            results = await self.provider.keyword_mining(
                keyword,
                min_search=MINING_MIN_SEARCH,
                max_supply_demand_ratio=MINING_MAX_SUPPLY_DEMAND_RATIO,
                size=MINING_SIZE,
            )
        except Exception as e:
            logger.warning(f"Failed to enhance '{keyword}' with mining data: {e}")
            return None

        match = find_exact_match(keyword, results)
        if match is None:
            logger.debug(f"No exact mining match for '{keyword}'")
            return None
        return enrichment_metrics(match)

    async def fetch_enrichments(
        self,
        keywords: Sequence[str],
        progress: Optional[ProgressReporter] = None,
    ) -> Tuple[Dict[str, KeywordMetrics], bool]:
        """
        Fetch enrichment metrics keyed by folded keyword.

        Returns:
            (enrichments, stopped_early)
        """
        enrichments: Dict[str, KeywordMetrics] = {}

        for start in range(0, len(keywords), self.batch_size):
            batch = keywords[start:start + self.batch_size]
            # A batch that fails part way contributes nothing
            batch_enrichments: Dict[str, KeywordMetrics] = {}
            try:
                for j, keyword in enumerate(batch):
                    if progress is not None and progress.cancelled:
                        enrichments.update(batch_enrichments)
                        logger.warning(
                            f"Enhancement stopped after {len(enrichments)} keywords: cancelled"
                        )
                        return enrichments, True

                    if j == 0:
                        await self.rate_limiter.acquire(self.batch_delay)
                    else:
                        await self.rate_limiter.acquire(self.item_delay)

                    metrics = await self._enhance_one(keyword)
                    if metrics is not None:
                        batch_enrichments[normalize_keyword(keyword)] = metrics
            except Exception as e:
                logger.error(f"Enhancement batch starting at '{batch[0]}' failed: {e}")
                continue

            enrichments.update(batch_enrichments)

        return enrichments, False

    @staticmethod
    def merge(
        opportunities: Sequence[OpportunityCandidate],
        gap_analysis: Optional[GapAnalysisResult],
        enrichments: Dict[str, KeywordMetrics],
    ) -> Tuple[List[OpportunityCandidate], Optional[GapAnalysisResult]]:
        """Overlay enrichment metrics onto the original records."""
        merged_opportunities = []
        for candidate in opportunities:
            extra = enrichments.get(normalize_keyword(candidate.keyword))
            if extra is not None:
                candidate = replace(candidate, metrics=candidate.metrics.overlay(extra))
            merged_opportunities.append(candidate)

        if gap_analysis is None:
            return merged_opportunities, None

        merged_gaps = []
        for gap in gap_analysis.gaps:
            extra = enrichments.get(normalize_keyword(gap.keyword))
            if extra is not None:
                gap = replace(gap, metrics=gap.metrics.overlay(extra))
            merged_gaps.append(gap)

        return merged_opportunities, replace(gap_analysis, gaps=merged_gaps)

    async def enhance(
        self,
        opportunities: Sequence[OpportunityCandidate],
        gap_analysis: Optional[GapAnalysisResult],
        progress: Optional[ProgressReporter] = None,
    ) -> EnhancementOutcome:
        """Select, fetch and merge. Never raises for provider failures."""
        gaps = gap_analysis.gaps if gap_analysis else []
        keywords, duplicates = select_enhancement_targets(opportunities, gaps)

        if not keywords:
            return EnhancementOutcome(
                opportunities=list(opportunities),
                gap_analysis=gap_analysis,
            )

        logger.info(
            f"Enhancing {len(keywords)} unique keywords "
            f"(avoided {duplicates} duplicate calls)"
        )
        enrichments, stopped = await self.fetch_enrichments(keywords, progress)
        merged_opportunities, merged_gaps = self.merge(opportunities, gap_analysis, enrichments)

        logger.info(f"Enhanced {len(enrichments)}/{len(keywords)} keywords")
        return EnhancementOutcome(
            opportunities=merged_opportunities,
            gap_analysis=merged_gaps,
            attempted=len(keywords),
            enhanced=len(enrichments),
            duplicates_avoided=duplicates,
            stopped_early=stopped,
        )
