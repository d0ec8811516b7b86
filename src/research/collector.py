"""
Keyword Collector

Fetches reverse-ASIN keywords for each product, one product at a time,
spaced by a RateLimiter. A failing product is recorded with status
"failed" and never stops the remaining products.

Progress checkpoints (percent):
    0          extraction start
    i/n×40+5   before product i
    +2         after product i
"""

import logging
from typing import Dict, List, Optional, Sequence

from src.utils.rate_limit import RateLimiter

from .errors import ResearchCancelled
from .models import KeywordOccurrence, ProductKeywordResult, ProductStatus
from .progress import ProgressReporter, ResearchPhase
from .provider import KeywordDataProvider

logger = logging.getLogger(__name__)

EXTRACTION_START = 5
EXTRACTION_SPAN = 40
PRODUCT_DONE_STEP = 2


def filter_occurrences(
    occurrences: Sequence[KeywordOccurrence],
    min_search_volume: int,
) -> List[KeywordOccurrence]:
    """Drop low-volume and blank keywords, keeping the first of each folded duplicate."""
    seen = set()
    kept = []
    for occurrence in occurrences:
        if (occurrence.search_volume or 0) < min_search_volume:
            continue
        key = occurrence.normalized
        if not key or key in seen:
            continue
        seen.add(key)
        kept.append(occurrence)
    return kept


class KeywordCollector:
    """Sequential reverse-ASIN collection with self-imposed throttling."""

    def __init__(
        self,
        provider: KeywordDataProvider,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.provider = provider
        self.rate_limiter = rate_limiter or RateLimiter(0.5)

    async def collect_product(
        self,
        asin: str,
        max_keywords: int,
        min_search_volume: int,
    ) -> ProductKeywordResult:
        """Collect one product. Provider errors become a failed result."""
        try:
            occurrences = await self.provider.reverse_asin(asin, page=1, size=max_keywords)
        except Exception as e:
            logger.error(f"Failed to collect keywords for {asin}: {e}")
            return ProductKeywordResult(asin=asin, status=ProductStatus.FAILED, error=str(e))

        if not occurrences:
            logger.warning(f"No keyword data returned for {asin}")
            return ProductKeywordResult(asin=asin, status=ProductStatus.NO_DATA)

        keywords = filter_occurrences(occurrences, min_search_volume)
        logger.info(
            f"{asin}: kept {len(keywords)} of {len(occurrences)} keywords "
            f"(min volume {min_search_volume})"
        )
        return ProductKeywordResult(asin=asin, keywords=keywords)

    async def collect(
        self,
        asins: Sequence[str],
        max_keywords: int = 50,
        min_search_volume: int = 100,
        progress: Optional[ProgressReporter] = None,
    ) -> List[ProductKeywordResult]:
        """
        Collect every product in order.

        Raises:
            ResearchCancelled: If the reporter is cancelled between products
        """
        progress = progress or ProgressReporter()
        total = len(asins)
        results: List[ProductKeywordResult] = []

        progress.report(
            ResearchPhase.KEYWORD_EXTRACTION,
            f"Extracting keywords from {total} products...",
            0,
            {"total_asins": total, "current_asin": 0},
        )

        for i, asin in enumerate(asins):
            if progress.cancelled:
                raise ResearchCancelled("Research cancelled during keyword extraction")

            base = round(i / total * EXTRACTION_SPAN) + EXTRACTION_START
            data: Dict = {"total_asins": total, "current_asin": i + 1, "processing_asin": asin}
            progress.report(
                ResearchPhase.KEYWORD_EXTRACTION,
                f"Analyzing keywords for {asin}...",
                base,
                data,
            )

            await self.rate_limiter.acquire()
            result = await self.collect_product(asin, max_keywords, min_search_volume)
            results.append(result)

            progress.report(
                ResearchPhase.KEYWORD_EXTRACTION,
                f"Found {result.keyword_count} keywords for {asin}",
                base + PRODUCT_DONE_STEP,
                {
                    "total_asins": total,
                    "current_asin": i + 1,
                    "completed_asin": asin,
                    "keywords_found": result.keyword_count,
                    "status": result.status.value,
                },
            )

        succeeded = sum(1 for r in results if r.succeeded)
        logger.info(f"Keyword extraction finished: {succeeded}/{total} products succeeded")
        return results
