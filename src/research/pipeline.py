"""
Keyword Research Pipeline

Runs one research session end to end:

    Phase 1: Keyword extraction      (collector, 0-45%)
    Phase 2: Aggregation + comparison (50%)
    Phase 3: Opportunity mining       (70%)
    Phase 4: Gap analysis             (85%)
    Phase 5: Enhancement              (90% -> 95%)
    Complete                          (100%)

Collaborators are injected; the pipeline holds no process-wide state.
Opportunity, gap and enhancement failures degrade to empty/absent results
and never fail the run.

Usage:
    async with SellerSpriteClient(api_key) as client:
        pipeline = KeywordResearchPipeline(client)
        result = await pipeline.research(["B08N5WRWNW", "B07ZPKN6YR"])
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Sequence, Union

from src.utils.rate_limit import RateLimiter

from .aggregator import aggregate_occurrences, build_overview
from .collector import KeywordCollector
from .comparison import build_comparison_view
from .enhancement import BATCH_DELAY_SECONDS, ITEM_DELAY_SECONDS, KeywordEnhancer
from .errors import ResearchCancelled, validate_asins
from .gaps import GapAnalyzer
from .models import ResearchResult
from .opportunities import OpportunityFinder, OpportunityFindings
from .options import ResearchOptions
from .progress import ProgressReporter, ProgressStream, ResearchPhase
from .provider import KeywordDataProvider

logger = logging.getLogger(__name__)

PROGRESS_AGGREGATION = 50
PROGRESS_OPPORTUNITIES = 70
PROGRESS_GAPS = 85
PROGRESS_ENHANCEMENT_START = 90
PROGRESS_ENHANCEMENT_END = 95
PROGRESS_COMPLETE = 100

PRODUCT_DELAY_SECONDS = 0.5


class KeywordResearchPipeline:
    """Aggregation, scoring and enrichment for 1-10 products."""

    def __init__(
        self,
        provider: KeywordDataProvider,
        collector: Optional[KeywordCollector] = None,
        opportunity_finder: Optional[OpportunityFinder] = None,
        enhancer: Optional[KeywordEnhancer] = None,
        product_delay: float = PRODUCT_DELAY_SECONDS,
        item_delay: float = ITEM_DELAY_SECONDS,
        batch_delay: float = BATCH_DELAY_SECONDS,
    ):
        self.provider = provider
        self.collector = collector
        self.opportunity_finder = opportunity_finder or OpportunityFinder(provider)
        self.enhancer = enhancer
        self.product_delay = product_delay
        self.item_delay = item_delay
        self.batch_delay = batch_delay

    @classmethod
    def from_settings(cls, provider: KeywordDataProvider, settings) -> "KeywordResearchPipeline":
        return cls(
            provider,
            product_delay=settings.PRODUCT_DELAY_SECONDS,
            item_delay=settings.ENHANCEMENT_ITEM_DELAY_SECONDS,
            batch_delay=settings.ENHANCEMENT_BATCH_DELAY_SECONDS,
        )

    def make_collector(self) -> KeywordCollector:
        """Injected collector, or a fresh one with its own rate limiter for this run."""
        if self.collector is not None:
            return self.collector
        return KeywordCollector(self.provider, RateLimiter(self.product_delay))

    def make_enhancer(self) -> KeywordEnhancer:
        if self.enhancer is not None:
            return self.enhancer
        return KeywordEnhancer(
            self.provider,
            RateLimiter(self.item_delay),
            item_delay=self.item_delay,
            batch_delay=self.batch_delay,
        )

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _find_opportunities(self, products, aggregated, options: ResearchOptions) -> OpportunityFindings:
        if not options.include_opportunities:
            universe = self.opportunity_finder.build_universe(products)
            return OpportunityFindings(opportunities=[], all_keywords_with_competition=universe)
        try:
            return await self.opportunity_finder.find_targeted_opportunities(
                products, aggregated, options.opportunity_filters
            )
        except Exception as e:
            logger.error(f"Targeted opportunity mining failed: {e}")
            return OpportunityFindings(
                opportunities=[],
                all_keywords_with_competition=self.opportunity_finder.build_universe(
                    products, min_search_volume=options.opportunity_filters.min_search_volume
                ),
            )

    def _analyze_gaps(self, products, options: ResearchOptions):
        if not options.include_gap_analysis:
            return None
        try:
            return GapAnalyzer(options.gap_analysis_options).analyze(products)
        except Exception as e:
            logger.error(f"Gap analysis failed: {e}")
            return None

    @staticmethod
    def _check_cancelled(progress: ProgressReporter, stage: str) -> None:
        if progress.cancelled:
            raise ResearchCancelled(f"Research cancelled during {stage}")

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def research(
        self,
        asins: Sequence[str],
        options: Optional[Union[ResearchOptions, Dict[str, Any]]] = None,
        progress: Optional[ProgressReporter] = None,
    ) -> ResearchResult:
        """
        Run a full research session.

        Args:
            asins: 1-10 product identifiers; index 0 is the user's product
            options: ResearchOptions or a (camelCase or snake_case) dict
            progress: Optional reporter; closed when the run ends

        Returns:
            Assembled ResearchResult

        Raises:
            ValidationError: Invalid ASIN list
            ResearchCancelled: The reporter was cancelled before assembly
        """
        progress = progress or ProgressReporter()
        start = time.monotonic()

        try:
            asin_list = validate_asins(asins)
            if not isinstance(options, ResearchOptions):
                options = ResearchOptions.from_dict(options)
            result = await self._run(asin_list, options, progress, start)
        except ResearchCancelled:
            logger.warning("Keyword research cancelled")
            progress.close()
            raise
        except Exception as e:
            progress.report(ResearchPhase.ERROR, f"Research failed: {e}", 0)
            progress.close()
            raise

        progress.report(
            ResearchPhase.COMPLETE,
            f"Keyword research complete! Found {result.overview.total_keywords} keywords "
            f"and {len(result.opportunities)} opportunities",
            PROGRESS_COMPLETE,
            {"overview": result.overview.to_dict()},
        )
        progress.close()
        return result

    async def _run(
        self,
        asins: List[str],
        options: ResearchOptions,
        progress: ProgressReporter,
        start: float,
    ) -> ResearchResult:
        logger.info(f"Starting keyword research for {len(asins)} products: {', '.join(asins)}")

        # Phase 1: Keyword extraction
        products = await self.make_collector().collect(
            asins,
            max_keywords=options.max_keywords_per_asin,
            min_search_volume=options.min_search_volume,
            progress=progress,
        )
        self._check_cancelled(progress, "keyword aggregation")

        # Phase 2: Aggregation and comparison
        progress.report(
            ResearchPhase.KEYWORD_AGGREGATION,
            "Aggregating keywords and creating comparison views...",
            PROGRESS_AGGREGATION,
            {"total_keywords": sum(p.keyword_count for p in products)},
        )
        aggregated = aggregate_occurrences(products)
        comparison = build_comparison_view(products)

        # Phase 3: Opportunities
        progress.report(
            ResearchPhase.OPPORTUNITY_MINING,
            "Mining targeted opportunities with competitor analysis...",
            PROGRESS_OPPORTUNITIES,
            {"unique_keywords": len(aggregated)},
        )
        findings = await self._find_opportunities(products, aggregated, options)
        self._check_cancelled(progress, "opportunity mining")

        # Phase 4: Gap analysis
        progress.report(
            ResearchPhase.GAP_ANALYSIS,
            "Analyzing market gaps...",
            PROGRESS_GAPS,
            {"total_opportunities": len(findings.opportunities)},
        )
        gap_analysis = self._analyze_gaps(products, options)

        # Phase 5: Enhancement
        progress.report(
            ResearchPhase.KEYWORD_ENHANCEMENT,
            "Enhancing opportunity and gap keywords with detailed mining data...",
            PROGRESS_ENHANCEMENT_START,
        )
        opportunities = findings.opportunities
        try:
            outcome = await self.make_enhancer().enhance(opportunities, gap_analysis, progress)
            opportunities, gap_analysis = outcome.opportunities, outcome.gap_analysis
            enhanced = outcome.enhanced
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Keyword enhancement failed, keeping unenhanced data: {e}")
            enhanced = 0
        self._check_cancelled(progress, "keyword enhancement")

        progress.report(
            ResearchPhase.KEYWORD_ENHANCEMENT,
            f"Enhanced {enhanced} keywords with mining data",
            PROGRESS_ENHANCEMENT_END,
            {"enhanced_keywords": enhanced},
        )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        result = ResearchResult(
            overview=build_overview(products, aggregated, elapsed_ms),
            asin_results=products,
            aggregated_keywords=aggregated,
            comparison_view=comparison,
            opportunities=opportunities,
            gap_analysis=gap_analysis,
            all_keywords_with_competition=findings.all_keywords_with_competition,
        )
        logger.info(
            f"Keyword research finished in {elapsed_ms}ms: {len(aggregated)} keywords, "
            f"{len(opportunities)} opportunities, "
            f"{len(gap_analysis.gaps) if gap_analysis else 0} gaps"
        )
        return result

    def stream(
        self,
        asins: Sequence[str],
        options: Optional[Union[ResearchOptions, Dict[str, Any]]] = None,
        maxsize: int = 100,
    ):
        """
        Start a run in the background and return (stream, task).

        Iterate the stream for progress; await the task for the result.
        Cancelling the stream stops the run at the next checkpoint.
        """
        stream = ProgressStream(maxsize=maxsize)
        task = asyncio.create_task(self.research(asins, options, progress=stream))
        return stream, task
