"""
ASIN Keyword Research

Aggregates the keywords a set of products rank for, scores them, finds
opportunities and gaps, enriches the best candidates and rebuilds stored
sessions.

Usage:
    from src.research import KeywordResearchPipeline

    pipeline = KeywordResearchPipeline(provider)
    result = await pipeline.research(["B08N5WRWNW", "B07ZPKN6YR"])
"""

from .models import (
    normalize_keyword,
    ProductStatus,
    OpportunityType,
    GapType,
    ImpactLevel,
    KeywordMetrics,
    KeywordOccurrence,
    ProductKeywordResult,
    RankingEntry,
    AggregatedKeyword,
    ComparisonRecord,
    CompetitorPerformance,
    OpportunityCandidate,
    GapRanking,
    GapRecord,
    GapSummary,
    GapAnalysisResult,
    ResearchOverview,
    ResearchResult,
)
from .options import OpportunityFilters, GapAnalysisOptions, ResearchOptions
from .errors import (
    KeywordResearchError,
    ValidationError,
    DatabaseError,
    CacheError,
    SessionNotFoundError,
    RateLimitError,
    ExternalServiceError,
    ResearchCancelled,
    validate_asins,
    validate_user_id,
    validate_session_name,
    validate_research_options,
    handle_error,
    with_retry,
)
from .provider import KeywordDataProvider
from .progress import (
    ResearchPhase,
    ProgressEvent,
    ProgressReporter,
    CallbackProgress,
    ProgressStream,
)
from .collector import KeywordCollector, filter_occurrences
from .aggregator import KeywordAccumulator, aggregate_occurrences, build_overview
from .comparison import build_comparison_record, build_comparison_view
from .opportunities import OpportunityFinder, OpportunityFindings, UniverseEntry
from .gaps import GapAnalyzer
from .enhancement import KeywordEnhancer, EnhancementOutcome, select_enhancement_targets
from .reconstruction import (
    SessionReconstructor,
    SessionRows,
    StoredAsin,
    StoredRanking,
    StoredOpportunity,
    StoredGap,
)
from .pipeline import KeywordResearchPipeline
from .sessions import (
    ResearchSessionManager,
    ResearchDecision,
    ResearchSessionInfo,
    format_cache_age,
)

__all__ = [
    # Models
    "normalize_keyword",
    "ProductStatus",
    "OpportunityType",
    "GapType",
    "ImpactLevel",
    "KeywordMetrics",
    "KeywordOccurrence",
    "ProductKeywordResult",
    "RankingEntry",
    "AggregatedKeyword",
    "ComparisonRecord",
    "CompetitorPerformance",
    "OpportunityCandidate",
    "GapRanking",
    "GapRecord",
    "GapSummary",
    "GapAnalysisResult",
    "ResearchOverview",
    "ResearchResult",
    # Options
    "OpportunityFilters",
    "GapAnalysisOptions",
    "ResearchOptions",
    # Errors & validation
    "KeywordResearchError",
    "ValidationError",
    "DatabaseError",
    "CacheError",
    "SessionNotFoundError",
    "RateLimitError",
    "ExternalServiceError",
    "ResearchCancelled",
    "validate_asins",
    "validate_user_id",
    "validate_session_name",
    "validate_research_options",
    "handle_error",
    "with_retry",
    # Provider & progress
    "KeywordDataProvider",
    "ResearchPhase",
    "ProgressEvent",
    "ProgressReporter",
    "CallbackProgress",
    "ProgressStream",
    # Components
    "KeywordCollector",
    "filter_occurrences",
    "KeywordAccumulator",
    "aggregate_occurrences",
    "build_overview",
    "build_comparison_record",
    "build_comparison_view",
    "OpportunityFinder",
    "OpportunityFindings",
    "UniverseEntry",
    "GapAnalyzer",
    "KeywordEnhancer",
    "EnhancementOutcome",
    "select_enhancement_targets",
    "SessionReconstructor",
    "SessionRows",
    "StoredAsin",
    "StoredRanking",
    "StoredOpportunity",
    "StoredGap",
    # Orchestration
    "KeywordResearchPipeline",
    "ResearchSessionManager",
    "ResearchDecision",
    "ResearchSessionInfo",
    "format_cache_age",
]
