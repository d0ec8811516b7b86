"""
Keyword Research Data Models

Dataclasses shared by every stage of the research pipeline:

- KeywordOccurrence: one (product, keyword) observation from the provider
- ProductKeywordResult: everything collected for one ASIN
- AggregatedKeyword: cross-product record with its opportunity score
- OpportunityCandidate: keyword universe entry with competitor statistics
- GapRecord / GapAnalysisResult: primary-vs-competitor gap classification
- ComparisonRecord: per-product strong/weak breakdown
- ResearchResult: the assembled output of one run or one reconstruction

All records serialize with to_dict() and rebuild with from_dict(); the dict
form is what the cache stores and the API returns.
"""

from dataclasses import dataclass, field, asdict, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def normalize_keyword(text: str) -> str:
    """Fold case and whitespace so keyword text can be used as a natural key."""
    return " ".join((text or "").split()).lower()


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, matching the timezone-less DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ============================================================================
# ENUMS
# ============================================================================

class ProductStatus(str, Enum):
    """Collection outcome for one product."""
    SUCCESS = "success"
    FAILED = "failed"
    NO_DATA = "no_data"


class OpportunityType(str, Enum):
    """Why a keyword is considered an opportunity."""
    MARKET_GAP = "market_gap"              # No competitor in the top 15
    WEAK_COMPETITORS = "weak_competitors"  # Competitor strength <= 3
    LOW_COMPETITION = "low_competition"
    KEYWORD_MINING = "keyword_mining"      # Pulled from the mining endpoint


class GapType(str, Enum):
    """Gap scenario between the primary product and its competitors."""
    MARKET_GAP = "market_gap"
    USER_ADVANTAGE = "user_advantage"
    COMPETITOR_WEAKNESS = "competitor_weakness"


class ImpactLevel(str, Enum):
    """Expected impact of acting on a gap."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# ============================================================================
# PROVIDER METRICS
# ============================================================================

@dataclass(frozen=True)
class KeywordMetrics:
    """
    Optional market attributes attached to a keyword.

    Reverse-ASIN lookups fill a handful of these; the mining endpoint fills
    most of them. Every field is optional and None means "not supplied".
    """
    products: Optional[int] = None
    purchases: Optional[int] = None
    purchase_rate: Optional[float] = None
    supply_demand_ratio: Optional[float] = None
    ad_products: Optional[float] = None
    bid: Optional[float] = None
    bid_min: Optional[float] = None
    bid_max: Optional[float] = None
    monopoly_click_rate: Optional[float] = None
    title_density: Optional[float] = None
    avg_price: Optional[float] = None
    avg_ratings: Optional[float] = None
    avg_rating: Optional[float] = None
    cvs_share_rate: Optional[float] = None
    word_count: Optional[int] = None
    spr: Optional[int] = None
    relevancy: Optional[float] = None
    amazon_choice: Optional[bool] = None
    search_rank: Optional[int] = None
    keyword_cn: Optional[str] = None
    keyword_jp: Optional[str] = None
    departments: Optional[Any] = None
    month: Optional[Any] = None
    supplement: Optional[Any] = None
    traffic_keyword_type: Optional[str] = None
    conversion_keyword_type: Optional[str] = None
    latest_1_days_ads: Optional[int] = None
    latest_7_days_ads: Optional[int] = None
    latest_30_days_ads: Optional[int] = None
    calculated_weekly_searches: Optional[int] = None
    badges: Optional[List[str]] = None
    updated_time: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, dropping unset fields."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "KeywordMetrics":
        """Create from dictionary, ignoring unknown keys."""
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def overlay(self, other: "KeywordMetrics") -> "KeywordMetrics":
        """Return a copy where every field set on `other` replaces ours."""
        return replace(self, **other.to_dict())

    def best_of(self, other: "KeywordMetrics") -> "KeywordMetrics":
        """Return a copy keeping the larger value of each best-of metric."""
        updates = {}
        for name in BEST_OF_METRICS:
            mine = getattr(self, name)
            theirs = getattr(other, name)
            if theirs is None:
                continue
            if mine is None or theirs > mine:
                updates[name] = theirs
        return replace(self, **updates) if updates else self


# Metrics tracked as "maximum observed" when several rows describe one keyword
BEST_OF_METRICS = (
    "products",
    "purchases",
    "purchase_rate",
    "supply_demand_ratio",
    "ad_products",
    "bid_min",
    "bid_max",
    "monopoly_click_rate",
    "title_density",
)

# Fields the mining endpoint contributes when a keyword is enriched
ENRICHMENT_FIELDS = (
    "keyword_cn",
    "keyword_jp",
    "departments",
    "month",
    "supplement",
    "purchases",
    "purchase_rate",
    "monopoly_click_rate",
    "products",
    "ad_products",
    "avg_price",
    "avg_ratings",
    "avg_rating",
    "bid_min",
    "bid_max",
    "bid",
    "cvs_share_rate",
    "word_count",
    "title_density",
    "spr",
    "relevancy",
    "amazon_choice",
    "search_rank",
)


# ============================================================================
# COLLECTED DATA
# ============================================================================

@dataclass(frozen=True)
class KeywordOccurrence:
    """A keyword observed for one product."""
    keyword: str
    search_volume: int = 0
    cpc: float = 0.0
    ranking_position: Optional[int] = None
    traffic_percentage: Optional[float] = None
    metrics: KeywordMetrics = field(default_factory=KeywordMetrics)

    @property
    def normalized(self) -> str:
        return normalize_keyword(self.keyword)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keyword": self.keyword,
            "search_volume": self.search_volume,
            "cpc": self.cpc,
            "ranking_position": self.ranking_position,
            "traffic_percentage": self.traffic_percentage,
            "metrics": self.metrics.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KeywordOccurrence":
        return cls(
            keyword=data["keyword"],
            search_volume=data.get("search_volume") or 0,
            cpc=data.get("cpc") or 0.0,
            ranking_position=data.get("ranking_position"),
            traffic_percentage=data.get("traffic_percentage"),
            metrics=KeywordMetrics.from_dict(data.get("metrics")),
        )


@dataclass
class ProductKeywordResult:
    """Keywords collected for one ASIN."""
    asin: str
    keywords: List[KeywordOccurrence] = field(default_factory=list)
    status: ProductStatus = ProductStatus.SUCCESS
    error: Optional[str] = None
    product_title: Optional[str] = None

    @property
    def keyword_count(self) -> int:
        return len(self.keywords)

    @property
    def succeeded(self) -> bool:
        return self.status == ProductStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "asin": self.asin,
            "product_title": self.product_title,
            "keyword_count": self.keyword_count,
            "keywords": [k.to_dict() for k in self.keywords],
            "status": self.status.value,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductKeywordResult":
        return cls(
            asin=data["asin"],
            keywords=[KeywordOccurrence.from_dict(k) for k in data.get("keywords", [])],
            status=ProductStatus(data.get("status", "success")),
            error=data.get("error"),
            product_title=data.get("product_title"),
        )


# ============================================================================
# AGGREGATION
# ============================================================================

@dataclass(frozen=True)
class RankingEntry:
    """Where one product ranks for an aggregated keyword."""
    asin: str
    position: Optional[int] = None
    traffic_percentage: float = 0.0

    @property
    def is_ranking(self) -> bool:
        return bool(self.position and self.position > 0)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RankingEntry":
        return cls(
            asin=data["asin"],
            position=data.get("position"),
            traffic_percentage=data.get("traffic_percentage") or 0.0,
        )


@dataclass(frozen=True)
class AggregatedKeyword:
    """A keyword merged across every successfully collected product."""
    keyword: str
    search_volume: int
    avg_cpc: float
    ranking_asins: List[RankingEntry]
    opportunity_score: float
    metrics: KeywordMetrics = field(default_factory=KeywordMetrics)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keyword": self.keyword,
            "search_volume": self.search_volume,
            "avg_cpc": self.avg_cpc,
            "ranking_asins": [r.to_dict() for r in self.ranking_asins],
            "opportunity_score": self.opportunity_score,
            "metrics": self.metrics.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AggregatedKeyword":
        return cls(
            keyword=data["keyword"],
            search_volume=data.get("search_volume") or 0,
            avg_cpc=data.get("avg_cpc") or 0.0,
            ranking_asins=[RankingEntry.from_dict(r) for r in data.get("ranking_asins", [])],
            opportunity_score=data.get("opportunity_score") or 0.0,
            metrics=KeywordMetrics.from_dict(data.get("metrics")),
        )


@dataclass(frozen=True)
class ComparisonRecord:
    """Per-product keyword breakdown."""
    asin: str
    total_keywords: int = 0
    avg_search_volume: int = 0
    top_keywords: List[KeywordOccurrence] = field(default_factory=list)
    strong_keywords: List[KeywordOccurrence] = field(default_factory=list)
    weak_keywords: List[KeywordOccurrence] = field(default_factory=list)
    status: ProductStatus = ProductStatus.SUCCESS
    error: Optional[str] = None
    product_title: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "asin": self.asin,
            "product_title": self.product_title,
            "total_keywords": self.total_keywords,
            "avg_search_volume": self.avg_search_volume,
            "top_keywords": [k.to_dict() for k in self.top_keywords],
            "strong_keywords": [k.to_dict() for k in self.strong_keywords],
            "weak_keywords": [k.to_dict() for k in self.weak_keywords],
            "status": self.status.value,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ComparisonRecord":
        return cls(
            asin=data["asin"],
            total_keywords=data.get("total_keywords", 0),
            avg_search_volume=data.get("avg_search_volume", 0),
            top_keywords=[KeywordOccurrence.from_dict(k) for k in data.get("top_keywords", [])],
            strong_keywords=[KeywordOccurrence.from_dict(k) for k in data.get("strong_keywords", [])],
            weak_keywords=[KeywordOccurrence.from_dict(k) for k in data.get("weak_keywords", [])],
            status=ProductStatus(data.get("status", "success")),
            error=data.get("error"),
            product_title=data.get("product_title"),
        )


# ============================================================================
# OPPORTUNITIES
# ============================================================================

@dataclass(frozen=True)
class CompetitorPerformance:
    """How the analyzed products rank for a keyword."""
    avg_competitor_rank: int = 0
    competitors_ranking: int = 0
    competitors_in_top15: int = 0
    competitor_strength: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["CompetitorPerformance"]:
        if not data:
            return None
        return cls(
            avg_competitor_rank=data.get("avg_competitor_rank", 0),
            competitors_ranking=data.get("competitors_ranking", 0),
            competitors_in_top15=data.get("competitors_in_top15", 0),
            competitor_strength=data.get("competitor_strength", 1.0),
        )


@dataclass(frozen=True)
class OpportunityCandidate:
    """A keyword in the opportunity universe."""
    keyword: str
    search_volume: int
    avg_cpc: float
    opportunity_type: OpportunityType
    competition_score: float = 0.0
    supply_demand_ratio: Optional[float] = None
    growth_trend: str = "unknown"
    competitor_performance: Optional[CompetitorPerformance] = None
    metrics: KeywordMetrics = field(default_factory=KeywordMetrics)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keyword": self.keyword,
            "search_volume": self.search_volume,
            "avg_cpc": self.avg_cpc,
            "opportunity_type": self.opportunity_type.value,
            "competition_score": self.competition_score,
            "supply_demand_ratio": self.supply_demand_ratio,
            "growth_trend": self.growth_trend,
            "competitor_performance": (
                self.competitor_performance.to_dict() if self.competitor_performance else None
            ),
            "metrics": self.metrics.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OpportunityCandidate":
        return cls(
            keyword=data["keyword"],
            search_volume=data.get("search_volume") or 0,
            avg_cpc=data.get("avg_cpc") or 0.0,
            opportunity_type=OpportunityType(data.get("opportunity_type", "low_competition")),
            competition_score=data.get("competition_score") or 0.0,
            supply_demand_ratio=data.get("supply_demand_ratio"),
            growth_trend=data.get("growth_trend", "unknown"),
            competitor_performance=CompetitorPerformance.from_dict(data.get("competitor_performance")),
            metrics=KeywordMetrics.from_dict(data.get("metrics")),
        )


# ============================================================================
# GAP ANALYSIS
# ============================================================================

@dataclass(frozen=True)
class GapRanking:
    """One product's position in a gap record (None when unranked)."""
    asin: str
    position: Optional[int] = None
    traffic_percentage: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GapRanking":
        return cls(
            asin=data["asin"],
            position=data.get("position"),
            traffic_percentage=data.get("traffic_percentage") or 0.0,
        )


@dataclass(frozen=True)
class GapRecord:
    """A keyword classified into one gap scenario."""
    keyword: str
    search_volume: int
    avg_cpc: float
    gap_type: GapType
    gap_score: int
    user_ranking: GapRanking
    competitor_rankings: List[GapRanking]
    recommendation: str
    potential_impact: ImpactLevel
    metrics: KeywordMetrics = field(default_factory=KeywordMetrics)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keyword": self.keyword,
            "search_volume": self.search_volume,
            "avg_cpc": self.avg_cpc,
            "gap_type": self.gap_type.value,
            "gap_score": self.gap_score,
            "user_ranking": self.user_ranking.to_dict(),
            "competitor_rankings": [c.to_dict() for c in self.competitor_rankings],
            "recommendation": self.recommendation,
            "potential_impact": self.potential_impact.value,
            "metrics": self.metrics.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GapRecord":
        return cls(
            keyword=data["keyword"],
            search_volume=data.get("search_volume") or 0,
            avg_cpc=data.get("avg_cpc") or 0.0,
            gap_type=GapType(data["gap_type"]),
            gap_score=data["gap_score"],
            user_ranking=GapRanking.from_dict(data["user_ranking"]),
            competitor_rankings=[GapRanking.from_dict(c) for c in data.get("competitor_rankings", [])],
            recommendation=data.get("recommendation", ""),
            potential_impact=ImpactLevel(data.get("potential_impact", "low")),
            metrics=KeywordMetrics.from_dict(data.get("metrics")),
        )


@dataclass(frozen=True)
class GapSummary:
    """Summary counts over every gap found (before the cap is applied)."""
    total_gaps_found: int = 0
    high_volume_gaps: int = 0
    medium_volume_gaps: int = 0
    avg_gap_volume: int = 0
    total_gap_potential: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class GapAnalysisResult:
    """Gap analysis of the primary product against its competitors."""
    user_asin: str
    competitor_asins: List[str]
    analysis: GapSummary
    gaps: List[GapRecord]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_asin": self.user_asin,
            "competitor_asins": list(self.competitor_asins),
            "analysis": self.analysis.to_dict(),
            "gaps": [g.to_dict() for g in self.gaps],
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["GapAnalysisResult"]:
        if not data:
            return None
        return cls(
            user_asin=data["user_asin"],
            competitor_asins=list(data.get("competitor_asins", [])),
            analysis=GapSummary(**data.get("analysis", {})),
            gaps=[GapRecord.from_dict(g) for g in data.get("gaps", [])],
        )


# ============================================================================
# ASSEMBLED RESULT
# ============================================================================

@dataclass(frozen=True)
class ResearchOverview:
    """Headline statistics for a research run."""
    total_asins: int = 0
    total_keywords: int = 0
    avg_search_volume: int = 0
    processing_time_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ResearchResult:
    """Everything a research run (or a reconstruction) produces."""
    overview: ResearchOverview
    asin_results: List[ProductKeywordResult]
    aggregated_keywords: List[AggregatedKeyword]
    comparison_view: List[ComparisonRecord]
    opportunities: List[OpportunityCandidate]
    gap_analysis: Optional[GapAnalysisResult] = None
    all_keywords_with_competition: List[OpportunityCandidate] = field(default_factory=list)
    generated_at: datetime = field(default_factory=utc_now)

    @property
    def asins(self) -> List[str]:
        return [r.asin for r in self.asin_results]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overview": self.overview.to_dict(),
            "asin_results": [r.to_dict() for r in self.asin_results],
            "aggregated_keywords": [k.to_dict() for k in self.aggregated_keywords],
            "comparison_view": [c.to_dict() for c in self.comparison_view],
            "opportunities": [o.to_dict() for o in self.opportunities],
            "gap_analysis": self.gap_analysis.to_dict() if self.gap_analysis else None,
            "all_keywords_with_competition": [
                o.to_dict() for o in self.all_keywords_with_competition
            ],
            "generated_at": self.generated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResearchResult":
        generated_at = data.get("generated_at")
        return cls(
            overview=ResearchOverview(**data.get("overview", {})),
            asin_results=[ProductKeywordResult.from_dict(r) for r in data.get("asin_results", [])],
            aggregated_keywords=[
                AggregatedKeyword.from_dict(k) for k in data.get("aggregated_keywords", [])
            ],
            comparison_view=[ComparisonRecord.from_dict(c) for c in data.get("comparison_view", [])],
            opportunities=[OpportunityCandidate.from_dict(o) for o in data.get("opportunities", [])],
            gap_analysis=GapAnalysisResult.from_dict(data.get("gap_analysis")),
            all_keywords_with_competition=[
                OpportunityCandidate.from_dict(o)
                for o in data.get("all_keywords_with_competition", [])
            ],
            generated_at=(
                datetime.fromisoformat(generated_at) if generated_at else utc_now()
            ),
        )
