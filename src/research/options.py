"""
Research Options

Tunables for one research run. Defaults mirror what the dashboard sends
when the user does not override anything.

Usage:
    options = ResearchOptions.from_dict({"maxKeywordsPerAsin": 100})
    options.opportunity_filters.max_competitors_in_top15  # -> 2
"""

import re
from dataclasses import dataclass, field, asdict, fields
from typing import Any, Dict, Optional


_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


def _snake(key: str) -> str:
    """maxKeywordsPerAsin -> max_keywords_per_asin (snake_case passes through)."""
    return _CAMEL_BOUNDARY.sub(r"_\1", key).lower()


def _pick(cls, data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Keep only keys that are fields of `cls`, accepting camelCase input."""
    if not data:
        return {}
    known = {f.name for f in fields(cls)}
    picked = {}
    for key, value in data.items():
        name = _snake(key)
        if name in known and value is not None:
            picked[name] = value
    return picked


@dataclass
class OpportunityFilters:
    """Filters that turn the keyword universe into targeted opportunities."""
    min_search_volume: int = 500
    max_search_volume: int = 10000
    max_competitors_in_top15: int = 2
    min_competitors_ranking: int = 15
    max_competitor_strength: float = 5

    # Fixed market-quality ceilings
    max_ad_products: int = 20
    max_supply_demand_ratio: float = 15
    max_products: int = 100


@dataclass
class GapAnalysisOptions:
    """Thresholds for gap analysis."""
    min_gap_volume: int = 1000
    max_gap_position: int = 50
    focus_volume_threshold: int = 5000


@dataclass
class ResearchOptions:
    """Options for a keyword research run."""
    max_keywords_per_asin: int = 50
    min_search_volume: int = 100
    include_opportunities: bool = True
    include_gap_analysis: bool = True
    opportunity_filters: OpportunityFilters = field(default_factory=OpportunityFilters)
    gap_analysis_options: GapAnalysisOptions = field(default_factory=GapAnalysisOptions)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ResearchOptions":
        """
        Build options from a (possibly partial) dict.

        Nested filter dicts are merged over their defaults, so
        {"opportunityFilters": {"minSearchVolume": 800}} keeps every other
        filter at its default value.
        """
        data = data or {}
        top = _pick(cls, data)
        filters = OpportunityFilters(**_pick(
            OpportunityFilters,
            data.get("opportunity_filters") or data.get("opportunityFilters"),
        ))
        gap_options = GapAnalysisOptions(**_pick(
            GapAnalysisOptions,
            data.get("gap_analysis_options") or data.get("gapAnalysisOptions"),
        ))
        top.pop("opportunity_filters", None)
        top.pop("gap_analysis_options", None)
        return cls(opportunity_filters=filters, gap_analysis_options=gap_options, **top)
