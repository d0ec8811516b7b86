"""
Scoring Module for Keyword Research

This module provides three scoring calculations:

1. **Opportunity Score** (1-10)
   How attractive an aggregated keyword is to target.
   Components: Search Volume, Competition (ranking vs. expected), CPC

2. **Gap Score** (1-10)
   How actionable a gap between the primary product and its competitors is.
   Scenarios: market_gap, user_advantage, competitor_weakness

3. **Enhancement Score** (~0-10)
   Priority for spending a mining lookup on a keyword.

Example Usage:
    from src.scoring import calculate_opportunity_score, assess_keyword_gap

    score = calculate_opportunity_score(
        search_volume=6000, avg_cpc=1.5, competitor_count=0, products_analyzed=1
    )
    # -> 8.15

    gap = assess_keyword_gap(
        "yoga mat", 8000, 1.2, user_position=None, competitor_positions=[None, None]
    )
    # -> GapAssessment(gap_type="market_gap", ...)
"""

from .helpers import (
    clamp,
    clamp_score,
    is_finite,
    safe_round,
    tier_lookup,
    tier_lookup_ceiling,
)

from .opportunity import (
    OpportunityScoreBreakdown,
    calculate_opportunity_breakdown,
    calculate_opportunity_score,
    calculate_batch_opportunity_scores,
    compress_score,
    expected_competitors,
    score_competition,
    score_cpc,
    score_search_volume,
)

from .gap import (
    COMPETITOR_WEAKNESS,
    MARKET_GAP,
    USER_ADVANTAGE,
    GapAssessment,
    assess_keyword_gap,
    dynamic_threshold,
)

from .enhancement import calculate_enhancement_score

__all__ = [
    # Helpers
    "clamp",
    "clamp_score",
    "is_finite",
    "safe_round",
    "tier_lookup",
    "tier_lookup_ceiling",

    # Opportunity
    "OpportunityScoreBreakdown",
    "calculate_opportunity_breakdown",
    "calculate_opportunity_score",
    "calculate_batch_opportunity_scores",
    "compress_score",
    "expected_competitors",
    "score_competition",
    "score_cpc",
    "score_search_volume",

    # Gap
    "COMPETITOR_WEAKNESS",
    "MARKET_GAP",
    "USER_ADVANTAGE",
    "GapAssessment",
    "assess_keyword_gap",
    "dynamic_threshold",

    # Enhancement
    "calculate_enhancement_score",
]

__version__ = "2.0.0"
