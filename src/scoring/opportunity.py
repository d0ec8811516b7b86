"""
Opportunity Score Calculator

Scores an aggregated keyword on a 1-10 scale from three components:

1. Search Volume (25%) - bucketed, 5k-10k is the sweet spot
2. Competition (60%) - ranking products vs. the number expected at that volume
3. CPC (15%) - commercial intent, $1.20-$1.80 is the sweet spot

Formula:
    raw = Volume × 0.25 + Competition × 0.60 + CPC × 0.15

    compressed = raw × 0.65 + 2.8     if raw >= 8.0
                 raw × 0.75 + 2.0     if raw >= 6.5
                 raw × 0.85 + 0.975   if raw >= 5.0
                 raw                  otherwise
    if compressed > 7.0:
        compressed = 7.0 + (compressed - 7.0) × 0.5

    score = round(clamp(compressed, 1, 10), 2)

The compression pushes most keywords into the 3-6 band so that a score
above 7 means something. The live aggregation and session reconstruction
both call calculate_opportunity_score(), so identical inputs always give
identical scores.

Example:
    6000 volume, $1.50 CPC, nobody ranking
    -> volume 10, competition 10, cpc 10 -> raw 10.0 -> 9.3 -> 8.15
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Sequence

from .helpers import clamp, safe_round, tier_lookup_ceiling

logger = logging.getLogger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

VOLUME_WEIGHT = 0.25
COMPETITION_WEIGHT = 0.60
CPC_WEIGHT = 0.15

# (threshold, multiplier, offset), checked top-down against the raw score
COMPRESSION_TIERS = (
    (8.0, 0.65, 2.8),
    (6.5, 0.75, 2.0),
    (5.0, 0.85, 0.975),
)
SOFT_CAP_START = 7.0
SOFT_CAP_FACTOR = 0.5

# Competitor/expected ratio bands -> competition score
COMPETITION_RATIO_BANDS = (
    (0.2, 8),
    (0.4, 6),
    (0.6, 5),
    (0.8, 4),
    (1.0, 3),
    (1.2, 2),
)

# Confidence in the expected-competitor count grows with products analyzed
FULL_CONFIDENCE_PRODUCTS = 5
MAX_CONFIDENCE_FACTOR = 1.2


@dataclass
class OpportunityScoreBreakdown:
    """Component scores behind an opportunity score."""
    volume_score: float
    competition_score: float
    cpc_score: float
    raw_score: float
    opportunity_score: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "volume_score": self.volume_score,
            "competition_score": self.competition_score,
            "cpc_score": self.cpc_score,
            "raw_score": round(self.raw_score, 4),
            "opportunity_score": self.opportunity_score,
        }


# ============================================================================
# COMPONENT SCORES
# ============================================================================

def score_search_volume(volume: float) -> float:
    """Bucketed volume score (2-10)."""
    if 5000 <= volume <= 10000:
        return 10
    if 2000 <= volume < 5000:
        return 8
    if 1000 <= volume < 2000:
        return 6
    if 10000 < volume <= 25000:
        return 7
    if 500 <= volume < 1000:
        return 4
    if volume > 25000:
        return 3
    return 2


def expected_competitors(volume: float) -> float:
    """How many ranking products a keyword of this volume usually attracts."""
    if volume >= 10000:
        return min(50, volume / 200)
    if volume >= 5000:
        return min(30, volume / 300)
    if volume >= 1000:
        return min(20, volume / 400)
    return min(10, volume / 500)


def score_competition(competitor_count: int, volume: float, products_analyzed: int) -> float:
    """
    Competition score (1-10) from actual vs. expected ranking products.

    The expectation is scaled by min(1.2, products_analyzed / 5): with only
    two products analyzed we cannot expect as many to rank.
    """
    if competitor_count <= 0:
        return 10

    confidence = min(MAX_CONFIDENCE_FACTOR, products_analyzed / FULL_CONFIDENCE_PRODUCTS)
    adjusted_expected = expected_competitors(volume) * confidence
    if adjusted_expected <= 0:
        return 1

    ratio = competitor_count / adjusted_expected
    return tier_lookup_ceiling(ratio, COMPETITION_RATIO_BANDS, 1)


def score_cpc(cpc: float) -> float:
    """Banded CPC score (2-10); $1.20-$1.80 scores highest."""
    if 1.20 <= cpc <= 1.80:
        return 10
    if 0.90 <= cpc < 1.20:
        return 9
    if 1.80 < cpc <= 2.00:
        return 8
    if 0.70 <= cpc < 0.90:
        return 7
    if 0.50 <= cpc < 0.70:
        return 6
    if 2.00 < cpc <= 10.00:
        return clamp(12 - cpc * 1.25, 2, 10)
    if 0.30 <= cpc < 0.50:
        return 4
    return 2


def compress_score(raw: float) -> float:
    """Apply the compression curve and the soft cap above 7.0."""
    result = raw
    for threshold, multiplier, offset in COMPRESSION_TIERS:
        if raw >= threshold:
            result = raw * multiplier + offset
            break

    if result > SOFT_CAP_START:
        result = SOFT_CAP_START + (result - SOFT_CAP_START) * SOFT_CAP_FACTOR

    return result


# ============================================================================
# MAIN CALCULATION
# ============================================================================

def calculate_opportunity_breakdown(
    search_volume: float,
    avg_cpc: float,
    competitor_count: int,
    products_analyzed: int,
) -> OpportunityScoreBreakdown:
    """Calculate the opportunity score with its component breakdown."""
    volume_score = score_search_volume(search_volume or 0)
    competition_score = score_competition(competitor_count, search_volume or 0, products_analyzed)
    cpc_score = score_cpc(avg_cpc or 0.0)

    raw = (
        volume_score * VOLUME_WEIGHT
        + competition_score * COMPETITION_WEIGHT
        + cpc_score * CPC_WEIGHT
    )
    final = safe_round(clamp(compress_score(raw), 1, 10), 2, default=1.0)

    return OpportunityScoreBreakdown(
        volume_score=volume_score,
        competition_score=competition_score,
        cpc_score=cpc_score,
        raw_score=raw,
        opportunity_score=final,
    )


def calculate_opportunity_score(
    search_volume: float,
    avg_cpc: float,
    competitor_count: int,
    products_analyzed: int,
) -> float:
    """
    Calculate the 1-10 opportunity score for an aggregated keyword.

    Args:
        search_volume: Keyword search volume (max observed across products)
        avg_cpc: Mean CPC across occurrences
        competitor_count: Number of analyzed products actually ranking
        products_analyzed: Number of successfully collected products

    Returns:
        Score in [1, 10], rounded to 2 decimals
    """
    return calculate_opportunity_breakdown(
        search_volume, avg_cpc, competitor_count, products_analyzed
    ).opportunity_score


def calculate_batch_opportunity_scores(
    keywords: Sequence[Dict[str, Any]],
    products_analyzed: int,
) -> Dict[str, float]:
    """
    Score several keyword dicts at once.

    Each dict needs keyword, search_volume, avg_cpc and competitor_count.
    """
    scores = {}
    for kw in keywords:
        scores[kw["keyword"]] = calculate_opportunity_score(
            kw.get("search_volume", 0),
            kw.get("avg_cpc", 0.0),
            kw.get("competitor_count", 0),
            products_analyzed,
        )
    logger.debug(f"Scored {len(scores)} keywords for {products_analyzed} products")
    return scores
