"""
Gap Scenario Scoring

Classifies one keyword into a gap scenario for the primary ("user")
product against its competitors, and scores it 1-10.

Scenarios (checked in this order):

1. market_gap - user rank > 20 (or unranked) AND no competitor ranks <= 20
   Base from volume tier (3-10), reduced when fewer than 5 competitors
   were analyzed (less evidence that the gap is real).

2. user_advantage - user rank <= 20 AND competitors ranking poorly
   (unranked or > max_gap_position) >= threshold(n, 0.7)
   Base from the user's rank tier (5-10), +1 when every competitor is
   beaten, -1 when fewer than half are.

3. competitor_weakness - user rank > max_gap_position (or unranked) AND
   competitors ranking poorly >= threshold(n, 0.6)
   Base from volume tier (5-7), plus a weakness-ratio bonus (up to +2)
   and +1 when at least 3 competitors are weak.

Every scenario gets +1 when avg CPC < $0.50, then the score is rounded and
clamped to an integer in [1, 10] (non-finite -> 1).

Dynamic threshold, n = number of competitors:
    n <= 2: max(1, floor(n × 0.5))
    n <= 5: max(2, floor(n × base × 0.9))
    else:   floor(n × base)
"""

import math
from dataclasses import dataclass
from typing import List, Optional

from .helpers import clamp_score, tier_lookup, tier_lookup_ceiling


# ============================================================================
# CONSTANTS
# ============================================================================

MARKET_GAP = "market_gap"
USER_ADVANTAGE = "user_advantage"
COMPETITOR_WEAKNESS = "competitor_weakness"

IMPACT_HIGH = "high"
IMPACT_MEDIUM = "medium"
IMPACT_LOW = "low"

RANKING_WELL_POSITION = 20
MEDIUM_IMPACT_VOLUME = 2000
LOW_CPC_THRESHOLD = 0.50
LOW_CPC_BONUS = 1

USER_ADVANTAGE_THRESHOLD_BASE = 0.7
COMPETITOR_WEAKNESS_THRESHOLD_BASE = 0.6

# (volume floor, base score)
MARKET_GAP_VOLUME_TIERS = (
    (20000, 10),
    (10000, 9),
    (5000, 8),
    (3000, 6),
    (2000, 5),
    (1000, 4),
)
MARKET_GAP_DEFAULT_BASE = 3

# (rank ceiling, base score)
USER_ADVANTAGE_RANK_TIERS = (
    (3, 10),
    (5, 9),
    (10, 8),
    (15, 6),
    (20, 5),
)

# (weak share floor, bonus)
WEAKNESS_RATIO_BONUSES = (
    (0.9, 2),
    (0.75, 1),
)
WEAK_COMPETITOR_COUNT_FOR_BONUS = 3


@dataclass
class GapAssessment:
    """Classification and score for one keyword."""
    gap_type: str
    gap_score: int
    potential_impact: str
    recommendation: str
    competitors_ranking_well: int
    competitors_ranking_poorly: int


# ============================================================================
# HELPERS
# ============================================================================

def dynamic_threshold(competitor_count: int, base: float) -> int:
    """Minimum number of weak competitors a scenario needs, scaled by n."""
    if competitor_count <= 2:
        return max(1, math.floor(competitor_count * 0.5))
    if competitor_count <= 5:
        return max(2, math.floor(competitor_count * base * 0.9))
    return math.floor(competitor_count * base)


def _volume_impact(search_volume: float, focus_volume_threshold: int) -> str:
    if search_volume >= focus_volume_threshold:
        return IMPACT_HIGH
    if search_volume >= MEDIUM_IMPACT_VOLUME:
        return IMPACT_MEDIUM
    return IMPACT_LOW


def _is_ranked(position: Optional[int]) -> bool:
    return position is not None and position > 0


def _market_gap_score(search_volume: float, competitor_count: int) -> float:
    score = tier_lookup(search_volume, MARKET_GAP_VOLUME_TIERS, MARKET_GAP_DEFAULT_BASE)
    if competitor_count < 3:
        score -= 2
    elif competitor_count < 5:
        score -= 1
    return score


def _user_advantage_score(user_position: int, competitor_positions: List[Optional[int]]) -> float:
    score = tier_lookup_ceiling(user_position, USER_ADVANTAGE_RANK_TIERS, 5)
    beaten = sum(
        1 for p in competitor_positions if not _is_ranked(p) or p > user_position
    )
    if competitor_positions and beaten == len(competitor_positions):
        score += 1
    elif beaten * 2 < len(competitor_positions):
        score -= 1
    return score


def _competitor_weakness_score(
    search_volume: float,
    weak_count: int,
    competitor_count: int,
    focus_volume_threshold: int,
) -> float:
    score = tier_lookup(
        search_volume,
        ((focus_volume_threshold, 7), (MEDIUM_IMPACT_VOLUME, 6)),
        5,
    )
    weak_share = weak_count / competitor_count if competitor_count else 0.0
    score += tier_lookup(weak_share, WEAKNESS_RATIO_BONUSES, 0)
    if weak_count >= WEAK_COMPETITOR_COUNT_FOR_BONUS:
        score += 1
    return score


# ============================================================================
# MAIN CLASSIFICATION
# ============================================================================

def assess_keyword_gap(
    keyword: str,
    search_volume: float,
    avg_cpc: float,
    user_position: Optional[int],
    competitor_positions: List[Optional[int]],
    max_gap_position: int = 50,
    focus_volume_threshold: int = 5000,
) -> Optional[GapAssessment]:
    """
    Classify and score one keyword.

    Args:
        keyword: Keyword text (used in the recommendation)
        search_volume: Keyword search volume
        avg_cpc: Average CPC across products
        user_position: Primary product's rank, None when unranked
        competitor_positions: One entry per competitor, None when unranked
        max_gap_position: Competitors ranking below this count as weak
        focus_volume_threshold: Volume at which impact becomes "high"

    Returns:
        GapAssessment, or None when no scenario applies
    """
    volume = search_volume or 0
    n = len(competitor_positions)
    user_ranked = _is_ranked(user_position)

    ranking_well = sum(
        1 for p in competitor_positions if _is_ranked(p) and p <= RANKING_WELL_POSITION
    )
    ranking_poorly = sum(
        1 for p in competitor_positions if not _is_ranked(p) or p > max_gap_position
    )

    if (not user_ranked or user_position > RANKING_WELL_POSITION) and ranking_well == 0:
        gap_type = MARKET_GAP
        score = _market_gap_score(volume, n)
        impact = _volume_impact(volume, focus_volume_threshold)
        recommendation = (
            f'Market opportunity: No competitors ranking well. Consider optimizing for "{keyword}"'
        )
    elif (
        user_ranked
        and user_position <= RANKING_WELL_POSITION
        and ranking_poorly >= dynamic_threshold(n, USER_ADVANTAGE_THRESHOLD_BASE)
    ):
        gap_type = USER_ADVANTAGE
        score = _user_advantage_score(user_position, competitor_positions)
        impact = IMPACT_HIGH if volume >= focus_volume_threshold else IMPACT_MEDIUM
        recommendation = (
            f'Competitive advantage: You rank better than competitors. Double down on "{keyword}"'
        )
    elif (
        (not user_ranked or user_position > max_gap_position)
        and ranking_poorly >= dynamic_threshold(n, COMPETITOR_WEAKNESS_THRESHOLD_BASE)
    ):
        gap_type = COMPETITOR_WEAKNESS
        score = _competitor_weakness_score(volume, ranking_poorly, n, focus_volume_threshold)
        impact = _volume_impact(volume, focus_volume_threshold)
        recommendation = (
            f'Competitor weakness: Most competitors rank poorly for "{keyword}". '
            f"Opportunity to rank higher"
        )
    else:
        return None

    if (avg_cpc or 0) < LOW_CPC_THRESHOLD:
        score += LOW_CPC_BONUS

    return GapAssessment(
        gap_type=gap_type,
        gap_score=clamp_score(score),
        potential_impact=impact,
        recommendation=recommendation,
        competitors_ranking_well=ranking_well,
        competitors_ranking_poorly=ranking_poorly,
    )
