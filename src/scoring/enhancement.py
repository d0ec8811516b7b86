"""
Enhancement Priority Score

Ranks keywords for the costly mining lookup. Roughly 0-10:

    volume      (30%)  min(volume / 10000, 1) × 3
    context     (40%)  gap_score / 10 × 4            for gap records
                       (1 - competition / 10) × 4    for opportunities
    cpc         (20%)  max(0, 1 - |cpc - 1.50| / 1.50) × 2
    fundamentals(10%)  +1 when volume > 1000 and competition < 7
"""

from typing import Optional

IDEAL_CPC = 1.5


def calculate_enhancement_score(
    search_volume: float,
    gap_score: Optional[float] = None,
    competition_score: Optional[float] = None,
    avg_cpc: Optional[float] = None,
) -> float:
    """Priority score for enrichment, rounded to 2 decimals."""
    score = min((search_volume or 0) / 10000, 1) * 3

    if gap_score:
        score += (gap_score / 10) * 4
    elif competition_score:
        score += (1 - competition_score / 10) * 4

    if avg_cpc:
        cpc_diff = abs(avg_cpc - IDEAL_CPC)
        score += max(0.0, 1 - cpc_diff / IDEAL_CPC) * 2

    if (search_volume or 0) > 1000 and (competition_score or 0) < 7:
        score += 1

    return round(score, 2)
