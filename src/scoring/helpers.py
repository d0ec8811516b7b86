"""
Scoring Helper Functions

Clamping, finite-safe rounding and the tier lookups shared by the
opportunity, gap and enhancement scorers.
"""

import math
from typing import Optional, Sequence, Tuple


def clamp(value: float, low: float, high: float) -> float:
    """Clamp value into [low, high]."""
    return max(low, min(high, value))


def is_finite(value: Optional[float]) -> bool:
    """True for real, finite numbers."""
    if value is None:
        return False
    try:
        return math.isfinite(value)
    except TypeError:
        return False


def safe_round(value: Optional[float], digits: int = 2, default: float = 1.0) -> float:
    """Round a score, substituting `default` for None/NaN/inf."""
    if not is_finite(value):
        return default
    return round(value, digits)


def clamp_score(value: Optional[float], low: int = 1, high: int = 10) -> int:
    """
    Clamp a score into an integer range.

    Non-finite values become `low`; everything else is rounded half-up
    before clamping.
    """
    if not is_finite(value):
        return low
    return int(clamp(math.floor(value + 0.5), low, high))


def tier_lookup(value: float, tiers: Sequence[Tuple[float, float]], default: float) -> float:
    """
    Return the score of the first tier whose floor `value` reaches.

    Tiers are (floor, score) pairs ordered from highest floor to lowest.
    """
    for floor, score in tiers:
        if value >= floor:
            return score
    return default


def tier_lookup_ceiling(value: float, tiers: Sequence[Tuple[float, float]], default: float) -> float:
    """
    Return the score of the first tier whose ceiling contains `value`.

    Tiers are (ceiling, score) pairs ordered from lowest ceiling to highest.
    """
    for ceiling, score in tiers:
        if value <= ceiling:
            return score
    return default
