"""
Rounding helpers shared by the score calculators

Scores round half up (6.5 -> 7), not to the nearest even integer.
"""
import math
from typing import Optional

MIN_SCORE = 1
MAX_SCORE = 10
NEUTRAL_SCORE = 5


def round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def clamp_score(value: float) -> int:
    """Round a raw score and clamp it into [1, 10]"""
    return int(min(MAX_SCORE, max(MIN_SCORE, round_half_up(value))))


def round_average(value: float) -> float:
    """Round a category/total average to one decimal"""
    return round_half_up(value, 1)


def is_missing(value: Optional[float]) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))
