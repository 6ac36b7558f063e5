"""
Fundamental analysis scoring

Valuation metrics (PER, PBR, operating margin) are scored relative to the
sector average, the rest against absolute bands. All scores are ints in [1, 10].
"""

from dataclasses import dataclass
from typing import Dict, Optional

from config.settings import SECTOR_AVG_MARGIN, SECTOR_AVG_PBR, SECTOR_AVG_PER
from stockrank.data.models import FundamentalData
from stockrank.scoring.common import NEUTRAL_SCORE, is_missing, round_average


# (upper bound of ratio, score); the ratio must be strictly below the bound
_VALUATION_BANDS = [
    (0.5, 10),
    (0.7, 9),
    (0.85, 8),
    (1.0, 7),
    (1.15, 6),
    (1.3, 5),
    (1.5, 4),
    (2.0, 3),
    (3.0, 2),
]

# (lower bound of ratio, score); the ratio must be at or above the bound
_MARGIN_BANDS = [
    (2.0, 10),
    (1.5, 9),
    (1.3, 8),
    (1.15, 7),
    (1.0, 6),
    (0.85, 5),
    (0.7, 4),
    (0.5, 3),
    (0.3, 2),
]


@dataclass
class FundamentalScores:
    per: int
    pbr: int
    roe: int
    operating_margin: int
    debt_ratio: int
    current_ratio: int
    eps_growth: int
    revenue_growth: int
    average: float = 0.0

    def sub_scores(self) -> Dict[str, int]:
        return {
            "per": self.per,
            "pbr": self.pbr,
            "roe": self.roe,
            "operating_margin": self.operating_margin,
            "debt_ratio": self.debt_ratio,
            "current_ratio": self.current_ratio,
            "eps_growth": self.eps_growth,
            "revenue_growth": self.revenue_growth,
        }


def sector_average(
    table: Dict[str, float],
    sector: Optional[str],
    fallback: Optional[Dict[str, float]] = None,
) -> float:
    """
    Look up a sector average

    Unknown sectors use the table's "default" bucket; a table without one
    uses the default bucket of `fallback` (the matching settings table).
    """
    if sector and table.get(sector):
        return table[sector]
    if table.get("default"):
        return table["default"]
    return (fallback or {}).get("default") or 1.0


def _score_below(ratio: float, bands) -> int:
    for bound, score in bands:
        if ratio < bound:
            return score
    return 1


def _score_at_least(value: float, bands) -> int:
    for bound, score in bands:
        if value >= bound:
            return score
    return 1


def per_score(
    per: Optional[float],
    sector: Optional[str] = None,
    table: Optional[Dict[str, float]] = None,
) -> int:
    """
    PER relative to the sector average

    Lower is better. Missing or non-positive PER (losses) scores 1.
    """
    if is_missing(per) or per <= 0:
        return 1
    ratio = per / sector_average(table or SECTOR_AVG_PER, sector, SECTOR_AVG_PER)
    return _score_below(ratio, _VALUATION_BANDS)


def pbr_score(
    pbr: Optional[float],
    sector: Optional[str] = None,
    table: Optional[Dict[str, float]] = None,
) -> int:
    """PBR relative to the sector average, same bands as PER"""
    if is_missing(pbr) or pbr <= 0:
        return 1
    ratio = pbr / sector_average(table or SECTOR_AVG_PBR, sector, SECTOR_AVG_PBR)
    return _score_below(ratio, _VALUATION_BANDS)


def roe_score(roe: Optional[float]) -> int:
    if is_missing(roe):
        return NEUTRAL_SCORE
    if roe < 0:
        return 1
    return _score_at_least(roe, [(30, 10), (25, 9), (20, 8), (15, 7), (12, 6), (10, 5), (7, 4), (5, 3), (3, 2)])


def operating_margin_score(
    margin: Optional[float],
    sector: Optional[str] = None,
    table: Optional[Dict[str, float]] = None,
) -> int:
    """Operating margin relative to the sector average; operating losses score 1"""
    if is_missing(margin):
        return NEUTRAL_SCORE
    if margin < 0:
        return 1
    ratio = margin / sector_average(table or SECTOR_AVG_MARGIN, sector, SECTOR_AVG_MARGIN)
    return _score_at_least(ratio, _MARGIN_BANDS)


def debt_ratio_score(debt_ratio: Optional[float]) -> int:
    """
    Debt ratio (total liabilities / equity x 100)

    Lower is better; a negative ratio means impaired capital and scores 1.
    """
    if is_missing(debt_ratio):
        return NEUTRAL_SCORE
    if debt_ratio < 0:
        return 1
    for bound, score in [(30, 10), (50, 9), (80, 8), (100, 7), (150, 6), (200, 5), (300, 4), (400, 3), (500, 2)]:
        if debt_ratio <= bound:
            return score
    return 1


def current_ratio_score(current_ratio: Optional[float]) -> int:
    """
    Current ratio (current assets / current liabilities x 100)

    Very high liquidity (>= 300%) is penalized as idle capital.
    """
    if is_missing(current_ratio):
        return NEUTRAL_SCORE
    if current_ratio < 0:
        return 1
    if current_ratio >= 300:
        return 8
    return _score_at_least(current_ratio, [(200, 10), (150, 9), (120, 8), (100, 7), (80, 5), (60, 4), (40, 3), (20, 2)])


def eps_growth_score(growth: Optional[float]) -> int:
    if is_missing(growth):
        return NEUTRAL_SCORE
    return _score_at_least(growth, [(50, 10), (30, 9), (20, 8), (15, 7), (10, 6), (5, 5), (0, 4), (-10, 3), (-20, 2)])


def revenue_growth_score(growth: Optional[float]) -> int:
    if is_missing(growth):
        return NEUTRAL_SCORE
    return _score_at_least(growth, [(40, 10), (25, 9), (15, 8), (10, 7), (5, 6), (0, 5), (-5, 4), (-10, 3), (-20, 2)])


def calculate_fundamental_scores(
    data: Optional[FundamentalData],
    sector: Optional[str] = None,
    sector_per: Optional[Dict[str, float]] = None,
    sector_pbr: Optional[Dict[str, float]] = None,
    sector_margin: Optional[Dict[str, float]] = None,
) -> FundamentalScores:
    """
    Score every fundamental metric

    Args:
        data: Fundamental metrics (None scores every metric as missing)
        sector: Sector name used for the relative metrics
        sector_per / sector_pbr / sector_margin: Optional sector average tables

    Returns:
        FundamentalScores with an unweighted average (weighting happens in
        the scoring engine)
    """
    if data is None:
        data = FundamentalData()

    scores = FundamentalScores(
        per=per_score(data.per, sector, sector_per),
        pbr=pbr_score(data.pbr, sector, sector_pbr),
        roe=roe_score(data.roe),
        operating_margin=operating_margin_score(data.operating_margin, sector, sector_margin),
        debt_ratio=debt_ratio_score(data.debt_ratio),
        current_ratio=current_ratio_score(data.current_ratio),
        eps_growth=eps_growth_score(data.eps_growth),
        revenue_growth=revenue_growth_score(data.revenue_growth),
    )
    values = list(scores.sub_scores().values())
    scores.average = round_average(sum(values) / len(values))
    return scores
