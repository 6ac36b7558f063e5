"""
Supply/demand scoring from foreign and institutional investor flows
"""
from dataclasses import dataclass
from typing import Dict, Optional

from stockrank.data.models import SupplyDemandData
from stockrank.scoring.common import NEUTRAL_SCORE, clamp_score, is_missing, round_average

# Net buy amount bands (100M KRW / 1M USD)
_NET_BUY_BANDS = [(100, 2), (50, 1.5), (10, 1), (0, 0.5)]

# Consecutive net buying days
_STREAK_BANDS = [(10, 2), (5, 1.5), (3, 1)]


@dataclass
class SupplyDemandScores:
    foreign_flow: int
    institution_flow: int
    average: float = 0.0

    def sub_scores(self) -> Dict[str, int]:
        return {
            "foreign_flow": self.foreign_flow,
            "institution_flow": self.institution_flow,
        }


def _net_buy_adjustment(net_buy: float) -> float:
    for bound, points in _NET_BUY_BANDS:
        if net_buy > bound:
            return points
        if net_buy < -bound:
            return -points
    return 0.0


def _streak_adjustment(days: Optional[int]) -> float:
    if is_missing(days):
        return 0.0
    for bound, points in _STREAK_BANDS:
        if days >= bound:
            return points
        if days <= -bound:
            return -points
    return 0.0


def foreign_flow_score(
    net_buy: Optional[float],
    net_buy_days: Optional[int] = None,
    ownership: Optional[float] = None,
) -> int:
    """
    Score foreign investor flow

    Sustained net buying is positive. Net buying into a stock with either a
    high (>= 30%) or very low (< 5%) foreign ownership adds half a point.
    """
    if is_missing(net_buy):
        return NEUTRAL_SCORE

    score = 5.0 + _net_buy_adjustment(net_buy) + _streak_adjustment(net_buy_days)

    if not is_missing(ownership) and (ownership >= 30 or ownership < 5) and net_buy > 0:
        score += 0.5

    return clamp_score(score)


def institution_flow_score(net_buy: Optional[float], net_buy_days: Optional[int] = None) -> int:
    if is_missing(net_buy):
        return NEUTRAL_SCORE
    return clamp_score(5.0 + _net_buy_adjustment(net_buy) + _streak_adjustment(net_buy_days))


def calculate_supply_demand_scores(data: Optional[SupplyDemandData]) -> SupplyDemandScores:
    if data is None:
        data = SupplyDemandData()

    scores = SupplyDemandScores(
        foreign_flow=foreign_flow_score(
            data.foreign_net_buy,
            data.foreign_net_buy_days,
            data.foreign_ownership,
        ),
        institution_flow=institution_flow_score(
            data.institution_net_buy,
            data.institution_net_buy_days,
        ),
    )
    scores.average = round_average((scores.foreign_flow + scores.institution_flow) / 2)
    return scores
