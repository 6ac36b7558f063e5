"""
Technical analysis scoring
Converts indicator snapshots into 1-10 sub-scores
"""
from dataclasses import dataclass
from typing import Dict, Optional

from stockrank.data.models import Divergence, TechnicalSnapshot
from stockrank.scoring.common import NEUTRAL_SCORE, clamp_score, is_missing, round_average


@dataclass
class TechnicalScores:
    ma_position: int
    rsi: int
    volume_trend: int
    macd: int
    bollinger_band: int
    stochastic: int
    adx: int
    divergence: int
    average: float = 0.0

    def sub_scores(self) -> Dict[str, int]:
        return {
            "ma_position": self.ma_position,
            "rsi": self.rsi,
            "volume_trend": self.volume_trend,
            "macd": self.macd,
            "bollinger_band": self.bollinger_band,
            "stochastic": self.stochastic,
            "adx": self.adx,
            "divergence": self.divergence,
        }


def ma_position_score(
    price: float,
    ma20: Optional[float],
    ma50: Optional[float],
    ma120: Optional[float],
) -> int:
    """
    Score price position against the 20/50/120 moving averages

    Components:
    - Price above each MA (+1.5 / +1.5 / +1)
    - Short MA above medium, medium above long (+/-0.5 each)
    - Full bullish or bearish alignment (+/-1)
    """
    if is_missing(ma20):
        return NEUTRAL_SCORE
    has_ma50 = not is_missing(ma50)
    has_ma120 = not is_missing(ma120)

    score = 5.0

    if price > ma20:
        score += 1.5
    if has_ma50 and price > ma50:
        score += 1.5
    if has_ma120 and price > ma120:
        score += 1

    if has_ma50:
        score += 0.5 if ma20 > ma50 else -0.5

    if has_ma50 and has_ma120:
        score += 0.5 if ma50 > ma120 else -0.5

        if price > ma20 > ma50 > ma120:
            score += 1
        elif price < ma20 < ma50 < ma120:
            score -= 1

    return clamp_score(score)


def rsi_score(rsi: Optional[float]) -> int:
    """Oversold RSI scores high, overbought scores low"""
    if is_missing(rsi):
        return NEUTRAL_SCORE
    for bound, score in [(20, 9), (30, 8), (35, 7), (55, 6), (65, 5), (70, 4), (80, 3)]:
        if rsi <= bound:
            return score
    return 2


def volume_trend_score(volume_change: Optional[float], price_change: Optional[float]) -> int:
    """
    Score price direction confirmed (or not) by volume

    Volume change above +20% counts as rising, below -20% as falling and
    above +50% as a strong rise.
    """
    if is_missing(volume_change):
        return NEUTRAL_SCORE
    price_change = 0.0 if is_missing(price_change) else price_change

    rising = volume_change > 20
    falling = volume_change < -20
    strong = volume_change > 50

    if price_change > 0:
        if rising:
            return 10 if strong else 9
        if falling:
            return 6
        return 8

    if price_change < 0:
        if rising:
            return 2 if strong else 3
        if falling:
            return 5
        return 4

    return 5


def macd_score(
    macd_line: Optional[float],
    signal_line: Optional[float],
    histogram: Optional[float],
    previous_histogram: Optional[float] = None,
) -> int:
    """
    Score MACD position, histogram sign and slope

    A line within 10% of its own magnitude from the signal counts as a fresh
    crossover and is weighted an extra point in its direction.
    """
    if is_missing(macd_line) or is_missing(signal_line):
        return NEUTRAL_SCORE

    score = 5.0
    score += 2 if macd_line > signal_line else -1

    if not is_missing(histogram):
        score += 1 if histogram > 0 else -0.5

        if not is_missing(previous_histogram):
            if histogram > previous_histogram:
                score += 1
            elif histogram < previous_histogram:
                score -= 0.5

    if abs(macd_line - signal_line) < abs(macd_line) * 0.1:
        score += 1 if macd_line > signal_line else -1

    return clamp_score(score)


def bollinger_score(
    percent_b: Optional[float],
    width: Optional[float],
    price_change: Optional[float],
) -> int:
    """
    Score position within the Bollinger Bands

    Near the lower band scores high (oversold), near the upper band low.
    A squeeze (< 5% width) with a rising price adds a point; a very wide
    band (> 20%) subtracts half a point.
    """
    if is_missing(percent_b):
        return NEUTRAL_SCORE

    score = 5.0
    if percent_b <= 0:
        score += 3
    elif percent_b <= 0.2:
        score += 2
    elif percent_b <= 0.4:
        score += 1
    elif percent_b >= 1:
        score -= 2
    elif percent_b >= 0.8:
        score -= 1

    if not is_missing(width):
        if width < 5:
            if not is_missing(price_change) and price_change > 0:
                score += 1
        elif width > 20:
            score -= 0.5

    return clamp_score(score)


def stochastic_score(k: Optional[float], d: Optional[float]) -> int:
    if is_missing(k):
        return NEUTRAL_SCORE
    has_d = not is_missing(d)

    score = 5.0
    if k <= 20:
        score += 3
        if has_d and k > d:
            score += 1
    elif k <= 30:
        score += 2
    elif k <= 40:
        score += 1
    elif k >= 80:
        score -= 2
        if has_d and k < d:
            score -= 1
    elif k >= 70:
        score -= 1

    # %K vs %D in the neutral zone
    if has_d and 30 < k < 70:
        if k > d:
            score += 0.5
        elif k < d:
            score -= 0.5

    return clamp_score(score)


def adx_score(
    adx: Optional[float],
    plus_di: Optional[float],
    minus_di: Optional[float],
) -> int:
    """
    Score trend strength (ADX) combined with direction (+DI vs -DI)

    DI lines within 5 points of each other reset the score to neutral.
    """
    if is_missing(adx):
        return NEUTRAL_SCORE

    score = 5.0
    if adx >= 40:
        score += 2
    elif adx >= 25:
        score += 1
    elif adx < 15:
        score -= 1

    if not is_missing(plus_di) and not is_missing(minus_di):
        strong_trend = adx >= 25
        if plus_di > minus_di:
            score += 2 if strong_trend else 1
        elif minus_di > plus_di:
            score -= 2 if strong_trend else 1

        if abs(plus_di - minus_di) < 5:
            score = 5.0

    return clamp_score(score)


def divergence_score(
    rsi_divergence: Optional[Divergence],
    macd_divergence: Optional[Divergence],
) -> int:
    """
    Score RSI/MACD divergence

    Each bullish signal adds 2, each bearish one subtracts 2, and agreement
    between both adds or subtracts one more.
    """
    score = 5.0
    for signal in (rsi_divergence, macd_divergence):
        if signal == Divergence.BULLISH:
            score += 2
        elif signal == Divergence.BEARISH:
            score -= 2

    if rsi_divergence == macd_divergence == Divergence.BULLISH:
        score += 1
    elif rsi_divergence == macd_divergence == Divergence.BEARISH:
        score -= 1

    return clamp_score(score)


def momentum_score(change_pct: Optional[float]) -> int:
    """Score a rate of change in percent: +20% and above is 10, -20% and below is 1"""
    if is_missing(change_pct):
        return NEUTRAL_SCORE
    if change_pct >= 20:
        return 10
    if change_pct <= -20:
        return 1
    return clamp_score(5 + change_pct / 4)


def calculate_technical_scores(
    snapshot: Optional[TechnicalSnapshot],
    price: Optional[float] = None,
    price_change: Optional[float] = None,
) -> TechnicalScores:
    """
    Score every technical indicator in a snapshot

    Args:
        snapshot: Latest indicator values
        price: Current price (defaults to the snapshot close)
        price_change: Daily price change in percent (defaults to the snapshot value)

    Returns:
        TechnicalScores with an unweighted average
    """
    if snapshot is None:
        snapshot = TechnicalSnapshot.empty()
    if price is None:
        price = snapshot.close if snapshot.close is not None else 0.0
    if price_change is None:
        price_change = snapshot.price_change if snapshot.price_change is not None else 0.0

    scores = TechnicalScores(
        ma_position=ma_position_score(price, snapshot.ma20, snapshot.ma50, snapshot.ma120),
        rsi=rsi_score(snapshot.rsi),
        volume_trend=volume_trend_score(snapshot.volume_change, price_change),
        macd=macd_score(
            snapshot.macd_line,
            snapshot.signal_line,
            snapshot.histogram,
            snapshot.previous_histogram,
        ),
        bollinger_band=bollinger_score(snapshot.bollinger_percent_b, snapshot.bollinger_width, price_change),
        stochastic=stochastic_score(snapshot.stochastic_k, snapshot.stochastic_d),
        adx=adx_score(snapshot.adx, snapshot.plus_di, snapshot.minus_di),
        divergence=divergence_score(snapshot.rsi_divergence, snapshot.macd_divergence),
    )
    values = list(scores.sub_scores().values())
    scores.average = round_average(sum(values) / len(values))
    return scores
