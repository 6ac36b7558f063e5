"""
News and disclosure scoring

Recency is measured against an explicit `now` so results are reproducible.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from config.settings import SCORING_PARAMS
from stockrank.data.models import DisclosureItem, NewsData, NewsItem
from stockrank.scoring.common import NEUTRAL_SCORE, is_missing, round_average, round_half_up

logger = logging.getLogger(__name__)


@dataclass
class NewsScores:
    sentiment: int
    frequency: int
    disclosure_impact: int
    recency: int
    average: float = 0.0

    def sub_scores(self) -> Dict[str, int]:
        return {
            "sentiment": self.sentiment,
            "frequency": self.frequency,
            "disclosure_impact": self.disclosure_impact,
            "recency": self.recency,
        }


def sentiment_score(sentiment: Optional[float], news_count: int) -> int:
    """
    Normalize an external sentiment value into a 1-10 score

    Values already on the 1-10 scale pass through rounded; values in [0, 1)
    are stretched onto 1-10. Anything else, or no news at all, is neutral.
    """
    if news_count == 0 or is_missing(sentiment):
        return NEUTRAL_SCORE
    if 1 <= sentiment <= 10:
        return int(round_half_up(sentiment))
    if 0 <= sentiment < 1:
        return int(round_half_up(sentiment * 9)) + 1
    return NEUTRAL_SCORE


def keyword_sentiment(title: str, params: Optional[Dict] = None) -> str:
    """
    Classify a headline by counting positive and negative keywords

    Returns:
        "positive", "negative" or "neutral"
    """
    p = params or SCORING_PARAMS
    lowered = title.lower()
    positive = sum(1 for kw in p["positive_keywords"] if kw.lower() in lowered)
    negative = sum(1 for kw in p["negative_keywords"] if kw.lower() in lowered)

    if positive > negative:
        return "positive"
    if negative > positive:
        return "negative"
    return "neutral"


def keyword_sentiment_score(titles: Sequence[str], params: Optional[Dict] = None) -> int:
    """Average keyword sentiment of headlines (positive 8, negative 2, neutral 5)"""
    if not titles:
        return NEUTRAL_SCORE
    p = params or SCORING_PARAMS
    values = {
        "positive": p["news"]["positive_keyword_score"],
        "negative": p["news"]["negative_keyword_score"],
        "neutral": p["news"]["neutral_keyword_score"],
    }
    total = sum(values[keyword_sentiment(title, p)] for title in titles)
    return int(round_half_up(total / len(titles)))


def frequency_score(news_count: int, disclosure_count: int, period: int = 30) -> int:
    """
    Score coverage frequency by daily average item count

    Moderate coverage (0.5-2 items/day) scores best; silence and saturation
    both score low.
    """
    if period <= 0:
        return NEUTRAL_SCORE
    daily = (news_count + disclosure_count) / period

    if 0.5 <= daily <= 2:
        return 8
    if 0.3 <= daily < 0.5 or 2 < daily <= 3:
        return 7
    if 0.1 <= daily < 0.3:
        return 6
    if 3 < daily <= 5:
        return 5
    if daily < 0.1 or 5 < daily <= 10:
        return 4
    return 3


def disclosure_item_impact(item: DisclosureItem, params: Optional[Dict] = None) -> int:
    """Impact of one disclosure: keyword table checked against type, then title"""
    table = (params or SCORING_PARAMS)["disclosure_impact"]
    for text in (item.type, item.title):
        lowered = (text or "").lower()
        for keyword, impact in table.items():
            if keyword.lower() in lowered:
                return impact
    return NEUTRAL_SCORE


def disclosure_impact_score(
    disclosures: Optional[Iterable[DisclosureItem]],
    params: Optional[Dict] = None,
) -> int:
    """
    Recency-weighted impact of regulatory disclosures

    Items are ordered newest first and weighted n, n-1, ..., 1.
    """
    items = sorted(disclosures or [], key=lambda d: d.filing_date, reverse=True)
    if not items:
        return NEUTRAL_SCORE

    n = len(items)
    weighted = sum(disclosure_item_impact(item, params) * (n - i) for i, item in enumerate(items))
    total_weight = n * (n + 1) / 2
    return int(round_half_up(weighted / total_weight))


def recency_score(
    news: Optional[Iterable[NewsItem]],
    disclosures: Optional[Iterable[DisclosureItem]],
    now: datetime,
    params: Optional[Dict] = None,
) -> int:
    """
    Score how recent the latest coverage is

    Args:
        news: News items
        disclosures: Disclosure items
        now: Reference time

    Returns:
        10/9/8 for 3+/2/1 items in the short window, 7/6 for 3+/1+ in the
        medium window, 5 for anything in the long window, else 4
    """
    p = (params or SCORING_PARAMS)["news"]
    dates = [n.published_at for n in (news or [])] + [d.filing_date for d in (disclosures or [])]
    if not dates:
        return 4

    ages = [now - d for d in dates]
    short = sum(1 for age in ages if age <= timedelta(days=p["recency_short_days"]))
    medium = sum(1 for age in ages if age <= timedelta(days=p["recency_medium_days"]))
    long_ = sum(1 for age in ages if age <= timedelta(days=p["recency_long_days"]))

    if short >= 3:
        return 10
    if short == 2:
        return 9
    if short == 1:
        return 8
    if medium >= 3:
        return 7
    if medium >= 1:
        return 6
    if long_ >= 1:
        return 5
    return 4


def calculate_news_scores(
    data: Optional[NewsData],
    now: datetime,
    params: Optional[Dict] = None,
) -> NewsScores:
    """
    Score news sentiment, frequency, disclosure impact and recency

    Falls back to headline keyword sentiment when no sentiment value is given.
    `now` is the reference time for recency and must be supplied by the caller.
    """
    if now is None:
        raise ValueError("now is required to score news recency")
    if data is None:
        data = NewsData()
    p = params or SCORING_PARAMS

    if data.sentiment_score is not None:
        sentiment = sentiment_score(data.sentiment_score, data.news_count)
    else:
        titles: List[str] = [item.title for item in data.recent_news]
        sentiment = keyword_sentiment_score(titles, p)

    scores = NewsScores(
        sentiment=sentiment,
        frequency=frequency_score(data.news_count, data.disclosure_count, p["news"]["frequency_period_days"]),
        disclosure_impact=disclosure_impact_score(data.recent_disclosures, p),
        recency=recency_score(data.recent_news, data.recent_disclosures, now, p),
    )
    values = list(scores.sub_scores().values())
    scores.average = round_average(sum(values) / len(values))
    logger.debug(f"News scores: {scores.sub_scores()}")
    return scores
