"""
Scoring engine for multi-factor stock ranking
Combines fundamental, technical, news and supply/demand sub-scores into a
weighted total and ranks a universe of stocks
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd

from config.settings import (
    BACKTEST_WEIGHTS,
    INDICATOR_PARAMS,
    SCORING_PARAMS,
    SCORING_WEIGHTS,
    SECTOR_AVG_MARGIN,
    SECTOR_AVG_PBR,
    SECTOR_AVG_PER,
)
from stockrank.analysis.indicators import TechnicalIndicators
from stockrank.data.models import (
    FundamentalData,
    NewsData,
    PricePoint,
    SupplyDemandData,
    TechnicalSnapshot,
    to_frame,
)
from stockrank.scoring.common import round_average
from stockrank.scoring.fundamental import FundamentalScores, calculate_fundamental_scores
from stockrank.scoring.news import NewsScores, calculate_news_scores
from stockrank.scoring.supply_demand import SupplyDemandScores, calculate_supply_demand_scores
from stockrank.scoring.technical import TechnicalScores, calculate_technical_scores, momentum_score

logger = logging.getLogger(__name__)

WEIGHT_GROUPS = ("fundamental", "technical", "news", "supply_demand", "category")


def _validate_weights(weights: Dict[str, float], label: str) -> None:
    for name, value in weights.items():
        if value < 0:
            raise ValueError(f"Weight '{label}.{name}' must be non-negative, got {value}")


@dataclass
class WeightConfig:
    """
    Nested sub-score and category weights

    Groups need not sum to 100; each weighted mean divides by the sum of the
    weights actually supplied. A weight of 0 excludes that sub-score.
    """
    fundamental: Dict[str, float] = field(default_factory=lambda: dict(SCORING_WEIGHTS["fundamental"]))
    technical: Dict[str, float] = field(default_factory=lambda: dict(SCORING_WEIGHTS["technical"]))
    news: Dict[str, float] = field(default_factory=lambda: dict(SCORING_WEIGHTS["news"]))
    supply_demand: Dict[str, float] = field(default_factory=lambda: dict(SCORING_WEIGHTS["supply_demand"]))
    category: Dict[str, float] = field(default_factory=lambda: dict(SCORING_WEIGHTS["category"]))

    def __post_init__(self):
        for group in WEIGHT_GROUPS:
            _validate_weights(getattr(self, group), group)

    @classmethod
    def from_dict(cls, weights: Dict[str, Dict[str, float]]) -> "WeightConfig":
        """Build from a nested dict; groups and keys not given keep their defaults"""
        groups = {}
        for group in WEIGHT_GROUPS:
            merged = dict(SCORING_WEIGHTS[group])
            merged.update(weights.get(group, {}))
            groups[group] = merged
        return cls(**groups)


@dataclass
class IndicatorWeights:
    """Flat weights of the backtest composite score"""
    weights: Dict[str, float] = field(default_factory=lambda: dict(BACKTEST_WEIGHTS))

    def __post_init__(self):
        _validate_weights(self.weights, "indicator")

    @classmethod
    def from_dict(cls, weights: Dict[str, float]) -> "IndicatorWeights":
        merged = dict(BACKTEST_WEIGHTS)
        merged.update(weights)
        return cls(merged)


@dataclass
class StockScores:
    total: float
    fundamental: FundamentalScores
    technical: TechnicalScores
    news: NewsScores
    supply_demand: SupplyDemandScores


@dataclass
class StockInput:
    """Everything needed to score one stock"""
    symbol: str
    prices: Union[Sequence[PricePoint], pd.DataFrame]
    name: str = ""
    sector: Optional[str] = None
    fundamentals: Optional[FundamentalData] = None
    news: Optional[NewsData] = None
    supply_demand: Optional[SupplyDemandData] = None


@dataclass
class StockAnalysis:
    symbol: str
    name: str
    sector: Optional[str]
    price: Optional[float]
    price_change: Optional[float]
    technicals: TechnicalSnapshot
    scores: StockScores


@dataclass
class AnalysisState:
    """
    Caller-owned ranking state

    last_result holds the most recent ranking; is_analyzing is set while a
    ranking run is in progress.
    """
    last_result: Optional[List[StockAnalysis]] = None
    is_analyzing: bool = False


def weighted_average(values: Sequence[float], weights: Sequence[float]) -> float:
    """
    Weighted mean of values

    Returns:
        sum(v * w) / sum(w), or 0 when the inputs are empty, have different
        lengths, or the weights sum to 0
    """
    if len(values) != len(weights) or len(values) == 0:
        return 0.0

    total_weight = sum(weights)
    if total_weight == 0:
        return 0.0

    return sum(v * w for v, w in zip(values, weights)) / total_weight


def _weighted_group(sub_scores: Dict[str, int], weights: Dict[str, float]) -> float:
    names = list(sub_scores)
    return weighted_average([sub_scores[n] for n in names], [weights.get(n, 0) for n in names])


def rank_stocks(results: Sequence[StockAnalysis]) -> List[StockAnalysis]:
    """Sort by total score descending; ties keep their input order"""
    return sorted(results, key=lambda r: r.scores.total, reverse=True)


class ScoringEngine:
    """
    Calculate multi-factor scores
    Sub-scores range 1-10; category averages and the total are rounded to one decimal
    """

    def __init__(
        self,
        weights: Optional[Union[WeightConfig, Dict]] = None,
        sector_per: Optional[Dict[str, float]] = None,
        sector_margin: Optional[Dict[str, float]] = None,
        sector_pbr: Optional[Dict[str, float]] = None,
        indicator_params: Optional[Dict] = None,
        params: Optional[Dict] = None,
    ):
        """
        Initialize scoring engine with weights

        Args:
            weights: WeightConfig or nested dict. If None, uses default weights from settings
            sector_per / sector_margin / sector_pbr: Sector average tables
            indicator_params: Indicator parameters for snapshots and composites
            params: Scoring parameters (keyword tables, news windows)
        """
        if weights is None:
            weights = WeightConfig()
        elif isinstance(weights, dict):
            weights = WeightConfig.from_dict(weights)
        self.weights = weights

        self.sector_per = sector_per if sector_per is not None else SECTOR_AVG_PER
        self.sector_margin = sector_margin if sector_margin is not None else SECTOR_AVG_MARGIN
        self.sector_pbr = sector_pbr if sector_pbr is not None else SECTOR_AVG_PBR
        self.params = params if params is not None else SCORING_PARAMS
        indicator_params = indicator_params if indicator_params is not None else INDICATOR_PARAMS
        self.indicators = TechnicalIndicators(indicator_params)
        # The backtest gates candidates on its own bar count; short histories still
        # get real indicator values, each indicator going NaN where it lacks data
        self.composite_indicators = TechnicalIndicators(dict(indicator_params, min_history=1))

    def score_stock(
        self,
        fundamentals: Optional[FundamentalData],
        technicals: Optional[TechnicalSnapshot],
        news: Optional[NewsData],
        supply_demand: Optional[SupplyDemandData],
        price: Optional[float] = None,
        price_change: Optional[float] = None,
        sector: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> StockScores:
        """
        Calculate all category scores and the weighted total

        Args:
            fundamentals: Fundamental metrics
            technicals: Latest indicator snapshot
            news: News and disclosure activity
            supply_demand: Investor flow data
            price: Current price (defaults to the snapshot close)
            price_change: Daily change in percent (defaults to the snapshot value)
            sector: Sector used for relative valuation
            now: Reference time for news recency (required)

        Returns:
            StockScores with weighted category averages and total

        Raises:
            ValueError: If now is not given
        """
        if now is None:
            raise ValueError("now is required; pass the reference time explicitly")
        w = self.weights

        fundamental = calculate_fundamental_scores(
            fundamentals,
            sector,
            sector_per=self.sector_per,
            sector_pbr=self.sector_pbr,
            sector_margin=self.sector_margin,
        )
        technical = calculate_technical_scores(technicals, price, price_change)
        news_scores = calculate_news_scores(news, now, self.params)
        flows = calculate_supply_demand_scores(supply_demand)

        fundamental_avg = _weighted_group(fundamental.sub_scores(), w.fundamental)
        technical_avg = _weighted_group(technical.sub_scores(), w.technical)
        news_avg = _weighted_group(news_scores.sub_scores(), w.news)
        flows_avg = _weighted_group(flows.sub_scores(), w.supply_demand)

        total = weighted_average(
            [fundamental_avg, technical_avg, news_avg, flows_avg],
            [
                w.category.get("fundamental", 0),
                w.category.get("technical", 0),
                w.category.get("news", 0),
                w.category.get("supply_demand", 0),
            ],
        )

        fundamental.average = round_average(fundamental_avg)
        technical.average = round_average(technical_avg)
        news_scores.average = round_average(news_avg)
        flows.average = round_average(flows_avg)

        return StockScores(
            total=round_average(total),
            fundamental=fundamental,
            technical=technical,
            news=news_scores,
            supply_demand=flows,
        )

    def technical_composite(
        self,
        price_history: Union[Sequence[PricePoint], pd.DataFrame],
        weights: Optional[Union[IndicatorWeights, Dict[str, float]]] = None,
        supply_demand: Optional[SupplyDemandData] = None,
    ) -> float:
        """
        Weighted composite used by the backtest

        Scores the history up to and including its last bar. Flow sub-scores
        are only counted when supply/demand data is given.

        Args:
            price_history: OHLCV history ending at the evaluation date
            weights: IndicatorWeights or flat dict (defaults from settings)
            supply_demand: Optional investor flow data

        Returns:
            Weighted mean of the sub-scores (1-10 scale)
        """
        if weights is None:
            weights = IndicatorWeights()
        elif isinstance(weights, dict):
            weights = IndicatorWeights.from_dict(weights)

        snapshot = self.composite_indicators.get_latest_indicators(to_frame(price_history))
        sub_scores = calculate_technical_scores(snapshot).sub_scores()
        sub_scores["momentum"] = momentum_score(snapshot.momentum)

        if supply_demand is not None:
            flows = calculate_supply_demand_scores(supply_demand)
            sub_scores.update(flows.sub_scores())

        return _weighted_group(sub_scores, weights.weights)

    def analyze_stock(self, stock: StockInput, now: datetime) -> StockAnalysis:
        df = to_frame(stock.prices)
        snapshot = self.indicators.get_latest_indicators(df)

        price = snapshot.close
        if price is None and not df.empty:
            price = float(df["Close"].iloc[-1])

        scores = self.score_stock(
            stock.fundamentals,
            snapshot,
            stock.news,
            stock.supply_demand,
            price=price,
            price_change=snapshot.price_change,
            sector=stock.sector,
            now=now,
        )
        return StockAnalysis(
            symbol=stock.symbol,
            name=stock.name,
            sector=stock.sector,
            price=price,
            price_change=snapshot.price_change,
            technicals=snapshot,
            scores=scores,
        )

    def rank(
        self,
        stocks: Sequence[StockInput],
        state: Optional[AnalysisState] = None,
        now: Optional[datetime] = None,
    ) -> Tuple[List[StockAnalysis], AnalysisState]:
        """
        Score and rank a universe of stocks

        Re-entry while state.is_analyzing is set returns the previous result
        without rescoring.

        Args:
            stocks: Stocks to score
            state: Caller-owned AnalysisState (a fresh one if None)
            now: Reference time for news recency (required)

        Returns:
            Tuple of (ranked results, updated state)

        Raises:
            ValueError: If now is not given
        """
        if now is None:
            raise ValueError("now is required; pass the reference time explicitly")
        if state is None:
            state = AnalysisState()

        if state.is_analyzing:
            logger.warning("Analysis already in progress, returning previous result")
            return list(state.last_result or []), state

        state.is_analyzing = True
        try:
            results = []
            for stock in stocks:
                try:
                    results.append(self.analyze_stock(stock, now))
                except (KeyError, TypeError, ValueError) as e:
                    logger.error(f"Error analyzing {stock.symbol}: {e}")
                    continue

            ranked = rank_stocks(results)
            state.last_result = ranked
        finally:
            state.is_analyzing = False

        logger.info(f"Ranked {len(ranked)} of {len(stocks)} stocks")
        return ranked, state
