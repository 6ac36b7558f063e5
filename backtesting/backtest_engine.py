"""
Backtesting engine for the top-N rotation strategy
Walks the ranking rule forward through history and rebalances into the
highest-scoring stocks every rebalance cycle
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from config.settings import BACKTEST_CONFIG
from stockrank.data.models import SupplyDemandData
from stockrank.scoring.scoring_engine import IndicatorWeights, ScoringEngine

logger = logging.getLogger(__name__)


class TradeAction(Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


@dataclass(frozen=True)
class Trade:
    """
    Single ledger entry

    portfolio_value is the total portfolio value (cash + holdings) on the
    trade date after the trade is applied.
    """
    date: pd.Timestamp
    action: TradeAction
    symbol: str
    price: float
    score: float
    portfolio_value: float


@dataclass(frozen=True)
class HoldingPeriod:
    """Closed position: bars held and return in percent"""
    symbol: str
    days: int
    return_pct: float


@dataclass
class Holding:
    """Open position"""
    symbol: str
    shares: float
    buy_price: float
    buy_date: pd.Timestamp


@dataclass
class BacktestResults:
    """Results from a backtest run"""
    trades: List[Trade] = field(default_factory=list)
    holding_periods: List[HoldingPeriod] = field(default_factory=list)
    initial_capital: float = 0.0
    final_value: float = 0.0
    portfolio_values: List[float] = field(default_factory=list)
    rebalance_dates: List[pd.Timestamp] = field(default_factory=list)
    benchmark_return: float = 0.0
    trading_days_per_year: int = BACKTEST_CONFIG["trading_days_per_year"]

    @property
    def total_return(self) -> float:
        if self.initial_capital == 0:
            return 0.0
        return ((self.final_value - self.initial_capital) / self.initial_capital) * 100

    @property
    def excess_return(self) -> float:
        return self.total_return - self.benchmark_return

    @property
    def trade_count(self) -> int:
        return len([t for t in self.trades if t.action == TradeAction.BUY])

    @property
    def winning_periods(self) -> List[HoldingPeriod]:
        return [h for h in self.holding_periods if h.return_pct > 0]

    @property
    def win_rate(self) -> float:
        """Fraction (0-1) of holding periods with a positive return"""
        if not self.holding_periods:
            return 0.0
        return len(self.winning_periods) / len(self.holding_periods)

    @property
    def avg_holding_days(self) -> float:
        if not self.holding_periods:
            return 0.0
        return float(np.mean([h.days for h in self.holding_periods]))

    @property
    def sharpe_ratio(self) -> float:
        """Sharpe ratio of per-step returns (0% risk-free rate, population std)"""
        if len(self.portfolio_values) < 2:
            return 0.0

        returns = pd.Series(self.portfolio_values).pct_change().dropna()
        std = returns.std(ddof=0)
        if returns.empty or std == 0 or np.isnan(std):
            return 0.0

        return float((returns.mean() / std) * np.sqrt(self.trading_days_per_year))  # Annualized

    @property
    def max_drawdown(self) -> float:
        """Calculate maximum drawdown percentage"""
        if not self.portfolio_values:
            return 0.0

        values = pd.Series(self.portfolio_values)
        running_max = values.cummax()
        drawdown = (values - running_max) / running_max
        return float(abs(drawdown.min()) * 100)

    def summary(self) -> Dict:
        return {
            "initial_capital": self.initial_capital,
            "final_value": round(self.final_value, 2),
            "total_return": round(self.total_return, 2),
            "benchmark_return": round(self.benchmark_return, 2),
            "excess_return": round(self.excess_return, 2),
            "win_rate": round(self.win_rate, 3),
            "max_drawdown": round(self.max_drawdown, 2),
            "sharpe_ratio": round(self.sharpe_ratio, 2),
            "trade_count": self.trade_count,
            "holding_periods": len(self.holding_periods),
            "rebalances": len(self.rebalance_dates),
        }


class BacktestEngine:
    """
    Walk-forward rotation backtest

    On every rebalance date each candidate is scored on its history up to
    that date, the top N are targeted, dropped holdings are sold first and
    new targets bought with an equal split of the available cash.
    """

    def __init__(
        self,
        initial_capital: float = BACKTEST_CONFIG["initial_capital"],
        weights: Optional[Union[IndicatorWeights, Dict[str, float]]] = None,
        evaluation_period: int = BACKTEST_CONFIG["evaluation_period"],
        rebalance_cycle: int = BACKTEST_CONFIG["rebalance_cycle"],
        top_n: int = BACKTEST_CONFIG["top_n"],
        max_workers: Optional[int] = None,
        scoring_engine: Optional[ScoringEngine] = None,
    ):
        """
        Initialize backtest engine

        Args:
            initial_capital: Starting capital
            weights: Composite weights (IndicatorWeights or flat dict)
            evaluation_period: Bars covered by the walk-forward window
            rebalance_cycle: Bars between rebalances
            top_n: Number of stocks held
            max_workers: Threads used to score candidates of one date (None = sequential)
            scoring_engine: Engine providing the composite score
        """
        if initial_capital <= 0:
            raise ValueError(f"initial_capital must be positive, got {initial_capital}")
        if evaluation_period <= 0:
            raise ValueError(f"evaluation_period must be positive, got {evaluation_period}")
        if rebalance_cycle <= 0:
            raise ValueError(f"rebalance_cycle must be positive, got {rebalance_cycle}")
        if top_n < 1:
            raise ValueError(f"top_n must be at least 1, got {top_n}")
        if max_workers is not None and max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")

        if weights is None:
            weights = IndicatorWeights()
        elif isinstance(weights, dict):
            weights = IndicatorWeights.from_dict(weights)

        self.initial_capital = initial_capital
        self.weights = weights
        self.evaluation_period = evaluation_period
        self.rebalance_cycle = rebalance_cycle
        self.top_n = top_n
        self.max_workers = max_workers
        self.scoring_engine = scoring_engine if scoring_engine is not None else ScoringEngine()

        self.min_aligned_bars = BACKTEST_CONFIG["min_aligned_bars"]
        self.min_scoring_bars = BACKTEST_CONFIG["min_scoring_bars"]

        # Trading state
        self.cash = initial_capital
        self.holdings: List[Holding] = []
        self.trades: List[Trade] = []
        self.holding_periods: List[HoldingPeriod] = []
        self.portfolio_values: List[float] = []

    def run_backtest(
        self,
        stock_data: Dict[str, pd.DataFrame],
        supply_demand: Optional[Dict[str, SupplyDemandData]] = None,
    ) -> BacktestResults:
        """
        Run backtest on historical data

        Args:
            stock_data: Dictionary mapping symbol to OHLCV DataFrame (date index)
            supply_demand: Optional flow data per symbol for the flow sub-scores

        Returns:
            BacktestResults object with performance metrics
        """
        supply_demand = supply_demand or {}
        stock_data = {s: df for s, df in stock_data.items() if df is not None and not df.empty}

        # Reset state
        self.cash = self.initial_capital
        self.holdings = []
        self.trades = []
        self.holding_periods = []
        self.portfolio_values = [self.initial_capital]

        if not stock_data:
            logger.warning("No price data provided, returning empty result")
            return BacktestResults(initial_capital=self.initial_capital, final_value=self.initial_capital)

        # Shortest history defines the base dates
        base_symbol = min(stock_data, key=lambda s: len(stock_data[s]))
        base_dates = stock_data[base_symbol].index
        if len(base_dates) < self.min_aligned_bars:
            logger.warning(f"Insufficient aligned history ({len(base_dates)} bars, "
                           f"need {self.min_aligned_bars}), returning empty result")
            return BacktestResults(initial_capital=self.initial_capital, final_value=self.initial_capital)

        period = min(self.evaluation_period, len(base_dates) - self.min_aligned_bars)
        start_idx = max(0, len(base_dates) - period)
        rebalance_dates = [base_dates[i] for i in range(start_idx, len(base_dates), self.rebalance_cycle)]

        start_date = base_dates[start_idx]
        end_date = base_dates[-1]
        logger.info(f"Running backtest from {start_date.date()} to {end_date.date()}")
        logger.info(f"Testing {len(stock_data)} stocks, {len(rebalance_dates)} rebalances, top {self.top_n}")

        benchmark = self._benchmark_return(stock_data, start_date, end_date)

        for date in rebalance_dates:
            self._rebalance(date, stock_data, supply_demand, base_dates)
            self.portfolio_values.append(self._portfolio_value(date, stock_data))

        # Mark remaining holdings to market at the last date
        final_value = self.cash
        for holding in self.holdings:
            last_price = self._get_price(stock_data[holding.symbol], end_date)
            if last_price is None:
                last_price = holding.buy_price
            final_value += holding.shares * last_price
            self._record_period(holding, last_price, end_date, base_dates)
        self.portfolio_values.append(final_value)

        results = BacktestResults(
            trades=list(self.trades),
            holding_periods=list(self.holding_periods),
            initial_capital=self.initial_capital,
            final_value=final_value,
            portfolio_values=list(self.portfolio_values),
            rebalance_dates=rebalance_dates,
            benchmark_return=benchmark,
        )

        logger.info(f"Backtest complete: {results.trade_count} buys, "
                    f"{results.win_rate:.1%} win rate, "
                    f"{results.total_return:.2f}% return "
                    f"(benchmark {results.benchmark_return:.2f}%)")

        return results

    def _rebalance(
        self,
        date: pd.Timestamp,
        stocks: Dict[str, pd.DataFrame],
        supply_demand: Dict[str, SupplyDemandData],
        base_dates: pd.DatetimeIndex,
    ):
        """Score candidates, sell dropped holdings, hold the rest, buy new targets"""
        candidates = self._score_candidates(date, stocks, supply_demand)
        if not candidates:
            logger.debug(f"No valid stocks for {date.date()}")
            return

        # Stable sort keeps input order for equal scores
        candidates.sort(key=lambda c: c[1], reverse=True)
        targets = candidates[:self.top_n]
        target_scores = {symbol: score for symbol, score, _ in targets}

        logger.debug(f"{date.date()} top {self.top_n}: {', '.join(target_scores)}")

        # 1. Sell holdings that dropped out of the target set
        for holding in [h for h in self.holdings if h.symbol not in target_scores]:
            sell_price = self._get_price(stocks[holding.symbol], date)
            if sell_price is None:
                sell_price = holding.buy_price
            self.cash += holding.shares * sell_price
            self.holdings.remove(holding)
            self._record_period(holding, sell_price, date, base_dates)
            self._record_trade(date, TradeAction.SELL, holding.symbol, sell_price, 0.0, stocks)
            logger.debug(f"Sold {holding.symbol} at {sell_price:.2f}")

        # 2. Keep holdings that are still targeted
        for holding in self.holdings:
            price = self._get_price(stocks[holding.symbol], date)
            if price is None:
                price = holding.buy_price
            self._record_trade(date, TradeAction.HOLD, holding.symbol, price, target_scores[holding.symbol], stocks)

        # 3. Buy new targets with an equal split of cash
        held = {h.symbol for h in self.holdings}
        to_buy = [(s, score, price) for s, score, price in targets if s not in held]
        if not to_buy or self.cash <= 0:
            return

        target_value = self._portfolio_value(date, stocks) / self.top_n
        cash_per_stock = self.cash / len(to_buy)
        for symbol, score, price in to_buy:
            amount = min(cash_per_stock, target_value)
            if amount <= 0 or price <= 0:
                continue

            self.holdings.append(Holding(symbol=symbol, shares=amount / price, buy_price=price, buy_date=date))
            self.cash -= amount
            self._record_trade(date, TradeAction.BUY, symbol, price, score, stocks)
            logger.debug(f"Bought {symbol} at {price:.2f} (score={score:.2f})")

    def _score_candidates(
        self,
        date: pd.Timestamp,
        stocks: Dict[str, pd.DataFrame],
        supply_demand: Dict[str, SupplyDemandData],
    ) -> List[Tuple[str, float, float]]:
        """Score every candidate with a bar on the date, in input order"""
        symbols = list(stocks)

        def score_one(symbol: str) -> Optional[Tuple[str, float, float]]:
            df = stocks[symbol]
            if date not in df.index:
                return None
            idx = df.index.get_loc(date)
            if idx < self.min_scoring_bars:
                return None

            history = df.iloc[:idx + 1]
            score = self.scoring_engine.technical_composite(history, self.weights, supply_demand.get(symbol))
            return symbol, score, float(history["Close"].iloc[-1])

        if self.max_workers is None:
            results = [score_one(s) for s in symbols]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = [executor.submit(score_one, s) for s in symbols]
                results = [f.result() for f in futures]

        return [r for r in results if r is not None]

    def _record_trade(
        self,
        date: pd.Timestamp,
        action: TradeAction,
        symbol: str,
        price: float,
        score: float,
        stocks: Dict[str, pd.DataFrame],
    ):
        self.trades.append(Trade(
            date=date,
            action=action,
            symbol=symbol,
            price=price,
            score=score,
            portfolio_value=self._portfolio_value(date, stocks),
        ))

    def _record_period(
        self,
        holding: Holding,
        exit_price: float,
        exit_date: pd.Timestamp,
        base_dates: pd.DatetimeIndex,
    ):
        days = max(1, self._date_index(base_dates, exit_date) - self._date_index(base_dates, holding.buy_date))
        return_pct = ((exit_price - holding.buy_price) / holding.buy_price) * 100
        self.holding_periods.append(HoldingPeriod(symbol=holding.symbol, days=days, return_pct=return_pct))

    def _portfolio_value(self, date: pd.Timestamp, stocks: Dict[str, pd.DataFrame]) -> float:
        value = self.cash
        for holding in self.holdings:
            price = self._get_price(stocks[holding.symbol], date)
            if price is not None:
                value += holding.shares * price
        return value

    def _benchmark_return(
        self,
        stocks: Dict[str, pd.DataFrame],
        start_date: pd.Timestamp,
        end_date: pd.Timestamp,
    ) -> float:
        """Mean buy-and-hold return over the window for stocks with data at both ends"""
        returns = []
        for df in stocks.values():
            start_idx = df.index.searchsorted(start_date)
            end_idx = df.index.searchsorted(end_date)
            if end_idx >= len(df) or end_idx <= start_idx:
                continue
            start_price = df["Close"].iloc[start_idx]
            end_price = df["Close"].iloc[end_idx]
            if start_price > 0:
                returns.append((end_price - start_price) / start_price * 100)

        return float(np.mean(returns)) if returns else 0.0

    @staticmethod
    def _date_index(dates: pd.DatetimeIndex, date: pd.Timestamp) -> int:
        return int(dates.searchsorted(date))

    @staticmethod
    def _get_price(df: pd.DataFrame, date: pd.Timestamp) -> Optional[float]:
        """Close at the date, or the last close before it"""
        idx = df.index.searchsorted(date, side="right") - 1
        if idx < 0:
            return None
        return float(df["Close"].iloc[idx])
