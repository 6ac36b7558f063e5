"""
Tests for backtesting engine
"""
import pytest
import pandas as pd
import numpy as np

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from backtesting.backtest_engine import (
    BacktestEngine,
    BacktestResults,
    HoldingPeriod,
    Trade,
    TradeAction,
)
from stockrank.data.models import SupplyDemandData

DATES = pd.bdate_range("2024-01-01", periods=60)


def make_frame(closes, dates=DATES) -> pd.DataFrame:
    closes = np.asarray(closes, dtype=float)
    return pd.DataFrame({
        "Open": closes,
        "High": closes * 1.01,
        "Low": closes * 0.99,
        "Close": closes,
        "Volume": np.full(len(closes), 1000.0),
    }, index=dates)


class ScriptedScoringEngine:
    """Stand-in scorer returning a score chosen by the test"""

    def __init__(self, score_fn):
        self.score_fn = score_fn
        self.scored_dates = []

    def technical_composite(self, history, weights=None, supply_demand=None):
        self.scored_dates.append(history.index[-1])
        return self.score_fn(history, supply_demand)


def rotation_score(history, supply_demand):
    """Stock A (starts at 100) leads until index 30, stock B (flat 200) afterwards"""
    if history["Close"].iloc[0] == 100.0:
        return 9.0 if len(history) <= 31 else 1.0
    return 5.0


@pytest.fixture
def rotation_data():
    return {
        "A": make_frame(100 + np.arange(60)),   # close at index i is 100 + i
        "B": make_frame(np.full(60, 200.0)),
    }


@pytest.fixture
def rotation_engine():
    return BacktestEngine(
        initial_capital=10_000_000,
        evaluation_period=40,
        rebalance_cycle=10,
        top_n=1,
        scoring_engine=ScriptedScoringEngine(rotation_score),
    )


class TestBacktestResults:
    """Test suite for BacktestResults dataclass"""

    def test_empty_results(self):
        results = BacktestResults(initial_capital=1_000_000, final_value=1_000_000)

        assert results.total_return == 0
        assert results.trade_count == 0
        assert results.win_rate == 0
        assert results.max_drawdown == 0
        assert results.sharpe_ratio == 0

    def test_max_drawdown(self):
        results = BacktestResults(portfolio_values=[100, 120, 90, 130])
        assert results.max_drawdown == pytest.approx(25.0)

    def test_sharpe_zero_for_constant_values(self):
        results = BacktestResults(portfolio_values=[100.0, 100.0, 100.0])
        assert results.sharpe_ratio == 0

    def test_sharpe_population_std(self):
        values = [100.0, 110.0, 99.0, 108.9]
        returns = np.array([0.1, -0.1, 0.1])
        expected = returns.mean() / returns.std() * np.sqrt(252)
        results = BacktestResults(portfolio_values=values)
        assert results.sharpe_ratio == pytest.approx(expected)

    def test_win_rate_is_fraction(self):
        results = BacktestResults(holding_periods=[
            HoldingPeriod("A", 10, 5.0),
            HoldingPeriod("B", 10, -2.0),
            HoldingPeriod("C", 10, 0.0),
            HoldingPeriod("D", 10, 1.0),
        ])
        assert results.win_rate == pytest.approx(0.5)

    def test_trade_count_counts_buys(self):
        date = DATES[0]
        results = BacktestResults(trades=[
            Trade(date, TradeAction.BUY, "A", 100, 9, 1000),
            Trade(date, TradeAction.HOLD, "A", 100, 9, 1000),
            Trade(date, TradeAction.SELL, "A", 100, 0, 1000),
            Trade(date, TradeAction.BUY, "B", 100, 8, 1000),
        ])
        assert results.trade_count == 2

    def test_excess_return(self):
        results = BacktestResults(initial_capital=100, final_value=120, benchmark_return=5.0)
        assert results.total_return == pytest.approx(20.0)
        assert results.excess_return == pytest.approx(15.0)

    def test_trade_is_immutable(self):
        trade = Trade(DATES[0], TradeAction.BUY, "A", 100, 9, 1000)
        with pytest.raises(AttributeError):
            trade.price = 200


class TestBacktestEngineValidation:

    @pytest.mark.parametrize("kwargs", [
        {"initial_capital": 0},
        {"evaluation_period": 0},
        {"rebalance_cycle": 0},
        {"top_n": 0},
        {"max_workers": 0},
        {"weights": {"rsi": -1}},
    ])
    def test_invalid_configuration(self, kwargs):
        with pytest.raises(ValueError):
            BacktestEngine(**kwargs)


class TestBacktestEngine:
    """Test suite for BacktestEngine class"""

    def test_insufficient_history_returns_zeroed_result(self):
        engine = BacktestEngine(scoring_engine=ScriptedScoringEngine(lambda h, s: 5.0))
        data = {
            "A": make_frame(np.arange(15) + 100.0, DATES[:15]),
            "B": make_frame(np.arange(60) + 100.0),
        }
        results = engine.run_backtest(data)

        assert results.trades == []
        assert results.holding_periods == []
        assert results.total_return == 0
        assert results.trade_count == 0
        assert results.final_value == engine.initial_capital

    def test_empty_input(self):
        results = BacktestEngine().run_backtest({})
        assert results.trades == []
        assert results.total_return == 0

    def test_rotation_ledger(self, rotation_engine, rotation_data):
        results = rotation_engine.run_backtest(rotation_data)

        ledger = [(t.date, t.action, t.symbol) for t in results.trades]
        assert ledger == [
            (DATES[20], TradeAction.BUY, "A"),
            (DATES[30], TradeAction.HOLD, "A"),
            (DATES[40], TradeAction.SELL, "A"),
            (DATES[40], TradeAction.BUY, "B"),
            (DATES[50], TradeAction.HOLD, "B"),
        ]
        assert results.rebalance_dates == [DATES[20], DATES[30], DATES[40], DATES[50]]
        assert results.trade_count == 2

    def test_rotation_prices_and_returns(self, rotation_engine, rotation_data):
        results = rotation_engine.run_backtest(rotation_data)

        buy_a, hold_a, sell_a, buy_b, hold_b = results.trades
        assert buy_a.price == pytest.approx(120.0)
        assert buy_a.score == pytest.approx(9.0)
        assert hold_a.score == pytest.approx(9.0)
        assert sell_a.price == pytest.approx(140.0)
        assert sell_a.score == 0
        assert buy_b.price == pytest.approx(200.0)

        expected_final = 10_000_000 * 140 / 120
        assert results.final_value == pytest.approx(expected_final)
        assert results.total_return == pytest.approx(100 * (140 / 120 - 1))
        assert sell_a.portfolio_value == pytest.approx(expected_final)

    def test_holding_periods_include_terminal_position(self, rotation_engine, rotation_data):
        results = rotation_engine.run_backtest(rotation_data)

        assert len(results.holding_periods) == 2
        closed_a, open_b = results.holding_periods
        assert closed_a.symbol == "A"
        assert closed_a.days == 20
        assert closed_a.return_pct == pytest.approx(100 * (140 / 120 - 1))
        assert open_b.symbol == "B"
        assert open_b.days == 19
        assert open_b.return_pct == pytest.approx(0.0)
        assert results.win_rate == pytest.approx(0.5)

    def test_portfolio_values(self, rotation_engine, rotation_data):
        results = rotation_engine.run_backtest(rotation_data)
        shares = 10_000_000 / 120

        assert results.portfolio_values == pytest.approx([
            10_000_000,
            shares * 120,
            shares * 130,
            shares * 140,
            shares * 140,
            shares * 140,
        ])
        assert results.max_drawdown == pytest.approx(0.0)
        assert results.sharpe_ratio > 0

    def test_benchmark_return(self, rotation_engine, rotation_data):
        results = rotation_engine.run_backtest(rotation_data)
        # A: 120 -> 159, B: flat
        assert results.benchmark_return == pytest.approx((159 / 120 - 1) * 100 / 2)
        assert results.excess_return == pytest.approx(results.total_return - results.benchmark_return)

    def test_no_look_ahead(self, rotation_engine, rotation_data):
        rotation_engine.run_backtest(rotation_data)
        scored = set(rotation_engine.scoring_engine.scored_dates)
        assert scored == {DATES[20], DATES[30], DATES[40], DATES[50]}

    def test_candidate_without_bar_on_date_is_skipped(self):
        # C misses the first rebalance date but has one extra bar before the window
        c_dates = DATES.delete(20).insert(0, DATES[0] - pd.offsets.BDay(1))
        data = {
            "A": make_frame(np.full(60, 100.0)),
            "C": make_frame(np.full(60, 300.0), c_dates),
        }

        def score(history, supply_demand):
            return 10.0 if history["Close"].iloc[0] == 300.0 else 5.0

        engine = BacktestEngine(
            evaluation_period=40,
            rebalance_cycle=10,
            scoring_engine=ScriptedScoringEngine(score),
        )
        results = engine.run_backtest(data)

        first_date_trades = [(t.action, t.symbol) for t in results.trades if t.date == DATES[20]]
        assert first_date_trades == [(TradeAction.BUY, "A")]
        second_date_trades = [(t.action, t.symbol) for t in results.trades if t.date == DATES[30]]
        assert second_date_trades == [(TradeAction.SELL, "A"), (TradeAction.BUY, "C")]

    def test_ties_keep_input_order(self):
        data = {
            "X": make_frame(np.full(60, 100.0)),
            "Y": make_frame(np.full(60, 100.0)),
        }
        engine = BacktestEngine(
            evaluation_period=40,
            rebalance_cycle=10,
            scoring_engine=ScriptedScoringEngine(lambda h, s: 5.0),
        )
        results = engine.run_backtest(data)

        assert results.trades[0].symbol == "X"
        assert all(t.symbol == "X" for t in results.trades)

    def test_top_n_equal_split(self):
        data = {
            "A": make_frame(np.full(60, 100.0)),
            "B": make_frame(np.full(60, 50.0)),
            "C": make_frame(np.full(60, 25.0)),
        }
        scores = {100.0: 9.0, 50.0: 8.0, 25.0: 1.0}
        engine = BacktestEngine(
            initial_capital=1_000_000,
            evaluation_period=40,
            rebalance_cycle=10,
            top_n=2,
            scoring_engine=ScriptedScoringEngine(lambda h, s: scores[h["Close"].iloc[0]]),
        )
        results = engine.run_backtest(data)

        first = [t for t in results.trades if t.date == DATES[20]]
        assert [(t.action, t.symbol) for t in first] == [(TradeAction.BUY, "A"), (TradeAction.BUY, "B")]
        assert all(t.portfolio_value == pytest.approx(1_000_000) for t in first)
        assert results.final_value == pytest.approx(1_000_000)
        assert results.trade_count == 2

    def test_supply_demand_passed_per_symbol(self):
        seen = {}

        def score(history, supply_demand):
            seen[history["Close"].iloc[0]] = supply_demand
            return 5.0

        flows = SupplyDemandData(foreign_net_buy=100)
        data = {
            "A": make_frame(np.full(60, 100.0)),
            "B": make_frame(np.full(60, 200.0)),
        }
        engine = BacktestEngine(evaluation_period=40, rebalance_cycle=10, scoring_engine=ScriptedScoringEngine(score))
        engine.run_backtest(data, supply_demand={"A": flows})

        assert seen[100.0] is flows
        assert seen[200.0] is None

    def test_parallel_scoring_matches_sequential(self, rotation_data):
        def run(workers):
            engine = BacktestEngine(
                evaluation_period=40,
                rebalance_cycle=10,
                max_workers=workers,
                scoring_engine=ScriptedScoringEngine(rotation_score),
            )
            return engine.run_backtest(rotation_data)

        sequential = run(None)
        parallel = run(4)
        assert parallel.trades == sequential.trades
        assert parallel.final_value == pytest.approx(sequential.final_value)

    def test_zero_close_is_a_real_price(self):
        # A trades at 100 until index 35, then at 0
        a_closes = np.where(np.arange(60) < 35, 100.0, 0.0)
        data = {
            "A": make_frame(a_closes),
            "B": make_frame(np.full(60, 200.0)),
        }
        engine = BacktestEngine(
            initial_capital=10_000_000,
            evaluation_period=40,
            rebalance_cycle=10,
            scoring_engine=ScriptedScoringEngine(rotation_score),
        )
        results = engine.run_backtest(data)

        sell = next(t for t in results.trades if t.action == TradeAction.SELL)
        assert sell.date == DATES[40]
        assert sell.price == 0.0
        assert results.holding_periods[0].return_pct == pytest.approx(-100.0)
        assert results.final_value == pytest.approx(0.0)

    def test_short_window_is_capped(self):
        # 30 bars: effective period = 30 - 20 = 10, single rebalance at index 20
        data = {"A": make_frame(np.full(30, 100.0), DATES[:30])}
        engine = BacktestEngine(
            evaluation_period=120,
            rebalance_cycle=20,
            scoring_engine=ScriptedScoringEngine(lambda h, s: 5.0),
        )
        results = engine.run_backtest(data)

        assert results.rebalance_dates == [DATES[20]]
        assert results.holding_periods[0].days == 9


class TestBacktestWithScoringEngine:
    """End-to-end run with the real composite score"""

    @pytest.fixture
    def sample_stock_data(self):
        np.random.seed(42)
        dates = pd.bdate_range("2023-01-02", periods=160)
        data = {}
        for i, drift in enumerate([0.002, 0.0, -0.002]):
            close = 10000 * np.cumprod(1 + drift + np.random.randn(160) * 0.015)
            data[f"STOCK{i}"] = pd.DataFrame({
                "Open": close * (1 + np.random.randn(160) * 0.003),
                "High": close * (1 + np.abs(np.random.randn(160) * 0.01)),
                "Low": close * (1 - np.abs(np.random.randn(160) * 0.01)),
                "Close": close,
                "Volume": np.random.randint(100000, 1000000, 160),
            }, index=dates)
        return data

    def test_run_backtest(self, sample_stock_data):
        engine = BacktestEngine(evaluation_period=100, rebalance_cycle=20, top_n=1)
        results = engine.run_backtest(sample_stock_data)

        assert len(results.rebalance_dates) == 5
        assert results.trade_count >= 1
        assert results.trades[0].action == TradeAction.BUY
        assert 0 <= results.win_rate <= 1
        assert results.max_drawdown >= 0
        assert np.isfinite(results.sharpe_ratio)
        assert len(results.portfolio_values) == len(results.rebalance_dates) + 2
        assert all(1 <= t.score <= 10 for t in results.trades if t.action == TradeAction.BUY)

        summary = results.summary()
        assert summary["trade_count"] == results.trade_count
        assert summary["rebalances"] == 5

    def test_short_histories_are_ranked_on_their_trend(self):
        # First rebalance at index 20, below the 30-bar snapshot minimum
        data = {
            "DOWN": make_frame(100 * 0.97 ** np.arange(40), DATES[:40]),
            "UP": make_frame(100 * 1.03 ** np.arange(40), DATES[:40]),
        }
        engine = BacktestEngine(evaluation_period=120, rebalance_cycle=5)
        results = engine.run_backtest(data)

        first = results.trades[0]
        assert first.date == DATES[20]
        assert (first.action, first.symbol) == (TradeAction.BUY, "UP")
        assert first.score != pytest.approx(5.0)
