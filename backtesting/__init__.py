"""
Backtesting modules
"""
from .backtest_engine import BacktestEngine, BacktestResults, Holding, HoldingPeriod, Trade, TradeAction

__all__ = [
    "BacktestEngine",
    "BacktestResults",
    "Holding",
    "HoldingPeriod",
    "Trade",
    "TradeAction",
]
