#!/usr/bin/env python3
"""
Rotation backtest on sample data

Generates seeded synthetic OHLCV data (geometric random walk), ranks the
universe on its latest bar and runs the walk-forward rotation backtest.
Prints a JSON summary.
"""
import sys
import json
import argparse
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List

import numpy as np
import pandas as pd

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import BACKTEST_CONFIG, LOGGING_CONFIG
from backtesting.backtest_engine import BacktestEngine
from stockrank.scoring.scoring_engine import ScoringEngine, StockInput

logger = logging.getLogger(__name__)

# Per-stock characteristics, rotated over the universe
STOCK_PROFILES = {
    # Growth: uptrend, high volatility
    "growth": {"trend": 0.0008, "volatility": 0.025, "base_price": 30000},
    # Value: stable, low volatility
    "value": {"trend": 0.0002, "volatility": 0.015, "base_price": 15000},
    # Large cap: stable
    "large_cap": {"trend": 0.0004, "volatility": 0.018, "base_price": 70000},
    # High volatility, drifting down
    "high_vol": {"trend": -0.0003, "volatility": 0.035, "base_price": 5000},
}

SAMPLE_SECTORS = ["전기전자", "의약품", "화학", "서비스업", "Technology", "Healthcare"]


def generate_sample_stock_data(
    n_days: int,
    base_price: float = 10000,
    volatility: float = 0.02,
    trend: float = 0.0001,
    end_date: str = "2024-12-31",
    rng: np.random.Generator = None,
) -> pd.DataFrame:
    """
    Generate one synthetic OHLCV history

    - Geometric random walk with drift
    - Volume rising with the size of the daily move
    - Open gapped from the previous close
    """
    rng = rng if rng is not None else np.random.default_rng()
    dates = pd.bdate_range(end=end_date, periods=n_days, name="Date")

    returns = rng.normal(trend, volatility, n_days)
    closes = base_price * np.exp(np.cumsum(returns))

    opens = np.roll(closes, 1) * (1 + rng.normal(0, volatility * 0.3, n_days))
    opens[0] = base_price
    highs = np.maximum(opens, closes) * (1 + rng.uniform(0, volatility, n_days))
    lows = np.minimum(opens, closes) * (1 - rng.uniform(0, volatility, n_days))

    volume_factor = 1 + np.abs(returns) * 50
    volumes = (1_000_000 * volume_factor * rng.uniform(0.5, 1.5, n_days)).astype(int)

    return pd.DataFrame({
        "Open": opens,
        "High": highs,
        "Low": lows,
        "Close": closes,
        "Volume": volumes,
    }, index=dates)


def generate_universe(n_stocks: int, n_days: int, seed: int) -> Dict[str, pd.DataFrame]:
    """Generate a reproducible universe of sample stocks"""
    rng = np.random.default_rng(seed)
    profiles = list(STOCK_PROFILES)

    stock_data = {}
    for i in range(n_stocks):
        symbol = f"SAMPLE{i + 1:03d}"
        profile = STOCK_PROFILES[profiles[i % len(profiles)]]
        stock_data[symbol] = generate_sample_stock_data(n_days, rng=rng, **profile)
        logger.debug(f"Generated {symbol}: {n_days} days, type={profiles[i % len(profiles)]}")

    return stock_data


def rank_universe(stock_data: Dict[str, pd.DataFrame], top_n: int) -> List[Dict]:
    """Rank the sample universe on its latest bar (technical data only)"""
    engine = ScoringEngine()
    stocks = [
        StockInput(symbol=symbol, prices=df, sector=SAMPLE_SECTORS[i % len(SAMPLE_SECTORS)])
        for i, (symbol, df) in enumerate(stock_data.items())
    ]
    as_of = max(df.index[-1] for df in stock_data.values()).to_pydatetime()
    ranked, _ = engine.rank(stocks, now=as_of)

    return [
        {
            "symbol": r.symbol,
            "total": r.scores.total,
            "technical": r.scores.technical.average,
            "price": round(r.price, 2) if r.price is not None else None,
        }
        for r in ranked[:top_n]
    ]


def main():
    parser = argparse.ArgumentParser(description="Rotation backtest on sample data")
    parser.add_argument("--stocks", type=int, default=8, help="Number of sample stocks")
    parser.add_argument("--days", type=int, default=300, help="Bars per stock")
    parser.add_argument(
        "--evaluation-period",
        type=int,
        default=BACKTEST_CONFIG["evaluation_period"],
        help="Walk-forward window in bars",
    )
    parser.add_argument(
        "--rebalance-cycle",
        type=int,
        default=BACKTEST_CONFIG["rebalance_cycle"],
        help="Bars between rebalances",
    )
    parser.add_argument("--top-n", type=int, default=BACKTEST_CONFIG["top_n"], help="Stocks held")
    parser.add_argument("--workers", type=int, default=None, help="Scoring threads per rebalance date")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else LOGGING_CONFIG["level"],
        format=LOGGING_CONFIG["format"],
    )

    started = datetime.now()
    stock_data = generate_universe(args.stocks, args.days, args.seed)

    engine = BacktestEngine(
        evaluation_period=args.evaluation_period,
        rebalance_cycle=args.rebalance_cycle,
        top_n=args.top_n,
        max_workers=args.workers,
    )
    results = engine.run_backtest(stock_data)

    output = {
        "parameters": {
            "stocks": args.stocks,
            "days": args.days,
            "evaluation_period": args.evaluation_period,
            "rebalance_cycle": args.rebalance_cycle,
            "top_n": args.top_n,
            "seed": args.seed,
        },
        "ranking": rank_universe(stock_data, max(args.top_n, 3)),
        "backtest": results.summary(),
        "trades": [
            {
                "date": t.date.strftime("%Y-%m-%d"),
                "action": t.action.value,
                "symbol": t.symbol,
                "price": round(t.price, 2),
                "score": round(t.score, 2),
                "portfolio_value": round(t.portfolio_value, 2),
            }
            for t in results.trades
        ],
    }

    print(json.dumps(output, indent=2, ensure_ascii=False))
    logger.info(f"Finished in {(datetime.now() - started).total_seconds():.1f}s")


if __name__ == "__main__":
    main()
