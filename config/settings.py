"""
Configuration settings for the multi-factor stock ranking engine
"""

# =============================================================================
# INDICATOR PARAMETERS
# =============================================================================

INDICATOR_PARAMS = {
    # Moving Averages
    "ma_short": 20,
    "ma_medium": 50,
    "ma_long": 120,

    # MACD
    "macd_fast": 12,
    "macd_slow": 26,
    "macd_signal": 9,

    # RSI
    "rsi_period": 14,

    # Stochastic
    "stoch_k": 14,
    "stoch_d": 3,

    # Bollinger Bands
    "bb_period": 20,
    "bb_std": 2.0,

    # ADX (Average Directional Index)
    "adx_period": 14,

    # Volume
    "volume_ma_period": 20,
    "volume_recent_period": 5,

    # Divergence
    "divergence_lookback": 14,

    # Momentum (rate of change used by the backtest composite)
    "momentum_period": 20,

    # Snapshot is all-null below this many bars
    "min_history": 30,
}

# =============================================================================
# SCORING WEIGHTS (WeightConfig defaults)
# =============================================================================

SCORING_WEIGHTS = {
    "fundamental": {
        "per": 15,
        "pbr": 15,
        "roe": 15,
        "operating_margin": 15,
        "debt_ratio": 10,
        "current_ratio": 10,
        "eps_growth": 10,
        "revenue_growth": 10,
    },
    "technical": {
        "ma_position": 15,
        "rsi": 15,
        "volume_trend": 10,
        "macd": 15,
        "bollinger_band": 15,
        "stochastic": 10,
        "adx": 10,
        "divergence": 10,
    },
    "news": {
        "sentiment": 30,
        "frequency": 30,
        "disclosure_impact": 20,
        "recency": 20,
    },
    "supply_demand": {
        "foreign_flow": 50,
        "institution_flow": 50,
    },
    "category": {
        "fundamental": 35,
        "technical": 35,
        "news": 15,
        "supply_demand": 15,
    },
}

# Backtest composite (IndicatorWeights)
BACKTEST_WEIGHTS = {
    "ma_position": 10,
    "rsi": 10,
    "volume_trend": 8,
    "macd": 10,
    "bollinger_band": 8,
    "stochastic": 8,
    "adx": 8,
    "divergence": 8,
    "momentum": 10,
    "foreign_flow": 10,
    "institution_flow": 10,
}

# =============================================================================
# SECTOR AVERAGES (injectable lookup tables, "default" is the fallback bucket)
# =============================================================================

SECTOR_AVG_PER = {
    "Technology": 25,
    "Healthcare": 20,
    "Financial Services": 12,
    "Consumer Cyclical": 18,
    "Consumer Defensive": 20,
    "Energy": 10,
    "Industrials": 16,
    "Basic Materials": 12,
    "Communication Services": 18,
    "Utilities": 15,
    "Real Estate": 30,
    "전기전자": 15,
    "의약품": 25,
    "화학": 12,
    "철강금속": 8,
    "기계": 12,
    "건설업": 10,
    "운수장비": 10,
    "유통업": 15,
    "서비스업": 18,
    "통신업": 12,
    "은행": 8,
    "증권": 12,
    "보험": 10,
    "default": 15,
}

SECTOR_AVG_PBR = {
    "Technology": 4.0,
    "Healthcare": 3.5,
    "Financial Services": 1.2,
    "Consumer Cyclical": 2.5,
    "Consumer Defensive": 3.0,
    "Energy": 1.5,
    "Industrials": 2.5,
    "Basic Materials": 1.5,
    "Communication Services": 2.5,
    "Utilities": 1.5,
    "Real Estate": 1.5,
    "전기전자": 1.5,
    "의약품": 3.0,
    "화학": 1.0,
    "철강금속": 0.6,
    "기계": 1.0,
    "건설업": 0.7,
    "운수장비": 0.8,
    "유통업": 0.9,
    "서비스업": 1.5,
    "통신업": 0.8,
    "은행": 0.4,
    "증권": 0.6,
    "보험": 0.5,
    "default": 1.5,
}

SECTOR_AVG_MARGIN = {
    "Technology": 20,
    "Healthcare": 15,
    "Financial Services": 25,
    "Consumer Cyclical": 8,
    "Consumer Defensive": 10,
    "Energy": 12,
    "Industrials": 10,
    "Basic Materials": 10,
    "Communication Services": 18,
    "Utilities": 15,
    "Real Estate": 30,
    "전기전자": 12,
    "의약품": 15,
    "화학": 10,
    "철강금속": 8,
    "기계": 8,
    "건설업": 6,
    "운수장비": 5,
    "유통업": 5,
    "서비스업": 12,
    "통신업": 15,
    "은행": 20,
    "증권": 25,
    "보험": 15,
    "default": 10,
}

# =============================================================================
# SCORING COMPONENT PARAMETERS
# =============================================================================

SCORING_PARAMS = {
    "news": {
        "frequency_period_days": 30,
        "recency_short_days": 3,
        "recency_medium_days": 7,
        "recency_long_days": 30,
        "positive_keyword_score": 8,
        "negative_keyword_score": 2,
        "neutral_keyword_score": 5,
    },
    # Disclosure type keywords -> impact (matched against type first, then title)
    "disclosure_impact": {
        "수주": 9,
        "공급계약": 9,
        "자사주취득": 9,
        "자기주식취득": 9,
        "무상증자": 8,
        "현금배당": 8,
        "배당": 8,
        "실적개선": 8,
        "흑자전환": 9,
        "합병": 7,
        "유상증자": 3,
        "전환사채": 3,
        "신주인수권부사채": 3,
        "감자": 2,
        "적자전환": 2,
        "소송": 3,
        "횡령": 1,
        "배임": 1,
        "상장폐지": 1,
        "관리종목": 1,
        "불성실공시": 2,
        "buyback": 9,
        "contract": 9,
        "dividend": 8,
        "acquisition": 7,
        "offering": 3,
        "lawsuit": 3,
        "delisting": 1,
        "bankruptcy": 1,
    },
    "positive_keywords": [
        "상승", "급등", "호재", "흑자", "최고", "신고가", "수주", "계약", "성장",
        "실적개선", "매출증가", "영업이익", "배당", "자사주", "인수", "M&A",
        "surge", "jump", "gain", "profit", "growth", "beat", "upgrade", "buy",
        "bullish", "record", "high", "strong", "positive", "dividend",
    ],
    "negative_keywords": [
        "하락", "급락", "악재", "적자", "최저", "신저가", "손실", "감소", "부진",
        "실적악화", "매출감소", "영업손실", "소송", "리콜", "분쟁", "횡령",
        "drop", "fall", "loss", "decline", "miss", "downgrade", "sell",
        "bearish", "low", "weak", "negative", "lawsuit", "recall", "fraud",
    ],
}

# =============================================================================
# BACKTESTING CONFIGURATION
# =============================================================================

BACKTEST_CONFIG = {
    # Initial capital
    "initial_capital": 10_000_000,

    # Walk-forward window (bars)
    "evaluation_period": 120,
    "rebalance_cycle": 20,

    # Portfolio constraints
    "top_n": 1,

    # History requirements
    "min_aligned_bars": 20,   # below this the result is zeroed
    "min_scoring_bars": 10,   # candidate needs this many prior bars to be scored

    # Sharpe annualization
    "trading_days_per_year": 252,
}

# =============================================================================
# LOGGING
# =============================================================================

LOGGING_CONFIG = {
    "level": "INFO",
    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}
