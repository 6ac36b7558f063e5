"""
Multi-factor scoring modules
"""
from .scoring_engine import (
    AnalysisState,
    IndicatorWeights,
    ScoringEngine,
    StockAnalysis,
    StockInput,
    StockScores,
    WeightConfig,
    rank_stocks,
    weighted_average,
)

__all__ = [
    "AnalysisState",
    "IndicatorWeights",
    "ScoringEngine",
    "StockAnalysis",
    "StockInput",
    "StockScores",
    "WeightConfig",
    "rank_stocks",
    "weighted_average",
]
