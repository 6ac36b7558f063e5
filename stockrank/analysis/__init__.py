"""
Technical analysis modules
"""
from .indicators import TechnicalIndicators, calculate_all_indicators

__all__ = ["TechnicalIndicators", "calculate_all_indicators"]
