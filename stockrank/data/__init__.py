"""
Input and snapshot data records
"""
from .models import (
    PricePoint,
    TechnicalSnapshot,
    Divergence,
    FundamentalData,
    NewsItem,
    DisclosureItem,
    NewsData,
    SupplyDemandData,
    to_frame,
)

__all__ = [
    "PricePoint",
    "TechnicalSnapshot",
    "Divergence",
    "FundamentalData",
    "NewsItem",
    "DisclosureItem",
    "NewsData",
    "SupplyDemandData",
    "to_frame",
]
