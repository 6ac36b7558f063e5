"""
Data records consumed and produced by the ranking engine
"""
from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import List, Optional, Sequence, Union

import pandas as pd

OHLCV_COLUMNS = ["Open", "High", "Low", "Close", "Volume"]


@dataclass(frozen=True)
class PricePoint:
    """Single OHLCV bar"""
    date: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


def to_frame(prices: Union[Sequence[PricePoint], pd.DataFrame, None]) -> pd.DataFrame:
    """
    Convert a PricePoint sequence into an OHLCV DataFrame

    DataFrames are passed through unchanged so callers can hand over either form.

    Args:
        prices: PricePoint sequence (ordered by date) or OHLCV DataFrame

    Returns:
        DataFrame indexed by date with Open, High, Low, Close, Volume columns
    """
    if prices is None:
        return pd.DataFrame(columns=OHLCV_COLUMNS)
    if isinstance(prices, pd.DataFrame):
        return prices

    df = pd.DataFrame(
        {
            "Open": [p.open for p in prices],
            "High": [p.high for p in prices],
            "Low": [p.low for p in prices],
            "Close": [p.close for p in prices],
            "Volume": [p.volume for p in prices],
        },
        index=pd.DatetimeIndex([pd.Timestamp(p.date) for p in prices], name="Date"),
        dtype=float,
    )
    return df


class Divergence(Enum):
    """Price/oscillator divergence signal"""
    BULLISH = "bullish"
    BEARISH = "bearish"
    NONE = "none"


@dataclass
class TechnicalSnapshot:
    """Most recent value of every indicator (None where undefined)"""
    ma20: Optional[float] = None
    ma50: Optional[float] = None
    ma120: Optional[float] = None
    rsi: Optional[float] = None
    macd_line: Optional[float] = None
    signal_line: Optional[float] = None
    histogram: Optional[float] = None
    previous_histogram: Optional[float] = None
    volume_avg20: Optional[float] = None
    volume_change: Optional[float] = None
    bollinger_upper: Optional[float] = None
    bollinger_middle: Optional[float] = None
    bollinger_lower: Optional[float] = None
    bollinger_width: Optional[float] = None
    bollinger_percent_b: Optional[float] = None
    stochastic_k: Optional[float] = None
    stochastic_d: Optional[float] = None
    adx: Optional[float] = None
    plus_di: Optional[float] = None
    minus_di: Optional[float] = None
    rsi_divergence: Optional[Divergence] = None
    macd_divergence: Optional[Divergence] = None
    momentum: Optional[float] = None
    close: Optional[float] = None
    price_change: Optional[float] = None

    @classmethod
    def empty(cls) -> "TechnicalSnapshot":
        return cls()

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))


@dataclass
class FundamentalData:
    """Fundamental metrics for a stock (percent values unless noted)"""
    per: Optional[float] = None
    pbr: Optional[float] = None
    roe: Optional[float] = None
    operating_margin: Optional[float] = None
    eps: Optional[float] = None
    market_cap: Optional[float] = None
    debt_ratio: Optional[float] = None      # total liabilities / equity x 100
    current_ratio: Optional[float] = None   # current assets / current liabilities x 100
    eps_growth: Optional[float] = None      # YoY
    revenue_growth: Optional[float] = None  # YoY


@dataclass
class NewsItem:
    title: str
    published_at: datetime
    source: str = ""
    url: str = ""


@dataclass
class DisclosureItem:
    title: str
    type: str
    filing_date: datetime
    url: str = ""


@dataclass
class NewsData:
    """News and regulatory disclosure activity for a stock"""
    recent_news: List[NewsItem] = field(default_factory=list)
    recent_disclosures: List[DisclosureItem] = field(default_factory=list)
    sentiment_score: Optional[float] = None
    news_count: int = 0
    disclosure_count: int = 0


@dataclass
class SupplyDemandData:
    """
    Investor flow data

    Net buy amounts are in the market's reporting unit (100M KRW / 1M USD).
    Streak days are negative for consecutive net selling.
    """
    foreign_net_buy: Optional[float] = None
    institution_net_buy: Optional[float] = None
    foreign_net_buy_days: Optional[int] = None
    institution_net_buy_days: Optional[int] = None
    foreign_ownership: Optional[float] = None
