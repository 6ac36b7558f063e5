"""
Technical indicator calculations for multi-factor stock ranking

Every series function takes an array-like (or OHLC array-likes) and returns a
float ndarray of the same length. Positions without enough history hold NaN;
short input never raises, it just yields more NaN.
"""
import logging
from typing import Callable, Dict, Optional, Sequence, Union

import numpy as np
import pandas as pd

from config.settings import INDICATOR_PARAMS
from stockrank.data.models import (
    Divergence,
    PricePoint,
    TechnicalSnapshot,
    to_frame,
)

logger = logging.getLogger(__name__)

ArrayLike = Union[Sequence[float], np.ndarray, pd.Series]


def _as_array(values: ArrayLike) -> np.ndarray:
    return np.asarray(values, dtype=float)


def _apply_compacted(values: np.ndarray, func: Callable[[np.ndarray], np.ndarray]) -> np.ndarray:
    """
    Run func over the defined (non-NaN) values only and re-expand the output
    back to the original index positions.
    """
    result = np.full(len(values), np.nan)
    mask = ~np.isnan(values)
    if mask.any():
        result[mask] = func(values[mask])
    return result


def sma(values: ArrayLike, period: int) -> np.ndarray:
    """
    Simple Moving Average

    Args:
        values: Input series
        period: Window length

    Returns:
        Trailing window mean, NaN for index < period - 1
    """
    arr = _as_array(values)
    if period <= 0:
        return np.full(len(arr), np.nan)
    return pd.Series(arr).rolling(window=period).mean().to_numpy()


def ema(values: ArrayLike, period: int) -> np.ndarray:
    """
    Exponential Moving Average

    The value at index period-1 is seeded with the SMA of the first `period`
    values, later values follow v[i]*m + ema[i-1]*(1-m) with m = 2/(period+1).
    Indices before the seed hold the running mean of all values seen so far.
    This warm-up is an approximation, not a true EMA, and is kept so results
    line up with previously published rankings.
    """
    arr = _as_array(values)
    n = len(arr)
    result = np.full(n, np.nan)
    if n == 0 or period <= 0:
        return result

    # Warm-up: running mean until the seed index
    running_mean = pd.Series(arr).expanding().mean().to_numpy()
    seed_idx = period - 1
    if n <= seed_idx:
        return running_mean

    result[:seed_idx] = running_mean[:seed_idx]
    seeded = arr[seed_idx:].copy()
    seeded[0] = arr[:period].mean()
    result[seed_idx:] = pd.Series(seeded).ewm(span=period, adjust=False).mean().to_numpy()
    return result


def _wilder_average(values: np.ndarray, period: int) -> np.ndarray:
    """Wilder smoothing seeded with the simple mean of the first `period` values"""
    seeded = values[period - 1:].copy()
    seeded[0] = values[:period].mean()
    return pd.Series(seeded).ewm(alpha=1 / period, adjust=False).mean().to_numpy()


def rsi(prices: ArrayLike, period: int = 14) -> np.ndarray:
    """
    Relative Strength Index with Wilder's smoothing

    The first average (index = period) is the simple mean of the first
    `period` gains/losses; later averages use (prev*(period-1) + current)/period.

    Returns:
        RSI in [0, 100], 100 when the average loss is zero, NaN for index < period
    """
    arr = _as_array(prices)
    n = len(arr)
    result = np.full(n, np.nan)
    if period <= 0 or n <= period:
        return result

    delta = np.diff(arr)
    gains = np.where(delta > 0, delta, 0.0)
    losses = np.where(delta < 0, -delta, 0.0)

    avg_gain = _wilder_average(gains, period)
    avg_loss = _wilder_average(losses, period)

    with np.errstate(divide="ignore", invalid="ignore"):
        rs = avg_gain / avg_loss
        values = np.where(avg_loss == 0, 100.0, 100 - 100 / (1 + rs))

    result[period:] = values
    return result


def standard_deviation(values: ArrayLike, period: int) -> np.ndarray:
    """Population standard deviation over the trailing window"""
    arr = _as_array(values)
    n = len(arr)
    result = np.full(n, np.nan)
    if period <= 0 or n < period:
        return result

    windows = np.lib.stride_tricks.sliding_window_view(arr, period)
    result[period - 1:] = windows.std(axis=1)
    return result


def bollinger_bands(
    prices: ArrayLike,
    period: int = 20,
    multiplier: float = 2.0,
) -> Dict[str, np.ndarray]:
    """
    Bollinger Bands

    Returns:
        Dictionary with:
        - upper / middle / lower: bands (middle = SMA)
        - width: (upper - lower) / middle * 100
        - percent_b: (price - lower) / (upper - lower), 0.5 for a zero-variance window
    """
    arr = _as_array(prices)
    middle = sma(arr, period)
    std = standard_deviation(arr, period)

    upper = middle + multiplier * std
    lower = middle - multiplier * std
    band = upper - lower
    undefined = np.isnan(middle) | np.isnan(std)

    with np.errstate(divide="ignore", invalid="ignore"):
        width = np.where(middle != 0, band / middle * 100, np.nan)
        percent_b = np.where(band > 0, (arr - lower) / band, 0.5)

    width[undefined] = np.nan
    percent_b[undefined] = np.nan

    return {
        "upper": upper,
        "middle": middle,
        "lower": lower,
        "width": width,
        "percent_b": percent_b,
    }


def macd(
    prices: ArrayLike,
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> Dict[str, np.ndarray]:
    """
    MACD (Moving Average Convergence Divergence)

    The signal line is the EMA of the compacted sequence of defined MACD
    values, re-expanded onto the original index positions.

    Returns:
        Dictionary with macd_line, signal_line and histogram
    """
    arr = _as_array(prices)
    n = len(arr)
    fast_ema = ema(arr, fast_period)
    slow_ema = ema(arr, slow_period)

    macd_line = np.full(n, np.nan)
    start = max(slow_period - 1, 0)
    if n > start:
        macd_line[start:] = fast_ema[start:] - slow_ema[start:]

    signal_line = _apply_compacted(macd_line, lambda compact: ema(compact, signal_period))
    histogram = macd_line - signal_line

    return {
        "macd_line": macd_line,
        "signal_line": signal_line,
        "histogram": histogram,
    }


def stochastic(
    high: ArrayLike,
    low: ArrayLike,
    close: ArrayLike,
    k_period: int = 14,
    d_period: int = 3,
) -> Dict[str, np.ndarray]:
    """
    Stochastic Oscillator

    %K = (close - window low) / (window high - window low) * 100, 50 when the
    window has no range. %D is the SMA of the compacted %K sequence.
    """
    close_arr = _as_array(close)
    n = len(close_arr)
    if k_period <= 0 or n < k_period:
        return {"k": np.full(n, np.nan), "d": np.full(n, np.nan)}

    window_high = pd.Series(_as_array(high)).rolling(window=k_period).max().to_numpy()
    window_low = pd.Series(_as_array(low)).rolling(window=k_period).min().to_numpy()
    price_range = window_high - window_low

    with np.errstate(divide="ignore", invalid="ignore"):
        k_line = np.where(price_range > 0, (close_arr - window_low) / price_range * 100, 50.0)
    k_line[np.isnan(price_range)] = np.nan

    d_line = _apply_compacted(k_line, lambda compact: sma(compact, d_period))

    return {"k": k_line, "d": d_line}


def adx(
    high: ArrayLike,
    low: ArrayLike,
    close: ArrayLike,
    period: int = 14,
) -> Dict[str, np.ndarray]:
    """
    ADX (Average Directional Index) with +DI / -DI

    True Range and directional movement are defined from the second bar on.
    TR, +DM and -DM are smoothed with EMA(period); ADX is EMA(period) of DX.

    Returns:
        Dictionary with adx, plus_di and minus_di (all in [0, 100])
    """
    high_arr = _as_array(high)
    low_arr = _as_array(low)
    close_arr = _as_array(close)
    n = len(close_arr)

    adx_line = np.full(n, np.nan)
    plus_di_line = np.full(n, np.nan)
    minus_di_line = np.full(n, np.nan)
    if n < 2 or period <= 0:
        return {"adx": adx_line, "plus_di": plus_di_line, "minus_di": minus_di_line}

    # True Range
    prev_close = close_arr[:-1]
    high_low = high_arr[1:] - low_arr[1:]
    high_close = np.abs(high_arr[1:] - prev_close)
    low_close = np.abs(low_arr[1:] - prev_close)
    tr = np.maximum.reduce([high_low, high_close, low_close])

    # Directional Movement
    up_move = high_arr[1:] - high_arr[:-1]
    down_move = low_arr[:-1] - low_arr[1:]
    plus_dm = np.where((up_move > down_move) & (up_move > 0), up_move, 0.0)
    minus_dm = np.where((down_move > up_move) & (down_move > 0), down_move, 0.0)

    smoothed_tr = ema(tr, period)
    smoothed_plus = ema(plus_dm, period)
    smoothed_minus = ema(minus_dm, period)

    with np.errstate(divide="ignore", invalid="ignore"):
        plus_di = np.where(smoothed_tr > 0, smoothed_plus / smoothed_tr * 100, 0.0)
        minus_di = np.where(smoothed_tr > 0, smoothed_minus / smoothed_tr * 100, 0.0)
        di_sum = plus_di + minus_di
        dx = np.where(di_sum > 0, np.abs(plus_di - minus_di) / di_sum * 100, 0.0)

    plus_di_line[1:] = plus_di
    minus_di_line[1:] = minus_di
    adx_line[1:] = ema(dx, period)

    return {"adx": adx_line, "plus_di": plus_di_line, "minus_di": minus_di_line}


def momentum(values: ArrayLike, period: int = 20) -> np.ndarray:
    """Rate of change in percent over `period` bars"""
    arr = _as_array(values)
    n = len(arr)
    result = np.full(n, np.nan)
    if period <= 0 or n <= period:
        return result

    base = arr[:-period]
    with np.errstate(divide="ignore", invalid="ignore"):
        result[period:] = np.where(base != 0, (arr[period:] - base) / base * 100, np.nan)
    return result


def detect_divergence(
    prices: ArrayLike,
    oscillator: ArrayLike,
    lookback: int = 14,
) -> Divergence:
    """
    Detect price/oscillator divergence

    Compares the most recent `lookback` window with the one before it:
    - bullish: price makes a lower low while the oscillator low is higher
    - bearish: price makes a higher high while the oscillator high is lower

    Needs at least 2 * lookback samples, otherwise Divergence.NONE.
    """
    price_arr = _as_array(prices)
    osc_arr = _as_array(oscillator)
    if lookback <= 0 or min(len(price_arr), len(osc_arr)) < 2 * lookback:
        return Divergence.NONE

    recent_price = price_arr[-lookback:]
    prior_price = price_arr[-2 * lookback:-lookback]
    recent_osc = osc_arr[-lookback:]
    prior_osc = osc_arr[-2 * lookback:-lookback]

    for window in (recent_price, prior_price, recent_osc, prior_osc):
        if np.isnan(window).all():
            return Divergence.NONE

    if (np.nanmin(recent_price) < np.nanmin(prior_price)
            and np.nanmin(recent_osc) > np.nanmin(prior_osc)):
        return Divergence.BULLISH

    if (np.nanmax(recent_price) > np.nanmax(prior_price)
            and np.nanmax(recent_osc) < np.nanmax(prior_osc)):
        return Divergence.BEARISH

    return Divergence.NONE


def detect_rsi_divergence(prices: ArrayLike, rsi_values: ArrayLike, lookback: int = 14) -> Divergence:
    return detect_divergence(prices, rsi_values, lookback)


def detect_macd_divergence(prices: ArrayLike, histogram: ArrayLike, lookback: int = 14) -> Divergence:
    return detect_divergence(prices, histogram, lookback)


def volume_change(
    volumes: ArrayLike,
    recent_period: int = 5,
    average_period: int = 20,
) -> Optional[float]:
    """
    Percent change of the recent average volume against the longer average

    Returns:
        (recent mean - long mean) / long mean * 100, or None when the long
        mean is undefined or zero
    """
    arr = _as_array(volumes)
    if average_period <= 0 or len(arr) < average_period:
        return None

    average = arr[-average_period:].mean()
    if np.isnan(average) or average == 0:
        return None

    recent = arr[-recent_period:].mean()
    return float((recent - average) / average * 100)


def _last(series: pd.Series) -> Optional[float]:
    if series is None or series.empty:
        return None
    value = series.iloc[-1]
    return None if pd.isna(value) else float(value)


class TechnicalIndicators:
    """
    Calculate technical indicators for stock data
    Column-oriented wrapper over the series functions above
    """

    def __init__(self, params: Optional[Dict] = None):
        """
        Initialize with indicator parameters

        Args:
            params: Dictionary of indicator parameters (uses defaults if not provided)
        """
        self.params = params if params is not None else INDICATOR_PARAMS

    def calculate_all(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Calculate all technical indicators

        Args:
            df: DataFrame with OHLCV data (Open, High, Low, Close, Volume)

        Returns:
            DataFrame with all indicators added as new columns
        """
        if df is None or df.empty:
            logger.warning("Empty DataFrame provided to calculate_all")
            return df

        df = df.copy()

        # Trend indicators
        df = self.add_moving_averages(df)
        df = self.add_macd(df)
        df = self.add_adx(df)

        # Momentum indicators
        df = self.add_rsi(df)
        df = self.add_stochastic(df)
        df = self.add_momentum(df)

        # Volatility indicators
        df = self.add_bollinger_bands(df)

        # Volume indicators
        df = self.add_volume_indicators(df)

        logger.debug(f"Calculated all indicators. DataFrame now has {len(df.columns)} columns")
        return df

    def add_moving_averages(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Add Simple Moving Averages

        Adds columns MA_Short, MA_Medium, MA_Long (20/50/120 bars by default)
        """
        df = df.copy()
        close = df["Close"]

        df["MA_Short"] = sma(close, self.params["ma_short"])
        df["MA_Medium"] = sma(close, self.params["ma_medium"])
        df["MA_Long"] = sma(close, self.params["ma_long"])

        return df

    def add_macd(self, df: pd.DataFrame) -> pd.DataFrame:
        """Add MACD, MACD_Signal, MACD_Histogram"""
        df = df.copy()
        result = macd(
            df["Close"],
            fast_period=self.params["macd_fast"],
            slow_period=self.params["macd_slow"],
            signal_period=self.params["macd_signal"],
        )
        df["MACD"] = result["macd_line"]
        df["MACD_Signal"] = result["signal_line"]
        df["MACD_Histogram"] = result["histogram"]
        return df

    def add_adx(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Add ADX (Average Directional Index) for trend strength measurement

        Adds columns ADX, Plus_DI, Minus_DI

        ADX > 25 indicates a strong trend, ADX < 20 a weak/no trend (Wilder, 1978)
        """
        df = df.copy()
        result = adx(df["High"], df["Low"], df["Close"], period=self.params["adx_period"])
        df["ADX"] = result["adx"]
        df["Plus_DI"] = result["plus_di"]
        df["Minus_DI"] = result["minus_di"]
        return df

    def add_rsi(self, df: pd.DataFrame) -> pd.DataFrame:
        df = df.copy()
        df["RSI"] = rsi(df["Close"], period=self.params["rsi_period"])
        return df

    def add_stochastic(self, df: pd.DataFrame) -> pd.DataFrame:
        """Add Stoch_K (%K) and Stoch_D (%D signal)"""
        df = df.copy()
        result = stochastic(
            df["High"],
            df["Low"],
            df["Close"],
            k_period=self.params["stoch_k"],
            d_period=self.params["stoch_d"],
        )
        df["Stoch_K"] = result["k"]
        df["Stoch_D"] = result["d"]
        return df

    def add_momentum(self, df: pd.DataFrame) -> pd.DataFrame:
        df = df.copy()
        df["Momentum"] = momentum(df["Close"], period=self.params["momentum_period"])
        return df

    def add_bollinger_bands(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Add Bollinger Bands

        Adds columns:
        - BB_Middle: Middle band (SMA)
        - BB_Upper / BB_Lower: Middle +/- k * population std
        - BB_Width: Band width as percent of the middle band
        - BB_Percent: %B position within the bands
        """
        df = df.copy()
        result = bollinger_bands(
            df["Close"],
            period=self.params["bb_period"],
            multiplier=self.params["bb_std"],
        )
        df["BB_Upper"] = result["upper"]
        df["BB_Middle"] = result["middle"]
        df["BB_Lower"] = result["lower"]
        df["BB_Width"] = result["width"]
        df["BB_Percent"] = result["percent_b"]
        return df

    def add_volume_indicators(self, df: pd.DataFrame) -> pd.DataFrame:
        """Add Volume_MA (volume moving average)"""
        df = df.copy()
        df["Volume_MA"] = sma(df["Volume"], self.params["volume_ma_period"])
        return df

    def get_latest_indicators(self, df: pd.DataFrame) -> TechnicalSnapshot:
        """
        Get the most recent indicator values

        Args:
            df: DataFrame with OHLCV data

        Returns:
            TechnicalSnapshot of last-bar values; the all-null snapshot when
            history is shorter than params["min_history"]
        """
        min_history = self.params.get("min_history", 30)
        if df is None or len(df) < min_history:
            return TechnicalSnapshot.empty()

        ind = self.calculate_all(df)
        closes = ind["Close"].to_numpy(dtype=float)
        lookback = self.params["divergence_lookback"]

        price_change = None
        if len(closes) >= 2 and closes[-2] != 0:
            price_change = float((closes[-1] - closes[-2]) / closes[-2] * 100)

        histogram = ind["MACD_Histogram"]
        previous_histogram = _last(histogram.iloc[:-1]) if len(histogram) >= 2 else None

        return TechnicalSnapshot(
            ma20=_last(ind["MA_Short"]),
            ma50=_last(ind["MA_Medium"]),
            ma120=_last(ind["MA_Long"]),
            rsi=_last(ind["RSI"]),
            macd_line=_last(ind["MACD"]),
            signal_line=_last(ind["MACD_Signal"]),
            histogram=_last(histogram),
            previous_histogram=previous_histogram,
            volume_avg20=_last(ind["Volume_MA"]),
            volume_change=volume_change(
                ind["Volume"],
                recent_period=self.params["volume_recent_period"],
                average_period=self.params["volume_ma_period"],
            ),
            bollinger_upper=_last(ind["BB_Upper"]),
            bollinger_middle=_last(ind["BB_Middle"]),
            bollinger_lower=_last(ind["BB_Lower"]),
            bollinger_width=_last(ind["BB_Width"]),
            bollinger_percent_b=_last(ind["BB_Percent"]),
            stochastic_k=_last(ind["Stoch_K"]),
            stochastic_d=_last(ind["Stoch_D"]),
            adx=_last(ind["ADX"]),
            plus_di=_last(ind["Plus_DI"]),
            minus_di=_last(ind["Minus_DI"]),
            rsi_divergence=detect_rsi_divergence(closes, ind["RSI"], lookback),
            macd_divergence=detect_macd_divergence(closes, histogram, lookback),
            momentum=_last(ind["Momentum"]),
            close=_last(ind["Close"]),
            price_change=price_change,
        )


def calculate_all_indicators(
    prices: Union[Sequence[PricePoint], pd.DataFrame],
    min_history: Optional[int] = None,
    params: Optional[Dict] = None,
) -> TechnicalSnapshot:
    """
    Compute the current (last-bar) value of every indicator

    Args:
        prices: PricePoint sequence or OHLCV DataFrame ordered by date
        min_history: Bars required before anything is computed
            (INDICATOR_PARAMS["min_history"] when omitted)
        params: Optional indicator parameters

    Returns:
        TechnicalSnapshot, all-null when fewer than min_history bars are given
    """
    params = dict(params if params is not None else INDICATOR_PARAMS)
    if min_history is not None:
        params["min_history"] = min_history
    return TechnicalIndicators(params).get_latest_indicators(to_frame(prices))
