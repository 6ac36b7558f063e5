"""
Tests for technical scoring
"""
import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from stockrank.data.models import Divergence, TechnicalSnapshot
from stockrank.scoring.technical import (
    adx_score,
    bollinger_score,
    calculate_technical_scores,
    divergence_score,
    ma_position_score,
    macd_score,
    momentum_score,
    rsi_score,
    stochastic_score,
    volume_trend_score,
)


class TestMAPositionScore:

    def test_missing_ma20_is_neutral(self):
        assert ma_position_score(100, None, 95, 90) == 5

    def test_full_bullish_alignment(self):
        assert ma_position_score(110, 100, 95, 90) == 10

    def test_full_bearish_alignment(self):
        assert ma_position_score(80, 100, 105, 110) == 3

    def test_rounds_half_up(self):
        # 5 + 1.5 = 6.5
        assert ma_position_score(101, 100, None, None) == 7

    def test_price_below_short_ma_only(self):
        # 5 + 1.5 (ma50) + 1 (ma120) + 0.5 + 0.5 = 8.5
        assert ma_position_score(99, 100, 95, 90) == 9


class TestRSIScore:

    @pytest.mark.parametrize("value,expected", [
        (None, 5),
        (15, 9),
        (25, 8),
        (33, 7),
        (50, 6),
        (60, 5),
        (68, 4),
        (75, 3),
        (90, 2),
    ])
    def test_bands(self, value, expected):
        assert rsi_score(value) == expected


class TestVolumeTrendScore:

    @pytest.mark.parametrize("volume_change,price_change,expected", [
        (60, 1, 10),
        (30, 1, 9),
        (0, 1, 8),
        (-30, 1, 6),
        (0, 0, 5),
        (-30, -1, 5),
        (0, -1, 4),
        (30, -1, 3),
        (60, -1, 2),
        (None, 1, 5),
    ])
    def test_table(self, volume_change, price_change, expected):
        assert volume_trend_score(volume_change, price_change) == expected


class TestMACDScore:

    def test_missing_lines_are_neutral(self):
        assert macd_score(None, 0.5, 0.1) == 5
        assert macd_score(1.0, None, 0.1) == 5

    def test_bullish_rising_histogram(self):
        assert macd_score(1.0, 0.5, 0.5, 0.3) == 9

    def test_bearish_falling_histogram(self):
        assert macd_score(-1.0, -0.5, -0.5, -0.3) == 3

    def test_fresh_bullish_crossover(self):
        assert macd_score(1.0, 0.95, 0.05) == 9

    def test_range(self):
        for args in [(5, -5, 10, 0), (-5, 5, -10, 0), (0.0, 0.0, 0.0, 0.0)]:
            assert 1 <= macd_score(*args) <= 10


class TestBollingerScore:

    def test_missing_is_neutral(self):
        assert bollinger_score(None, 10, 1) == 5

    def test_below_lower_band(self):
        assert bollinger_score(-0.1, 10, 0) == 8

    def test_squeeze_with_rising_price(self):
        assert bollinger_score(0.1, 4, 1) == 8

    def test_above_upper_band_wide(self):
        # 5 - 2 - 0.5 = 2.5
        assert bollinger_score(1.2, 25, 0) == 3

    def test_middle_of_band(self):
        assert bollinger_score(0.5, 10, 0) == 5


class TestStochasticScore:

    @pytest.mark.parametrize("k,d,expected", [
        (None, 10, 5),
        (15, 10, 9),
        (15, 20, 8),
        (25, None, 7),
        (50, 45, 6),
        (50, 55, 5),
        (85, 80, 3),
        (85, 90, 2),
    ])
    def test_zones(self, k, d, expected):
        assert stochastic_score(k, d) == expected


class TestADXScore:

    def test_missing_is_neutral(self):
        assert adx_score(None, 30, 10) == 5

    def test_strong_uptrend(self):
        assert adx_score(45, 30, 10) == 9

    def test_strong_downtrend(self):
        assert adx_score(30, 10, 30) == 4

    def test_weak_uptrend(self):
        assert adx_score(10, 20, 10) == 5

    def test_converging_di_resets_to_neutral(self):
        assert adx_score(45, 22, 20) == 5

    def test_without_di(self):
        assert adx_score(45, None, None) == 7


class TestDivergenceScore:

    @pytest.mark.parametrize("rsi_div,macd_div,expected", [
        (Divergence.BULLISH, Divergence.BULLISH, 10),
        (Divergence.BULLISH, Divergence.NONE, 7),
        (None, Divergence.BULLISH, 7),
        (Divergence.NONE, Divergence.NONE, 5),
        (None, None, 5),
        (Divergence.BULLISH, Divergence.BEARISH, 5),
        (Divergence.BEARISH, None, 3),
        (Divergence.BEARISH, Divergence.BEARISH, 1),
    ])
    def test_combinations(self, rsi_div, macd_div, expected):
        assert divergence_score(rsi_div, macd_div) == expected


class TestMomentumScore:

    @pytest.mark.parametrize("change,expected", [
        (None, 5),
        (25, 10),
        (20, 10),
        (-25, 1),
        (0, 5),
        (10, 8),
        (-10, 3),
    ])
    def test_bands(self, change, expected):
        assert momentum_score(change) == expected


class TestCalculateTechnicalScores:

    def test_empty_snapshot_is_neutral(self):
        scores = calculate_technical_scores(TechnicalSnapshot.empty(), 100, 0)

        assert all(v == 5 for v in scores.sub_scores().values())
        assert scores.average == pytest.approx(5.0)

    def test_none_snapshot(self):
        scores = calculate_technical_scores(None)
        assert scores.average == pytest.approx(5.0)

    def test_uses_snapshot_price_defaults(self):
        snapshot = TechnicalSnapshot(
            ma20=100,
            ma50=95,
            ma120=90,
            rsi=25,
            volume_change=60,
            close=110,
            price_change=1.5,
            adx=45,
            plus_di=30,
            minus_di=10,
            rsi_divergence=Divergence.BULLISH,
            macd_divergence=Divergence.BULLISH,
        )
        scores = calculate_technical_scores(snapshot)

        assert scores.ma_position == 10
        assert scores.rsi == 8
        assert scores.volume_trend == 10
        assert scores.macd == 5
        assert scores.adx == 9
        assert scores.divergence == 10
        assert 1 <= scores.average <= 10
