"""
Tests for supply/demand scoring
"""
import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from stockrank.data.models import SupplyDemandData
from stockrank.scoring.supply_demand import (
    calculate_supply_demand_scores,
    foreign_flow_score,
    institution_flow_score,
)


class TestForeignFlowScore:

    def test_missing_net_buy_is_neutral(self):
        assert foreign_flow_score(None, 10, 40) == 5

    def test_heavy_sustained_buying(self):
        # 5 + 2 + 2 + 0.5 (high ownership) = 9.5
        assert foreign_flow_score(150, 12, 35) == 10

    def test_heavy_sustained_selling(self):
        assert foreign_flow_score(-150, -12, 35) == 1

    def test_small_flows(self):
        # 5 + 0.5 = 5.5
        assert foreign_flow_score(5, None, None) == 6
        # 5 - 0.5 = 4.5
        assert foreign_flow_score(-5, None, None) == 5

    def test_ownership_bonus_only_on_buying(self):
        assert foreign_flow_score(20, 0, 3) == 7     # 5 + 1 + 0.5 = 6.5
        assert foreign_flow_score(20, 0, 15) == 6
        assert foreign_flow_score(-20, 0, 3) == 4

    def test_streak_bands(self):
        assert foreign_flow_score(0, 5, None) == 7    # 6.5
        assert foreign_flow_score(0, 3, None) == 6
        assert foreign_flow_score(0, -5, None) == 4   # 3.5
        assert foreign_flow_score(0, -3, None) == 4


class TestInstitutionFlowScore:

    def test_missing_net_buy_is_neutral(self):
        assert institution_flow_score(None, 5) == 5

    def test_bands(self):
        assert institution_flow_score(60, 10) == 9    # 5 + 1.5 + 2 = 8.5
        assert institution_flow_score(-60, -10) == 2  # 5 - 1.5 - 2 = 1.5
        assert institution_flow_score(0, 0) == 5


class TestCalculateSupplyDemandScores:

    def test_none_data(self):
        scores = calculate_supply_demand_scores(None)
        assert scores.foreign_flow == 5
        assert scores.institution_flow == 5
        assert scores.average == pytest.approx(5.0)

    def test_average(self):
        data = SupplyDemandData(
            foreign_net_buy=150,
            foreign_net_buy_days=12,
            foreign_ownership=35,
            institution_net_buy=-20,
            institution_net_buy_days=-1,
        )
        scores = calculate_supply_demand_scores(data)

        assert scores.foreign_flow == 10
        assert scores.institution_flow == 4
        assert scores.average == pytest.approx(7.0)
