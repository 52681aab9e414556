"""Tests for strategy.fees: gas cost and the bps helper."""

from decimal import Decimal

import pytest

from core.errors import InvalidInputError
from strategy.fees import GasCostModel, bps_to_rate, gas_cost_quote


class TestGasCostQuote:
    def test_known_value(self):
        assert gas_cost_quote(30, 300_000, Decimal("1.2"), 4000) == Decimal("43.2")

    def test_zero_gas_price_costs_nothing(self):
        assert gas_cost_quote(0, 300_000, Decimal("1.2"), 4000) == 0

    def test_scales_linearly_with_price(self):
        low = gas_cost_quote(10, 350_000, Decimal("1.2"), 2000)
        high = gas_cost_quote(10, 350_000, Decimal("1.2"), 4000)
        assert high == low * 2

    @pytest.mark.parametrize(
        "args",
        [(-1, 300_000, 1, 4000), (30, -1, 1, 4000), (30, 300_000, -1, 4000), (30, 300_000, 1, -1)],
    )
    def test_negative_inputs_rejected(self, args):
        with pytest.raises(InvalidInputError):
            gas_cost_quote(*args)

    def test_non_finite_rejected(self):
        with pytest.raises(InvalidInputError):
            gas_cost_quote("NaN", 300_000, 1, 4000)


class TestGasCostModel:
    def test_cost_matches_function(self):
        model = GasCostModel(gas_units=300_000, multiplier=Decimal("1.2"))
        assert model.cost(30, 4000) == Decimal("43.2")

    def test_multiplier_coerced_to_decimal(self):
        model = GasCostModel(gas_units=1, multiplier="1.5")
        assert model.multiplier == Decimal("1.5")

    def test_negative_units_rejected(self):
        with pytest.raises(InvalidInputError):
            GasCostModel(gas_units=-1)


def test_bps_to_rate():
    assert bps_to_rate(30) == Decimal("0.003")
    assert bps_to_rate("1.5") == Decimal("0.00015")
