from decimal import Decimal

import pytest

from core.base_types import Address, from_raw_units, to_decimal, to_raw_units
from core.errors import ArbitrageError, InvalidInputError


def test_address_invalid_raises():
    with pytest.raises(ValueError, match="Invalid Ethereum address"):
        Address("invalid")


def test_address_case_insensitive_equality():
    lower = Address("0x000000000000000000000000000000000000dead")
    upper = Address("0x000000000000000000000000000000000000DEAD")
    assert lower == upper
    assert hash(lower) == hash(upper)


def test_to_decimal_accepts_int_str_decimal():
    assert to_decimal(5) == Decimal(5)
    assert to_decimal("4200.5") == Decimal("4200.5")
    assert to_decimal(Decimal("0.003")) == Decimal("0.003")


def test_to_decimal_float_goes_through_str():
    assert to_decimal(0.1) == Decimal("0.1")


@pytest.mark.parametrize("value", ["NaN", "Infinity", "abc", True, None, [1]])
def test_to_decimal_rejects_bad_values(value):
    with pytest.raises(InvalidInputError):
        to_decimal(value, "price")


def test_invalid_input_is_value_error_and_arbitrage_error():
    with pytest.raises(ValueError):
        to_decimal("abc")
    with pytest.raises(ArbitrageError):
        to_decimal("abc")


def test_raw_unit_conversions():
    assert to_raw_units(Decimal("1.5"), 18) == 1_500_000_000_000_000_000
    assert to_raw_units(Decimal("0.0000015"), 6) == 1
    assert to_raw_units(Decimal("0.0000015"), 6, round_up=True) == 2
    assert from_raw_units(1_234_567, 6) == Decimal("1.234567")
