"""
Q96 square-root price <-> human price conversions.

Convention: token0 is the quote token (e.g. USDC) and token1 the base token
(e.g. ETH).  The human price is quoted as token0 per token1 ("USDC per
ETH"), so

    raw_ratio    = token1_raw / token0_raw = 10 ** (dec1 - dec0) / price
    sqrt_price96 = floor(sqrt(raw_ratio) * 2 ** 96)

A larger sqrt price therefore means a *lower* human price.
"""

from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal, DivisionByZero, InvalidOperation, Overflow

from core.base_types import Number, numeric_context, to_decimal
from core.errors import InvalidInputError, PrecisionError

from .uniswap_v3_math import MAX_SQRT_RATIO, MIN_SQRT_RATIO

Q96 = 1 << 96


def to_sqrt_fixed(price: Number, token0_decimals: int, token1_decimals: int) -> int:
    """Human price (token0 per token1) -> Q96 sqrt price."""
    value = to_decimal(price, "price")
    if value <= 0:
        raise InvalidInputError(f"price must be positive, got {value}", "price")
    try:
        with numeric_context():
            raw_ratio = Decimal(10) ** (token1_decimals - token0_decimals) / value
            scaled = raw_ratio.sqrt() * Q96
            fixed = int(scaled.to_integral_value(rounding=ROUND_FLOOR))
    except (InvalidOperation, DivisionByZero, Overflow) as exc:
        raise PrecisionError(f"cannot encode price {value} as Q96") from exc
    if fixed < MIN_SQRT_RATIO or fixed >= MAX_SQRT_RATIO:
        raise PrecisionError(f"price {value} outside the representable sqrt range")
    return fixed


def sqrt_fixed_to_real(sqrt_price_x96: int) -> Decimal:
    """Q96 integer -> real sqrt price as Decimal."""
    _require_positive_fixed(sqrt_price_x96)
    with numeric_context():
        return Decimal(sqrt_price_x96) / Q96


def to_human_price(
    sqrt_price_x96: int, token0_decimals: int, token1_decimals: int
) -> Decimal:
    """
    Q96 sqrt price -> human price (token0 per token1).

    Display/debugging path; computed in the high-precision context so
    repeated conversions do not drift.
    """
    _require_positive_fixed(sqrt_price_x96)
    with numeric_context():
        numerator = Decimal(10) ** (token1_decimals - token0_decimals) * (Q96 * Q96)
        return numerator / (Decimal(sqrt_price_x96) * sqrt_price_x96)


def _require_positive_fixed(sqrt_price_x96: int) -> None:
    if not isinstance(sqrt_price_x96, int) or isinstance(sqrt_price_x96, bool):
        raise InvalidInputError("sqrt price must be an int", "sqrt_price")
    if sqrt_price_x96 <= 0:
        raise InvalidInputError(
            f"sqrt price must be positive, got {sqrt_price_x96}", "sqrt_price"
        )
