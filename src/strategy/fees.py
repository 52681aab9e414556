from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from core.base_types import Number, numeric_context, to_decimal
from core.errors import InvalidInputError

GWEI = Decimal("1e-9")
BPS = Decimal(10_000)


def gas_cost_quote(
    gas_price_gwei: Number,
    gas_units: Number,
    multiplier: Number,
    eth_price: Number,
) -> Decimal:
    """
    Gas cost of one swap in quote currency:
    gwei * 1e-9 * units * multiplier * ETH price.
    """
    values = {
        "gas_price_gwei": to_decimal(gas_price_gwei, "gas_price_gwei"),
        "gas_units": to_decimal(gas_units, "gas_units"),
        "multiplier": to_decimal(multiplier, "multiplier"),
        "eth_price": to_decimal(eth_price, "eth_price"),
    }
    for name, value in values.items():
        if value < 0:
            raise InvalidInputError(f"{name} must be non-negative, got {value}", name)
    with numeric_context():
        return (
            values["gas_price_gwei"]
            * GWEI
            * values["gas_units"]
            * values["multiplier"]
            * values["eth_price"]
        )


def bps_to_rate(bps: Number) -> Decimal:
    with numeric_context():
        return to_decimal(bps, "bps") / BPS


@dataclass(frozen=True)
class GasCostModel:
    """Gas estimate for a single DEX swap, priced on demand."""

    gas_units: int = 350_000
    multiplier: Decimal = Decimal("1.2")

    def __post_init__(self) -> None:
        if self.gas_units < 0:
            raise InvalidInputError("gas_units must be non-negative", "gas_units")
        object.__setattr__(self, "multiplier", to_decimal(self.multiplier, "multiplier"))
        if self.multiplier < 0:
            raise InvalidInputError("multiplier must be non-negative", "multiplier")

    def cost(self, gas_price_gwei: Number, eth_price: Number) -> Decimal:
        return gas_cost_quote(gas_price_gwei, self.gas_units, self.multiplier, eth_price)
