"""Core value types shared by the pricing, chain and exchange modules."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import (
    ROUND_CEILING,
    ROUND_FLOOR,
    ROUND_HALF_EVEN,
    Context,
    Decimal,
    DivisionByZero,
    InvalidOperation,
    Overflow,
    localcontext,
)
from typing import Union

from eth_utils.address import is_address, to_checksum_address

from .errors import InvalidInputError

Number = Union[int, str, Decimal]

# Enough digits for products of two Q96 sqrt prices and a uint128 liquidity.
NUMERIC_PRECISION = 80

NUMERIC_CONTEXT = Context(
    prec=NUMERIC_PRECISION,
    rounding=ROUND_HALF_EVEN,
    traps=[InvalidOperation, DivisionByZero, Overflow],
)


def numeric_context():
    """Context manager running Decimal math at the core's precision."""
    return localcontext(NUMERIC_CONTEXT)


@dataclass(frozen=True)
class Address:
    """Ethereum address with validation and checksumming."""

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str):
            raise TypeError("Address value must be a string")
        if not is_address(self.value):
            raise ValueError("Invalid Ethereum address")
        object.__setattr__(self, "value", to_checksum_address(self.value))

    @classmethod
    def from_string(cls, s: str) -> "Address":
        return cls(s)

    @property
    def checksum(self) -> str:
        return self.value

    @property
    def lower(self) -> str:
        return self.value.lower()

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Address):
            return self.lower == other.lower
        if isinstance(other, str):
            return self.lower == other.lower()
        return False

    def __hash__(self) -> int:
        return hash(self.lower)


def to_decimal(value: object, field: str = "value") -> Decimal:
    """
    Coerce an int / str / Decimal (or, at the outer edge, a float) to a
    finite Decimal.  Floats go through ``str`` so ``0.1`` stays ``0.1``.
    """
    if isinstance(value, bool):
        raise InvalidInputError(f"{field} must be numeric, got bool", field)
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value)
        except InvalidOperation as exc:
            raise InvalidInputError(f"{field} is not a number: {value!r}", field) from exc
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        raise InvalidInputError(
            f"{field} must be int, str or Decimal, got {type(value).__name__}", field
        )
    if not result.is_finite():
        raise InvalidInputError(f"{field} must be finite, got {value!r}", field)
    return result


def to_raw_units(amount: Decimal, decimals: int, round_up: bool = False) -> int:
    """Human amount -> integer base units (wei-equivalent)."""
    rounding = ROUND_CEILING if round_up else ROUND_FLOOR
    with numeric_context():
        scaled = amount.scaleb(decimals)
        return int(scaled.to_integral_value(rounding=rounding))


def from_raw_units(raw: int, decimals: int) -> Decimal:
    """Integer base units -> human Decimal (exact)."""
    with numeric_context():
        return Decimal(raw).scaleb(-decimals)
