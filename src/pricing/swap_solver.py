"""
Swap sizing against a concentrated-liquidity curve.

Given a target execution price, works out how much must be paid into the
pool (fee included) and how much comes out, walking the current range and
then the pre-built segments of ``PoolState`` in order.

All curve math is exact integer arithmetic on Q96 values: inputs are
rounded up and outputs rounded down, so results are biased against the
trader.  Only the LP fee division goes through Decimal.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_CEILING, Decimal
from enum import Enum
from typing import Optional

from core.base_types import (
    Number,
    from_raw_units,
    numeric_context,
    to_decimal,
    to_raw_units,
)
from core.errors import InvalidInputError

from .fixed_point import Q96, to_sqrt_fixed
from .pool_state import PoolState

# Producers cap segment depth well below this; the solver never walks more.
MAX_SEGMENTS = 64


class SwapDirection(Enum):
    # token0 (quote) in, token1 (base) out: sqrt price falls, human price rises
    TOKEN0_TO_TOKEN1 = "token0_to_token1"
    # token1 (base) in, token0 (quote) out: sqrt price rises, human price falls
    TOKEN1_TO_TOKEN0 = "token1_to_token0"

    @property
    def decreases_sqrt_price(self) -> bool:
        return self is SwapDirection.TOKEN0_TO_TOKEN1


class SwapTermination(Enum):
    REACHED_TARGET = "reached_target"
    HIT_BOUNDARY = "hit_boundary"
    CAPPED_BY_MAX = "capped_by_max"
    INFEASIBLE = "infeasible"


@dataclass(frozen=True)
class SwapResult:
    """
    Outcome of a sizing request.  Amounts are human units of the input and
    output token; ``execution_price`` is the realized average (token0 per
    token1) of the accumulated amounts, not the requested target.
    """

    direction: SwapDirection
    amount_in: Decimal
    amount_out: Decimal
    hit_boundary: bool = False
    capped_by_max: bool = False
    feasible: bool = True
    execution_price: Decimal = Decimal(0)
    target_sqrt_price: int = 0
    sqrt_price_after: int = 0
    segments_used: int = 0

    @property
    def termination(self) -> SwapTermination:
        if not self.feasible:
            return SwapTermination.INFEASIBLE
        if self.capped_by_max:
            return SwapTermination.CAPPED_BY_MAX
        if self.hit_boundary:
            return SwapTermination.HIT_BOUNDARY
        return SwapTermination.REACHED_TARGET

    @property
    def is_empty(self) -> bool:
        return self.amount_in == 0 and self.amount_out == 0

    @classmethod
    def infeasible(
        cls, direction: SwapDirection, sqrt_price: int, target_sqrt_price: int
    ) -> "SwapResult":
        return cls(
            direction=direction,
            amount_in=Decimal(0),
            amount_out=Decimal(0),
            feasible=False,
            target_sqrt_price=target_sqrt_price,
            sqrt_price_after=sqrt_price,
        )


# ── raw curve math ──────────────────────────────────────────────


def amount0_delta(sqrt_a: int, sqrt_b: int, liquidity: int, round_up: bool) -> int:
    """token0 moved between two sqrt prices: L * (1/lo - 1/hi), raw units."""
    lo, hi = min(sqrt_a, sqrt_b), max(sqrt_a, sqrt_b)
    numerator = liquidity * Q96 * (hi - lo)
    denominator = hi * lo
    if round_up:
        return -(-numerator // denominator)
    return numerator // denominator


def amount1_delta(sqrt_a: int, sqrt_b: int, liquidity: int, round_up: bool) -> int:
    """token1 moved between two sqrt prices: L * (hi - lo), raw units."""
    lo, hi = min(sqrt_a, sqrt_b), max(sqrt_a, sqrt_b)
    numerator = liquidity * (hi - lo)
    if round_up:
        return -(-numerator // Q96)
    return numerator // Q96


def range_amounts(
    direction: SwapDirection, sqrt_from: int, sqrt_to: int, liquidity: int
) -> tuple[int, int]:
    """
    Fee-less (amount_in, amount_out) in raw units for moving the price from
    ``sqrt_from`` to ``sqrt_to`` with constant liquidity.
    """
    if direction is SwapDirection.TOKEN0_TO_TOKEN1:
        return (
            amount0_delta(sqrt_from, sqrt_to, liquidity, round_up=True),
            amount1_delta(sqrt_from, sqrt_to, liquidity, round_up=False),
        )
    return (
        amount1_delta(sqrt_from, sqrt_to, liquidity, round_up=True),
        amount0_delta(sqrt_from, sqrt_to, liquidity, round_up=False),
    )


def _add_fee(raw_in: int, fee_rate: Decimal) -> int:
    if raw_in == 0 or fee_rate == 0:
        return raw_in
    with numeric_context():
        gross = Decimal(raw_in) / (1 - fee_rate)
        return int(gross.to_integral_value(rounding=ROUND_CEILING))


def _strip_fee(raw_in_with_fee: int, fee_rate: Decimal) -> int:
    if fee_rate == 0:
        return raw_in_with_fee
    with numeric_context():
        return int(Decimal(raw_in_with_fee) * (1 - fee_rate))


def _next_sqrt_price(
    direction: SwapDirection, sqrt_price: int, liquidity: int, net_in: int
) -> int:
    """Price after adding ``net_in`` (fee already removed) of the input token."""
    if liquidity == 0 or net_in == 0:
        return sqrt_price
    if direction is SwapDirection.TOKEN0_TO_TOKEN1:
        numerator = liquidity * Q96 * sqrt_price
        denominator = liquidity * Q96 + net_in * sqrt_price
        return -(-numerator // denominator)
    return sqrt_price + (net_in * Q96) // liquidity


@dataclass(frozen=True)
class _Step:
    raw_in: int
    raw_out: int
    sqrt_after: int
    capped: bool


def _step(
    direction: SwapDirection,
    sqrt_from: int,
    sqrt_to: int,
    liquidity: int,
    fee_rate: Decimal,
    budget_in: Optional[int],
    budget_out: Optional[int],
) -> _Step:
    raw_in, raw_out = range_amounts(direction, sqrt_from, sqrt_to, liquidity)
    raw_in = _add_fee(raw_in, fee_rate)

    capped = False
    # Linear scale-down inside one constant-liquidity range; the realized
    # average price of the smaller trade can only be better than this.
    if budget_in is not None and raw_in > budget_in:
        raw_out = raw_out * budget_in // raw_in
        raw_in = budget_in
        capped = True
    if budget_out is not None and raw_out > budget_out:
        raw_in = -(-raw_in * budget_out // raw_out)
        raw_out = budget_out
        capped = True

    if capped:
        sqrt_after = _next_sqrt_price(
            direction, sqrt_from, liquidity, _strip_fee(raw_in, fee_rate)
        )
        # Never report a price beyond the leg's own end.
        if direction.decreases_sqrt_price:
            sqrt_after = max(sqrt_after, sqrt_to)
        else:
            sqrt_after = min(sqrt_after, sqrt_to)
    else:
        sqrt_after = sqrt_to
    return _Step(raw_in=raw_in, raw_out=raw_out, sqrt_after=sqrt_after, capped=capped)


# ── public solvers ──────────────────────────────────────────────


def solve_single_segment(
    sqrt_price: int,
    target_price: Number,
    direction: SwapDirection,
    fee_rate: Number,
    liquidity: int,
    max_amount_in: Optional[Number],
    token0_decimals: int,
    token1_decimals: int,
    max_amount_out: Optional[Number] = None,
) -> SwapResult:
    """
    Size a swap that moves the price from ``sqrt_price`` to ``target_price``
    assuming ``liquidity`` holds over the whole move.

    ``max_amount_in`` / ``max_amount_out`` are human units of the input /
    output token; ``None`` means uncapped.
    """
    return _solve(
        direction=direction,
        sqrt_price=sqrt_price,
        target_price=target_price,
        fee_rate=fee_rate,
        legs=[(None, liquidity)],
        token0_decimals=token0_decimals,
        token1_decimals=token1_decimals,
        max_amount_in=max_amount_in,
        max_amount_out=max_amount_out,
    )


def solve_multi_segment(
    pool: PoolState,
    target_price: Number,
    direction: SwapDirection,
    fee_rate: Number,
    max_amount_in: Optional[Number] = None,
    max_amount_out: Optional[Number] = None,
) -> SwapResult:
    """
    Size a swap across tick boundaries: the current range first, then
    ``segments_down`` (token0 in) or ``segments_up`` (token1 in) in order.

    Stops at the target (success), at the first capped leg
    (``capped_by_max``) or after the last segment (``hit_boundary``).
    """
    if direction.decreases_sqrt_price:
        bound, segments = pool.lower_bound, pool.segments_down
    else:
        bound, segments = pool.upper_bound, pool.segments_up

    legs: list[tuple[Optional[int], int]] = [(bound, pool.liquidity)]
    legs.extend((segment.end_sqrt_price, segment.liquidity) for segment in segments)
    return _solve(
        direction=direction,
        sqrt_price=pool.sqrt_price,
        target_price=target_price,
        fee_rate=fee_rate,
        legs=legs,
        token0_decimals=pool.token0_decimals,
        token1_decimals=pool.token1_decimals,
        max_amount_in=max_amount_in,
        max_amount_out=max_amount_out,
    )


def solve_swap(
    pool: PoolState,
    target_price: Number,
    direction: SwapDirection,
    fee_rate: Number,
    max_amount_in: Optional[Number] = None,
    max_amount_out: Optional[Number] = None,
) -> SwapResult:
    """
    Entry point used by the evaluator: walk segments when the pool knows
    where its current range ends in this direction, otherwise treat the
    current liquidity as unbounded.
    """
    bound = pool.lower_bound if direction.decreases_sqrt_price else pool.upper_bound
    if bound is None:
        return solve_single_segment(
            sqrt_price=pool.sqrt_price,
            target_price=target_price,
            direction=direction,
            fee_rate=fee_rate,
            liquidity=pool.liquidity,
            max_amount_in=max_amount_in,
            token0_decimals=pool.token0_decimals,
            token1_decimals=pool.token1_decimals,
            max_amount_out=max_amount_out,
        )
    return solve_multi_segment(
        pool, target_price, direction, fee_rate, max_amount_in, max_amount_out
    )


def _solve(
    direction: SwapDirection,
    sqrt_price: int,
    target_price: Number,
    fee_rate: Number,
    legs: list[tuple[Optional[int], int]],
    token0_decimals: int,
    token1_decimals: int,
    max_amount_in: Optional[Number],
    max_amount_out: Optional[Number],
) -> SwapResult:
    if not isinstance(direction, SwapDirection):
        raise InvalidInputError(f"direction must be a SwapDirection, got {direction!r}")
    if not isinstance(sqrt_price, int) or sqrt_price <= 0:
        raise InvalidInputError("sqrt_price must be a positive int", "sqrt_price")
    if legs[0][1] <= 0:
        raise InvalidInputError("active liquidity must be positive", "liquidity")
    fee = _validate_fee_rate(fee_rate)

    decreasing = direction.decreases_sqrt_price
    dec_in, dec_out = (
        (token0_decimals, token1_decimals)
        if decreasing
        else (token1_decimals, token0_decimals)
    )
    budget_in = _cap_to_raw(max_amount_in, dec_in, "max_amount_in")
    budget_out = _cap_to_raw(max_amount_out, dec_out, "max_amount_out")

    target = to_sqrt_fixed(target_price, token0_decimals, token1_decimals)
    feasible = target < sqrt_price if decreasing else target > sqrt_price
    if not feasible:
        return SwapResult.infeasible(direction, sqrt_price, target)

    total_in = 0
    total_out = 0
    cursor = sqrt_price
    hit_boundary = True
    capped = False
    used = 0
    for leg_end, liquidity in legs[:MAX_SEGMENTS]:
        if leg_end is None:
            step_target = target
        elif decreasing:
            step_target = max(target, leg_end)
        else:
            step_target = min(target, leg_end)

        step = _step(
            direction,
            cursor,
            step_target,
            liquidity,
            fee,
            None if budget_in is None else budget_in - total_in,
            None if budget_out is None else budget_out - total_out,
        )
        used += 1
        total_in += step.raw_in
        total_out += step.raw_out
        cursor = step.sqrt_after
        if step.capped:
            capped, hit_boundary = True, False
            break
        if step_target == target:
            hit_boundary = False
            break

    amount_in = from_raw_units(total_in, dec_in)
    amount_out = from_raw_units(total_out, dec_out)
    return SwapResult(
        direction=direction,
        amount_in=amount_in,
        amount_out=amount_out,
        hit_boundary=hit_boundary,
        capped_by_max=capped,
        execution_price=_execution_price(direction, amount_in, amount_out),
        target_sqrt_price=target,
        sqrt_price_after=cursor,
        segments_used=used,
    )


def _execution_price(
    direction: SwapDirection, amount_in: Decimal, amount_out: Decimal
) -> Decimal:
    """Average fill in token0 per token1 (quote per base)."""
    if direction is SwapDirection.TOKEN0_TO_TOKEN1:
        quote, base = amount_in, amount_out
    else:
        quote, base = amount_out, amount_in
    if base == 0:
        return Decimal(0)
    with numeric_context():
        return quote / base


def _validate_fee_rate(fee_rate: Number) -> Decimal:
    fee = to_decimal(fee_rate, "fee_rate")
    if fee < 0 or fee >= 1:
        raise InvalidInputError(f"fee_rate must be in [0, 1), got {fee}", "fee_rate")
    return fee


def _cap_to_raw(cap: Optional[Number], decimals: int, field: str) -> Optional[int]:
    if cap is None:
        return None
    value = to_decimal(cap, field)
    if value < 0:
        raise InvalidInputError(f"{field} must be non-negative, got {value}", field)
    return to_raw_units(value, decimals)
