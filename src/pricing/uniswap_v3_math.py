from __future__ import annotations

import math
from dataclasses import dataclass

from core.errors import InvalidInputError

MIN_TICK = -887272
MAX_TICK = 887272
MIN_SQRT_RATIO = 4295128739
MAX_SQRT_RATIO = 1461446703485210103287273052203988822378723970342

# TickMath multipliers, one per bit of |tick| from 0x2 upward (Q128).
_TICK_RATIOS: tuple[tuple[int, int], ...] = (
    (0x2, 0xFFF97272373D413259A46990580E213A),
    (0x4, 0xFFF2E50F5F656932EF12357CF3C7FDCC),
    (0x8, 0xFFE5CACA7E10E4E61C3624EAA0941CD0),
    (0x10, 0xFFCB9843D60F6159C9DB58835C926644),
    (0x20, 0xFF973B41FA98C081472E6896DFB254C0),
    (0x40, 0xFF2EA16466C96A3843EC78B326B52861),
    (0x80, 0xFE5DEE046A99A2A811C461F1969C3053),
    (0x100, 0xFCBE86C7900A88AEDCFFC83B479AA3A4),
    (0x200, 0xF987A7253AC413176F2B074CF7815E54),
    (0x400, 0xF3392B0822B70005940C7A398E4B70F3),
    (0x800, 0xE7159475A2C29B7443B29C7FA6E889D9),
    (0x1000, 0xD097F3BDFD2022B8845AD8F792AA5825),
    (0x2000, 0xA9F746462D870FDF8A65DC1F90E061E5),
    (0x4000, 0x70D869A156D2A1B890BB3DF62BAF32F7),
    (0x8000, 0x31BE135F97D08FD981231505542FCFA6),
    (0x10000, 0x9AA508B5B7A84E1C677DE54F3E99BC9),
    (0x20000, 0x5D6AF8DEDB81196699C329225EE604),
    (0x40000, 0x2216E584F5FA1EA926041BEDFE98),
    (0x80000, 0x48A170391F7DC42444E8FA2),
)


@dataclass(frozen=True)
class TickRange:
    tick_lower: int
    tick_upper: int


def nearest_usable_tick(tick: int, tick_spacing: int) -> int:
    """
    Round an arbitrary tick down to the closest initializable tick.
    """
    if tick_spacing <= 0:
        raise InvalidInputError(f"tick_spacing must be positive, got {tick_spacing}")
    # Floor towards negative infinity to stay consistent with solidity math
    return (tick // tick_spacing) * tick_spacing


def current_tick_range(tick: int, tick_spacing: int) -> TickRange:
    """
    The constant-liquidity range that contains ``tick``:
    [usable, usable + spacing).
    """
    lower = nearest_usable_tick(tick, tick_spacing)
    return TickRange(tick_lower=lower, tick_upper=lower + tick_spacing)


def sqrt_price_at_tick(tick: int) -> int:
    """
    Exact TickMath.getSqrtRatioAtTick: sqrt(1.0001 ** tick) * 2**96,
    rounded up like the on-chain implementation.
    """
    if tick < MIN_TICK or tick > MAX_TICK:
        raise InvalidInputError(f"tick out of range: {tick}")
    abs_tick = abs(tick)

    ratio = 0xFFFCB933BD6FAD37AA2D162D1A594001 if abs_tick & 0x1 else 1 << 128
    for mask, multiplier in _TICK_RATIOS:
        if abs_tick & mask:
            ratio = (ratio * multiplier) >> 128

    if tick > 0:
        ratio = ((1 << 256) - 1) // ratio

    # Q128.128 -> Q64.96, rounding up
    return (ratio >> 32) + (0 if ratio % (1 << 32) == 0 else 1)


def tick_at_sqrt_price(sqrt_price_x96: int) -> int:
    """
    Greatest tick whose sqrt ratio is <= ``sqrt_price_x96``.

    Starts from a float estimate and corrects it against the exact
    integer TickMath, so the result is exact.
    """
    if sqrt_price_x96 < MIN_SQRT_RATIO or sqrt_price_x96 >= MAX_SQRT_RATIO:
        raise InvalidInputError("sqrt price out of range")
    estimate = math.floor(
        2 * math.log(sqrt_price_x96 / float(1 << 96)) / math.log(1.0001)
    )
    tick = max(MIN_TICK, min(MAX_TICK, estimate))
    while tick > MIN_TICK and sqrt_price_at_tick(tick) > sqrt_price_x96:
        tick -= 1
    while tick < MAX_TICK and sqrt_price_at_tick(tick + 1) <= sqrt_price_x96:
        tick += 1
    return tick
