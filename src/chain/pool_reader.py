"""
Uniswap V3 pool snapshots over plain eth_call.

One batch reads slot0 / liquidity / tickSpacing / fee, a second batch reads
``ticks(int24)`` for the initializable ticks on either side of the current
range.  Uninitialized ticks come back with a zero liquidityNet, so the
segment list is simply every tick-spacing step up to ``segment_depth``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Protocol, Sequence

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_utils import keccak

from core.base_types import Address
from core.errors import InvalidInputError
from pricing.pool_state import PoolState, build_segments
from pricing.uniswap_v3_math import (
    MAX_TICK,
    MIN_TICK,
    current_tick_range,
    sqrt_price_at_tick,
)

logger = logging.getLogger(__name__)

FEE_DENOMINATOR = Decimal(1_000_000)

_SLOT0_TYPES = ["uint160", "int24", "uint16", "uint16", "uint16", "uint8", "bool"]
_TICK_INFO_TYPES = [
    "uint128",  # liquidityGross
    "int128",  # liquidityNet
    "uint256",  # feeGrowthOutside0X128
    "uint256",  # feeGrowthOutside1X128
    "int56",  # tickCumulativeOutside
    "uint160",  # secondsPerLiquidityOutsideX128
    "uint32",  # secondsOutside
    "bool",  # initialized
]


class _CallClient(Protocol):
    def batch_call(
        self, calls: list[tuple[Address, bytes]], block: str = "latest"
    ) -> list[bytes]: ...


def _selector(signature: str) -> bytes:
    return keccak(text=signature)[:4]


def encode_call(signature: str, arg_types: list[str], args: list) -> bytes:
    return _selector(signature) + abi_encode(arg_types, args)


@dataclass(frozen=True)
class PoolHeader:
    sqrt_price: int
    tick: int
    liquidity: int
    tick_spacing: int
    fee: int

    @property
    def fee_rate(self) -> Decimal:
        """LP fee as a fraction; ``fee`` is in hundredths of a bip."""
        return Decimal(self.fee) / FEE_DENOMINATOR


class UniswapV3PoolReader:
    """
    Build ``PoolState`` snapshots for a single pool.

    Token decimals are configuration, not read from chain: the pool's
    token0/token1 ordering is fixed, so they never change.
    """

    def __init__(
        self,
        client: _CallClient,
        pool: Address,
        token0_decimals: int,
        token1_decimals: int,
        segment_depth: int = 12,
    ):
        if segment_depth < 0:
            raise ValueError("segment_depth must be non-negative")
        self._client = client
        self._pool = pool
        self._token0_decimals = token0_decimals
        self._token1_decimals = token1_decimals
        self._segment_depth = segment_depth

    @property
    def pool(self) -> Address:
        return self._pool

    def read_header(self) -> PoolHeader:
        raw_slot0, raw_liquidity, raw_spacing, raw_fee = self._client.batch_call(
            [
                (self._pool, _selector("slot0()")),
                (self._pool, _selector("liquidity()")),
                (self._pool, _selector("tickSpacing()")),
                (self._pool, _selector("fee()")),
            ]
        )
        slot0 = abi_decode(_SLOT0_TYPES, raw_slot0)
        (liquidity,) = abi_decode(["uint128"], raw_liquidity)
        (spacing,) = abi_decode(["int24"], raw_spacing)
        (fee,) = abi_decode(["uint24"], raw_fee)
        return PoolHeader(
            sqrt_price=int(slot0[0]),
            tick=int(slot0[1]),
            liquidity=int(liquidity),
            tick_spacing=int(spacing),
            fee=int(fee),
        )

    def read_fee_rate(self) -> Decimal:
        return self.read_header().fee_rate

    def read_liquidity_nets(self, ticks: Sequence[int]) -> list[int]:
        if not ticks:
            return []
        raw = self._client.batch_call(
            [(self._pool, encode_call("ticks(int24)", ["int24"], [t])) for t in ticks]
        )
        return [int(abi_decode(_TICK_INFO_TYPES, item)[1]) for item in raw]

    def fetch_state(self) -> PoolState:
        header = self.read_header()
        if header.sqrt_price == 0:
            raise InvalidInputError(f"pool {self._pool.checksum} is not initialized")
        ticks_down, ticks_up = boundary_ticks(
            header.tick, header.tick_spacing, self._segment_depth
        )
        # The last boundary on each side is never crossed.
        nets = self.read_liquidity_nets(ticks_down[:-1] + ticks_up[:-1])
        split = max(len(ticks_down) - 1, 0)
        state = snapshot_from_ticks(
            header,
            ticks_down,
            nets[:split],
            ticks_up,
            nets[split:],
            self._token0_decimals,
            self._token1_decimals,
        )
        logger.debug(
            "pool %s tick=%s L=%s price=%.4f segments=%d/%d",
            self._pool.checksum,
            state.tick,
            state.liquidity,
            state.price,
            len(state.segments_down),
            len(state.segments_up),
        )
        return state


def boundary_ticks(
    tick: int, tick_spacing: int, depth: int
) -> tuple[list[int], list[int]]:
    """
    Tick boundaries in traversal order, each side starting at the current
    range's bound: ``depth`` segments need ``depth + 1`` boundaries.
    """
    current = current_tick_range(tick, tick_spacing)
    down = [
        t
        for t in (current.tick_lower - k * tick_spacing for k in range(depth + 1))
        if t >= MIN_TICK
    ]
    up = [
        t
        for t in (current.tick_upper + k * tick_spacing for k in range(depth + 1))
        if t <= MAX_TICK
    ]
    return down, up


def snapshot_from_ticks(
    header: PoolHeader,
    ticks_down: Sequence[int],
    nets_down: Sequence[int],
    ticks_up: Sequence[int],
    nets_up: Sequence[int],
    token0_decimals: int,
    token1_decimals: int,
) -> PoolState:
    """
    Assemble a ``PoolState`` from already-read tick data.

    Tick indices grow with the raw token1/token0 ratio, and so does the
    sqrt price, so "down" ticks map to descending sqrt-price segments.
    """
    lower_bound = _bound_sqrt(ticks_down)
    upper_bound = _bound_sqrt(ticks_up)
    segments_down = build_segments(
        header.liquidity,
        [sqrt_price_at_tick(t) for t in ticks_down],
        nets_down,
        descending=True,
    )
    segments_up = build_segments(
        header.liquidity,
        [sqrt_price_at_tick(t) for t in ticks_up],
        nets_up,
        descending=False,
    )
    return PoolState(
        sqrt_price=header.sqrt_price,
        liquidity=header.liquidity,
        tick=header.tick,
        token0_decimals=token0_decimals,
        token1_decimals=token1_decimals,
        lower_bound=lower_bound,
        upper_bound=upper_bound,
        segments_down=segments_down,
        segments_up=segments_up,
    )


def _bound_sqrt(ticks: Sequence[int]) -> Optional[int]:
    if not ticks:
        return None
    return sqrt_price_at_tick(ticks[0])
