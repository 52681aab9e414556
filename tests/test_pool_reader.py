from decimal import Decimal

import pytest
from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_utils import keccak

from chain.pool_reader import (
    PoolHeader,
    UniswapV3PoolReader,
    boundary_ticks,
    snapshot_from_ticks,
)
from core.base_types import Address
from core.errors import InvalidInputError
from pricing.uniswap_v3_math import MIN_TICK, sqrt_price_at_tick

POOL = Address.from_string("0x88e6a0c2ddd26feeb64f039a2c41296fcb3f5640")
LIQUIDITY = 10**18


def _sel(signature: str) -> bytes:
    return keccak(text=signature)[:4]


class FakePoolClient:
    """Answers eth_call batches the way a Uniswap V3 pool would."""

    def __init__(
        self,
        tick=75,
        spacing=60,
        fee=3000,
        liquidity=LIQUIDITY,
        nets=None,
        sqrt_price=None,
    ):
        self.tick = tick
        self.spacing = spacing
        self.fee = fee
        self.liquidity = liquidity
        self.nets = nets or {}
        self.sqrt_price = sqrt_price_at_tick(tick) if sqrt_price is None else sqrt_price
        self.batches = []

    def batch_call(self, calls, block="latest"):
        self.batches.append(calls)
        return [self._answer(to, data) for to, data in calls]

    def _answer(self, to, data):
        assert to == POOL
        selector = data[:4]
        if selector == _sel("slot0()"):
            return abi_encode(
                ["uint160", "int24", "uint16", "uint16", "uint16", "uint8", "bool"],
                [self.sqrt_price, self.tick, 0, 1, 1, 0, True],
            )
        if selector == _sel("liquidity()"):
            return abi_encode(["uint128"], [self.liquidity])
        if selector == _sel("tickSpacing()"):
            return abi_encode(["int24"], [self.spacing])
        if selector == _sel("fee()"):
            return abi_encode(["uint24"], [self.fee])
        if selector == _sel("ticks(int24)"):
            (tick,) = abi_decode(["int24"], data[4:])
            net = self.nets.get(tick, 0)
            return abi_encode(
                ["uint128", "int128", "uint256", "uint256", "int56", "uint160", "uint32", "bool"],
                [abs(net), net, 0, 0, 0, 0, 0, net != 0],
            )
        raise AssertionError(f"unexpected call {data.hex()}")


def _reader(client, depth=2) -> UniswapV3PoolReader:
    return UniswapV3PoolReader(client, POOL, 6, 18, segment_depth=depth)


class TestBoundaryTicks:
    def test_both_sides_start_at_current_range(self):
        down, up = boundary_ticks(75, 60, 2)
        assert down == [60, 0, -60]
        assert up == [120, 180, 240]

    def test_negative_tick(self):
        down, up = boundary_ticks(-1, 10, 1)
        assert down == [-10, -20]
        assert up == [0, 10]

    def test_clamped_at_min_tick(self):
        down, _ = boundary_ticks(MIN_TICK + 1, 1, 3)
        assert down == [MIN_TICK + 1, MIN_TICK]

    def test_zero_depth_keeps_only_bounds(self):
        assert boundary_ticks(75, 60, 0) == ([60], [120])


class TestReader:
    def test_read_header(self):
        header = _reader(FakePoolClient()).read_header()
        assert header.tick == 75
        assert header.tick_spacing == 60
        assert header.liquidity == LIQUIDITY
        assert header.fee_rate == Decimal("0.003")

    def test_fee_rate_of_five_bip_pool(self):
        assert _reader(FakePoolClient(fee=500, spacing=10)).read_fee_rate() == Decimal("0.0005")

    def test_fetch_state_builds_segments(self):
        client = FakePoolClient(nets={60: 1000, 120: -500, 180: 200})
        state = _reader(client).fetch_state()

        assert state.sqrt_price == sqrt_price_at_tick(75)
        assert state.liquidity == LIQUIDITY
        assert state.lower_bound == sqrt_price_at_tick(60)
        assert state.upper_bound == sqrt_price_at_tick(120)

        # crossing 60 downward removes its net; crossing 120 upward adds it
        assert [s.liquidity for s in state.segments_down] == [LIQUIDITY - 1000] * 2
        assert [s.liquidity for s in state.segments_up] == [LIQUIDITY - 500, LIQUIDITY - 300]
        assert state.segments_down[0].start_sqrt_price == sqrt_price_at_tick(60)
        assert state.segments_down[-1].end_sqrt_price == sqrt_price_at_tick(-60)
        assert state.segments_up[-1].end_sqrt_price == sqrt_price_at_tick(240)

    def test_fetch_state_uses_two_batches(self):
        client = FakePoolClient()
        _reader(client).fetch_state()
        assert len(client.batches) == 2
        # the outermost boundary on each side is never crossed
        assert len(client.batches[1]) == 4

    def test_uninitialized_pool_rejected(self):
        with pytest.raises(InvalidInputError):
            _reader(FakePoolClient(sqrt_price=0)).fetch_state()

    def test_negative_depth_rejected(self):
        with pytest.raises(ValueError):
            UniswapV3PoolReader(FakePoolClient(), POOL, 6, 18, segment_depth=-1)


def test_snapshot_liquidity_never_negative():
    header = PoolHeader(
        sqrt_price=sqrt_price_at_tick(75), tick=75, liquidity=100, tick_spacing=60, fee=3000
    )
    state = snapshot_from_ticks(header, [60, 0], [500], [120, 180], [0], 6, 18)
    assert state.segments_down[0].liquidity == 0
    assert state.segments_up[0].liquidity == 100
