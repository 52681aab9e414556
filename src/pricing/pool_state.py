"""Immutable concentrated-liquidity pool snapshot."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence

from core.errors import InvalidInputError

from .fixed_point import to_human_price
from .uniswap_v3_math import tick_at_sqrt_price


@dataclass(frozen=True)
class PriceSegment:
    """
    A sqrt-price range with constant liquidity.

    For downward segments ``start_sqrt_price > end_sqrt_price``; for upward
    segments ``start_sqrt_price < end_sqrt_price``.
    """

    start_sqrt_price: int
    end_sqrt_price: int
    liquidity: int

    def __post_init__(self) -> None:
        for name in ("start_sqrt_price", "end_sqrt_price", "liquidity"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise InvalidInputError(f"{name} must be an int", name)
        if self.start_sqrt_price <= 0 or self.end_sqrt_price <= 0:
            raise InvalidInputError("segment sqrt prices must be positive")
        if self.start_sqrt_price == self.end_sqrt_price:
            raise InvalidInputError("segment must span a non-empty range")
        if self.liquidity < 0:
            raise InvalidInputError("segment liquidity must be non-negative", "liquidity")

    @property
    def descending(self) -> bool:
        return self.end_sqrt_price < self.start_sqrt_price

    def to_dict(self) -> dict:
        return {
            "start_sqrt_price": self.start_sqrt_price,
            "end_sqrt_price": self.end_sqrt_price,
            "liquidity": self.liquidity,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PriceSegment":
        return cls(
            start_sqrt_price=int(data["start_sqrt_price"]),
            end_sqrt_price=int(data["end_sqrt_price"]),
            liquidity=int(data["liquidity"]),
        )


@dataclass(frozen=True)
class PoolState:
    """
    Snapshot of a pool, rebuilt on every refresh and never mutated.

    ``sqrt_price`` follows the Q96 convention in ``pricing.fixed_point``.
    ``lower_bound``/``upper_bound`` bound the current tick's range;
    ``segments_down``/``segments_up`` continue from those bounds.
    """

    sqrt_price: int
    liquidity: int
    tick: int
    token0_decimals: int
    token1_decimals: int
    lower_bound: Optional[int] = None
    upper_bound: Optional[int] = None
    segments_down: tuple[PriceSegment, ...] = field(default_factory=tuple)
    segments_up: tuple[PriceSegment, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not isinstance(self.sqrt_price, int) or self.sqrt_price <= 0:
            raise InvalidInputError("sqrt_price must be a positive int", "sqrt_price")
        if not isinstance(self.liquidity, int) or self.liquidity < 0:
            raise InvalidInputError("liquidity must be a non-negative int", "liquidity")
        for name in ("token0_decimals", "token1_decimals"):
            value = getattr(self, name)
            if not isinstance(value, int) or not 0 <= value <= 255:
                raise InvalidInputError(f"{name} must be an int in [0, 255]", name)

        if self.lower_bound is not None and self.lower_bound > self.sqrt_price:
            raise InvalidInputError("lower_bound must not exceed sqrt_price", "lower_bound")
        if self.upper_bound is not None and self.upper_bound < self.sqrt_price:
            raise InvalidInputError("upper_bound must not be below sqrt_price", "upper_bound")

        # Accept lists from callers but store tuples.
        object.__setattr__(self, "segments_down", tuple(self.segments_down))
        object.__setattr__(self, "segments_up", tuple(self.segments_up))
        _validate_chain(self.segments_down, self.lower_bound, descending=True)
        _validate_chain(self.segments_up, self.upper_bound, descending=False)

    @property
    def price(self) -> Decimal:
        """Human price, token0 per token1."""
        return to_human_price(self.sqrt_price, self.token0_decimals, self.token1_decimals)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sqrt_price": self.sqrt_price,
            "liquidity": self.liquidity,
            "tick": self.tick,
            "token0_decimals": self.token0_decimals,
            "token1_decimals": self.token1_decimals,
            "lower_bound": self.lower_bound,
            "upper_bound": self.upper_bound,
            "segments_down": [s.to_dict() for s in self.segments_down],
            "segments_up": [s.to_dict() for s in self.segments_up],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PoolState":
        """
        Build from a JSON-style dict; big integers may be given as strings.
        A missing ``tick`` is derived from ``sqrt_price``.
        """
        try:
            sqrt_price = int(data["sqrt_price"])
            liquidity = int(data["liquidity"])
            token0_decimals = int(data["token0_decimals"])
            token1_decimals = int(data["token1_decimals"])
            tick = data.get("tick")
            return cls(
                sqrt_price=sqrt_price,
                liquidity=liquidity,
                tick=tick_at_sqrt_price(sqrt_price) if tick is None else int(tick),
                token0_decimals=token0_decimals,
                token1_decimals=token1_decimals,
                lower_bound=_optional_int(data.get("lower_bound")),
                upper_bound=_optional_int(data.get("upper_bound")),
                segments_down=tuple(
                    PriceSegment.from_dict(s) for s in data.get("segments_down") or []
                ),
                segments_up=tuple(
                    PriceSegment.from_dict(s) for s in data.get("segments_up") or []
                ),
            )
        except KeyError as exc:
            raise InvalidInputError(f"pool snapshot missing field {exc}") from exc
        except InvalidInputError:
            raise
        except (TypeError, ValueError) as exc:
            raise InvalidInputError(f"malformed pool snapshot: {exc}") from exc


def build_segments(
    start_liquidity: int,
    boundaries: Sequence[int],
    liquidity_nets: Sequence[int],
    descending: bool,
) -> tuple[PriceSegment, ...]:
    """
    Build contiguous segments from crossed tick boundaries.

    ``boundaries`` are sqrt prices in traversal order, starting at the
    current range's bound; ``liquidity_nets[i]`` is the liquidityNet of the
    tick at ``boundaries[i]`` (the last boundary is never crossed).
    Crossing upward adds the net, crossing downward subtracts it.
    Running liquidity never goes below zero.
    """
    if len(liquidity_nets) < len(boundaries) - 1:
        raise InvalidInputError("need one liquidity_net per crossed boundary")
    segments: list[PriceSegment] = []
    liquidity = start_liquidity
    for i in range(len(boundaries) - 1):
        net = liquidity_nets[i]
        liquidity = liquidity - net if descending else liquidity + net
        liquidity = max(liquidity, 0)
        segments.append(
            PriceSegment(
                start_sqrt_price=boundaries[i],
                end_sqrt_price=boundaries[i + 1],
                liquidity=liquidity,
            )
        )
    return tuple(segments)


def _validate_chain(
    segments: Iterable[PriceSegment], bound: Optional[int], descending: bool
) -> None:
    segments = tuple(segments)
    if segments and bound is None:
        raise InvalidInputError("segments require the current range bound on that side")
    previous_end = bound
    for index, segment in enumerate(segments):
        if not isinstance(segment, PriceSegment):
            raise InvalidInputError("segments must be PriceSegment instances")
        if segment.descending != descending:
            side = "down" if descending else "up"
            raise InvalidInputError(f"segments_{side}[{index}] has the wrong orientation")
        if previous_end is not None and segment.start_sqrt_price != previous_end:
            raise InvalidInputError(f"segment {index} is not contiguous with its predecessor")
        previous_end = segment.end_sqrt_price


def _optional_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    return int(value)
