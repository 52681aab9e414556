from __future__ import annotations

import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Optional

from core.base_types import numeric_context, to_decimal
from core.errors import InvalidInputError

Level = tuple[Decimal, Decimal]


@dataclass(frozen=True)
class BookFill:
    """Result of walking one side of the book for a base quantity."""

    avg_price: Decimal
    filled_qty: Decimal
    total_cost: Decimal
    levels_consumed: int
    fully_filled: bool
    slippage_bps: Decimal


@dataclass(frozen=True)
class BookDepth:
    """
    Top-of-book snapshot for one symbol.

    ``bids`` are sorted best (highest) first, ``asks`` best (lowest) first.
    Every level has a positive price and quantity.
    """

    symbol: str
    bids: tuple[Level, ...] = field(default_factory=tuple)
    asks: tuple[Level, ...] = field(default_factory=tuple)
    timestamp_ms: int = 0
    last_update_id: Optional[int] = None

    @classmethod
    def from_levels(
        cls,
        symbol: str,
        bids: Iterable[Any],
        asks: Iterable[Any],
        timestamp_ms: Optional[int] = None,
        last_update_id: Optional[int] = None,
    ) -> "BookDepth":
        """
        Normalize raw ``[price, qty]`` pairs (strings, ints or Decimals).
        An unparseable or non-positive level raises ``InvalidInputError``.
        """
        clean_bids = sorted(
            _parse_levels(bids, "bids"), key=lambda lvl: lvl[0], reverse=True
        )
        clean_asks = sorted(_parse_levels(asks, "asks"), key=lambda lvl: lvl[0])
        if timestamp_ms is None:
            timestamp_ms = int(time.time() * 1000)
        return cls(
            symbol=symbol,
            bids=tuple(clean_bids),
            asks=tuple(clean_asks),
            timestamp_ms=timestamp_ms,
            last_update_id=last_update_id,
        )

    @property
    def best_bid(self) -> Optional[Level]:
        return self.bids[0] if self.bids else None

    @property
    def best_ask(self) -> Optional[Level]:
        return self.asks[0] if self.asks else None

    @property
    def mid_price(self) -> Optional[Decimal]:
        if not self.bids or not self.asks:
            return None
        return (self.bids[0][0] + self.asks[0][0]) / Decimal("2")

    @property
    def spread_bps(self) -> Optional[Decimal]:
        mid = self.mid_price
        if mid is None or mid == 0:
            return None
        return (self.asks[0][0] - self.bids[0][0]) / mid * Decimal("10000")

    def top(self, side: str, levels: int) -> tuple[Level, ...]:
        return self._side(side)[: max(levels, 0)]

    def walk(self, side: str, qty: Decimal) -> BookFill:
        """
        Simulate filling ``qty`` base units: ``side="sell"`` walks the bids,
        ``side="buy"`` walks the asks.  If the book runs out, the fill is
        partial and ``fully_filled`` is False.
        """
        qty = to_decimal(qty, "qty")
        if qty < 0:
            raise InvalidInputError("qty must be non-negative", "qty")
        levels = self._side("bids" if side == "sell" else "asks")
        remaining = qty
        cost = Decimal(0)
        consumed = 0
        with numeric_context():
            for price, level_qty in levels:
                if remaining <= 0:
                    break
                take = min(remaining, level_qty)
                cost += take * price
                remaining -= take
                consumed += 1
            filled = qty - remaining
            avg = cost / filled if filled > 0 else Decimal(0)
            slippage = Decimal(0)
            if levels and filled > 0:
                best = levels[0][0]
                slippage = abs(avg - best) / best * Decimal("10000")
        return BookFill(
            avg_price=avg,
            filled_qty=filled,
            total_cost=cost,
            levels_consumed=consumed,
            fully_filled=remaining <= 0,
            slippage_bps=slippage,
        )

    def _side(self, side: str) -> tuple[Level, ...]:
        if side in ("bid", "bids"):
            return self.bids
        if side in ("ask", "asks"):
            return self.asks
        raise InvalidInputError(f"unknown book side {side!r}", "side")


def _parse_levels(raw_levels: Iterable[Any], side: str) -> list[Level]:
    try:
        entries = list(raw_levels or [])
    except TypeError as exc:
        raise InvalidInputError(
            f"{side} must be a list of levels, got {raw_levels!r}", side
        ) from exc
    levels: list[Level] = []
    for index, entry in enumerate(entries):
        try:
            price, qty = entry[0], entry[1]
        except (IndexError, KeyError, TypeError) as exc:
            raise InvalidInputError(
                f"{side}[{index}] is not a [price, qty] pair: {entry!r}", side
            ) from exc
        price_dec = to_decimal(price, f"{side}[{index}].price")
        qty_dec = to_decimal(qty, f"{side}[{index}].qty")
        if price_dec <= 0 or qty_dec <= 0:
            raise InvalidInputError(
                f"{side}[{index}] must have positive price and qty, got {entry!r}", side
            )
        levels.append((price_dec, qty_dec))
    return levels
