"""
Arbitrage evaluator: the decision step of the detector.

For every tick:
  1. Take the latest pool snapshot, CEX depth and gas cost
  2. Fold the CEX taker fee into the price the DEX leg is solved towards
  3. Size the DEX leg with the swap solver, capped by CEX depth
  4. Price the round trip and keep it if pnl >= min_pnl

Both directions are evaluated independently and returned in A, B order.
Nothing here does I/O; inputs are immutable snapshots.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional

from core.base_types import Number, numeric_context, to_decimal
from core.errors import InvalidInputError
from exchange.orderbook import BookDepth
from pricing.pool_state import PoolState
from pricing.swap_solver import SwapDirection, solve_swap

from .signal import ArbitrageOpportunity, Direction

logger = logging.getLogger(__name__)

# Direction B treats a DEX input below this (base units) as nothing to trade.
MIN_BASE_INPUT = Decimal("1e-8")


class EvaluationState(Enum):
    AWAITING_DATA = "awaiting_data"
    NO_OPPORTUNITY = "no_opportunity"
    OPPORTUNITY_FOUND = "opportunity_found"


@dataclass(frozen=True)
class TickOutcome:
    state: EvaluationState
    opportunities: tuple[ArbitrageOpportunity, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ArbitrageConfig:
    """
    Explicit evaluator settings.  Fee rates are fractions (0.003 = 30 bps).
    ``min_pnl`` may be zero or negative to surface marginal results.
    """

    min_pnl: Decimal = Decimal(0)
    dex_fee_rate: Decimal = Decimal("0.003")
    cex_fee_rate: Decimal = Decimal("0.001")
    base_symbol: str = "ETH"
    quote_symbol: str = "USDC"
    book_levels: int = 1

    def __post_init__(self) -> None:
        for name in ("min_pnl", "dex_fee_rate", "cex_fee_rate"):
            object.__setattr__(self, name, to_decimal(getattr(self, name), name))
        for name in ("dex_fee_rate", "cex_fee_rate"):
            rate = getattr(self, name)
            if rate < 0 or rate >= 1:
                raise InvalidInputError(f"{name} must be in [0, 1), got {rate}", name)
        if not isinstance(self.book_levels, int) or self.book_levels < 1:
            raise InvalidInputError("book_levels must be a positive int", "book_levels")


class ArbitrageEvaluator:
    """
    Evaluate both arbitrage directions for one pool and one CEX book.

    Direction A (buy DEX, sell CEX):
      effective = bid * (1 - cex_fee); solve token0 -> token1 towards it,
      output capped by bid depth;
      pnl = bid * out - in - gas

    Direction B (buy CEX, sell DEX):
      effective = ask * (1 + cex_fee); solve token1 -> token0 towards it,
      input capped by ask depth;
      pnl = out - effective * in - gas

    Malformed snapshots raise ``InvalidInputError``; the caller skips the
    tick.  Market conditions (infeasible, empty depth) just yield nothing.
    """

    def __init__(self, config: ArbitrageConfig):
        self.config = config

    # ── public API ──────────────────────────────────────────────

    def evaluate(
        self, pool: PoolState, book: BookDepth, gas_cost: Number
    ) -> list[ArbitrageOpportunity]:
        return list(self.evaluate_tick(pool, book, gas_cost).opportunities)

    def evaluate_tick(
        self,
        pool: Optional[PoolState],
        book: Optional[BookDepth],
        gas_cost: Optional[Number],
    ) -> TickOutcome:
        if pool is None or book is None or gas_cost is None:
            return TickOutcome(EvaluationState.AWAITING_DATA)
        if not book.bids or not book.asks:
            logger.debug("%s  skip: empty book side", book.symbol)
            return TickOutcome(EvaluationState.AWAITING_DATA)

        gas = to_decimal(gas_cost, "gas_cost")
        if gas < 0:
            raise InvalidInputError(f"gas_cost must be non-negative, got {gas}", "gas_cost")

        found: list[ArbitrageOpportunity] = []
        for candidate in (
            self._evaluate_buy_dex(pool, book, gas),
            self._evaluate_buy_cex(pool, book, gas),
        ):
            if candidate is None:
                continue
            if candidate.pnl < self.config.min_pnl:
                logger.debug(
                    "%s  skip %s: pnl %s < min %s",
                    book.symbol,
                    candidate.direction.value,
                    candidate.pnl,
                    self.config.min_pnl,
                )
                continue
            found.append(candidate)

        state = (
            EvaluationState.OPPORTUNITY_FOUND if found else EvaluationState.NO_OPPORTUNITY
        )
        return TickOutcome(state, tuple(found))

    # ── directions ──────────────────────────────────────────────

    def _evaluate_buy_dex(
        self, pool: PoolState, book: BookDepth, gas: Decimal
    ) -> Optional[ArbitrageOpportunity]:
        levels = book.top("bids", self.config.book_levels)
        sizing_price = levels[-1][0]
        depth = sum((qty for _, qty in levels), Decimal(0))
        with numeric_context():
            effective = sizing_price * (1 - self.config.cex_fee_rate)

        # Bid depth is in base units, which is the DEX leg's output here.
        swap = solve_swap(
            pool,
            effective,
            SwapDirection.TOKEN0_TO_TOKEN1,
            self.config.dex_fee_rate,
            max_amount_out=depth,
        )
        if swap.amount_out <= 0:
            return None

        cex_price = self._cex_price(book, "sell", swap.amount_out)
        with numeric_context():
            pnl = cex_price * swap.amount_out - swap.amount_in - gas
        description = (
            f"A: Buy {swap.amount_out:.6f} {self.config.base_symbol} on DEX "
            f"→ Sell on CEX @ ${cex_price:.2f} | Earn ${pnl:.2f}"
        )
        return ArbitrageOpportunity(
            direction=Direction.BUY_DEX_SELL_CEX,
            swap=swap,
            cex_price=cex_price,
            effective_price=effective,
            gas_cost=gas,
            pnl=pnl,
            description=description,
        )

    def _evaluate_buy_cex(
        self, pool: PoolState, book: BookDepth, gas: Decimal
    ) -> Optional[ArbitrageOpportunity]:
        levels = book.top("asks", self.config.book_levels)
        sizing_price = levels[-1][0]
        depth = sum((qty for _, qty in levels), Decimal(0))
        with numeric_context():
            effective = sizing_price * (1 + self.config.cex_fee_rate)

        swap = solve_swap(
            pool,
            effective,
            SwapDirection.TOKEN1_TO_TOKEN0,
            self.config.dex_fee_rate,
            max_amount_in=depth,
        )
        if swap.amount_in <= MIN_BASE_INPUT:
            return None

        cex_price = self._cex_price(book, "buy", swap.amount_in)
        with numeric_context():
            cost = cex_price * (1 + self.config.cex_fee_rate) * swap.amount_in
            pnl = swap.amount_out - cost - gas
        description = (
            f"B: Buy {swap.amount_in:.6f} {self.config.base_symbol} on CEX "
            f"@ ${cex_price:.2f} → Sell on DEX for {swap.amount_out:.2f} "
            f"{self.config.quote_symbol} | Earn ${pnl:.2f}"
        )
        return ArbitrageOpportunity(
            direction=Direction.BUY_CEX_SELL_DEX,
            swap=swap,
            cex_price=cex_price,
            effective_price=effective,
            gas_cost=gas,
            pnl=pnl,
            description=description,
        )

    # ── private helpers ─────────────────────────────────────────

    def _cex_price(self, book: BookDepth, side: str, qty: Decimal) -> Decimal:
        """Touch price for a single level, VWAP across the sized levels otherwise."""
        touch = book.bids[0][0] if side == "sell" else book.asks[0][0]
        if self.config.book_levels == 1:
            return touch
        fill = book.walk(side, qty)
        return fill.avg_price if fill.filled_qty > 0 else touch

