from __future__ import annotations

import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from core.serializer import CanonicalSerializer
from pricing.swap_solver import SwapResult


class Direction(Enum):
    # A: buy the base token on the DEX, sell it on the CEX bid
    BUY_DEX_SELL_CEX = "A"
    # B: buy the base token on the CEX ask, sell it into the DEX
    BUY_CEX_SELL_DEX = "B"


@dataclass(frozen=True)
class ArbitrageOpportunity:
    """
    A sized CEX/DEX round trip that cleared ``min_pnl`` on one tick.

    ``cex_price`` is the book price the CEX leg is valued at (the touch, or
    the VWAP when sizing against several levels); ``effective_price`` is
    the fee-adjusted price the DEX leg was solved towards.
    """

    direction: Direction
    swap: SwapResult
    cex_price: Decimal
    effective_price: Decimal
    gas_cost: Decimal
    pnl: Decimal
    description: str
    timestamp: float = field(default_factory=time.time, compare=False)

    @property
    def amount_in(self) -> Decimal:
        return self.swap.amount_in

    @property
    def amount_out(self) -> Decimal:
        return self.swap.amount_out

    def to_dict(self) -> dict:
        return {
            "direction": self.direction,
            "amount_in": self.swap.amount_in,
            "amount_out": self.swap.amount_out,
            "dex_execution_price": self.swap.execution_price,
            "hit_boundary": self.swap.hit_boundary,
            "capped_by_max": self.swap.capped_by_max,
            "segments_used": self.swap.segments_used,
            "cex_price": self.cex_price,
            "effective_price": self.effective_price,
            "gas_cost": self.gas_cost,
            "pnl": self.pnl,
            "description": self.description,
        }

    @property
    def fingerprint(self) -> str:
        """keccak of the canonical payload; ``timestamp`` is left out."""
        return "0x" + CanonicalSerializer.hash(self.to_dict()).hex()
