from .fixed_point import Q96, sqrt_fixed_to_real, to_human_price, to_sqrt_fixed
from .pool_state import PoolState, PriceSegment, build_segments
from .swap_solver import (
    SwapDirection,
    SwapResult,
    SwapTermination,
    solve_multi_segment,
    solve_single_segment,
    solve_swap,
)

__all__ = [
    "PoolState",
    "PriceSegment",
    "Q96",
    "SwapDirection",
    "SwapResult",
    "SwapTermination",
    "build_segments",
    "solve_multi_segment",
    "solve_single_segment",
    "solve_swap",
    "sqrt_fixed_to_real",
    "to_human_price",
    "to_sqrt_fixed",
]
