from .evaluator import (
    ArbitrageConfig,
    ArbitrageEvaluator,
    EvaluationState,
    TickOutcome,
)
from .fees import GasCostModel, bps_to_rate, gas_cost_quote
from .signal import ArbitrageOpportunity, Direction

__all__ = [
    "ArbitrageConfig",
    "ArbitrageEvaluator",
    "ArbitrageOpportunity",
    "Direction",
    "EvaluationState",
    "GasCostModel",
    "TickOutcome",
    "bps_to_rate",
    "gas_cost_quote",
]
