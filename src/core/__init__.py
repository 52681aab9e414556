from .base_types import (
    Address,
    from_raw_units,
    numeric_context,
    to_decimal,
    to_raw_units,
)
from .errors import ArbitrageError, InvalidInputError, PrecisionError
from .serializer import CanonicalSerializer

__all__ = [
    "Address",
    "ArbitrageError",
    "CanonicalSerializer",
    "InvalidInputError",
    "PrecisionError",
    "from_raw_units",
    "numeric_context",
    "to_decimal",
    "to_raw_units",
]
