"""Error taxonomy for the pricing and evaluation core."""

from __future__ import annotations

from typing import Optional


class ArbitrageError(Exception):
    """Base class for detector errors."""


class InvalidInputError(ArbitrageError, ValueError):
    """A snapshot or parameter is malformed (non-positive price, bad fee, ...)."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class PrecisionError(InvalidInputError):
    """An intermediate value overflowed or became non-finite."""
