"""Chain-specific exceptions for RPC failures."""

from __future__ import annotations

from typing import Optional


class ChainError(Exception):
    """Base class for chain errors."""


class RPCError(ChainError):
    """RPC request failed."""

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        data: Optional[object] = None,
    ):
        self.code = code
        self.data = data
        super().__init__(message)


class ExecutionReverted(RPCError):
    """eth_call reverted (wrong address, not a pool, unsupported method)."""
