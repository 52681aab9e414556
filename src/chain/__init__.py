from .client import ChainClient, GasPrice
from .errors import ChainError, ExecutionReverted, RPCError
from .pool_reader import PoolHeader, UniswapV3PoolReader

__all__ = [
    "ChainClient",
    "ChainError",
    "ExecutionReverted",
    "GasPrice",
    "PoolHeader",
    "RPCError",
    "UniswapV3PoolReader",
]
