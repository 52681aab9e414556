from .client import ExchangeClient, RateLimiter
from .orderbook import BookDepth, BookFill
from .orderbook_ws import DepthStream, parse_depth_message

__all__ = [
    "BookDepth",
    "BookFill",
    "DepthStream",
    "ExchangeClient",
    "RateLimiter",
    "parse_depth_message",
]
