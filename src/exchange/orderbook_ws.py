from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncIterator, Optional

import websockets
from websockets.exceptions import WebSocketException

from .orderbook import BookDepth

logger = logging.getLogger(__name__)

DEFAULT_STREAM_URL = "wss://stream.binance.com:9443/ws"


def stream_name(symbol: str, levels: int = 20, speed_ms: int = 100) -> str:
    """``ETH/USDC`` -> ``ethusdc@depth20@100ms``."""
    return f"{symbol.replace('/', '').lower()}@depth{levels}@{speed_ms}ms"


def parse_depth_message(message: str | bytes, symbol: str) -> Optional[BookDepth]:
    """
    Parse a Binance partial-depth payload.

    Returns None for anything that is not a usable two-sided book.  A
    frame with any malformed level or update id is dropped whole; its
    levels are never partially kept.
    """
    try:
        payload = json.loads(message)
    except (TypeError, ValueError):
        logger.warning("%s  depth JSON parse failed", symbol)
        return None
    if not isinstance(payload, dict):
        return None
    # Combined-stream envelopes wrap the payload in "data".
    payload = payload.get("data", payload)
    if not isinstance(payload, dict):
        return None
    if "bids" not in payload or "asks" not in payload:
        return None
    last_update_id = payload.get("lastUpdateId")
    try:
        book = BookDepth.from_levels(
            symbol,
            payload.get("bids") or [],
            payload.get("asks") or [],
            last_update_id=int(last_update_id) if last_update_id is not None else None,
        )
    except (TypeError, ValueError) as exc:
        logger.warning("%s  malformed depth frame dropped: %s", symbol, exc)
        return None
    if not book.bids or not book.asks:
        return None
    return book


class DepthStream:
    """
    Top-of-book snapshots from the Binance partial depth stream.

    Partial-depth messages are full snapshots of the top N levels, so no
    REST snapshot / diff reconciliation is needed.  The connection is
    re-opened after ``reconnect_delay`` whenever it drops.
    """

    def __init__(
        self,
        symbol: str,
        ws_url: str = DEFAULT_STREAM_URL,
        levels: int = 20,
        reconnect_delay: float = 1.0,
    ) -> None:
        self._symbol = symbol
        self._url = f"{ws_url.rstrip('/')}/{stream_name(symbol, levels)}"
        self._reconnect_delay = reconnect_delay

    @property
    def url(self) -> str:
        return self._url

    async def stream(self) -> AsyncIterator[BookDepth]:
        while True:
            try:
                logger.info("connecting depth stream %s", self._url)
                async with websockets.connect(self._url) as ws:
                    async for message in ws:
                        book = parse_depth_message(message, self._symbol)
                        if book is not None:
                            yield book
                logger.warning("depth stream %s closed", self._url)
            except (WebSocketException, OSError) as exc:
                logger.warning("depth stream %s error: %s", self._url, exc)
            await asyncio.sleep(self._reconnect_delay)
