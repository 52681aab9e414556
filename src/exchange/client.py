# exchange/client.py

from __future__ import annotations

import logging
import time
from collections import deque
from typing import Any, Callable, cast

import ccxt

from .orderbook import BookDepth


class RateLimiter:
    def __init__(
        self,
        max_weight: int,
        window_seconds: float = 60.0,
        time_fn: Callable[[], float] | None = None,
        sleep_fn: Callable[[float], None] | None = None,
    ) -> None:
        self._max_weight = max_weight
        self._window_seconds = window_seconds
        self._events: deque[tuple[float, int]] = deque()
        self._time_fn = time_fn or time.monotonic
        self._sleep_fn = sleep_fn or time.sleep

    def acquire(self, weight: int) -> None:
        while True:
            now = self._time_fn()
            self._expire_old(now)
            current_weight = sum(event_weight for _, event_weight in self._events)
            if current_weight + weight <= self._max_weight:
                self._events.append((now, weight))
                return
            sleep_for = (self._events[0][0] + self._window_seconds) - now
            if sleep_for > 0:
                self._sleep_fn(sleep_for)

    def _expire_old(self, now: float) -> None:
        while self._events and (now - self._events[0][0]) >= self._window_seconds:
            self._events.popleft()


class ExchangeClient:
    """
    Read-only ccxt wrapper for order-book snapshots.
    Handles rate limiting, retries and normalization into ``BookDepth``.
    """

    _RETRYABLE_ERRORS = (
        ccxt.DDoSProtection,
        ccxt.ExchangeNotAvailable,
        ccxt.NetworkError,
        ccxt.RateLimitExceeded,
        ccxt.RequestTimeout,
    )

    def __init__(self, config: dict[str, Any]):
        """
        ``config`` is passed to the ccxt constructor; ``exchange`` picks the
        ccxt class (default binance).  Validates connectivity on init.
        """
        self._logger = logging.getLogger(__name__)
        exchange_id = str(config.get("exchange", "binance"))
        exchange_cls = getattr(ccxt, exchange_id, None)
        if exchange_cls is None:
            raise ValueError(f"Unknown ccxt exchange: {exchange_id}")
        ccxt_config = {
            key: value
            for key, value in config.items()
            if key
            not in (
                "exchange",
                "sandbox",
                "max_retries",
                "backoff_base",
                "max_weight_per_minute",
                "weight_window_seconds",
            )
        }
        self._exchange = exchange_cls(cast(Any, ccxt_config))
        if config.get("sandbox"):
            self._exchange.set_sandbox_mode(True)
        self._max_retries = int(config.get("max_retries", 3))
        self._backoff_base = float(config.get("backoff_base", 0.5))
        max_weight = int(config.get("max_weight_per_minute", 1200))
        window_seconds = float(config.get("weight_window_seconds", 60.0))
        self._rate_limiter = RateLimiter(max_weight, window_seconds)
        self._validate_connection()

    def _validate_connection(self) -> None:
        try:
            if self._exchange.has.get("fetchTime"):
                self._request_with_retries(self._exchange.fetch_time)
            elif self._exchange.has.get("fetchStatus"):
                self._request_with_retries(self._exchange.fetch_status)
            else:
                self._request_with_retries(self._exchange.load_markets)
        except RuntimeError as exc:
            raise RuntimeError("Failed to initialize exchange client") from exc

    def _request_with_retries(
        self, func: Callable[..., Any], *args: Any, weight: int = 1, **kwargs: Any
    ) -> Any:
        attempt = 0
        request_name = getattr(func, "__name__", str(func))
        while True:
            try:
                self._rate_limiter.acquire(weight)
                self._logger.debug("ccxt request: %s args=%s", request_name, args)
                return func(*args, **kwargs)
            except self._RETRYABLE_ERRORS as exc:
                attempt += 1
                if attempt > self._max_retries:
                    raise self._wrap_ccxt_error(exc) from exc
                sleep_for = self._backoff_base * (2 ** (attempt - 1))
                self._logger.warning(
                    "ccxt retry %s/%s after %s: %s",
                    attempt,
                    self._max_retries,
                    sleep_for,
                    exc.__class__.__name__,
                )
                time.sleep(sleep_for)
            except ccxt.BadSymbol as exc:
                raise RuntimeError(f"Unknown symbol: {args[0] if args else ''}") from exc
            except ccxt.ExchangeError as exc:
                raise RuntimeError("Exchange error") from exc

    def _wrap_ccxt_error(self, exc: Exception) -> RuntimeError:
        if isinstance(exc, ccxt.RateLimitExceeded):
            return RuntimeError("Rate limit exceeded")
        if isinstance(exc, (ccxt.NetworkError, ccxt.RequestTimeout)):
            return RuntimeError("Network error")
        if isinstance(exc, ccxt.ExchangeNotAvailable):
            return RuntimeError("Exchange not available")
        if isinstance(exc, ccxt.DDoSProtection):
            return RuntimeError("Exchange under protection")
        return RuntimeError("Request failed")

    def fetch_book_depth(self, symbol: str, limit: int = 20) -> BookDepth:
        """
        Fetch an L2 order book snapshot.

        A malformed snapshot raises ``RuntimeError`` like any other failed
        request, so callers drop it and wait for the next one.
        """
        raw = self._request_with_retries(
            self._exchange.fetch_order_book, symbol, limit, weight=5
        )
        last_update_id = raw.get("nonce") or raw.get("lastUpdateId")
        try:
            return BookDepth.from_levels(
                symbol,
                raw.get("bids") or [],
                raw.get("asks") or [],
                timestamp_ms=raw.get("timestamp"),
                last_update_id=(
                    int(last_update_id) if last_update_id is not None else None
                ),
            )
        except (TypeError, ValueError) as exc:
            raise RuntimeError(f"Malformed order book for {symbol}: {exc}") from exc

