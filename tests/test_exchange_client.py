from decimal import Decimal

import ccxt
import pytest

from exchange.client import ExchangeClient, RateLimiter


class FakeExchange:
    has = {"fetchTime": True}

    def __init__(self, config):
        self.config = config
        self.book_calls = 0
        self.failures = []

    def fetch_time(self):
        return 0

    def fetch_order_book(self, symbol, limit):
        self.book_calls += 1
        if self.failures:
            raise self.failures.pop(0)
        if symbol == "NOPE/USDC":
            raise ccxt.BadSymbol("no market")
        if symbol == "ZERO/USDC":
            return {"bids": [[0, 1]], "asks": [[4225.4, 2.0]], "nonce": 1}
        if symbol == "NONCE/USDC":
            return {"bids": [[4225.1, 1]], "asks": [[4225.4, 2.0]], "nonce": "x"}
        return {
            "symbol": symbol,
            "bids": [[4225.1, 1.5], [4225.3, 0.2]],
            "asks": [[4225.4, 2.0]],
            "timestamp": 1700000000000,
            "nonce": 42,
        }


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(ccxt, "fakex", FakeExchange, raising=False)
    monkeypatch.setattr("exchange.client.time.sleep", lambda *_: None)
    return ExchangeClient({"exchange": "fakex", "enableRateLimit": True, "max_retries": 2})


def test_ccxt_receives_only_its_own_options(client):
    assert client._exchange.config == {"enableRateLimit": True}


def test_fetch_book_depth_normalized(client):
    book = client.fetch_book_depth("ETH/USDC")
    assert book.symbol == "ETH/USDC"
    assert book.best_bid == (Decimal("4225.3"), Decimal("0.2"))
    assert book.best_ask == (Decimal("4225.4"), Decimal("2.0"))
    assert book.last_update_id == 42
    assert book.timestamp_ms == 1700000000000


def test_retryable_errors_retried(client):
    client._exchange.failures = [ccxt.RequestTimeout("slow"), ccxt.NetworkError("reset")]
    book = client.fetch_book_depth("ETH/USDC")
    assert book.best_ask is not None
    assert client._exchange.book_calls == 3


def test_retries_exhausted(client):
    client._exchange.failures = [ccxt.RateLimitExceeded("429")] * 3
    with pytest.raises(RuntimeError, match="Rate limit exceeded"):
        client.fetch_book_depth("ETH/USDC")


def test_bad_symbol(client):
    with pytest.raises(RuntimeError, match="Unknown symbol: NOPE/USDC"):
        client.fetch_book_depth("NOPE/USDC")


@pytest.mark.parametrize("symbol", ["ZERO/USDC", "NONCE/USDC"])
def test_malformed_snapshot_raises(client, symbol):
    with pytest.raises(RuntimeError, match=f"Malformed order book for {symbol}"):
        client.fetch_book_depth(symbol)
    assert client._exchange.book_calls == 1


def test_unknown_exchange():
    with pytest.raises(ValueError):
        ExchangeClient({"exchange": "definitely_not_an_exchange"})


def test_rate_limiter_waits_for_window():
    now = {"t": 0.0}
    slept = []

    def sleep(seconds):
        slept.append(seconds)
        now["t"] += seconds

    limiter = RateLimiter(10, window_seconds=60, time_fn=lambda: now["t"], sleep_fn=sleep)
    limiter.acquire(6)
    now["t"] = 15.0
    limiter.acquire(6)
    assert slept == [45.0]
