"""Tests for exchange.orderbook and the depth-stream parser."""

import json
from decimal import Decimal

import pytest

from core.errors import InvalidInputError
from exchange.orderbook import BookDepth
from exchange.orderbook_ws import DepthStream, parse_depth_message, stream_name


def _book() -> BookDepth:
    return BookDepth.from_levels(
        "ETH/USDC",
        bids=[["99", "5"], ["100", "1"]],
        asks=[["102", "2"], ["101", "1"]],
        timestamp_ms=1,
    )


class TestBookDepth:
    def test_levels_sorted_best_first(self):
        book = _book()
        assert book.best_bid == (Decimal(100), Decimal(1))
        assert book.best_ask == (Decimal(101), Decimal(1))
        assert [p for p, _ in book.bids] == [Decimal(100), Decimal(99)]

    @pytest.mark.parametrize(
        "level",
        [["abc", "1"], ["0", "1"], ["100", "0"], ["100"], [None, "1"], ["101", "-1"], 7],
    )
    def test_malformed_level_rejected(self, level):
        with pytest.raises(InvalidInputError):
            BookDepth.from_levels("ETH/USDC", bids=[["98", "2"], level], asks=[["102", "1"]])

    def test_malformed_ask_names_side_and_index(self):
        with pytest.raises(InvalidInputError, match=r"asks\[1\]"):
            BookDepth.from_levels("ETH/USDC", [["98", "2"]], [["101", "1"], ["0", "1"]])

    def test_non_list_side_rejected(self):
        with pytest.raises(InvalidInputError, match="bids must be a list"):
            BookDepth.from_levels("ETH/USDC", bids=5, asks=[["102", "1"]])

    def test_empty_sides_allowed(self):
        book = BookDepth.from_levels("ETH/USDC", bids=[["98", "2"]], asks=[])
        assert book.best_ask is None
        assert book.mid_price is None

    def test_float_levels_accepted(self):
        book = BookDepth.from_levels("ETH/USDC", [[4225.1, 0.5]], [[4230.2, 1.25]])
        assert book.best_bid == (Decimal("4225.1"), Decimal("0.5"))

    def test_mid_and_spread(self):
        book = _book()
        assert book.mid_price == Decimal("100.5")
        assert book.spread_bps == Decimal(1) / Decimal("100.5") * Decimal(10000)

    def test_walk_sell_across_levels(self):
        fill = _book().walk("sell", Decimal(3))
        assert fill.fully_filled
        assert fill.levels_consumed == 2
        assert fill.total_cost == Decimal(298)
        assert fill.filled_qty == Decimal(3)
        assert abs(fill.avg_price - Decimal(298) / 3) < Decimal("1e-20")
        assert fill.slippage_bps > 0

    def test_walk_partial_when_book_runs_out(self):
        fill = _book().walk("buy", Decimal(10))
        assert not fill.fully_filled
        assert fill.filled_qty == Decimal(3)
        assert fill.total_cost == Decimal(101 + 204)

    def test_walk_negative_qty_rejected(self):
        with pytest.raises(InvalidInputError):
            _book().walk("buy", Decimal(-1))

    def test_top(self):
        assert _book().top("asks", 1) == ((Decimal(101), Decimal(1)),)
        with pytest.raises(InvalidInputError):
            _book().top("middle", 1)


class TestDepthMessages:
    def test_parse_partial_depth(self):
        message = json.dumps(
            {
                "lastUpdateId": 160,
                "bids": [["4225.10", "1.5"], ["4225.00", "2"]],
                "asks": [["4225.20", "0.7"]],
            }
        )
        book = parse_depth_message(message, "ETH/USDC")
        assert book is not None
        assert book.last_update_id == 160
        assert book.best_bid == (Decimal("4225.10"), Decimal("1.5"))
        assert book.best_ask == (Decimal("4225.20"), Decimal("0.7"))

    def test_combined_stream_envelope(self):
        message = json.dumps(
            {
                "stream": "ethusdc@depth20@100ms",
                "data": {"lastUpdateId": 1, "bids": [["1", "1"]], "asks": [["2", "1"]]},
            }
        )
        assert parse_depth_message(message, "ETH/USDC") is not None

    @pytest.mark.parametrize(
        "message",
        [
            "not json",
            json.dumps([1, 2]),
            json.dumps({"result": None, "id": 1}),
            json.dumps({"lastUpdateId": 1, "bids": [], "asks": [["2", "1"]]}),
            json.dumps({"lastUpdateId": 1, "bids": [["x", "1"]], "asks": [["2", "1"]]}),
            json.dumps({"lastUpdateId": 1, "bids": [["-1", "1"]], "asks": [["2", "1"]]}),
            json.dumps({"lastUpdateId": 1, "bids": [["1", "1"], ["1"]], "asks": [["2", "1"]]}),
            json.dumps({"lastUpdateId": "x", "bids": [["1", "1"]], "asks": [["2", "1"]]}),
            json.dumps({"lastUpdateId": 1, "bids": 5, "asks": [["2", "1"]]}),
            json.dumps({"data": 5}),
            json.dumps({"data": [1, 2]}),
        ],
    )
    def test_unusable_messages_ignored(self, message):
        assert parse_depth_message(message, "ETH/USDC") is None

    def test_stream_name(self):
        assert stream_name("ETH/USDC") == "ethusdc@depth20@100ms"
        assert DepthStream("ETH/USDT", "wss://example/ws/").url == (
            "wss://example/ws/ethusdt@depth20@100ms"
        )


class _FakeSocket:
    def __init__(self, messages):
        self._messages = list(messages)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._messages:
            raise StopAsyncIteration
        return self._messages.pop(0)


@pytest.mark.asyncio
async def test_depth_stream_skips_bad_frames_and_reconnects(monkeypatch):
    good = json.dumps({"lastUpdateId": 7, "bids": [["4225", "1"]], "asks": [["4226", "1"]]})
    connections = []

    def fake_connect(url):
        connections.append(url)
        if len(connections) == 1:
            raise OSError("refused")
        return _FakeSocket(['{"result":null,"id":1}', good])

    monkeypatch.setattr("exchange.orderbook_ws.websockets.connect", fake_connect)
    stream = DepthStream("ETH/USDC", "wss://example/ws", reconnect_delay=0)
    feed = stream.stream()
    book = await feed.__anext__()
    await feed.aclose()

    assert book.last_update_id == 7
    assert connections == ["wss://example/ws/ethusdc@depth20@100ms"] * 2
