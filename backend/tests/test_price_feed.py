"""Tests for the Binance price feed client."""

import asyncio
from unittest.mock import MagicMock, patch

import orjson
import pytest
from picows import WSMsgType

from app.clients.binance_ws_ticker import BinancePriceFeed, parse_tick
from app.models import Alert, AlertCondition, Signal, SignalType


async def wait_until(predicate, timeout: float = 1.0) -> None:
    """Poll until ``predicate()`` is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


class FakeVenue:
    """Stands in for ws_connect: records connections and subscriptions."""

    def __init__(self):
        self.listeners = []
        self.transports = []

    async def connect(self, listener_factory, url, **kwargs):
        listener = listener_factory()
        transport = MagicMock()
        transport.disconnect.side_effect = lambda: listener.on_ws_disconnected(transport)
        listener.on_ws_connected(transport)
        self.listeners.append(listener)
        self.transports.append(transport)
        return transport, listener

    def subscriptions(self) -> list[list[str]]:
        subs = []
        for transport in self.transports:
            if transport.send.call_args is None:
                continue
            subs.append(orjson.loads(transport.send.call_args.args[1])["params"])
        return subs

    def drop(self) -> None:
        """Simulate the venue closing the connection."""
        self.listeners[-1].on_ws_disconnected(self.transports[-1])

    def send_text(self, payload: dict) -> None:
        frame = MagicMock()
        frame.msg_type = WSMsgType.TEXT
        frame.get_payload_as_utf8_text.return_value = orjson.dumps(payload).decode()
        self.listeners[-1].on_ws_frame(self.transports[-1], frame)


def ticker(symbol: str, price: str) -> dict:
    return {"e": "24hrTicker", "E": 1700000000000, "s": symbol, "c": price}


class TestParseTick:
    """Tests for parse_tick."""

    def test_ticker_event(self):
        tick = parse_tick(ticker("BTCUSDT", "43000.50"))

        assert tick.symbol == "BTC"
        assert tick.price == 43000.5
        assert tick.observed_at.timestamp() == 1700000000

    def test_trade_event(self):
        tick = parse_tick({"e": "trade", "E": 1, "s": "ETHUSDT", "p": "3000.1", "T": 1700000001000})

        assert tick.symbol == "ETH"
        assert tick.price == 3000.1
        assert tick.observed_at.timestamp() == 1700000001

    def test_other_event(self):
        assert parse_tick({"e": "kline", "s": "BTCUSDT"}) is None

    def test_symbol_matches_models(self):
        """Ticks carry the same key the alert and signal models store."""
        tick = parse_tick(ticker("SOLUSDT", "150"))
        alert = Alert(id="a1", symbol="solusdt", condition=AlertCondition.ABOVE, threshold=100.0)
        signal = Signal(id="s1", symbol="SOL/USDT", type=SignalType.BUY, entry_price=150.0)

        assert tick.symbol == alert.symbol == signal.symbol == "SOL"
        assert BinancePriceFeed().stream_name(alert.symbol) == "solusdt@ticker"

    @pytest.mark.parametrize("payload", [
        ticker("BTCUSDT", "0"),
        ticker("BTCUSDT", "-1"),
        ticker("BTCUSDT", "nan"),
        ticker("BTCUSDT", "abc"),
        {"e": "24hrTicker", "s": "BTCUSDT"},
        ["not", "a", "dict"],
    ])
    def test_malformed(self, payload):
        with pytest.raises((KeyError, TypeError, ValueError)):
            parse_tick(payload)


class TestMessageHandling:
    """Tests for frame handling without a connection."""

    @pytest.fixture
    def feed(self):
        return BinancePriceFeed()

    def test_dispatch_to_listeners(self, feed):
        received = []
        feed.on_tick(received.append)
        feed.on_tick(received.append)  # duplicate ignored

        feed._handle_message(orjson.dumps(ticker("SOLUSDT", "150")).decode())

        assert [(t.symbol, t.price) for t in received] == [("SOL", 150.0)]
        assert feed.stats["ticks"] == 1

    def test_malformed_dropped(self, feed, caplog):
        received = []
        feed.on_tick(received.append)

        feed._handle_message("{not json")
        feed._handle_message(orjson.dumps(ticker("BTCUSDT", "-5")).decode())
        feed._handle_message(orjson.dumps(ticker("BTCUSDT", "100")).decode())

        assert len(received) == 1
        assert feed.stats["dropped"] == 2
        assert "Dropping malformed price message" in caplog.text

    def test_ack_ignored(self, feed):
        received = []
        feed.on_tick(received.append)

        feed._handle_message('{"result": null, "id": 1}')

        assert received == []
        assert feed.stats["dropped"] == 0

    def test_listener_error_isolated(self, feed):
        received = []

        def broken(tick):
            raise RuntimeError("listener bug")

        feed.on_tick(broken)
        feed.on_tick(received.append)
        feed._handle_message(orjson.dumps(ticker("BTCUSDT", "100")).decode())

        assert len(received) == 1

    def test_subscribe_normalizes(self, feed):
        assert feed.subscribe(["btc", "ETHUSDT", ""]) is True
        assert feed.symbols == {"BTC", "ETH"}
        assert feed.subscribe(["eth", "btcusdt"]) is False
        assert feed._stream_names() == ["btcusdt@ticker", "ethusdt@ticker"]

    def test_trade_channel(self):
        feed = BinancePriceFeed(channel="trade")
        assert feed.stream_name("BTC") == "btcusdt@trade"

    def test_unknown_channel(self):
        with pytest.raises(ValueError):
            BinancePriceFeed(channel="depth")


class TestConnectionLifecycle:
    """Tests for connect, reconnect and resubscribe against a fake venue."""

    @pytest.fixture
    def venue(self):
        return FakeVenue()

    @pytest.fixture
    def feed(self):
        feed = BinancePriceFeed()
        feed._reconnect_delay = 0.01
        return feed

    @pytest.mark.asyncio
    async def test_reconnect_resubscribes_same_set(self, feed, venue):
        received = []
        feed.on_tick(received.append)
        feed.subscribe(["btc", "eth"])

        with patch("app.clients.binance_ws_ticker.ws_connect", venue.connect):
            await feed.start()
            await wait_until(lambda: feed.is_connected)

            venue.drop()
            assert not feed.is_connected
            await wait_until(lambda: len(venue.transports) == 2 and feed.is_connected)

            assert venue.subscriptions() == [
                ["btcusdt@ticker", "ethusdt@ticker"],
                ["btcusdt@ticker", "ethusdt@ticker"],
            ]

            venue.send_text(ticker("ETHUSDT", "3100"))
            assert [(t.symbol, t.price) for t in received] == [("ETH", 3100.0)]

            await feed.stop()

        assert not feed.is_running
        assert feed.stats["connects"] == 2

    @pytest.mark.asyncio
    async def test_resubscribe_skips_delay(self, feed, venue):
        feed._reconnect_delay = 30
        feed.subscribe(["btc"])

        with patch("app.clients.binance_ws_ticker.ws_connect", venue.connect):
            await feed.start()
            await wait_until(lambda: feed.is_connected)

            assert feed.subscribe(["btc", "sol"]) is True
            await wait_until(lambda: len(venue.transports) == 2 and feed.is_connected)

            assert venue.subscriptions()[-1] == ["btcusdt@ticker", "solusdt@ticker"]
            venue.transports[0].send_close.assert_called_once()

            await feed.stop()

    @pytest.mark.asyncio
    async def test_idle_until_symbols(self, feed, venue):
        with patch("app.clients.binance_ws_ticker.ws_connect", venue.connect):
            await feed.start()
            await asyncio.sleep(0.05)
            assert venue.transports == []

            feed.subscribe(["sol"])
            await wait_until(lambda: feed.is_connected)
            assert venue.subscriptions() == [["solusdt@ticker"]]

            await feed.stop()

    @pytest.mark.asyncio
    async def test_stop_prevents_reconnect(self, feed, venue):
        feed.subscribe(["btc"])

        with patch("app.clients.binance_ws_ticker.ws_connect", venue.connect):
            await feed.start()
            await wait_until(lambda: feed.is_connected)
            await feed.stop()
            await asyncio.sleep(0.05)

        assert len(venue.transports) == 1
        assert not feed.is_connected
