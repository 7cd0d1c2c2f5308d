"""Binance WebSocket client for real-time spot prices using picows.

Keeps exactly one connection open for the current symbol set. Changing the
set tears the connection down and reconnects with the new subscription;
an unexpected disconnect is retried after a fixed delay, forever.
"""

import asyncio
import logging
import math
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Callable

import orjson
from picows import ws_connect, WSFrame, WSTransport, WSListener, WSMsgType, WSCloseCode

from core.models import DEFAULT_QUOTE_ASSET, PriceTick, normalize_symbol
from core.protocols import TickListener

logger = logging.getLogger(__name__)

# Binance stream suffix -> event type carried on that stream
# Every stream is quoted in the same asset the models strip from symbols
_STREAM_QUOTE = DEFAULT_QUOTE_ASSET.lower()

STREAM_EVENTS = {
    "ticker": "24hrTicker",
    "trade": "trade",
}


def parse_tick(data: dict) -> PriceTick | None:
    """Convert a Binance ticker or trade event into a PriceTick.

    Returns:
        PriceTick, or None for events that carry no price

    Raises:
        KeyError, TypeError, ValueError: If the payload is malformed
    """
    if not isinstance(data, dict):
        raise ValueError(f"unexpected payload type {type(data).__name__}")

    event = data.get("e")
    if event == "24hrTicker":
        price = float(data["c"])
        event_time = data["E"]
    elif event == "trade":
        price = float(data["p"])
        event_time = data["T"]
    else:
        return None

    if not math.isfinite(price) or price <= 0:
        raise ValueError(f"invalid price {price!r}")

    return PriceTick(
        symbol=normalize_symbol(data["s"]),
        price=price,
        observed_at=datetime.fromtimestamp(int(event_time) / 1000, tz=timezone.utc),
    )


class BinancePriceListener(WSListener):
    """picows listener for one Binance price stream connection."""

    def __init__(
        self,
        get_streams: Callable[[], list[str]],
        on_message: Callable[[str], None],
        on_connected: Callable[[], None],
        on_disconnected: Callable[[], None],
    ):
        self._get_streams = get_streams
        self._on_message = on_message
        self._on_connected = on_connected
        self._on_disconnected = on_disconnected
        self._transport: WSTransport | None = None

    def on_ws_connected(self, transport: WSTransport):
        """Called when WebSocket connection is established."""
        self._transport = transport
        logger.info("picows: price WebSocket connected")

        # Streams are read at connect time so a resubscribe racing the
        # handshake still gets the latest set
        streams = self._get_streams()
        if streams:
            self._send_subscribe(streams)

        self._on_connected()

    def on_ws_disconnected(self, transport: WSTransport):
        """Called when WebSocket is disconnected."""
        logger.info("picows: price WebSocket disconnected")
        self._transport = None
        self._on_disconnected()

    def on_ws_frame(self, transport: WSTransport, frame: WSFrame):
        """Called when a new frame is received."""
        if frame.msg_type == WSMsgType.TEXT:
            self._on_message(frame.get_payload_as_utf8_text())
        elif frame.msg_type == WSMsgType.PING:
            transport.send_pong(frame.get_payload_as_bytes())

    def _send_subscribe(self, streams: list[str]) -> None:
        """Send subscription request."""
        if not self._transport:
            return

        msg = {
            "method": "SUBSCRIBE",
            "params": streams,
            "id": int(datetime.now().timestamp() * 1000),
        }
        self._transport.send(WSMsgType.TEXT, orjson.dumps(msg))
        logger.info(f"Subscribed to price streams: {streams}")

    def disconnect(self) -> None:
        """Disconnect the WebSocket."""
        if self._transport:
            self._transport.send_close(WSCloseCode.OK)
            self._transport.disconnect()


class BinancePriceFeed:
    """Streaming price client for Binance spot ticker or trade streams."""

    WS_URL = "wss://stream.binance.com:9443/ws"
    # Fixed, no backoff: the venue is treated as always eventually available
    RECONNECT_DELAY = 5.0

    def __init__(
        self,
        url: str | None = None,
        channel: str = "ticker",
    ):
        if channel not in STREAM_EVENTS:
            raise ValueError(f"Unsupported price channel: {channel}")

        self._url = url or self.WS_URL
        self._channel = channel
        self._listeners: list[TickListener] = []
        self._symbols: frozenset[str] = frozenset()
        self._running = False
        self._reconnect_delay = self.RECONNECT_DELAY
        self._restart_requested = False
        self._task: asyncio.Task | None = None
        self._listener: BinancePriceListener | None = None
        self._connected = asyncio.Event()
        self._disconnected = asyncio.Event()
        self._symbols_changed = asyncio.Event()

        self._tick_count = 0
        self._dropped_count = 0
        self._connect_count = 0

    def on_tick(self, callback: TickListener) -> None:
        """Register a tick listener.

        Listeners are called synchronously, in registration order, before
        the next message is processed. They must not block.
        Duplicate callbacks are ignored.
        """
        if callback not in self._listeners:
            self._listeners.append(callback)

    def off_tick(self, callback: TickListener) -> None:
        """Unregister a tick listener."""
        if callback in self._listeners:
            self._listeners.remove(callback)

    def subscribe(self, symbols: Iterable[str]) -> bool:
        """Replace the subscribed symbol set.

        A different set restarts the connection with the new subscription;
        the same set is a no-op.

        Returns:
            True if the symbol set changed
        """
        new_symbols = frozenset(
            normalize_symbol(s) for s in symbols if s
        )
        if new_symbols == self._symbols:
            return False

        self._symbols = new_symbols
        logger.info(f"Price feed symbols changed: {sorted(new_symbols)}")

        if self._listener and self._connected.is_set():
            self._restart_requested = True
            self._listener.disconnect()

        self._symbols_changed.set()
        return True

    def stream_name(self, symbol: str) -> str:
        """Binance stream name for a base-asset symbol, e.g. "btcusdt@ticker"."""
        return f"{symbol.lower()}{_STREAM_QUOTE}@{self._channel}"

    def _stream_names(self) -> list[str]:
        return [self.stream_name(s) for s in sorted(self._symbols)]

    @property
    def symbols(self) -> frozenset[str]:
        return self._symbols

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def stats(self) -> dict:
        return {
            "connected": self.is_connected,
            "symbols": sorted(self._symbols),
            "ticks": self._tick_count,
            "dropped": self._dropped_count,
            "connects": self._connect_count,
        }

    async def start(self) -> None:
        """Start the WebSocket connection and message processing."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the WebSocket connection."""
        self._running = False
        self._symbols_changed.set()
        if self._listener:
            self._listener.disconnect()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._connected.clear()

    def _on_connected(self) -> None:
        """Called when connection is established."""
        self._connect_count += 1
        self._connected.set()
        self._disconnected.clear()

    def _on_disconnected(self) -> None:
        """Called when connection is lost."""
        self._connected.clear()
        self._disconnected.set()

    def _handle_message(self, message: str) -> None:
        """Parse one text frame and dispatch the tick to every listener."""
        try:
            data = orjson.loads(message)

            if isinstance(data, dict):
                if "error" in data:
                    logger.error(f"Price feed error response: {data['error']}")
                    return
                # Ignore subscription confirmations
                if "result" in data or "id" in data:
                    return

            tick = parse_tick(data)
        except (KeyError, TypeError, ValueError) as e:
            # orjson.JSONDecodeError is a ValueError
            self._dropped_count += 1
            logger.warning(f"Dropping malformed price message: {e!r}")
            return

        if tick is None:
            return

        self._tick_count += 1
        for callback in list(self._listeners):
            try:
                callback(tick)
            except Exception as e:
                logger.error(f"Price tick listener error: {e}")

    async def _run(self) -> None:
        """Main WebSocket loop with reconnection."""
        while self._running:
            if not self._symbols:
                self._symbols_changed.clear()
                logger.info("Price feed idle: no symbols to subscribe")
                await self._symbols_changed.wait()
                continue

            self._restart_requested = False
            try:
                await self._connect_and_process()
            except Exception as e:
                logger.error(f"picows price feed error: {e}")

            # stop() may have been called while we were connected
            if not self._running:
                break

            if self._restart_requested:
                logger.info("Resubscribing price feed with new symbol set")
                continue

            logger.info(
                f"Reconnecting price feed in {self._reconnect_delay} seconds..."
            )
            await asyncio.sleep(self._reconnect_delay)

    async def _connect_and_process(self) -> None:
        """Connect to WebSocket and wait for disconnection."""
        self._disconnected.clear()

        def listener_factory():
            self._listener = BinancePriceListener(
                get_streams=self._stream_names,
                on_message=self._handle_message,
                on_connected=self._on_connected,
                on_disconnected=self._on_disconnected,
            )
            return self._listener

        logger.info(f"Connecting price feed to {self._url}")
        try:
            await ws_connect(
                listener_factory,
                self._url,
                enable_auto_ping=True,
                auto_ping_idle_timeout=30,
                auto_ping_reply_timeout=10,
            )

            # Wait until disconnected
            await self._disconnected.wait()
        finally:
            self._listener = None
            self._connected.clear()
