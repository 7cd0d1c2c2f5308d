"""WebSocket endpoint for notification broadcast."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

import orjson
from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from app.models import NotificationEvent, normalize_symbol

logger = logging.getLogger(__name__)


def _orjson_dumps(obj: Any) -> str:
    """Serialize object to JSON string using orjson."""
    return orjson.dumps(obj, default=str).decode("utf-8")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WebSocketMessage(BaseModel):
    """WebSocket message format."""

    type: str  # "notification", "ping", "pong", "subscribed", "error"
    data: dict[str, Any]
    timestamp: datetime

    def to_json(self) -> str:
        return _orjson_dumps(self.model_dump())


class ConnectionManager:
    """Manage WebSocket connections and broadcasts.

    Each connection may narrow notifications to a set of symbols with a
    ``subscribe`` message; an empty set receives everything.
    """

    def __init__(self):
        self._connections: dict[WebSocket, set[str]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket) -> None:
        """Accept a new WebSocket connection."""
        await websocket.accept()
        async with self._lock:
            self._connections[websocket] = set()
        logger.info(f"WebSocket connected. Total connections: {len(self._connections)}")

    async def disconnect(self, websocket: WebSocket) -> None:
        """Remove a disconnected WebSocket."""
        async with self._lock:
            self._connections.pop(websocket, None)
        logger.info(f"WebSocket disconnected. Total connections: {len(self._connections)}")

    def set_symbols(self, websocket: WebSocket, symbols: list[str]) -> set[str]:
        """Replace the symbol filter of one connection."""
        wanted = {normalize_symbol(s) for s in symbols if isinstance(s, str) and s}
        if websocket in self._connections:
            self._connections[websocket] = wanted
        return wanted

    async def broadcast(self, message: WebSocketMessage, symbol: str | None = None) -> int:
        """Send a message to every client whose filter accepts ``symbol``.

        Returns:
            Number of clients the message was sent to
        """
        if not self._connections:
            return 0

        message_text = message.to_json()
        disconnected = []
        sent = 0

        async with self._lock:
            for websocket, symbols in self._connections.items():
                if symbol is not None and symbols and symbol not in symbols:
                    continue
                try:
                    await websocket.send_text(message_text)
                    sent += 1
                except Exception as e:
                    logger.warning(f"Failed to send message: {e}")
                    disconnected.append(websocket)

            for ws in disconnected:
                self._connections.pop(ws, None)

        return sent

    async def send_notification(self, event: NotificationEvent) -> int:
        """Broadcast a signal resolution or fired alert."""
        message = WebSocketMessage(
            type="notification",
            data={
                "title": event.title,
                "message": event.message,
                "category": event.category,
                "priority": event.priority.value,
                "data": event.to_dict(),
            },
            timestamp=_utcnow(),
        )
        return await self.broadcast(message, symbol=event.symbol)

    @property
    def connection_count(self) -> int:
        return len(self._connections)


# Global connection manager
manager = ConnectionManager()


async def _send(websocket: WebSocket, msg_type: str, data: dict | None = None) -> None:
    """Send one message directly to a single client."""
    await websocket.send_text(
        WebSocketMessage(type=msg_type, data=data or {}, timestamp=_utcnow()).to_json()
    )


async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for notifications.

    Messages sent to clients:
    - notification: Signal resolved or alert fired
    - ping: Keepalive after 60 s of client silence

    Client messages:
    - {"type": "ping"}
    - {"type": "subscribe", "data": {"symbols": ["BTC", ...]}} (empty list = all)
    """
    await manager.connect(websocket)

    try:
        await _send(websocket, "connected", {"message": "Connected to Signal Watch"})

        while True:
            try:
                data = await asyncio.wait_for(websocket.receive_text(), timeout=60.0)
            except asyncio.TimeoutError:
                await _send(websocket, "ping")
                continue

            try:
                message = orjson.loads(data)
            except orjson.JSONDecodeError:
                await _send(websocket, "error", {"message": "Invalid JSON"})
                continue

            await handle_client_message(websocket, message)

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
    finally:
        await manager.disconnect(websocket)


async def handle_client_message(websocket: WebSocket, message: dict) -> None:
    """Handle incoming message from client."""
    if not isinstance(message, dict):
        await _send(websocket, "error", {"message": "Expected a JSON object"})
        return

    msg_type = message.get("type", "")
    if msg_type == "ping":
        await _send(websocket, "pong")
    elif msg_type == "subscribe":
        data = message.get("data")
        symbols = data.get("symbols", []) if isinstance(data, dict) else []
        wanted = manager.set_symbols(websocket, symbols if isinstance(symbols, list) else [])
        await _send(websocket, "subscribed", {"symbols": sorted(wanted)})
    else:
        await _send(websocket, "error", {"message": f"Unknown message type: {msg_type}"})
