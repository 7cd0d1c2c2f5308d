"""Tests for the REST API."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api import routes
from app.api.websocket import websocket_endpoint
from app.clients import BinancePriceFeed
from app.models import PriceTick, Signal, SignalResult, SignalType
from app.services.engine import MarketEngine
from app.storage import price_cache


@pytest.fixture
def engine():
    return MarketEngine(BinancePriceFeed(), MagicMock(), watch_symbols=["BTC"])


@pytest.fixture
def signal_repo():
    repo = MagicMock()
    repo.save = AsyncMock(return_value=True)
    repo.get_by_id = AsyncMock(return_value=None)
    repo.get_recent = AsyncMock(return_value=[])
    repo.get_stats = AsyncMock(return_value={"success_count": 0})
    return repo


@pytest.fixture
def alert_repo():
    repo = MagicMock()
    repo.save = AsyncMock()
    repo.set_active = AsyncMock(return_value=True)
    repo.delete = AsyncMock(return_value=True)
    return repo


@pytest.fixture
def notification_repo():
    repo = MagicMock()
    repo.get_recent = AsyncMock(return_value=[])
    repo.mark_read = AsyncMock(return_value=False)
    repo.mark_all_read = AsyncMock(return_value=3)
    return repo


@pytest.fixture
def client(engine, signal_repo, alert_repo, notification_repo):
    app = FastAPI()
    app.include_router(routes.router, prefix="/api")
    app.websocket("/ws")(websocket_endpoint)
    app.state.engine = engine
    app.dependency_overrides[routes.get_signal_repo] = lambda: signal_repo
    app.dependency_overrides[routes.get_alert_repo] = lambda: alert_repo
    app.dependency_overrides[routes.get_notification_repo] = lambda: notification_repo
    price_cache.clear()
    return TestClient(app)


class TestSignalRoutes:
    """Tests for signal endpoints."""

    def test_create_tracks_signal(self, client, engine, signal_repo):
        response = client.post(
            "/api/signals",
            json={"id": "s1", "symbol": "ethusdt", "type": "Buy", "entry_price": 3000},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["symbol"] == "ETH"
        assert body["result"] == "Pending"
        assert body["tracked"] is True
        signal_repo.save.assert_awaited_once()
        assert engine.state.get_signal("s1") is not None
        assert "ETH" in engine.feed.symbols

    def test_create_invalid_body(self, client):
        response = client.post("/api/signals", json={"symbol": "BTC", "type": "Hold", "entry_price": 1})
        assert response.status_code == 422

    def test_create_over_resolved_signal(self, client, signal_repo):
        done = Signal(id="s1", symbol="BTC", type=SignalType.BUY, entry_price=100.0)
        done.resolve(SignalResult.SUCCESS, 2.0)
        signal_repo.get_by_id.return_value = done

        response = client.post(
            "/api/signals",
            json={"id": "s1", "symbol": "BTC", "type": "Buy", "entry_price": 100},
        )

        assert response.status_code == 409
        signal_repo.save.assert_not_called()

    def test_create_over_pending_signal(self, client, engine, signal_repo):
        stored = Signal(id="x", symbol="BTC", type=SignalType.BUY, entry_price=100.0)
        signal_repo.get_by_id.return_value = stored

        response = client.post(
            "/api/signals",
            json={"id": "x", "symbol": "BTC", "type": "Buy", "entry_price": 150},
        )

        assert response.status_code == 409
        signal_repo.save.assert_not_called()
        assert engine.state.get_signal("x") is None

    def test_create_loses_insert_race(self, client, engine, signal_repo):
        signal_repo.save.return_value = False

        response = client.post(
            "/api/signals",
            json={"id": "x", "symbol": "BTC", "type": "Buy", "entry_price": 150},
        )

        assert response.status_code == 409
        assert engine.state.get_signal("x") is None

    def test_track_stored_signal(self, client, engine, signal_repo):
        signal_repo.get_by_id.return_value = Signal(
            id="x", symbol="BTC", type=SignalType.BUY, entry_price=100.0
        )

        response = client.post("/api/signals/x/track")

        assert response.status_code == 200
        assert response.json()["entry_price"] == 100.0
        assert engine.state.get_signal("x").entry_price == 100.0

    def test_track_resolved_signal(self, client, signal_repo):
        done = Signal(id="s1", symbol="BTC", type=SignalType.SELL, entry_price=100.0)
        done.resolve(SignalResult.FAILURE, -2.0)
        signal_repo.get_by_id.return_value = done

        assert client.post("/api/signals/s1/track").status_code == 409

    def test_track_missing_signal(self, client):
        assert client.post("/api/signals/missing/track").status_code == 404

    def test_list_tracked(self, client, engine):
        engine.track_signal(Signal(id="s1", symbol="BTC", type=SignalType.BUY, entry_price=100.0))

        body = client.get("/api/signals", params={"tracked": True}).json()
        assert [s["id"] for s in body] == ["s1"]

    def test_untrack(self, client, engine):
        engine.track_signal(Signal(id="s1", symbol="BTC", type=SignalType.BUY, entry_price=100.0))

        assert client.delete("/api/signals/s1").status_code == 200
        assert engine.state.signal_count == 0
        assert client.delete("/api/signals/s1").status_code == 404

    def test_validate_now(self, client, engine):
        engine.track_signal(Signal(id="s1", symbol="BTC", type=SignalType.BUY, entry_price=100.0))
        engine.state.history.append("BTC", 97.5)

        body = client.post("/api/signals/validate").json()

        assert body[0]["id"] == "s1"
        assert body[0]["result"] == "Failure"
        assert body[0]["profit_percent"] == pytest.approx(-2.5)


class TestAlertRoutes:
    """Tests for alert endpoints."""

    def test_create_and_toggle(self, client, engine, alert_repo):
        response = client.post(
            "/api/alerts",
            json={"id": "a1", "symbol": "sol", "condition": "above", "threshold": 150, "priority": "high"},
        )
        assert response.status_code == 201
        assert response.json()["state"] == "armed"
        alert_repo.save.assert_awaited_once()

        engine.handle_tick(PriceTick.now("SOL", 151.0))
        assert client.get("/api/alerts").json()[0]["state"] == "fired"

        assert client.patch("/api/alerts/a1", json={"active": False}).json()["active"] is False
        body = client.patch("/api/alerts/a1", json={"active": True}).json()
        assert body["state"] == "armed"
        alert_repo.set_active.assert_awaited_with("a1", True)

    def test_toggle_unknown(self, client):
        assert client.patch("/api/alerts/missing", json={"active": True}).status_code == 404

    def test_delete(self, client, engine, alert_repo):
        client.post("/api/alerts", json={"id": "a1", "symbol": "BTC", "condition": "below", "threshold": 1})

        assert client.delete("/api/alerts/a1").status_code == 200
        assert engine.state.alert_count == 0

        alert_repo.delete.return_value = False
        assert client.delete("/api/alerts/a1").status_code == 404


class TestOtherRoutes:
    """Tests for status, prices and notifications."""

    def test_status(self, client, engine):
        body = client.get("/api/status").json()

        assert body["status"] == "stopped"
        assert body["tracked_signals"] == 0
        assert "feed" in body["engine"]

    def test_price(self, client, engine):
        engine.state.history.append("BTC", 64000.0)
        engine.state.history.append("BTC", 64100.0)

        body = client.get("/api/prices/btcusdt").json()
        assert body["symbol"] == "BTC"
        assert body["latest"] == 64100.0
        assert body["history"] == [64000.0, 64100.0]

    def test_all_prices(self, client, engine):
        engine.track_signal(Signal(id="s1", symbol="ETH", type=SignalType.BUY, entry_price=10.0))
        price_cache.record_price("ETH", 11.0, timestamp=5.0)

        body = client.get("/api/prices").json()
        assert body == {"BTC": None, "ETH": {"price": 11.0, "timestamp": 5.0}}

    def test_unknown_price(self, client):
        assert client.get("/api/prices/doge").status_code == 404

    def test_notifications(self, client, notification_repo):
        assert client.get("/api/notifications").json() == []
        assert client.post("/api/notifications/n1/read").status_code == 404
        assert client.post("/api/notifications/read-all").json() == {"updated": 3}

    def test_engine_missing(self, client):
        client.app.state.engine = None
        assert client.get("/api/status").status_code == 503


class TestWebSocket:
    """Tests for the /ws endpoint."""

    def test_subscribe_and_ping(self, client):
        with client.websocket_connect("/ws") as ws:
            assert ws.receive_json()["type"] == "connected"

            ws.send_json({"type": "subscribe", "data": {"symbols": ["btcusdt", "eth"]}})
            reply = ws.receive_json()
            assert reply["type"] == "subscribed"
            assert reply["data"]["symbols"] == ["BTC", "ETH"]

            ws.send_json({"type": "ping"})
            assert ws.receive_json()["type"] == "pong"

            ws.send_text("not json")
            assert ws.receive_json()["data"]["message"] == "Invalid JSON"
