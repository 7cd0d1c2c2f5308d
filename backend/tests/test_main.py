"""Tests for application wiring."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.main import build_engine
from app.models import Alert, AlertCondition, PriceTick, Signal, SignalType
from app.storage import AlertRepository, NotificationRepository, SignalRepository


class TestBuildEngine:
    """Tests for build_engine."""

    @pytest.fixture
    def repos(self):
        signal_repo = MagicMock(spec=SignalRepository)
        signal_repo.get_pending.return_value = [
            Signal(id="s1", symbol="ADAUSDT", type=SignalType.BUY, entry_price=0.5),
        ]
        alert_repo = MagicMock(spec=AlertRepository)
        alert_repo.get_all.return_value = [
            Alert(id="a1", symbol="btcusdt", condition=AlertCondition.ABOVE, threshold=50000.0),
        ]
        notification_repo = MagicMock(spec=NotificationRepository)
        return signal_repo, alert_repo, notification_repo

    @pytest.mark.asyncio
    async def test_loads_and_persists_through_repositories(self, repos):
        signal_repo, alert_repo, notification_repo = repos
        engine = build_engine(signal_repo, alert_repo, notification_repo)

        with patch.object(engine.feed, "start", AsyncMock()), \
             patch.object(engine.feed, "stop", AsyncMock()):
            await engine.start()
            try:
                assert {"ADA", "BTC"} <= engine.feed.symbols
                assert engine.feed.stream_name("ADA") == "adausdt@ticker"

                fired = engine.handle_tick(PriceTick.now("BTC", 60000.0))
                await engine.dispatcher.drain()
            finally:
                await engine.stop()

        assert [e.alert_id for e in fired] == ["a1"]
        signal_repo.get_pending.assert_awaited_once()
        alert_repo.get_all.assert_awaited_once()
        alert_repo.mark_triggered.assert_awaited_once()
        notification_repo.save.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_resolved_signal_written_once(self, repos):
        signal_repo, alert_repo, notification_repo = repos
        signal_repo.update_result.return_value = False
        engine = build_engine(signal_repo, alert_repo, notification_repo)

        with patch.object(engine.feed, "start", AsyncMock()), \
             patch.object(engine.feed, "stop", AsyncMock()):
            await engine.start()
            try:
                engine.handle_tick(PriceTick.now("ADA", 0.52))
                events = engine.run_validation_now()
                await engine.dispatcher.drain()
            finally:
                await engine.stop()

        assert [e.signal_id for e in events] == ["s1"]
        signal_repo.update_result.assert_awaited_once()
