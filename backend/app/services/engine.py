"""Market engine: wires the price feed to alert evaluation and signal validation.

The engine owns one EngineState. Ticks from the feed are appended to price
history and evaluated against the alerts watching that symbol, all in the
feed's receive callback. Pending signals are resolved by the
ValidationScheduler on its own cadence. Every transition goes to the
NotificationDispatcher exactly once.
"""

import logging
from collections.abc import Iterable

from app.clients import BinancePriceFeed
from app.models import Alert, AlertFired, PriceTick, Signal, SignalAlreadyResolvedError, SignalResolved
from app.services.notifier import NotificationDispatcher
from app.services.scheduler import VALIDATION_INTERVAL, ValidationScheduler
from core.alert_evaluator import AlertEvaluator
from core.models import normalize_symbol
from core.protocols import LoadAlertsCallback, LoadSignalsCallback
from core.state import EngineState

logger = logging.getLogger(__name__)


class MarketEngine:
    """Real-time signal validation and alert engine.

    Usage:
        engine = MarketEngine(feed, dispatcher, load_signals=repo.get_pending)
        await engine.start()
        engine.track_alert(alert)
        ...
        await engine.stop()
    """

    def __init__(
        self,
        feed: BinancePriceFeed,
        dispatcher: NotificationDispatcher | None = None,
        state: EngineState | None = None,
        load_signals: LoadSignalsCallback | None = None,
        load_alerts: LoadAlertsCallback | None = None,
        watch_symbols: Iterable[str] = (),
        strict: bool = False,
        validation_interval: float = VALIDATION_INTERVAL,
    ):
        """
        Args:
            feed: Streaming price client
            dispatcher: Notification dispatcher (a sink-less one by default)
            state: Engine state (for testing)
            load_signals: Returns the pending signals to track on start
            load_alerts: Returns the alerts to track on start
            watch_symbols: Symbols to stream even with nothing tracked
            strict: Raise on invariant violations instead of logging them
            validation_interval: Seconds between validation cycles
        """
        self.feed = feed
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.state = state or EngineState()
        self._load_signals = load_signals
        self._load_alerts = load_alerts
        self._watch_symbols = frozenset(normalize_symbol(s) for s in watch_symbols if s)
        self._strict = strict
        self._evaluator = AlertEvaluator()
        self.scheduler = ValidationScheduler(
            self.state,
            self.dispatcher,
            interval=validation_interval,
            strict=strict,
        )
        self._running = False
        self._alerts_fired = 0

    @property
    def is_running(self) -> bool:
        return self._running

    # ---------- Lifecycle ----------

    async def start(self) -> None:
        """Load definitions, connect the feed and start validation."""
        if self._running:
            return

        await self._load_definitions()

        self.feed.on_tick(self.handle_tick)
        self._refresh_subscription()
        await self.feed.start()
        await self.scheduler.start()

        self._running = True
        logger.info(
            f"Market engine started: {self.state.signal_count} signals, "
            f"{self.state.alert_count} alerts, symbols={sorted(self.feed.symbols)}"
        )

    async def stop(self) -> None:
        """Stop validation and the feed, then discard all session state."""
        if not self._running:
            return

        self._running = False
        await self.scheduler.stop()
        await self.feed.stop()
        self.feed.off_tick(self.handle_tick)
        await self.dispatcher.drain()
        self.state.reset()
        logger.info("Market engine stopped")

    async def _load_definitions(self) -> None:
        if self._load_signals is not None:
            loaded = 0
            for signal in await self._load_signals():
                if signal.is_terminal:
                    logger.warning(f"Skipping resolved signal {signal.id} returned as pending")
                    continue
                self._put_signal(signal)
                loaded += 1
            logger.info(f"Loaded {loaded} pending signals")

        if self._load_alerts is not None:
            alerts = await self._load_alerts()
            for alert in alerts:
                self.state.put_alert(alert)
            logger.info(f"Loaded {len(alerts)} alerts")

    # ---------- Tick path ----------

    def handle_tick(self, tick: PriceTick) -> list[AlertFired]:
        """Record a tick and fire any alert whose condition it satisfies.

        Runs synchronously on the feed's receive path.
        """
        self.state.history.append(tick.symbol, tick.price)

        fired: list[AlertFired] = []
        for alert in self.state.alerts_for(tick.symbol):
            event = self._evaluator.evaluate(alert, tick)
            if event is None:
                continue
            self._alerts_fired += 1
            self.dispatcher.alert_fired(alert.model_copy(), event)
            fired.append(event)
        return fired

    # ---------- Signals ----------

    def track_signal(self, signal: Signal) -> bool:
        """Start tracking a pending signal.

        A symbol with no price yet gets the entry price as its first
        observation, so one later tick is enough for a decision. A symbol
        that already has history keeps only the prices the market printed.

        Returns:
            False if the signal was already tracked

        Raises:
            SignalAlreadyResolvedError: If the signal is terminal
        """
        if signal.is_terminal:
            raise SignalAlreadyResolvedError(signal.id, signal.result)
        if self.state.get_signal(signal.id) is not None:
            return False

        self._put_signal(signal)
        self._refresh_subscription()
        logger.info(f"Tracking {signal.type.value} signal {signal.id} on {signal.symbol} @ {signal.entry_price:g}")
        return True

    def _put_signal(self, signal: Signal) -> None:
        self.state.put_signal(signal)
        if self.state.history.latest(signal.symbol) is None:
            self.state.history.append(signal.symbol, signal.entry_price)

    def untrack_signal(self, signal_id: str) -> Signal | None:
        signal = self.state.remove_signal(signal_id)
        if signal is not None:
            self._refresh_subscription()
            logger.info(f"Stopped tracking signal {signal_id}")
        return signal

    def run_validation_now(self) -> list[SignalResolved]:
        """Run one validation cycle immediately."""
        return self.scheduler.run_cycle()

    # ---------- Alerts ----------

    def track_alert(self, alert: Alert) -> Alert:
        """Add or replace an alert definition.

        Replacing a known alert keeps its fired state unless the update
        re-arms it (inactive -> active).

        Returns:
            The tracked alert
        """
        previous = self.state.get_alert(alert.id)
        if previous is not None and previous.active and alert.active:
            alert.state = previous.state
            alert.fired_at = previous.fired_at

        self.state.put_alert(alert)
        self._refresh_subscription()
        return alert

    def untrack_alert(self, alert_id: str) -> Alert | None:
        alert = self.state.remove_alert(alert_id)
        if alert is not None:
            self._refresh_subscription()
        return alert

    def set_alert_active(self, alert_id: str, active: bool) -> Alert | None:
        """Toggle an alert. Turning it back on re-arms it.

        Returns:
            The updated alert, or None if it is not tracked
        """
        alert = self.state.get_alert(alert_id)
        if alert is None:
            return None

        if alert.set_active(active):
            logger.info(f"Alert {alert_id} re-armed")
        return alert

    # ---------- Subscription ----------

    def _refresh_subscription(self) -> None:
        self.feed.subscribe(self._watch_symbols | self.state.symbols())

    @property
    def stats(self) -> dict:
        return {
            "running": self._running,
            "strict": self._strict,
            "signals": self.state.signal_count,
            "alerts": self.state.alert_count,
            "alerts_fired": self._alerts_fired,
            "history_symbols": len(self.state.history),
            "feed": self.feed.stats,
            "scheduler": self.scheduler.stats,
            "dispatcher": self.dispatcher.stats,
        }
