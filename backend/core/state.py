"""Engine-owned mutable state.

One EngineState is created per engine instance and passed to the tick
handler and the validation scheduler. Both run on the same event loop and
only touch this state from synchronous code, so updates never interleave.
"""

from core.models import Alert, Signal
from core.price_history import PriceHistoryStore


class EngineState:
    """Price history, tracked alerts and pending signals."""

    def __init__(self, history: PriceHistoryStore | None = None):
        self.history = history or PriceHistoryStore()
        self._alerts: dict[str, Alert] = {}
        self._alerts_by_symbol: dict[str, dict[str, Alert]] = {}
        self._signals: dict[str, Signal] = {}

    # ---------- Alerts ----------

    def get_alert(self, alert_id: str) -> Alert | None:
        return self._alerts.get(alert_id)

    def put_alert(self, alert: Alert) -> None:
        """Insert or replace an alert, keeping the symbol index in sync."""
        previous = self._alerts.get(alert.id)
        if previous is not None and previous.symbol != alert.symbol:
            self._drop_from_index(previous)

        self._alerts[alert.id] = alert
        self._alerts_by_symbol.setdefault(alert.symbol, {})[alert.id] = alert

    def remove_alert(self, alert_id: str) -> Alert | None:
        alert = self._alerts.pop(alert_id, None)
        if alert is not None:
            self._drop_from_index(alert)
        return alert

    def alerts(self) -> list[Alert]:
        return list(self._alerts.values())

    def alerts_for(self, symbol: str) -> list[Alert]:
        """Alerts watching ``symbol`` (snapshot list)."""
        return list(self._alerts_by_symbol.get(symbol, {}).values())

    def _drop_from_index(self, alert: Alert) -> None:
        by_id = self._alerts_by_symbol.get(alert.symbol)
        if by_id is None:
            return
        by_id.pop(alert.id, None)
        if not by_id:
            del self._alerts_by_symbol[alert.symbol]

    # ---------- Signals ----------

    def get_signal(self, signal_id: str) -> Signal | None:
        return self._signals.get(signal_id)

    def put_signal(self, signal: Signal) -> None:
        self._signals[signal.id] = signal

    def remove_signal(self, signal_id: str) -> Signal | None:
        return self._signals.pop(signal_id, None)

    def tracked_signals(self) -> list[Signal]:
        """Every tracked signal (snapshot list).

        Only pending signals are ever put here; resolved ones are removed
        in the same step that resolves them.
        """
        return list(self._signals.values())

    def clear_signals(self) -> None:
        self._signals.clear()

    def rearm_alerts(self) -> None:
        """Clear every alert's fired state."""
        for alert in self._alerts.values():
            alert.rearm()

    # ---------- Whole state ----------

    def symbols(self) -> set[str]:
        """Symbols referenced by any tracked alert or signal."""
        symbols = set(self._alerts_by_symbol)
        symbols.update(signal.symbol for signal in self._signals.values())
        return symbols

    def reset(self) -> None:
        """Forget all transient state (history, alerts, signals)."""
        self.history.clear()
        self._alerts.clear()
        self._alerts_by_symbol.clear()
        self._signals.clear()

    @property
    def alert_count(self) -> int:
        return len(self._alerts)

    @property
    def signal_count(self) -> int:
        return len(self._signals)
