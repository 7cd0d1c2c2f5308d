"""Transition events handed to notification sinks.

Each event carries enough context for a human-readable notification.
"""

from dataclasses import dataclass
from datetime import datetime

from core.models.alert import AlertCondition, AlertKind, AlertPriority
from core.models.signal import SignalResult, SignalType


def format_percent(value: float) -> str:
    """Format a percentage with an explicit sign, e.g. "+2.35%"."""
    return f"{value:+.2f}%"


@dataclass(frozen=True, slots=True)
class SignalResolved:
    """A pending signal reached Success or Failure."""

    signal_id: str
    symbol: str
    signal_type: SignalType
    result: SignalResult
    profit_percent: float
    entry_price: float
    exit_price: float
    resolved_at: datetime

    @property
    def category(self) -> str:
        return "signal"

    @property
    def priority(self) -> AlertPriority:
        if self.result == SignalResult.SUCCESS:
            return AlertPriority.HIGH
        return AlertPriority.MEDIUM

    @property
    def title(self) -> str:
        return f"Signal {self.result.value}: {self.symbol} {self.signal_type.value}"

    @property
    def message(self) -> str:
        return (
            f"{self.symbol} {self.signal_type.value} signal {self.result.value.lower()} "
            f"with {format_percent(self.profit_percent)} profit"
        )

    def to_dict(self) -> dict:
        return {
            "signal_id": self.signal_id,
            "symbol": self.symbol,
            "signal_type": self.signal_type.value,
            "result": self.result.value,
            "profit_percent": self.profit_percent,
            "entry_price": self.entry_price,
            "exit_price": self.exit_price,
            "resolved_at": self.resolved_at.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class AlertFired:
    """An armed, active alert crossed its threshold."""

    alert_id: str
    symbol: str
    kind: AlertKind
    condition: AlertCondition
    threshold: float
    price: float
    priority: AlertPriority
    fired_at: datetime

    @property
    def category(self) -> str:
        return "price"

    @property
    def title(self) -> str:
        return f"Price Alert: {self.symbol}"

    @property
    def message(self) -> str:
        return (
            f"{self.symbol} is {self.condition.value} {self.threshold:g} "
            f"(last price {self.price:g})"
        )

    def to_dict(self) -> dict:
        return {
            "alert_id": self.alert_id,
            "symbol": self.symbol,
            "kind": self.kind.value,
            "condition": self.condition.value,
            "threshold": self.threshold,
            "price": self.price,
            "priority": self.priority.value,
            "fired_at": self.fired_at.isoformat(),
        }


NotificationEvent = SignalResolved | AlertFired
