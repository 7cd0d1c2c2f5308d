"""Data models (re-exported from core for the app layer)."""

from core.models import (
    DEFAULT_QUOTE_ASSET,
    Alert,
    AlertCondition,
    AlertFired,
    AlertKind,
    AlertPriority,
    AlertState,
    NotificationEvent,
    PriceTick,
    Signal,
    SignalAlreadyResolvedError,
    SignalResolved,
    SignalResult,
    SignalType,
    format_percent,
    normalize_symbol,
)

__all__ = [
    "DEFAULT_QUOTE_ASSET",
    "Alert",
    "AlertCondition",
    "AlertFired",
    "AlertKind",
    "AlertPriority",
    "AlertState",
    "NotificationEvent",
    "PriceTick",
    "Signal",
    "SignalAlreadyResolvedError",
    "SignalResolved",
    "SignalResult",
    "SignalType",
    "format_percent",
    "normalize_symbol",
]
