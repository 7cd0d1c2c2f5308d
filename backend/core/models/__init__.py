"""Engine data models."""

from core.models.market import DEFAULT_QUOTE_ASSET, PriceTick, normalize_symbol
from core.models.signal import (
    Signal,
    SignalAlreadyResolvedError,
    SignalResult,
    SignalType,
)
from core.models.alert import (
    Alert,
    AlertCondition,
    AlertKind,
    AlertPriority,
    AlertState,
)
from core.models.events import (
    AlertFired,
    NotificationEvent,
    SignalResolved,
    format_percent,
)

__all__ = [
    # Tick path (dataclass)
    "DEFAULT_QUOTE_ASSET",
    "PriceTick",
    "normalize_symbol",
    # Records (Pydantic)
    "Signal",
    "SignalAlreadyResolvedError",
    "SignalResult",
    "SignalType",
    "Alert",
    "AlertCondition",
    "AlertKind",
    "AlertPriority",
    "AlertState",
    # Transition events
    "AlertFired",
    "NotificationEvent",
    "SignalResolved",
    "format_percent",
]
