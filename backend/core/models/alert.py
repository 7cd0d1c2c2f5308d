"""User-defined alert models."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from core.models.market import normalize_symbol


class AlertKind(str, Enum):
    """What an alert watches."""

    PRICE = "price"
    VOLUME = "volume"
    TREND = "trend"


class AlertCondition(str, Enum):
    """Side of the threshold that triggers the alert."""

    ABOVE = "above"
    BELOW = "below"


class AlertPriority(str, Enum):
    """Notification priority."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AlertState(str, Enum):
    """Fire-once lifecycle within one active session."""

    ARMED = "armed"
    FIRED = "fired"


class Alert(BaseModel):
    """Alert definition plus its fire-once state.

    An alert fires at most once per active session. Toggling ``active``
    off and back on starts a new session and re-arms it.
    """

    id: str
    symbol: str
    kind: AlertKind = AlertKind.PRICE
    condition: AlertCondition
    threshold: float
    active: bool = True
    priority: AlertPriority = AlertPriority.MEDIUM
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    state: AlertState = AlertState.ARMED
    fired_at: datetime | None = None

    @field_validator("symbol")
    @classmethod
    def _normalize_symbol(cls, value: str) -> str:
        return normalize_symbol(value)

    @property
    def is_armed(self) -> bool:
        return self.state == AlertState.ARMED

    def mark_fired(self, fired_at: datetime) -> None:
        """Record that the alert fired in the current session."""
        self.state = AlertState.FIRED
        self.fired_at = fired_at

    def rearm(self) -> None:
        """Start a new session: the alert may fire again."""
        self.state = AlertState.ARMED
        self.fired_at = None

    def set_active(self, active: bool) -> bool:
        """Update the active flag.

        Returns:
            True if the change re-armed the alert (inactive -> active)
        """
        if active == self.active:
            return False

        self.active = active
        if active:
            self.rearm()
            return True
        return False
