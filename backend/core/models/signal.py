"""Trading signal models."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from core.models.market import normalize_symbol


class SignalType(str, Enum):
    """Direction of a trading call."""

    BUY = "Buy"
    SELL = "Sell"


class SignalResult(str, Enum):
    """Resolution state of a signal."""

    PENDING = "Pending"
    SUCCESS = "Success"
    FAILURE = "Failure"


class SignalAlreadyResolvedError(ValueError):
    """Raised when a terminal signal is asked to change state again."""

    def __init__(self, signal_id: str, result: SignalResult):
        super().__init__(f"Signal {signal_id} is already resolved ({result.value})")
        self.signal_id = signal_id
        self.result = result


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Signal(BaseModel):
    """Trading signal awaiting confirmation by subsequent price movement.

    Created externally as Pending. The validation path moves it to
    Success or Failure exactly once; terminal states are never revisited.
    """

    id: str
    symbol: str
    type: SignalType
    entry_price: float = Field(gt=0)
    created_at: datetime = Field(default_factory=_utcnow)
    result: SignalResult = SignalResult.PENDING
    profit_percent: float | None = None
    updated_at: datetime | None = None

    @field_validator("symbol")
    @classmethod
    def _normalize_symbol(cls, value: str) -> str:
        return normalize_symbol(value)

    @property
    def is_pending(self) -> bool:
        return self.result == SignalResult.PENDING

    @property
    def is_terminal(self) -> bool:
        return self.result != SignalResult.PENDING

    def resolve(
        self,
        result: SignalResult,
        profit_percent: float,
        resolved_at: datetime | None = None,
    ) -> None:
        """Move a pending signal to a terminal state.

        Raises:
            SignalAlreadyResolvedError: If the signal is already terminal
            ValueError: If ``result`` is Pending
        """
        if self.is_terminal:
            raise SignalAlreadyResolvedError(self.id, self.result)
        if result == SignalResult.PENDING:
            raise ValueError("A signal can only be resolved to Success or Failure")

        self.result = result
        self.profit_percent = profit_percent
        self.updated_at = resolved_at or _utcnow()
