"""Signal resolution by percentage price move.

A pending signal is resolved once the latest price has moved at least
RESOLUTION_THRESHOLD_PERCENT away from its entry price:

    | type | change        | result  | profit     |
    |------|---------------|---------|------------|
    | Buy  | >= +threshold | Success | +change    |
    | Buy  | <= -threshold | Failure | change     |
    | Sell | <= -threshold | Success | +abs(change) |
    | Sell | >= +threshold | Failure | -change    |

Anything in between stays Pending.
"""

from collections.abc import Sequence
from dataclasses import dataclass

from core.models import Signal, SignalAlreadyResolvedError, SignalResult, SignalType

# Global policy constant, not configurable per signal or symbol
RESOLUTION_THRESHOLD_PERCENT = 2.0

# Observations needed before a decision is made
MIN_OBSERVATIONS = 2


@dataclass(frozen=True, slots=True)
class ValidationOutcome:
    """Result of validating one signal against a price history."""

    result: SignalResult
    profit_percent: float | None = None
    price: float | None = None
    change_percent: float | None = None

    @property
    def is_terminal(self) -> bool:
        return self.result != SignalResult.PENDING


PENDING = ValidationOutcome(SignalResult.PENDING)


def price_change_percent(entry_price: float, price: float) -> float:
    """Percentage move from ``entry_price`` to ``price``."""
    return (price - entry_price) / entry_price * 100


class SignalValidator:
    """Deterministic Pending -> Success/Failure decision for signals."""

    threshold_percent = RESOLUTION_THRESHOLD_PERCENT
    min_observations = MIN_OBSERVATIONS

    def validate(self, signal: Signal, history: Sequence[float]) -> ValidationOutcome:
        """Decide the signal's state from the symbol's price history.

        Does not modify the signal; the caller applies a terminal outcome.

        Raises:
            SignalAlreadyResolvedError: If the signal is already terminal
        """
        if signal.is_terminal:
            raise SignalAlreadyResolvedError(signal.id, signal.result)

        if len(history) < self.min_observations:
            return PENDING

        latest = history[-1]
        change = price_change_percent(signal.entry_price, latest)
        threshold = self.threshold_percent

        if signal.type == SignalType.BUY:
            if change >= threshold:
                return ValidationOutcome(SignalResult.SUCCESS, change, latest, change)
            if change <= -threshold:
                return ValidationOutcome(SignalResult.FAILURE, change, latest, change)
        else:
            if change <= -threshold:
                return ValidationOutcome(SignalResult.SUCCESS, abs(change), latest, change)
            if change >= threshold:
                return ValidationOutcome(SignalResult.FAILURE, -change, latest, change)

        return ValidationOutcome(SignalResult.PENDING, None, latest, change)
