"""Interfaces between the engine and its collaborators.

This module provides:
- NotificationSink: Runtime-checkable Protocol for notification outputs
- Type aliases for the callbacks the engine consumes
"""

from __future__ import annotations

from typing import Awaitable, Callable, Protocol, runtime_checkable

from core.models import Alert, NotificationEvent, PriceTick, Signal


# ---------------------------------------------------------------------------
# Callback type aliases
# ---------------------------------------------------------------------------
# Tick listeners run synchronously on the feed's receive path and must not block
TickListener = Callable[[PriceTick], None]
PersistSignalCallback = Callable[[Signal], Awaitable[None]]
PersistAlertCallback = Callable[[Alert], Awaitable[None]]
LoadSignalsCallback = Callable[[], Awaitable[list[Signal]]]
LoadAlertsCallback = Callable[[], Awaitable[list[Alert]]]


# ---------------------------------------------------------------------------
# NotificationSink Protocol
# ---------------------------------------------------------------------------
@runtime_checkable
class NotificationSink(Protocol):
    """Receives signal and alert transitions.

    Sinks do no deduplication; the engine calls ``notify`` exactly once
    per transition.
    """

    async def notify(self, event: NotificationEvent) -> None:
        """Deliver one transition event."""
        ...
