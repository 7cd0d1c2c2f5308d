"""Delivery of signal and alert transitions.

The tick path and the validation cycle hand each transition to the
NotificationDispatcher exactly once. Delivery (persistence callback, then
every sink) runs in its own task so slow I/O never delays the next tick.
Failures are logged and counted; they are not retried and never roll back
the in-memory state that produced the transition.
"""

import asyncio
import logging
from typing import TYPE_CHECKING

from app.models import Alert, AlertFired, NotificationEvent, Signal, SignalResolved
from app.storage import NotificationRepository
from core.protocols import NotificationSink, PersistAlertCallback, PersistSignalCallback

if TYPE_CHECKING:
    from app.api.websocket import ConnectionManager

logger = logging.getLogger(__name__)


class StoredNotificationSink:
    """Write each transition to the notifications table."""

    def __init__(self, repo: NotificationRepository | None = None):
        self.repo = repo or NotificationRepository()

    async def notify(self, event: NotificationEvent) -> None:
        await self.repo.save(event)


class BroadcastNotificationSink:
    """Push each transition to connected WebSocket clients."""

    def __init__(self, manager: "ConnectionManager"):
        self.manager = manager

    async def notify(self, event: NotificationEvent) -> None:
        await self.manager.send_notification(event)


class NotificationDispatcher:
    """Fan transitions out to the persistence callbacks and sinks."""

    def __init__(
        self,
        sinks: list[NotificationSink] | None = None,
        persist_signal: PersistSignalCallback | None = None,
        persist_alert: PersistAlertCallback | None = None,
    ):
        self._sinks: list[NotificationSink] = list(sinks or [])
        self._persist_signal = persist_signal
        self._persist_alert = persist_alert
        self._tasks: set[asyncio.Task] = set()
        self._delivered = 0
        self._failed = 0

    def add_sink(self, sink: NotificationSink) -> None:
        """Register a sink. Duplicate sinks are ignored."""
        if sink not in self._sinks:
            self._sinks.append(sink)

    def signal_resolved(self, signal: Signal, event: SignalResolved) -> asyncio.Task:
        """Schedule delivery of a signal resolution.

        Must be called from the event loop. Returns the delivery task.
        """
        return self._schedule(self._deliver_signal(signal, event))

    def alert_fired(self, alert: Alert, event: AlertFired) -> asyncio.Task:
        """Schedule delivery of a fired alert.

        ``alert`` should be a snapshot; the tracked alert may be re-armed
        before delivery runs.
        """
        return self._schedule(self._deliver_alert(alert, event))

    def _schedule(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _deliver_signal(self, signal: Signal, event: SignalResolved) -> None:
        if self._persist_signal is not None:
            try:
                await self._persist_signal(signal)
            except Exception as e:
                self._failed += 1
                logger.error(f"Failed to persist result for signal {signal.id}: {e}")

        await self._notify(event)

    async def _deliver_alert(self, alert: Alert, event: AlertFired) -> None:
        if self._persist_alert is not None:
            try:
                await self._persist_alert(alert)
            except Exception as e:
                self._failed += 1
                logger.error(f"Failed to persist trigger for alert {alert.id}: {e}")

        await self._notify(event)

    async def _notify(self, event: NotificationEvent) -> None:
        for sink in self._sinks:
            try:
                await sink.notify(event)
                self._delivered += 1
            except Exception as e:
                self._failed += 1
                logger.error(
                    f"Notification sink {type(sink).__name__} failed for "
                    f"'{event.title}': {e}"
                )

    async def drain(self) -> None:
        """Wait for every in-flight delivery to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    @property
    def stats(self) -> dict:
        return {
            "sinks": len(self._sinks),
            "pending": len(self._tasks),
            "delivered": self._delivered,
            "failed": self._failed,
        }
