"""Periodic validation of pending signals.

Two states, Stopped and Running. While running, a cycle fires every
VALIDATION_INTERVAL seconds and resolves every pending signal whose price
has moved past the threshold. Alert evaluation is not done here; it runs
on each tick inside the feed callback.
"""

import asyncio
import logging
from datetime import datetime, timezone

from app.models import SignalAlreadyResolvedError, SignalResolved
from app.services.notifier import NotificationDispatcher
from core.signal_validator import SignalValidator
from core.state import EngineState

logger = logging.getLogger(__name__)

# Seconds between validation cycles
VALIDATION_INTERVAL = 60.0


class ValidationScheduler:
    """Runs the signal validation cycle on a fixed cadence.

    A cycle reads and mutates EngineState without awaiting, so it always
    completes as a unit; stop() only cancels the wait for the next cycle.
    """

    def __init__(
        self,
        state: EngineState,
        dispatcher: NotificationDispatcher,
        validator: SignalValidator | None = None,
        interval: float = VALIDATION_INTERVAL,
        strict: bool = False,
    ):
        """
        Args:
            state: Engine state holding history and pending signals
            dispatcher: Receives each resolution exactly once
            validator: Signal validator (for testing)
            interval: Seconds between cycles
            strict: Raise on invariant violations instead of logging them
        """
        self._state = state
        self._dispatcher = dispatcher
        self._validator = validator or SignalValidator()
        self._interval = interval
        self._strict = strict
        self._running = False
        self._task: asyncio.Task | None = None
        self._cycles = 0
        self._last_cycle_at: datetime | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def interval(self) -> float:
        return self._interval

    async def start(self) -> None:
        """Stopped -> Running. Starts a fresh cycle cadence."""
        if self._running:
            return

        self._running = True
        self._cycles = 0
        self._last_cycle_at = None
        self._task = asyncio.create_task(self._run())
        self._task.add_done_callback(self._on_task_done)
        logger.info(f"Signal validation started (every {self._interval:g}s)")

    async def stop(self) -> None:
        """Running -> Stopped.

        Cancels the timer and clears pending-signal tracking and alert
        fired states.
        """
        if not self._running and self._task is None:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except SignalAlreadyResolvedError:
                # Already reported by _on_task_done
                pass
            self._task = None

        self._state.clear_signals()
        self._state.rearm_alerts()
        logger.info("Signal validation stopped")

    async def _run(self) -> None:
        while self._running:
            await asyncio.sleep(self._interval)
            if not self._running:
                break
            self.run_cycle()

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._running = False
            logger.critical(f"Signal validation loop crashed: {exc!r}")

    def run_cycle(self) -> list[SignalResolved]:
        """Validate every tracked signal once.

        Resolved signals are removed from tracking and handed to the
        dispatcher. Must be called from the event loop.

        Returns:
            Resolution events produced by this cycle
        """
        resolved: list[SignalResolved] = []
        now = datetime.now(timezone.utc)

        for signal in self._state.tracked_signals():
            history = self._state.history.window(signal.symbol)
            try:
                outcome = self._validator.validate(signal, history)
            except SignalAlreadyResolvedError as e:
                if self._strict:
                    raise
                logger.error(f"Invariant violation, dropping from tracking: {e}")
                self._state.remove_signal(signal.id)
                continue

            if not outcome.is_terminal:
                continue

            signal.resolve(outcome.result, outcome.profit_percent, now)
            self._state.remove_signal(signal.id)

            event = SignalResolved(
                signal_id=signal.id,
                symbol=signal.symbol,
                signal_type=signal.type,
                result=outcome.result,
                profit_percent=outcome.profit_percent,
                entry_price=signal.entry_price,
                exit_price=outcome.price,
                resolved_at=now,
            )
            logger.info(event.message)
            self._dispatcher.signal_resolved(signal, event)
            resolved.append(event)

        self._cycles += 1
        self._last_cycle_at = now
        return resolved

    @property
    def stats(self) -> dict:
        return {
            "running": self._running,
            "interval": self._interval,
            "cycles": self._cycles,
            "last_cycle_at": self._last_cycle_at.isoformat() if self._last_cycle_at else None,
        }
