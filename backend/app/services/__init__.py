"""Business services."""

from app.services.notifier import (
    BroadcastNotificationSink,
    NotificationDispatcher,
    StoredNotificationSink,
)
from app.services.scheduler import VALIDATION_INTERVAL, ValidationScheduler
from app.services.engine import MarketEngine

__all__ = [
    "BroadcastNotificationSink",
    "NotificationDispatcher",
    "StoredNotificationSink",
    "VALIDATION_INTERVAL",
    "ValidationScheduler",
    "MarketEngine",
]
