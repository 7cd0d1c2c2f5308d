"""Data storage layer."""

from app.storage.database import Database, get_database, init_database
from app.storage.signal_repo import SignalRepository
from app.storage.alert_repo import AlertRepository
from app.storage.notification_repo import NotificationRepository
from app.storage import cache
from app.storage import price_cache

__all__ = [
    "Database",
    "get_database",
    "init_database",
    "SignalRepository",
    "AlertRepository",
    "NotificationRepository",
    "cache",
    "price_cache",
]
