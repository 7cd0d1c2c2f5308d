"""Notification data repository."""

import uuid

from sqlalchemy import select, update

from app.models import AlertFired, NotificationEvent, SignalResolved
from app.storage.database import NotificationTable, get_database


def event_to_row(event: NotificationEvent) -> dict:
    """Build notification column values from a transition event."""
    if isinstance(event, SignalResolved):
        created_at = event.resolved_at
        signal_id, alert_id = event.signal_id, None
    elif isinstance(event, AlertFired):
        created_at = event.fired_at
        signal_id, alert_id = None, event.alert_id
    else:
        raise TypeError(f"Unsupported notification event: {type(event).__name__}")

    return {
        "id": str(uuid.uuid4()),
        "title": event.title,
        "message": event.message,
        "type": event.category,
        "priority": event.priority.value,
        "signal_id": signal_id,
        "alert_id": alert_id,
        "data": event.to_dict(),
        "read": False,
        "created_at": created_at,
    }


class NotificationRepository:
    """Repository for notification data operations."""

    async def save(self, event: NotificationEvent) -> str:
        """Store a notification for a transition event.

        Returns:
            ID of the new notification
        """
        values = event_to_row(event)
        async with get_database().session() as session:
            session.add(NotificationTable(**values))
        return values["id"]

    async def get_recent(self, limit: int = 50, unread_only: bool = False) -> list[dict]:
        """Get recent notifications, newest first."""
        async with get_database().session() as session:
            stmt = select(NotificationTable)
            if unread_only:
                stmt = stmt.where(NotificationTable.read.is_(False))
            stmt = stmt.order_by(NotificationTable.created_at.desc()).limit(limit)

            result = await session.execute(stmt)
            return [self._row_to_dict(row) for row in result.scalars().all()]

    async def mark_read(self, notification_id: str) -> bool:
        """Mark one notification as read.

        Returns:
            True if the notification exists
        """
        async with get_database().session() as session:
            stmt = (
                update(NotificationTable)
                .where(NotificationTable.id == notification_id)
                .values(read=True)
            )
            result = await session.execute(stmt)
            return result.rowcount > 0

    async def mark_all_read(self) -> int:
        """Mark every unread notification as read.

        Returns:
            Number of notifications updated
        """
        async with get_database().session() as session:
            stmt = (
                update(NotificationTable)
                .where(NotificationTable.read.is_(False))
                .values(read=True)
            )
            result = await session.execute(stmt)
            return result.rowcount

    def _row_to_dict(self, row: NotificationTable) -> dict:
        return {
            "id": row.id,
            "title": row.title,
            "message": row.message,
            "type": row.type,
            "priority": row.priority,
            "signal_id": row.signal_id,
            "alert_id": row.alert_id,
            "data": row.data,
            "read": row.read,
            "created_at": row.created_at,
        }
