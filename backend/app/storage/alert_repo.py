"""Alert data repository.

Alert rows are created, edited and deleted through the API on behalf of
the front end. The engine itself only reads them and records when an
alert fired.
"""

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert

from app.models import Alert, AlertCondition, AlertKind, AlertPriority
from app.storage.database import AlertTable, get_database


class AlertRepository:
    """Repository for alert data operations."""

    async def save(self, alert: Alert) -> None:
        """Insert an alert or replace its definition."""
        async with get_database().session() as session:
            stmt = insert(AlertTable).values(
                id=alert.id,
                symbol=alert.symbol,
                type=alert.kind.value,
                condition=alert.condition.value,
                value=alert.threshold,
                active=alert.active,
                priority=alert.priority.value,
                created_at=alert.created_at,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["id"],
                set_={
                    "symbol": stmt.excluded.symbol,
                    "type": stmt.excluded.type,
                    "condition": stmt.excluded.condition,
                    "value": stmt.excluded.value,
                    "active": stmt.excluded.active,
                    "priority": stmt.excluded.priority,
                },
            )
            await session.execute(stmt)

    async def get_all(self, symbol: str | None = None) -> list[Alert]:
        """Get all alerts, optionally filtered by symbol."""
        async with get_database().session() as session:
            stmt = select(AlertTable)
            if symbol:
                stmt = stmt.where(AlertTable.symbol == symbol)
            stmt = stmt.order_by(AlertTable.created_at.asc())

            result = await session.execute(stmt)
            return [self._row_to_alert(row) for row in result.scalars().all()]

    async def mark_triggered(self, alert: Alert) -> None:
        """Record the time the alert last fired."""
        async with get_database().session() as session:
            stmt = (
                update(AlertTable)
                .where(AlertTable.id == alert.id)
                .values(triggered_at=alert.fired_at)
            )
            await session.execute(stmt)

    async def set_active(self, alert_id: str, active: bool) -> bool:
        async with get_database().session() as session:
            stmt = update(AlertTable).where(AlertTable.id == alert_id).values(active=active)
            result = await session.execute(stmt)
            return result.rowcount > 0

    async def delete(self, alert_id: str) -> bool:
        async with get_database().session() as session:
            result = await session.execute(delete(AlertTable).where(AlertTable.id == alert_id))
            return result.rowcount > 0

    def _row_to_alert(self, row: AlertTable) -> Alert:
        """Convert database row to Alert model.

        ``triggered_at`` is history only: every loaded alert starts armed.
        """
        return Alert(
            id=row.id,
            symbol=row.symbol,
            kind=AlertKind(row.type),
            condition=AlertCondition(row.condition),
            threshold=float(row.value),
            active=bool(row.active),
            priority=AlertPriority(row.priority),
            created_at=row.created_at,
        )
