"""Signal data repository."""

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert

from app.models import Signal, SignalResult, SignalType
from app.storage.database import SignalTable, get_database


class SignalRepository:
    """Repository for signal data operations."""

    async def save(self, signal: Signal) -> bool:
        """Insert a new signal. An existing row is never overwritten.

        Returns:
            True if the row was inserted
        """
        async with get_database().session() as session:
            stmt = insert(SignalTable).values(
                id=signal.id,
                symbol=signal.symbol,
                type=signal.type.value,
                entry_price=signal.entry_price,
                created_at=signal.created_at,
                result=signal.result.value,
                profit_percent=signal.profit_percent,
                updated_at=signal.updated_at,
            )
            stmt = stmt.on_conflict_do_nothing(index_elements=["id"])
            result = await session.execute(stmt)
            return result.rowcount > 0

    async def update_result(self, signal: Signal) -> bool:
        """Persist a signal's terminal result.

        Only a row that is still Pending is updated, so replaying the same
        transition is harmless.

        Returns:
            True if a row was updated
        """
        async with get_database().session() as session:
            stmt = (
                update(SignalTable)
                .where(
                    SignalTable.id == signal.id,
                    SignalTable.result == SignalResult.PENDING.value,
                )
                .values(
                    result=signal.result.value,
                    profit_percent=signal.profit_percent,
                    updated_at=signal.updated_at,
                )
            )
            result = await session.execute(stmt)
            return result.rowcount > 0

    async def get_pending(self, symbol: str | None = None) -> list[Signal]:
        """Get all pending signals, optionally filtered by symbol."""
        async with get_database().session() as session:
            stmt = select(SignalTable).where(
                SignalTable.result == SignalResult.PENDING.value
            )
            if symbol:
                stmt = stmt.where(SignalTable.symbol == symbol)
            stmt = stmt.order_by(SignalTable.created_at.asc())

            result = await session.execute(stmt)
            rows = result.scalars().all()

            return [self._row_to_signal(row) for row in rows]

    async def get_recent(
        self, limit: int = 100, symbol: str | None = None
    ) -> list[Signal]:
        """Get recent signals, newest first."""
        async with get_database().session() as session:
            stmt = select(SignalTable)
            if symbol:
                stmt = stmt.where(SignalTable.symbol == symbol)
            stmt = stmt.order_by(SignalTable.created_at.desc()).limit(limit)

            result = await session.execute(stmt)
            rows = result.scalars().all()

            return [self._row_to_signal(row) for row in rows]

    async def get_by_id(self, signal_id: str) -> Signal | None:
        """Get a signal by ID."""
        async with get_database().session() as session:
            stmt = select(SignalTable).where(SignalTable.id == signal_id)
            result = await session.execute(stmt)
            row = result.scalar_one_or_none()

            if row is None:
                return None
            return self._row_to_signal(row)

    async def get_stats(self, symbol: str | None = None) -> dict:
        """Get signal statistics (success/failure counts).

        Returns:
            Dict with success_count, failure_count, pending_count,
            resolved_count, success_rate
        """
        async with get_database().session() as session:
            stmt = select(
                SignalTable.result,
                func.count().label("count"),
            ).group_by(SignalTable.result)

            if symbol:
                stmt = stmt.where(SignalTable.symbol == symbol)

            result = await session.execute(stmt)
            rows = result.all()

            counts = {r.value: 0 for r in SignalResult}
            for row in rows:
                counts[row.result] = row.count

            success = counts[SignalResult.SUCCESS.value]
            failure = counts[SignalResult.FAILURE.value]
            resolved = success + failure

            return {
                "success_count": success,
                "failure_count": failure,
                "pending_count": counts[SignalResult.PENDING.value],
                "resolved_count": resolved,
                "success_rate": success / resolved if resolved > 0 else 0.0,
            }

    def _row_to_signal(self, row: SignalTable) -> Signal:
        """Convert database row to Signal model."""
        return Signal(
            id=row.id,
            symbol=row.symbol,
            type=SignalType(row.type),
            entry_price=float(row.entry_price),
            created_at=row.created_at,
            result=SignalResult(row.result),
            profit_percent=float(row.profit_percent) if row.profit_percent is not None else None,
            updated_at=row.updated_at,
        )
