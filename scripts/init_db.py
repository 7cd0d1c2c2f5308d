#!/usr/bin/env python3
"""Create the signals, alerts and notifications tables.

Usage:
    python scripts/init_db.py
    python scripts/init_db.py --check
    python scripts/init_db.py --database-url postgresql://user@host/db
"""

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from sqlalchemy import inspect

from app.storage.database import Base, Database


async def missing_tables(db: Database) -> list[str]:
    """Names of the engine's tables that the database does not have yet."""
    async with db.engine.connect() as conn:
        existing = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))
    return [name for name in Base.metadata.tables if name not in existing]


async def main() -> int:
    parser = argparse.ArgumentParser(description="Create the Signal Watch tables")
    parser.add_argument("--database-url", help="Override DATABASE_URL")
    parser.add_argument("--check", action="store_true", help="Only report missing tables")
    args = parser.parse_args()

    db = Database(args.database_url)
    try:
        missing = await missing_tables(db)
        if args.check:
            if missing:
                print(f"Missing tables: {', '.join(missing)}")
                return 1
            print("All tables present")
            return 0

        if not missing:
            print("Nothing to do, all tables present")
            return 0

        await db.create_tables()
        print(f"Created tables: {', '.join(missing)}")
        return 0
    finally:
        await db.close()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
