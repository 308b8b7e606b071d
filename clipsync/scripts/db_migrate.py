"""Apply the clip store migrations.

Usage:
    clipsync-migrate          # Run all pending migrations
    clipsync-migrate --dry    # Show pending migrations without applying
"""

import asyncio
import logging
import sys

from clipsync.core.config import get_settings
from clipsync.core.database import DatabaseManager, PoolConfig
from clipsync.migrations.runner import MigrationRunner

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")


async def migrate(dry: bool) -> None:
    settings = get_settings()
    db_manager = DatabaseManager(
        settings.database_url, PoolConfig(min_size=1, max_size=2), ssl=settings.database_ssl
    )
    await db_manager.connect()

    try:
        runner = MigrationRunner(db_manager.pool)

        if dry:
            pending = await runner.pending()
            print(f"Pending: {len(pending)}")
            for version in pending:
                print(f"  -> {version}")
            if not pending:
                print("Database is up to date.")
        else:
            newly_applied = await runner.run_pending()
            if not newly_applied:
                print("No pending migrations.")
            else:
                print(f"Applied {len(newly_applied)} migration(s).")
    finally:
        await db_manager.disconnect()


def main() -> None:
    asyncio.run(migrate(dry="--dry" in sys.argv))


if __name__ == "__main__":
    main()
