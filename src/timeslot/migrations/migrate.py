"""
Database Migration Runner

Applies the series SQL migrations in file-name order.
"""
import asyncio
import asyncpg
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent.parent))

from src.timeslot.config import Config

logger = logging.getLogger("timeslot.migrations")


async def run_migrations(dsn: str = None) -> int:
    """Run all SQL migrations in order; returns the number of failures"""
    migrations_dir = Path(__file__).parent
    dsn = dsn or Config.get_postgres_dsn()

    logger.info("Connecting to database...")
    conn = await asyncpg.connect(dsn)
    failures = 0

    try:
        for sql_file in sorted(migrations_dir.glob("*.sql")):
            logger.info(f"Running migration: {sql_file.name}")
            sql = sql_file.read_text()
            try:
                await conn.execute(sql)
                logger.info(f"  {sql_file.name} completed")
            except asyncpg.PostgresError as e:
                failures += 1
                logger.error(f"  Error in {sql_file.name}: {e}")
    finally:
        await conn.close()

    logger.info(f"Migrations complete ({failures} failed)")
    return failures


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    try:
        failed = asyncio.run(run_migrations())
    except (OSError, asyncpg.PostgresError) as e:
        logger.error(f"Connection failed: {e}")
        sys.exit(1)
    sys.exit(1 if failed else 0)
