"""
Database Migration Runner

Applies the SQL files in this directory in name order.

    python -m chatcore.migrations.migrate
"""
import asyncio
import logging
import sys

import asyncpg

from ..config import Config

logger = logging.getLogger("chatcore.migrations")


async def run_migrations(dsn: str = None) -> int:
    """Run all SQL migrations in order; returns how many failed"""
    dsn = dsn or Config.get_postgres_dsn()
    sql_files = sorted(Config.MIGRATIONS_DIR.glob("*.sql"))
    failed = 0

    logger.info("Connecting to database...")
    conn = await asyncpg.connect(dsn)
    try:
        for sql_file in sql_files:
            logger.info(f"Running migration: {sql_file.name}")
            sql = sql_file.read_text(encoding="utf-8")
            try:
                await conn.execute(sql)
                logger.info(f"  {sql_file.name} completed")
            except asyncpg.PostgresError as e:
                # Later files may still apply cleanly
                logger.error(f"  Error in {sql_file.name}: {e}")
                failed += 1
    finally:
        await conn.close()

    logger.info(f"Migrations complete ({len(sql_files) - failed}/{len(sql_files)} applied)")
    return failed


def main():
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


if __name__ == "__main__":
    main()
