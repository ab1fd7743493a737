"""Entry point: apply migrations, then run the receipt retention sweep."""

import asyncio
from datetime import timedelta
import structlog
from config.settings import settings
from config.logging_config import setup_logging
from push.gateway import create_ledger
from push.maintenance import run_retention_loop
from storage.database import close_pool, get_pool, run_migrations

log = structlog.get_logger(__name__)


async def start_worker() -> None:
    setup_logging()
    log.info("starting_push_maintenance", environment=settings.environment)

    pool = await get_pool()
    applied = await run_migrations(pool)
    if applied:
        log.info("migrations_done", applied=applied)

    try:
        await run_retention_loop(
            create_ledger(pool),
            retention=timedelta(days=settings.push_receipt_retention_days),
            interval_seconds=settings.push_retention_interval_seconds,
        )
    finally:
        log.info("shutting_down")
        await close_pool()


def main() -> None:
    asyncio.run(start_worker())


if __name__ == "__main__":
    main()
