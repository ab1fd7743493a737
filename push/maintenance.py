"""Periodic ledger retention sweep."""

import asyncio
from datetime import timedelta
import structlog
from push.dedupe import DedupeCache
from push.ledger import IdempotencyLedger

log = structlog.get_logger(__name__)


async def sweep_once(
    ledger: IdempotencyLedger,
    retention: timedelta,
    cache: DedupeCache | None = None,
) -> int:
    """Purge expired receipts (and expired cache keys). Returns receipts deleted."""
    deleted = await ledger.purge_expired(retention)
    expired_keys = cache.cleanup() if cache is not None else 0
    log.info(
        "push_retention_sweep",
        receipts_deleted=deleted,
        cache_keys_expired=expired_keys,
        retention_days=retention.days,
    )
    return deleted


async def run_retention_loop(
    ledger: IdempotencyLedger,
    retention: timedelta,
    interval_seconds: float,
    cache: DedupeCache | None = None,
) -> None:
    """Sweep forever; a failed sweep is logged and retried next interval."""
    while True:
        try:
            await sweep_once(ledger, retention, cache)
        except Exception as e:
            log.error("push_retention_sweep_failed", error=str(e))
        await asyncio.sleep(interval_seconds)
