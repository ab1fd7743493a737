"""Idempotency ledger: one receipt per logical notification.

`claim` is the only synchronization point between concurrent dispatches of
the same notification. It runs as a single transaction:

    absent              -> insert pending, proceed
    sent                -> skip (alreadySent)
    pending, fresh      -> skip (inFlight)
    failed / stale      -> reset to pending, proceed

A receipt never leaves `sent`. Only the dispatch whose trace id holds the
pending receipt may finalize or release it; a reclaim hands the claim over.
"""

from datetime import datetime, timedelta
from typing import Callable
import asyncpg
import structlog
from config.constants import ReceiptStatus, SkipReason
from push.types import PROCEED, ClaimDecision, Receipt, ReceiptMeta, SendOutcome
from utils.formatting import truncate
from utils.time_utils import ensure_utc, utc_now

log = structlog.get_logger(__name__)

MAX_ERROR_MESSAGE_LENGTH = 500


def evaluate_claim(
    receipt: Receipt | None,
    now: datetime,
    stale_window: timedelta,
) -> ClaimDecision:
    """Decide whether a claim on an existing receipt may proceed."""
    if receipt is None:
        return PROCEED
    if receipt.status is ReceiptStatus.SENT:
        return ClaimDecision(False, SkipReason.ALREADY_SENT)
    if receipt.status is ReceiptStatus.PENDING:
        age = ensure_utc(now) - ensure_utc(receipt.updated_at)
        if age < stale_window:
            return ClaimDecision(False, SkipReason.IN_FLIGHT)
    return PROCEED


def _rows_affected(status: str) -> int:
    """Row count from an asyncpg command tag such as 'UPDATE 1'."""
    return int(status.split()[-1])


def _receipt_from_row(row) -> Receipt:
    return Receipt(
        idempotency_key=row["idempotency_key"],
        status=ReceiptStatus(row["status"]),
        updated_at=row["updated_at"],
        trace_id=row["trace_id"] or "",
    )


class IdempotencyLedger:
    def __init__(
        self,
        pool: asyncpg.Pool,
        stale_window: timedelta = timedelta(seconds=60),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._pool = pool
        self.stale_window = stale_window
        self._clock = clock

    async def claim(self, key: str, meta: ReceiptMeta) -> ClaimDecision:
        now = self._clock()
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                if await self._insert_pending(conn, key, meta, now):
                    return PROCEED

                row = await conn.fetchrow(
                    """
                    SELECT idempotency_key, status, updated_at, trace_id
                    FROM push_receipts
                    WHERE idempotency_key = $1
                    FOR UPDATE
                    """,
                    key,
                )
                if row is None:
                    # Purged between the insert attempt and the lock
                    if await self._insert_pending(conn, key, meta, now):
                        return PROCEED
                    return ClaimDecision(False, SkipReason.IN_FLIGHT)

                receipt = _receipt_from_row(row)
                decision = evaluate_claim(receipt, now, self.stale_window)
                if not decision.proceed:
                    log.debug(
                        "push_claim_skipped",
                        key=key,
                        status=receipt.status.value,
                        reason=decision.reason.value if decision.reason else None,
                        holder_trace_id=receipt.trace_id,
                    )
                    return decision

                await conn.execute(
                    """
                    UPDATE push_receipts
                    SET status = 'pending', trace_id = $2, recipient_id = $3,
                        event_kind = $4, related_id = $5, payload_hash = $6,
                        success_count = 0, failure_count = 0,
                        last_error_code = NULL, last_error_message = NULL,
                        updated_at = $7
                    WHERE idempotency_key = $1
                    """,
                    key,
                    meta.trace_id,
                    meta.recipient_id,
                    meta.event_kind,
                    meta.related_id,
                    meta.payload_hash,
                    now,
                )
                log.info(
                    "push_claim_reclaimed",
                    key=key,
                    previous_status=receipt.status.value,
                    trace_id=meta.trace_id,
                )
                return PROCEED

    async def _insert_pending(
        self,
        conn: asyncpg.Connection,
        key: str,
        meta: ReceiptMeta,
        now: datetime,
    ) -> bool:
        inserted = await conn.fetchval(
            """
            INSERT INTO push_receipts (
                idempotency_key, status, trace_id, recipient_id, event_kind,
                related_id, payload_hash, created_at, updated_at
            )
            VALUES ($1, 'pending', $2, $3, $4, $5, $6, $7, $7)
            ON CONFLICT (idempotency_key) DO NOTHING
            RETURNING idempotency_key
            """,
            key,
            meta.trace_id,
            meta.recipient_id,
            meta.event_kind,
            meta.related_id,
            meta.payload_hash,
            now,
        )
        return inserted is not None

    async def finalize(
        self,
        key: str,
        trace_id: str,
        outcome: SendOutcome,
    ) -> ReceiptStatus | None:
        """Record the send outcome: sent if any device accepted, else failed.

        Only the holder of the claim (`trace_id` of the pending receipt) may
        finalize it. Returns None when the claim was reclaimed by another
        dispatch in the meantime; the receipt is left untouched.
        """
        status = ReceiptStatus.SENT if outcome.success_count > 0 else ReceiptStatus.FAILED
        async with self._pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE push_receipts
                SET status = $3, success_count = $4, failure_count = $5,
                    last_error_code = $6, last_error_message = $7, updated_at = $8
                WHERE idempotency_key = $1 AND trace_id = $2 AND status = 'pending'
                """,
                key,
                trace_id,
                status.value,
                outcome.success_count,
                outcome.failure_count,
                outcome.error_code,
                truncate(outcome.error_message, MAX_ERROR_MESSAGE_LENGTH) if outcome.error_message else None,
                self._clock(),
            )
        if _rows_affected(result) == 0:
            log.warning("push_finalize_superseded", key=key, trace_id=trace_id, status=status.value)
            return None
        return status

    async def mark_failed(
        self,
        key: str,
        trace_id: str,
        error_code: str,
        error_message: str,
    ) -> None:
        """Release our pending claim after the send call itself failed."""
        async with self._pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE push_receipts
                SET status = 'failed', last_error_code = $3,
                    last_error_message = $4, updated_at = $5
                WHERE idempotency_key = $1 AND trace_id = $2 AND status = 'pending'
                """,
                key,
                trace_id,
                error_code,
                truncate(error_message, MAX_ERROR_MESSAGE_LENGTH),
                self._clock(),
            )

    async def purge_expired(self, retention: timedelta) -> int:
        """Delete receipts untouched for longer than `retention`. Returns count."""
        cutoff = self._clock() - retention
        async with self._pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM push_receipts WHERE updated_at < $1", cutoff
            )
        return _rows_affected(result)
