"""Single gateway for outbound push notifications.

    validate -> preferences -> tokens -> claim -> build -> send -> finalize -> gc

Any stage up to the claim may end the dispatch early. Whatever happens, the
caller gets a `DispatchMetrics` back and never an exception: notification
problems must not fail the business write that triggered them.
"""

import asyncio
import dataclasses
import inspect
import uuid
from datetime import datetime
from typing import Callable, Iterable
import structlog
from config.constants import EventKind, ReceiptStatus, SkipReason
from push.dedupe import DedupeCache
from push.errors import (
    DuplicateSuppressed,
    InvalidInput,
    NoTokens,
    PreferenceBlocked,
    PushDispatchError,
    RecipientNotFound,
    TransportError,
)
from push.janitor import TokenJanitor
from push.keys import content_hash, idempotency_key, related_id_for
from push.ledger import IdempotencyLedger
from push.payload import build_payload
from push.preferences import PreferenceResolver
from push.registry import DeviceTokenRegistry
from push.transport import PushTransport
from push.types import (
    DispatchMetrics,
    MetricsCallback,
    NotificationEvent,
    NotificationText,
    ReceiptMeta,
    SendOutcome,
)
from utils.execution_metrics import ExecutionMetrics
from utils.formatting import mask_token
from utils.time_utils import utc_now

log = structlog.get_logger(__name__)

_PRIMITIVES = (str, int, float, bool)


def validate_event(event: NotificationEvent) -> NotificationEvent:
    """Check the input contract; coerces a raw kind string to EventKind."""
    if not isinstance(event, NotificationEvent):
        raise InvalidInput("event must be a NotificationEvent")
    if not isinstance(event.recipient_id, str) or not event.recipient_id.strip():
        raise InvalidInput("recipient_id is required")
    if not isinstance(event.kind, EventKind):
        try:
            event = dataclasses.replace(event, kind=EventKind(event.kind))
        except ValueError:
            raise InvalidInput(f"unknown event kind: {event.kind!r}") from None
    if not isinstance(event.data, dict) or not event.data:
        raise InvalidInput("data must be a non-empty map")
    for key, value in event.data.items():
        if not isinstance(key, str) or not isinstance(value, _PRIMITIVES):
            raise InvalidInput(f"data[{key!r}] is not a primitive value")
    return event


class PushDispatcher:
    """Dispatch one logical notification to every device of its recipient."""

    def __init__(
        self,
        preferences: PreferenceResolver,
        registry: DeviceTokenRegistry,
        ledger: IdempotencyLedger,
        transport: PushTransport,
        janitor: TokenJanitor,
        dedupe_cache: DedupeCache | None = None,
        deep_link_scheme: str = "partiu",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._preferences = preferences
        self._registry = registry
        self._ledger = ledger
        self._transport = transport
        self._janitor = janitor
        self._cache = dedupe_cache
        self._scheme = deep_link_scheme
        self._clock = clock

    async def dispatch(
        self,
        event: NotificationEvent,
        on_metrics: MetricsCallback | None = None,
    ) -> DispatchMetrics:
        """Dispatch a notification. Never raises; returns the call's metrics."""
        trace_id = uuid.uuid4().hex
        metrics = DispatchMetrics(trace_id=trace_id)
        execution = ExecutionMetrics(trace_id)
        blog = log.bind(
            trace_id=trace_id,
            recipient_id=getattr(event, "recipient_id", None),
            kind=getattr(getattr(event, "kind", None), "value", getattr(event, "kind", None)),
            origin=getattr(event, "origin", None),
        )

        try:
            await self._run(event, metrics, execution, blog)
        except PushDispatchError as e:
            metrics.skipped_reason = e.reason
            blog.info("push_dispatch_skipped", reason=e.reason.value, detail=str(e))
        except Exception as e:
            metrics.skipped_reason = SkipReason.INTERNAL_ERROR
            blog.exception("push_dispatch_error", error=str(e))

        if metrics.skipped_reason is SkipReason.INTERNAL_ERROR:
            execution.fail("push_dispatch_error", **self._summary(metrics))
        else:
            execution.done(**self._summary(metrics))

        await self._emit(metrics, on_metrics, blog)
        return metrics

    async def _run(
        self,
        event: NotificationEvent,
        metrics: DispatchMetrics,
        execution: ExecutionMetrics,
        blog: structlog.stdlib.BoundLogger,
    ) -> None:
        event = validate_event(event)

        decision = await self._preferences.resolve(event.recipient_id, event.kind, event.group_id)
        execution.add_reads(1)
        if not decision.allowed:
            if decision.reason is SkipReason.RECIPIENT_NOT_FOUND:
                raise RecipientNotFound(f"no profile for {event.recipient_id}")
            raise PreferenceBlocked("blocked by recipient preferences", reason=decision.reason)

        entries = await self._registry.fetch(event.recipient_id)
        execution.add_reads(1)
        metrics.tokens_found = len(entries)
        if not entries:
            raise NoTokens("recipient has no device tokens")

        related_id = related_id_for(event, self._clock())
        key = idempotency_key(event, related_id)
        metrics.idempotency_key = key

        if self._cache is not None and self._cache.seen(key):
            raise DuplicateSuppressed("seen recently by this process")

        meta = ReceiptMeta(
            trace_id=metrics.trace_id,
            recipient_id=event.recipient_id,
            event_kind=event.kind.value,
            related_id=related_id,
            payload_hash=content_hash(event),
        )
        claim = await self._ledger.claim(key, meta)
        execution.add_writes(1)
        if not claim.proceed:
            raise DuplicateSuppressed("ledger claim refused", reason=claim.reason)
        if self._cache is not None:
            self._cache.mark(key)

        payload = build_payload(event, key, metrics.trace_id, related_id, self._scheme)
        tokens = [entry.token for entry in entries]
        blog.debug(
            "push_sending",
            devices=len(tokens),
            tokens=[mask_token(t) for t in tokens],
            data_only=event.effective_data_only,
            payload=dataclasses.asdict(payload),
        )

        try:
            results = await self._transport.send(tokens, payload)
        except Exception as e:
            await self._release_claim(key, metrics.trace_id, e, blog)
            raise TransportError(str(e)) from e

        outcome = SendOutcome.from_results(results)
        metrics.success_count = outcome.success_count
        metrics.failure_count = outcome.failure_count

        # The send already happened: a finalize failure must not skip GC or
        # turn a delivered push into a skipped one.
        status: ReceiptStatus | None = None
        try:
            status = await self._ledger.finalize(key, metrics.trace_id, outcome)
            execution.add_writes(1)
        except Exception as e:
            blog.exception("push_finalize_failed", key=key, error=str(e))

        # Receipt not recorded as sent: leave retries to the ledger's stale window
        if status is not ReceiptStatus.SENT and self._cache is not None:
            self._cache.discard(key)

        if outcome.failure_count:
            blog.warning(
                "push_partial_failure",
                failures=outcome.failure_count,
                devices=len(tokens),
                first_error=outcome.error_code,
            )
            metrics.tokens_deleted = await self._janitor.collect(entries, results)
            execution.add_deletes(metrics.tokens_deleted)

        blog.info(
            "push_dispatched",
            status=status.value if status else None,
            success=outcome.success_count,
            devices=len(tokens),
        )

    async def _release_claim(
        self,
        key: str,
        trace_id: str,
        error: Exception,
        blog: structlog.stdlib.BoundLogger,
    ) -> None:
        """After a failed send call, mark the receipt failed so a retry can reclaim it."""
        if self._cache is not None:
            self._cache.discard(key)
        try:
            await self._ledger.mark_failed(
                key, trace_id, SkipReason.TRANSPORT_ERROR.value, str(error)
            )
        except Exception as e:
            blog.error("push_release_claim_failed", key=key, error=str(e))

    async def _emit(
        self,
        metrics: DispatchMetrics,
        on_metrics: MetricsCallback | None,
        blog: structlog.stdlib.BoundLogger,
    ) -> None:
        if on_metrics is None:
            return
        try:
            result = on_metrics(metrics)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            blog.error("push_metrics_callback_failed", error=str(e))

    @staticmethod
    def _summary(metrics: DispatchMetrics) -> dict:
        return {
            "tokens_found": metrics.tokens_found,
            "tokens_deleted": metrics.tokens_deleted,
            "success_count": metrics.success_count,
            "failure_count": metrics.failure_count,
            "push_sent": metrics.push_sent,
            "skipped_reason": metrics.skipped_reason.value if metrics.skipped_reason else None,
        }

    async def dispatch_many(
        self,
        recipient_ids: Iterable[str],
        make_event: Callable[[str], NotificationEvent],
        exclude: Iterable[str] = (),
        on_metrics: MetricsCallback | None = None,
    ) -> list[DispatchMetrics]:
        """Fan one message out to several recipients, each dispatched independently.

        Duplicate and excluded ids (typically the sender) are dropped.
        """
        skip = set(exclude)
        targets: list[str] = []
        for recipient_id in recipient_ids:
            if recipient_id and recipient_id not in skip and recipient_id not in targets:
                targets.append(recipient_id)
        if not targets:
            return []
        return list(
            await asyncio.gather(
                *(self._build_and_dispatch(rid, make_event, on_metrics) for rid in targets)
            )
        )

    async def _build_and_dispatch(
        self,
        recipient_id: str,
        make_event: Callable[[str], NotificationEvent],
        on_metrics: MetricsCallback | None,
    ) -> DispatchMetrics:
        try:
            event = make_event(recipient_id)
        except Exception as e:
            metrics = DispatchMetrics(
                trace_id=uuid.uuid4().hex,
                skipped_reason=SkipReason.INTERNAL_ERROR,
            )
            blog = log.bind(trace_id=metrics.trace_id, recipient_id=recipient_id)
            blog.exception("push_event_build_failed", error=str(e))
            await self._emit(metrics, on_metrics, blog)
            return metrics
        return await self.dispatch(event, on_metrics)

    async def send_test_push(self, recipient_id: str) -> DispatchMetrics:
        """Send a system alert through the full pipeline to check a user's devices."""
        test_id = uuid.uuid4().hex
        event = NotificationEvent(
            recipient_id=recipient_id,
            kind=EventKind.SYSTEM_ALERT,
            data={"n_type": EventKind.SYSTEM_ALERT.value, "relatedId": f"test-{test_id}", "test": True},
            notification=NotificationText("Test notification", "Push delivery is working"),
            play_sound=True,
            origin="testPush",
        )
        return await self.dispatch(event)
