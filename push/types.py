"""Push dispatch types and data classes."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable
from config.constants import EventKind, OutboundOrigin, ReceiptStatus, SkipReason

Primitive = str | int | float | bool


@dataclass(frozen=True)
class NotificationText:
    """Fallback title/body shown by the OS when the app is not running."""
    title: str
    body: str


@dataclass(frozen=True)
class DispatchContext:
    group_id: str | None = None


@dataclass(frozen=True)
class NotificationEvent:
    """One logical notification for one recipient."""
    recipient_id: str
    kind: EventKind
    data: dict[str, Primitive]
    notification: NotificationText | None = None
    silent: bool = False
    data_only: bool = False
    play_sound: bool | None = None  # None = sound only for chat_message
    origin: str | None = None       # audit tag of the calling trigger
    context: DispatchContext | None = None
    variant: str | None = None      # extra idempotency discriminator

    @property
    def group_id(self) -> str | None:
        return self.context.group_id if self.context else None

    @property
    def effective_data_only(self) -> bool:
        return self.data_only or self.silent

    @property
    def outbound_origin(self) -> OutboundOrigin:
        return OutboundOrigin.DATA_ONLY if self.effective_data_only else OutboundOrigin.ALERT


@dataclass(frozen=True)
class PreferenceDecision:
    allowed: bool
    reason: SkipReason | None = None


ALLOW = PreferenceDecision(allowed=True)


@dataclass(frozen=True)
class TokenEntry:
    """A deduplicated send target and the storage handle needed to delete it."""
    token: str
    handle: Any
    device_id: str | None = None
    sort_key: float = 0.0


@dataclass(frozen=True)
class SendResult:
    success: bool
    message_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None


@dataclass
class SendOutcome:
    """Aggregate of one multicast send, as recorded on the receipt."""
    success_count: int = 0
    failure_count: int = 0
    error_code: str | None = None
    error_message: str | None = None

    @classmethod
    def from_results(cls, results: list[SendResult]) -> "SendOutcome":
        outcome = cls()
        for result in results:
            if result.success:
                outcome.success_count += 1
                continue
            outcome.failure_count += 1
            if outcome.error_code is None:
                outcome.error_code = result.error_code
                outcome.error_message = result.error_message
        return outcome


@dataclass(frozen=True)
class ReceiptMeta:
    trace_id: str
    recipient_id: str
    event_kind: str
    related_id: str
    payload_hash: str


@dataclass(frozen=True)
class Receipt:
    idempotency_key: str
    status: ReceiptStatus
    updated_at: datetime
    trace_id: str = ""


@dataclass(frozen=True)
class ClaimDecision:
    proceed: bool
    reason: SkipReason | None = None


PROCEED = ClaimDecision(proceed=True)


@dataclass(frozen=True)
class PushPayload:
    """Platform payloads for one multicast. `data` values are strings."""
    data: dict[str, str]
    android: dict[str, Any]
    apns: dict[str, Any]


@dataclass
class DispatchMetrics:
    """Reported once per dispatch call."""
    tokens_found: int = 0
    tokens_deleted: int = 0
    success_count: int = 0
    failure_count: int = 0
    skipped_reason: SkipReason | None = None
    trace_id: str = ""
    idempotency_key: str | None = None

    @property
    def push_sent(self) -> bool:
        return self.success_count > 0


MetricsCallback = Callable[[DispatchMetrics], Any]
