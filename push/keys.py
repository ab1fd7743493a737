"""Idempotency key derivation."""

from datetime import datetime
from config.constants import (
    DEFAULT_NOTIFICATION_BODY,
    DEFAULT_NOTIFICATION_TITLE,
    RELATED_ID_FIELDS,
)
from push.types import NotificationEvent
from utils.formatting import stringify_value
from utils.hashing import hash_payload, sha256_hex
from utils.time_utils import minute_bucket


def related_id_for(event: NotificationEvent, now: datetime) -> str:
    """Best domain identifier in the event data, else a fallback hash.

    The fallback covers the kind, recipient, fallback text and the current
    minute, so identical id-less events inside one minute collapse.
    """
    for field_name in RELATED_ID_FIELDS:
        value = stringify_value(event.data.get(field_name)).strip()
        if value:
            return value

    text = event.notification
    return "fallback:" + sha256_hex(
        event.kind.value,
        event.recipient_id,
        text.title if text else DEFAULT_NOTIFICATION_TITLE,
        text.body if text else DEFAULT_NOTIFICATION_BODY,
        str(minute_bucket(now)),
    )[:32]


def variant_for(event: NotificationEvent) -> str:
    return event.variant or event.outbound_origin.value


def idempotency_key(event: NotificationEvent, related_id: str) -> str:
    return sha256_hex(
        event.kind.value,
        related_id,
        event.recipient_id,
        variant_for(event),
    )


def content_hash(event: NotificationEvent) -> str:
    """Hash of what the caller asked to deliver, recorded on the receipt."""
    text = event.notification
    return hash_payload({
        "kind": event.kind.value,
        "data": {k: stringify_value(v) for k, v in event.data.items()},
        "title": text.title if text else None,
        "body": text.body if text else None,
        "data_only": event.effective_data_only,
        "play_sound": event.play_sound,
    })
