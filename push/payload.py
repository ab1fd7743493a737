"""Platform payload construction (Android / APNs) for one notification.

Everything here is pure: the same event, key and trace id always produce the
same payload.
"""

from typing import Callable
from config.constants import (
    ACTIVITY_EVENTS,
    CLICK_ACTION,
    DEFAULT_ACTIVITY_EMOJI,
    DEFAULT_NOTIFICATION_BODY,
    DEFAULT_NOTIFICATION_TITLE,
    EventKind,
)
from push.types import NotificationEvent, NotificationText, PushPayload
from utils.formatting import stringify_data
from utils.hashing import short_hash

FALLBACK_NOTIFICATION = NotificationText(DEFAULT_NOTIFICATION_TITLE, DEFAULT_NOTIFICATION_BODY)

Shaper = Callable[[NotificationEvent, str], dict[str, str]]


def should_play_sound(event: NotificationEvent) -> bool:
    wants_sound = event.play_sound
    if wants_sound is None:
        wants_sound = event.kind is EventKind.CHAT_MESSAGE
    return wants_sound and not event.silent


# ── Per-kind routing fields ──


def _data(event: NotificationEvent, *names: str) -> str:
    for name in names:
        value = event.data.get(name)
        if value not in (None, ""):
            return str(value)
    return ""


def _shape_chat(event: NotificationEvent, scheme: str) -> dict[str, str]:
    sender_id = _data(event, "senderId")
    fields = {"n_sender_name": _data(event, "senderName", "n_sender_name")}
    if sender_id:
        fields["deepLink"] = f"{scheme}://chat/{sender_id}"
    return fields


def _shape_event_chat(event: NotificationEvent, scheme: str) -> dict[str, str]:
    event_id = event.group_id or _data(event, "eventId")
    if not event_id:
        return {}
    return {"n_related_id": event_id, "deepLink": f"{scheme}://event-chat/{event_id}"}


def _shape_activity(event: NotificationEvent, scheme: str) -> dict[str, str]:
    activity_id = _data(event, "activityId", "relatedId", "n_related_id") or event.group_id or ""
    fields = {"emoji": DEFAULT_ACTIVITY_EMOJI}
    if not activity_id:
        return fields
    fields["activityId"] = activity_id
    fields["n_related_id"] = activity_id
    if event.kind is EventKind.ACTIVITY_JOIN_REQUEST:
        fields["deepLink"] = f"{scheme}://group-info/{activity_id}?tab=requests"
    else:
        fields["deepLink"] = f"{scheme}://home?event={activity_id}"
    return fields


def _shape_review(event: NotificationEvent, scheme: str) -> dict[str, str]:
    fields = {"deepLink": f"{scheme}://reviews/{event.recipient_id}"}
    review_id = _data(event, "reviewId")
    if review_id:
        fields["n_related_id"] = review_id
    return fields


def _shape_follower(event: NotificationEvent, scheme: str) -> dict[str, str]:
    follower_id = _data(event, "followerId")
    if not follower_id:
        return {}
    return {"n_related_id": follower_id, "deepLink": f"{scheme}://profile/{follower_id}"}


def _shape_profile_views(event: NotificationEvent, scheme: str) -> dict[str, str]:
    return {"deepLink": f"{scheme}://profile-visits"}


def _shape_nothing(event: NotificationEvent, scheme: str) -> dict[str, str]:
    return {}


_SHAPERS: dict[EventKind, Shaper] = {
    EventKind.CHAT_MESSAGE: _shape_chat,
    EventKind.EVENT_CHAT_MESSAGE: _shape_event_chat,
    EventKind.EVENT_JOIN: _shape_event_chat,
    **{kind: _shape_activity for kind in ACTIVITY_EVENTS},
    EventKind.PROFILE_VIEWS_AGGREGATED: _shape_profile_views,
    EventKind.REVIEW_PENDING: _shape_review,
    EventKind.NEW_REVIEW_RECEIVED: _shape_review,
    EventKind.NEW_FOLLOWER: _shape_follower,
    EventKind.SYSTEM_ALERT: _shape_nothing,
    EventKind.CUSTOM: _shape_nothing,
}

_unshaped = set(EventKind) - set(_SHAPERS)
if _unshaped:
    raise RuntimeError(f"No payload shaper for: {sorted(k.value for k in _unshaped)}")


def shape_fields(event: NotificationEvent, scheme: str) -> dict[str, str]:
    """Routing fields for the event kind; empty values are dropped."""
    fields = _SHAPERS[event.kind](event, scheme)
    return {k: v for k, v in fields.items() if v}


# ── Payload ──


def build_data(
    event: NotificationEvent,
    idempotency_key: str,
    trace_id: str,
    scheme: str,
) -> dict[str, str]:
    data = stringify_data(event.data)
    for name, value in shape_fields(event, scheme).items():
        data.setdefault(name, value)
    data.setdefault("n_type", event.kind.value)
    data["n_origin"] = event.outbound_origin.value
    data["n_trace_id"] = trace_id
    data["n_idempotency_key"] = idempotency_key
    data["n_recipient_id"] = event.recipient_id
    data["click_action"] = CLICK_ACTION
    return data


def build_payload(
    event: NotificationEvent,
    idempotency_key: str,
    trace_id: str,
    related_id: str | None = None,
    scheme: str = "partiu",
) -> PushPayload:
    """Build the data map plus Android and APNs payloads for one multicast."""
    text = event.notification or FALLBACK_NOTIFICATION
    data_only = event.effective_data_only
    play_sound = should_play_sound(event)

    android: dict = {
        "priority": "high" if play_sound else "normal",
        "collapse_key": short_hash(idempotency_key),
    }
    if not data_only:
        notification = {
            "title": text.title,
            "body": text.body,
            "click_action": CLICK_ACTION,
        }
        if play_sound:
            notification["sound"] = "default"
        android["notification"] = notification

    # Badge counts are owned by the client; never set one here.
    aps: dict = {"thread-id": short_hash(related_id or event.kind.value)}
    if data_only:
        aps["content-available"] = 1
    else:
        aps["alert"] = {"title": text.title, "body": text.body}
        if play_sound:
            aps["sound"] = "default"

    apns = {
        "headers": {
            "apns-priority": "5" if data_only else "10",
            "apns-push-type": "background" if data_only else "alert",
        },
        "payload": {"aps": aps},
    }

    return PushPayload(
        data=build_data(event, idempotency_key, trace_id, scheme),
        android=android,
        apns=apns,
    )
