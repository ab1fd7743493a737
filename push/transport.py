"""Multicast send to device tokens via Firebase Cloud Messaging."""

import asyncio
from typing import Any, Protocol
import structlog
from firebase_admin import App, exceptions, messaging
from config.constants import MAX_TOKENS_PER_MULTICAST, TOKEN_INVALID, TOKEN_UNREGISTERED
from push.types import PushPayload, SendResult

log = structlog.get_logger(__name__)


class PushTransport(Protocol):
    async def send(self, tokens: list[str], payload: PushPayload) -> list[SendResult]:
        """One result per token, in input order. Raises if the call itself fails."""
        ...


def classify_error(exc: BaseException | None) -> str | None:
    """Map a firebase-admin exception to a stable error code."""
    if exc is None:
        return None
    if isinstance(exc, messaging.UnregisteredError):
        return TOKEN_UNREGISTERED
    if isinstance(exc, exceptions.InvalidArgumentError) and "registration token" in str(exc).lower():
        return TOKEN_INVALID
    code = getattr(exc, "code", None)
    if code:
        return str(code).lower().replace("_", "-")
    return "unknown"


def _android_config(android: dict[str, Any]) -> messaging.AndroidConfig:
    notification = None
    if "notification" in android:
        block = android["notification"]
        notification = messaging.AndroidNotification(
            title=block.get("title"),
            body=block.get("body"),
            sound=block.get("sound"),
            click_action=block.get("click_action"),
        )
    return messaging.AndroidConfig(
        priority=android.get("priority"),
        collapse_key=android.get("collapse_key"),
        notification=notification,
    )


def _apns_config(apns: dict[str, Any]) -> messaging.APNSConfig:
    aps = apns["payload"]["aps"]
    alert = None
    if "alert" in aps:
        alert = messaging.ApsAlert(title=aps["alert"].get("title"), body=aps["alert"].get("body"))
    return messaging.APNSConfig(
        headers=dict(apns.get("headers", {})),
        payload=messaging.APNSPayload(
            aps=messaging.Aps(
                alert=alert,
                sound=aps.get("sound"),
                content_available=bool(aps.get("content-available")) or None,
                thread_id=aps.get("thread-id"),
            )
        ),
    )


def to_multicast_message(tokens: list[str], payload: PushPayload) -> messaging.MulticastMessage:
    return messaging.MulticastMessage(
        tokens=tokens,
        data=payload.data,
        android=_android_config(payload.android),
        apns=_apns_config(payload.apns),
    )


class FirebaseTransport:
    """FCM multicast. The SDK call is blocking, so it runs in a worker thread."""

    def __init__(self, app: App | None = None, dry_run: bool = False) -> None:
        self._app = app
        self._dry_run = dry_run

    async def send(self, tokens: list[str], payload: PushPayload) -> list[SendResult]:
        results: list[SendResult] = []
        for start in range(0, len(tokens), MAX_TOKENS_PER_MULTICAST):
            chunk = tokens[start:start + MAX_TOKENS_PER_MULTICAST]
            message = to_multicast_message(chunk, payload)
            response = await asyncio.to_thread(
                messaging.send_each_for_multicast, message, self._dry_run, self._app
            )
            for item in response.responses:
                results.append(
                    SendResult(
                        success=item.success,
                        message_id=item.message_id,
                        error_code=classify_error(item.exception),
                        error_message=str(item.exception) if item.exception else None,
                    )
                )
        log.debug(
            "fcm_multicast_done",
            tokens=len(tokens),
            success=sum(1 for r in results if r.success),
        )
        return results
