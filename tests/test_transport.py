"""Tests for push/transport.py — FCM mapping and multicast send."""

import pytest
from types import SimpleNamespace
from unittest.mock import patch
from firebase_admin import exceptions, messaging
from config.constants import TOKEN_INVALID, TOKEN_UNREGISTERED, EventKind
from push.payload import build_payload
from push.transport import FirebaseTransport, classify_error, to_multicast_message
from push.types import NotificationEvent, NotificationText


def _payload(**overrides):
    fields = {
        "recipient_id": "U1",
        "kind": EventKind.CHAT_MESSAGE,
        "data": {"senderId": "U2"},
        "notification": NotificationText("Ana", "Hi"),
    }
    fields.update(overrides)
    return build_payload(NotificationEvent(**fields), "k" * 64, "trace-1", "M1")


class TestClassifyError:
    def test_none(self):
        assert classify_error(None) is None

    def test_unregistered(self):
        assert classify_error(messaging.UnregisteredError("gone")) == TOKEN_UNREGISTERED

    def test_invalid_registration_token(self):
        exc = exceptions.InvalidArgumentError("The registration token is not a valid FCM registration token")
        assert classify_error(exc) == TOKEN_INVALID

    def test_other_invalid_argument(self):
        exc = exceptions.InvalidArgumentError("Message payload too large")
        assert classify_error(exc) == "invalid-argument"

    def test_unavailable(self):
        assert classify_error(exceptions.UnavailableError("try later")) == "unavailable"

    def test_plain_exception(self):
        assert classify_error(RuntimeError("?")) == "unknown"


class TestToMulticastMessage:
    def test_alert_message(self):
        message = to_multicast_message(["t1", "t2"], _payload())
        assert message.tokens == ["t1", "t2"]
        assert message.data["n_type"] == "chat_message"
        assert message.android.priority == "high"
        assert message.android.notification.title == "Ana"
        assert message.android.notification.sound == "default"
        aps = message.apns.payload.aps
        assert aps.alert.body == "Hi"
        assert aps.sound == "default"
        assert aps.badge is None
        assert aps.content_available is None
        assert message.apns.headers["apns-push-type"] == "alert"

    def test_data_only_message(self):
        message = to_multicast_message(["t1"], _payload(data_only=True))
        assert message.android.notification is None
        aps = message.apns.payload.aps
        assert aps.alert is None
        assert aps.sound is None
        assert aps.content_available is True
        assert message.apns.headers["apns-priority"] == "5"


def _respond(message, dry_run, app):
    responses = []
    for token in message.tokens:
        if token.startswith("dead"):
            responses.append(SimpleNamespace(
                success=False, message_id=None, exception=messaging.UnregisteredError("gone")))
        else:
            responses.append(SimpleNamespace(success=True, message_id=f"id-{token}", exception=None))
    return SimpleNamespace(responses=responses)


class TestFirebaseTransport:
    async def test_results_in_token_order(self):
        with patch.object(messaging, "send_each_for_multicast", side_effect=_respond) as send:
            results = await FirebaseTransport().send(["a", "dead-b", "c"], _payload())

        assert send.call_count == 1
        assert [r.success for r in results] == [True, False, True]
        assert results[0].message_id == "id-a"
        assert results[1].error_code == TOKEN_UNREGISTERED
        assert results[1].error_message == "gone"

    async def test_chunks_large_multicasts(self):
        tokens = [f"tok-{i}" for i in range(1100)]
        with patch.object(messaging, "send_each_for_multicast", side_effect=_respond) as send:
            results = await FirebaseTransport().send(tokens, _payload())

        sizes = [len(c.args[0].tokens) for c in send.call_args_list]
        assert sizes == [500, 500, 100]
        assert len(results) == 1100
        assert results[-1].message_id == "id-tok-1099"

    async def test_dry_run_and_app_forwarded(self):
        app = object()
        with patch.object(messaging, "send_each_for_multicast", side_effect=_respond) as send:
            await FirebaseTransport(app=app, dry_run=True).send(["a"], _payload())
        _, dry_run, used_app = send.call_args.args
        assert dry_run is True
        assert used_app is app

    async def test_call_failure_propagates(self):
        with patch.object(messaging, "send_each_for_multicast",
                          side_effect=exceptions.UnavailableError("down")):
            with pytest.raises(exceptions.UnavailableError):
                await FirebaseTransport().send(["a"], _payload())
