"""Constants used across the application."""

from enum import Enum


class EventKind(str, Enum):
    """Domain events that may produce a push notification.

    The mobile client maps `n_type` (the enum value) to its local template.
    """
    # Chat
    CHAT_MESSAGE = "chat_message"
    EVENT_CHAT_MESSAGE = "event_chat_message"
    EVENT_JOIN = "event_join"
    # Activities
    ACTIVITY_CREATED = "activity_created"
    ACTIVITY_HEATING_UP = "activity_heating_up"
    ACTIVITY_JOIN_REQUEST = "activity_join_request"
    ACTIVITY_JOIN_APPROVED = "activity_join_approved"
    ACTIVITY_JOIN_REJECTED = "activity_join_rejected"
    ACTIVITY_NEW_PARTICIPANT = "activity_new_participant"
    ACTIVITY_EXPIRING_SOON = "activity_expiring_soon"
    ACTIVITY_CANCELED = "activity_canceled"
    # Profile, social & reviews
    PROFILE_VIEWS_AGGREGATED = "profile_views_aggregated"
    REVIEW_PENDING = "review_pending"
    NEW_REVIEW_RECEIVED = "new_review_received"
    NEW_FOLLOWER = "new_follower"
    # System
    SYSTEM_ALERT = "system_alert"
    CUSTOM = "custom"


class PreferenceCategory(str, Enum):
    """Keys of `push_preferences` on the user profile."""
    GLOBAL = "global"
    CHAT_EVENTS = "chat_event"
    ACTIVITY_UPDATES = "activity_updates"


CHAT_EVENTS = frozenset({
    EventKind.CHAT_MESSAGE,
    EventKind.EVENT_CHAT_MESSAGE,
    EventKind.EVENT_JOIN,
})

ACTIVITY_EVENTS = frozenset({
    EventKind.ACTIVITY_CREATED,
    EventKind.ACTIVITY_HEATING_UP,
    EventKind.ACTIVITY_JOIN_REQUEST,
    EventKind.ACTIVITY_JOIN_APPROVED,
    EventKind.ACTIVITY_JOIN_REJECTED,
    EventKind.ACTIVITY_NEW_PARTICIPANT,
    EventKind.ACTIVITY_EXPIRING_SOON,
    EventKind.ACTIVITY_CANCELED,
})


def category_for(kind: EventKind) -> PreferenceCategory:
    """Map an event kind to the preference category that gates it."""
    if kind in CHAT_EVENTS:
        return PreferenceCategory.CHAT_EVENTS
    if kind in ACTIVITY_EVENTS:
        return PreferenceCategory.ACTIVITY_UPDATES
    return PreferenceCategory.GLOBAL


class ReceiptStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class OutboundOrigin(str, Enum):
    """Loop-prevention tag stamped on every outgoing payload (`n_origin`)."""
    ALERT = "alert"
    DATA_ONLY = "dataOnly"


class SkipReason(str, Enum):
    """Why a dispatch ended without sending."""
    INVALID_INPUT = "invalidInput"
    RECIPIENT_NOT_FOUND = "recipientNotFound"
    GLOBAL_MUTED = "globalMuted"
    CATEGORY_MUTED = "categoryMuted"
    GROUP_MUTED = "groupMuted"
    GROUP_CATEGORY_MUTED = "groupCategoryMuted"
    NO_TOKENS = "noTokens"
    DUPLICATE_SUPPRESSED = "duplicateSuppressed"
    ALREADY_SENT = "alreadySent"
    IN_FLIGHT = "inFlight"
    TRANSPORT_ERROR = "transportError"
    INTERNAL_ERROR = "internalError"


# Transport error codes that mean the registration is permanently dead
TOKEN_INVALID = "invalid-registration-token"
TOKEN_UNREGISTERED = "registration-token-not-registered"
INVALID_TOKEN_ERROR_CODES = frozenset({TOKEN_INVALID, TOKEN_UNREGISTERED})

# Identifier fields checked in event data, in priority order
RELATED_ID_FIELDS = (
    "relatedId",
    "n_related_id",
    "messageId",
    "activityId",
    "eventId",
    "reviewId",
    "followerId",
)

DEFAULT_NOTIFICATION_TITLE = "Notification"
DEFAULT_NOTIFICATION_BODY = "You have an update"
CLICK_ACTION = "FLUTTER_NOTIFICATION_CLICK"
DEFAULT_ACTIVITY_EMOJI = "🎉"

# FCM multicast limit per request
MAX_TOKENS_PER_MULTICAST = 500

SHORT_HASH_LENGTH = 16
