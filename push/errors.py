"""Dispatch outcomes that end a pipeline early.

These are raised between stages of `PushDispatcher.dispatch` and absorbed
there; none of them ever reaches a caller.
"""

from config.constants import SkipReason


class PushDispatchError(Exception):
    reason: SkipReason = SkipReason.INTERNAL_ERROR

    def __init__(self, message: str = "", reason: SkipReason | None = None) -> None:
        super().__init__(message or self.__class__.__name__)
        if reason is not None:
            self.reason = reason


class InvalidInput(PushDispatchError):
    reason = SkipReason.INVALID_INPUT


class RecipientNotFound(PushDispatchError):
    reason = SkipReason.RECIPIENT_NOT_FOUND


class PreferenceBlocked(PushDispatchError):
    reason = SkipReason.CATEGORY_MUTED


class NoTokens(PushDispatchError):
    reason = SkipReason.NO_TOKENS


class DuplicateSuppressed(PushDispatchError):
    reason = SkipReason.DUPLICATE_SUPPRESSED


class TransportError(PushDispatchError):
    """The multicast call itself failed, as opposed to a per-token failure."""
    reason = SkipReason.TRANSPORT_ERROR
