"""Recipient preference gating."""

from typing import Any
import structlog
from config.constants import EventKind, PreferenceCategory, SkipReason, category_for
from push.types import ALLOW, PreferenceDecision
from storage.repositories.user_repo import UserRepository

log = structlog.get_logger(__name__)


def evaluate_preferences(
    prefs: dict[str, Any],
    kind: EventKind,
    group_id: str | None = None,
) -> PreferenceDecision:
    """Apply global, category and group switches, in that order.

    Only an explicit False blocks; missing keys default to enabled.
    """
    if prefs.get(PreferenceCategory.GLOBAL.value) is False:
        return PreferenceDecision(False, SkipReason.GLOBAL_MUTED)

    category = category_for(kind)
    if category is not PreferenceCategory.GLOBAL and prefs.get(category.value, True) is False:
        return PreferenceDecision(False, SkipReason.CATEGORY_MUTED)

    if group_id:
        groups = prefs.get("groups") or {}
        group_prefs = groups.get(group_id) or {}
        if group_prefs.get("muted") is True:
            return PreferenceDecision(False, SkipReason.GROUP_MUTED)
        if category is PreferenceCategory.CHAT_EVENTS and group_prefs.get("chat") is False:
            return PreferenceDecision(False, SkipReason.GROUP_CATEGORY_MUTED)
        if (
            category is PreferenceCategory.ACTIVITY_UPDATES
            and group_prefs.get("activities") is False
        ):
            return PreferenceDecision(False, SkipReason.GROUP_CATEGORY_MUTED)

    return ALLOW


class PreferenceResolver:
    """Answer allow/block for a recipient and event kind."""

    def __init__(self, user_repo: UserRepository) -> None:
        self._user_repo = user_repo

    async def resolve(
        self,
        recipient_id: str,
        kind: EventKind,
        group_id: str | None = None,
    ) -> PreferenceDecision:
        prefs = await self._user_repo.get_push_preferences(recipient_id)
        if prefs is None:
            return PreferenceDecision(False, SkipReason.RECIPIENT_NOT_FOUND)

        decision = evaluate_preferences(prefs, kind, group_id)
        if not decision.allowed:
            log.debug(
                "push_preference_blocked",
                recipient_id=recipient_id,
                kind=kind.value,
                group_id=group_id,
                reason=decision.reason.value if decision.reason else None,
            )
        return decision
