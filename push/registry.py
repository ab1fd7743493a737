"""Device token lookup and deduplication."""

from typing import Any
import structlog
from push.types import TokenEntry
from storage.repositories.device_token_repo import DeviceTokenRepository
from utils.time_utils import to_epoch_seconds

log = structlog.get_logger(__name__)


def recency_key(row: dict[str, Any]) -> float:
    """Most recent of last_used_at / updated_at / created_at, or 0."""
    return max(
        to_epoch_seconds(row.get("last_used_at")),
        to_epoch_seconds(row.get("updated_at")),
        to_epoch_seconds(row.get("created_at")),
        0.0,
    )


def _keep_most_recent(entries: list[TokenEntry], key_of) -> list[TokenEntry]:
    """Collapse entries sharing a key; a later entry wins ties."""
    chosen: dict[Any, TokenEntry] = {}
    exempt: list[TokenEntry] = []
    for entry in entries:
        key = key_of(entry)
        if key is None:
            exempt.append(entry)
            continue
        current = chosen.get(key)
        if current is None or entry.sort_key >= current.sort_key:
            chosen[key] = entry
    return list(chosen.values()) + exempt


def dedupe_tokens(rows: list[dict[str, Any]]) -> list[TokenEntry]:
    """Turn raw registry rows into unique send targets.

    Drops empty tokens, then keeps one entry per token string and one entry
    per device id. Rows without a device id skip the second pass.
    """
    entries: list[TokenEntry] = []
    for row in rows:
        token = row.get("token")
        if not isinstance(token, str) or not token.strip():
            continue
        entries.append(
            TokenEntry(
                token=token,
                handle=row.get("id"),
                device_id=row.get("device_id") or None,
                sort_key=recency_key(row),
            )
        )

    by_token = _keep_most_recent(entries, lambda e: e.token)
    return _keep_most_recent(by_token, lambda e: e.device_id)


class DeviceTokenRegistry:
    def __init__(self, token_repo: DeviceTokenRepository) -> None:
        self._repo = token_repo

    async def fetch(self, user_id: str) -> list[TokenEntry]:
        rows = await self._repo.get_for_user(user_id)
        entries = dedupe_tokens(rows)
        if len(entries) != len(rows):
            log.debug(
                "device_tokens_deduped",
                user_id=user_id,
                rows=len(rows),
                targets=len(entries),
            )
        return entries
