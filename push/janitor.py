"""Removal of device tokens the transport reports as permanently dead."""

import structlog
from config.constants import INVALID_TOKEN_ERROR_CODES
from push.types import SendResult, TokenEntry
from storage.repositories.device_token_repo import DeviceTokenRepository
from utils.formatting import mask_token

log = structlog.get_logger(__name__)


def dead_entries(entries: list[TokenEntry], results: list[SendResult]) -> list[TokenEntry]:
    """Entries whose send result carries an invalid/unregistered token code."""
    return [
        entry
        for entry, result in zip(entries, results)
        if not result.success and result.error_code in INVALID_TOKEN_ERROR_CODES
    ]


class TokenJanitor:
    def __init__(self, token_repo: DeviceTokenRepository) -> None:
        self._repo = token_repo

    async def collect(self, entries: list[TokenEntry], results: list[SendResult]) -> int:
        """Delete dead tokens in one batch. Best effort: returns 0 on failure."""
        dead = dead_entries(entries, results)
        if not dead:
            return 0

        handles = [entry.handle for entry in dead if entry.handle is not None]
        try:
            deleted = await self._repo.delete_many(handles)
        except Exception as e:
            log.error(
                "invalid_token_cleanup_failed",
                tokens=[mask_token(entry.token) for entry in dead],
                error=str(e),
            )
            return 0

        log.warning(
            "invalid_tokens_removed",
            count=deleted,
            tokens=[mask_token(entry.token) for entry in dead],
        )
        return deleted
