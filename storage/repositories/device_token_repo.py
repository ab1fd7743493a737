"""Device token registry storage."""

import asyncpg
from typing import Any


class DeviceTokenRepository:
    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def get_for_user(self, user_id: str) -> list[dict[str, Any]]:
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT id, token, user_id, device_id, platform,
                       last_used_at, updated_at, created_at
                FROM device_tokens
                WHERE user_id = $1
                ORDER BY id
                """,
                user_id,
            )
        return [dict(r) for r in rows]

    async def delete_many(self, token_ids: list[int]) -> int:
        """Delete token rows by id in one statement. Returns rows deleted."""
        if not token_ids:
            return 0
        async with self._pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM device_tokens WHERE id = ANY($1::bigint[])",
                token_ids,
            )
        return int(result.split()[-1])
