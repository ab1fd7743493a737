"""User profile repository (read-only from the gateway's point of view)."""

import asyncpg
from typing import Any


class UserRepository:
    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def get_push_preferences(self, user_id: str) -> dict[str, Any] | None:
        """Return the user's push preferences, or None if the user does not exist."""
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT push_preferences FROM user_profiles WHERE user_id = $1",
                user_id,
            )
        if row is None:
            return None
        prefs = row["push_preferences"]
        return prefs if isinstance(prefs, dict) else {}

