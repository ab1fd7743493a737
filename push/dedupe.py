"""Per-process duplicate suppression in front of the ledger claim.

Advisory only: it is not shared between instances and is empty after a
restart, so the ledger still decides every dispatch it does not catch.
"""

import time
from collections import OrderedDict
from typing import Callable


class DedupeCache:
    """Keys seen recently, with a per-key TTL and a size cap (oldest evicted first)."""

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_entries: int = 2000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._store: OrderedDict[str, float] = OrderedDict()

    def __len__(self) -> int:
        return len(self._store)

    def seen(self, key: str) -> bool:
        """True if `key` was marked and has not expired."""
        expires_at = self._store.get(key)
        if expires_at is None:
            return False
        if self._clock() >= expires_at:
            del self._store[key]
            return False
        return True

    def mark(self, key: str) -> None:
        self._store[key] = self._clock() + self._ttl
        self._store.move_to_end(key)
        while len(self._store) > self._max_entries:
            self._store.popitem(last=False)

    def discard(self, key: str) -> None:
        self._store.pop(key, None)

    def cleanup(self) -> int:
        """Remove expired entries. Returns count of removed entries."""
        now = self._clock()
        expired = [k for k, exp in self._store.items() if now >= exp]
        for k in expired:
            del self._store[k]
        return len(expired)
