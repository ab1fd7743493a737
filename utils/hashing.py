"""Deterministic hashing helpers."""

import hashlib
from typing import Any
import orjson
from config.constants import SHORT_HASH_LENGTH


def sha256_hex(*parts: str) -> str:
    """SHA-256 over `|`-joined parts."""
    raw = "|".join(parts)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def short_hash(value: str, length: int = SHORT_HASH_LENGTH) -> str:
    """Truncated SHA-1, used for collapse keys and thread ids."""
    return hashlib.sha1(value.encode("utf-8")).hexdigest()[:length]


def hash_payload(payload: Any) -> str:
    """Stable hash of a JSON-serializable payload (keys sorted)."""
    raw = orjson.dumps(payload, option=orjson.OPT_SORT_KEYS)
    return hashlib.sha256(raw).hexdigest()
