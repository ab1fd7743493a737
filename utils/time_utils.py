"""UTC time helpers."""

from datetime import datetime, timezone

UTC = timezone.utc


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def to_epoch_seconds(value: datetime | int | float | None) -> float:
    """Epoch seconds for a timestamp column; 0 when missing or unusable.

    Numbers larger than 1e11 are taken to be epoch milliseconds.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, datetime):
        return ensure_utc(value).timestamp()
    if isinstance(value, (int, float)):
        return value / 1000.0 if value > 1e11 else float(value)
    return 0.0


def minute_bucket(dt: datetime) -> int:
    """Whole minutes since the epoch."""
    return int(ensure_utc(dt).timestamp() // 60)
