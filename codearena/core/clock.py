"""Time helpers. All persisted timestamps are naive UTC."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time without tzinfo, matching what the database columns store"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    """Normalize an incoming (possibly aware) datetime to naive UTC"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
