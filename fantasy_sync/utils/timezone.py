"""
Timezone utilities for the sync service.

All times are stored as naive UTC datetimes. The partner API sends ISO 8601
strings with an offset (or a trailing "Z"); they are normalized here before
they reach the store or any window computation.
"""
from datetime import datetime, timezone
from typing import Optional

UTC = timezone.utc


def utcnow() -> datetime:
    """Current time as a naive UTC datetime (the storage convention)."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
    if value is None:
        return None
    if value.tzinfo is not None:
        return value.astimezone(UTC).replace(tzinfo=None)
    return value


def parse_partner_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a partner API timestamp.

    Examples:
        >>> parse_partner_datetime("2026-03-01T18:00:00Z")
        datetime.datetime(2026, 3, 1, 18, 0)
        >>> parse_partner_datetime("2026-03-01T19:00:00+01:00")
        datetime.datetime(2026, 3, 1, 18, 0)
    """
    if not value:
        return None
    return to_naive_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def hours_between(start: datetime, end: datetime) -> float:
    """Signed hours from start to end."""
    return (end - start).total_seconds() / 3600


def whole_hours_between(start: datetime, end: datetime) -> int:
    """Signed whole hours from start to end, truncated toward zero."""
    return int(hours_between(start, end))


def isoformat_utc(value: Optional[datetime]) -> Optional[str]:
    """Format a stored naive UTC datetime as ISO 8601 with a Z suffix."""
    if value is None:
        return None
    return value.replace(microsecond=0).isoformat() + "Z"
