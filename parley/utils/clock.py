"""Time helpers. All persisted timestamps are naive UTC."""
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current UTC time without tzinfo, matching the DateTime columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_timestamp(moment: datetime) -> int:
    """Seconds since the epoch for a naive-UTC datetime"""
    return int(moment.replace(tzinfo=timezone.utc).timestamp())


def from_timestamp(seconds: int) -> datetime:
    """Naive-UTC datetime for seconds since the epoch"""
    return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(tzinfo=None)
