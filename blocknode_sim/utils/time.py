"""Time utility functions for block and mirror node timestamps."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Union

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def get_current_utc() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def to_utc_timestamp(timestamp: Union[int, float, datetime]) -> datetime:
    """Convert various timestamp formats to UTC datetime."""
    if isinstance(timestamp, datetime):
        if timestamp.tzinfo is None:
            return timestamp.replace(tzinfo=timezone.utc)
        return timestamp.astimezone(timezone.utc)

    elif isinstance(timestamp, (int, float)):
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)

    else:
        raise ValueError(f"Unsupported timestamp type: {type(timestamp)}")


def to_iso8601(dt: datetime) -> str:
    """Format as ISO-8601 with millisecond precision and a ``Z`` suffix."""
    dt = to_utc_timestamp(dt)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def offset_ms(dt: datetime, milliseconds: int) -> datetime:
    return dt + timedelta(milliseconds=milliseconds)


def epoch_millis(dt: datetime) -> int:
    """Milliseconds since the Unix epoch."""
    return (to_utc_timestamp(dt) - EPOCH) // timedelta(milliseconds=1)


def mirror_timestamp_to_iso(value: str) -> str:
    """Convert a mirror node ``<seconds>.<nanos>`` timestamp to ISO-8601."""
    seconds = Decimal(value)
    whole = int(seconds)
    micros = int((seconds - whole) * 1_000_000)
    dt = datetime.fromtimestamp(whole, tz=timezone.utc) + timedelta(microseconds=micros)
    return to_iso8601(dt)
