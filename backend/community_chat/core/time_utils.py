from datetime import datetime, timedelta
from typing import Optional
import pytz

UTC = pytz.utc

# Smallest step the databases we target can store
TICK = timedelta(microseconds=1)

def get_utc_now() -> datetime:
    """
    Current time in UTC as a naive datetime.
    All chat timestamps are stored naive-UTC so SQLite and PostgreSQL compare them the same way.
    """
    return datetime.now(UTC).replace(tzinfo=None)

def to_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Normalize an aware datetime to naive UTC. Naive input is assumed to be UTC already."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(UTC).replace(tzinfo=None)

def next_after(previous: Optional[datetime], now: Optional[datetime] = None) -> datetime:
    """
    Timestamp for the next event in an ordered log: `now`, unless that would not be
    strictly later than `previous` (clock skew, same microsecond).
    """
    now = now or get_utc_now()
    if previous is not None and now <= previous:
        return previous + TICK
    return now

def format_utc(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return to_naive_utc(dt).isoformat()

def parse_utc(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string (with or without offset, `Z` allowed) into naive UTC."""
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return to_naive_utc(datetime.fromisoformat(value))
