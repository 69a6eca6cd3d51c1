"""UTC helpers.

Timestamps are stored as naive UTC; SQLite drops tzinfo on the way back and
PostgreSQL returns aware values, so comparisons go through ``naive_utc``.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is not None and dt.tzinfo is not None:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt
