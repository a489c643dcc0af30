# Overview: UTC timestamp helpers shared by ledger rows, documents and report filters.

from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every timestamp column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str], *, end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse a query-string timestamp into naive UTC.

    Accepts full ISO-8601 datetimes (offset or trailing Z converted to UTC,
    naive values taken as UTC) and bare dates. A bare date maps to midnight,
    or to the last microsecond of that day when ``end_of_day`` is set so an
    inclusive ``end=YYYY-MM-DD`` filter covers the whole day.

    Blank input returns None; anything unparseable raises ValueError.
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    if len(s) == 10:
        day = date.fromisoformat(s)
        return datetime.combine(day, time.max if end_of_day else time.min)

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Render a stored timestamp as ISO-8601 with a trailing 'Z' (seconds precision)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")
