# Overview: UTC clock, ISO-8601 parsing and the day keys used by receipts and report filters.

from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional

RECEIPT_DAY_FORMAT = "%Y%m%d"


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical). Every stored timestamp uses it."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _is_date_only(s: str) -> bool:
    return len(s) == 10 and s[4] == "-" and s[7] == "-"


def parse_iso_datetime(value: Optional[str], *, end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DD" is midnight UTC, or the last microsecond of that day when
      `end_of_day` is set (an inclusive `end` filter covers the whole day)
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    if _is_date_only(s):
        day = date.fromisoformat(s)
        return datetime.combine(day, time.max if end_of_day else time.min)

    # Accept trailing Z from JS clients
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """Batch expiry dates: "YYYY-MM-DD"; a full timestamp is accepted and truncated."""
    dt = parse_iso_datetime(value)
    return dt.date() if dt else None


def receipt_day(now: Optional[datetime] = None) -> str:
    """YYYYMMDD key of the UTC day; receipt counters restart on each new key."""
    return (now or utcnow()).strftime(RECEIPT_DAY_FORMAT)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")
