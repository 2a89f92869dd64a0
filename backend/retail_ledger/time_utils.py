from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    return utcnow().date()


def parse_iso_date(value) -> Optional[date]:
    """
    Parse an ISO-8601 date ("YYYY-MM-DD") or datetime string into a date.

    - None / "" -> None
    - date/datetime instances pass through (datetime is truncated)
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if not s:
        return None
    if "T" in s or " " in s:
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        return datetime.fromisoformat(s).date()
    return date.fromisoformat(s)


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


def to_iso_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def note_timestamp(dt: Optional[datetime] = None) -> str:
    """Timestamp prefix used in appended note trails: 'YYYY-MM-DD HH:MM:SS'."""
    return (dt or utcnow()).strftime("%Y-%m-%d %H:%M:%S")


def start_of_day(d: date) -> datetime:
    return datetime.combine(d, datetime.min.time())


def end_of_day_exclusive(d: date) -> datetime:
    """Midnight after d; use with '<' for an inclusive end date."""
    return start_of_day(d + timedelta(days=1))
