from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Any, Optional


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (how stock_history stores it)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    return utcnow().date()


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    ISO-8601 text -> naive UTC datetime.

    - blank -> None
    - no offset: taken as UTC already
    - "Z" or "+HH:MM": shifted to UTC, then tzinfo dropped
    """
    text = _blank_to_none(value)
    if text is None:
        return None
    if text[-1] in "zZ":
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """"YYYY-MM-DD" -> date; blank -> None."""
    text = _blank_to_none(value)
    return date.fromisoformat(text) if text is not None else None


def start_of_day(d: date) -> datetime:
    return datetime.combine(d, time.min)


def end_of_day(d: date) -> datetime:
    return datetime.combine(d, time.max)


def as_date(value: Any) -> date:
    """
    Coerce a driver value to a date.

    SQLite hands back "YYYY-MM-DD" strings for date() expressions while
    Oracle returns datetime objects for TRUNC(); both land here.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and len(value) >= 10 and value[4] == "-" and value[7] == "-":
        return date.fromisoformat(value[:10])
    raise ValueError(f"expected date/datetime/ISO string but got: {value!r}")


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Whole-second ISO-8601 with a trailing 'Z'; naive values are taken as UTC."""
    if dt is None:
        return None
    aware = dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)
    return aware.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
