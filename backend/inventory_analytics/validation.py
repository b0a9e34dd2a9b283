from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import TypeVar

from inventory_analytics.time_utils import parse_iso_date, parse_iso_datetime, today

T = TypeVar("T")


class ValidationError(ValueError):
    """400-level input problem."""


class InvalidRangeError(ValidationError):
    """start/from is after end/to. Rejected before any query runs."""


def blank_to_null(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def require_non_blank(value: str | None, name: str) -> str:
    stripped = blank_to_null(value)
    if stripped is None:
        raise ValidationError(f"{name} must not be blank")
    return stripped


def require_non_null(value: T | None, name: str) -> T:
    if value is None:
        raise ValidationError(f"{name} must not be null")
    return value


def validate_range(start, end, *, start_name: str = "start", end_name: str = "end") -> None:
    """Both bounds inclusive; equal bounds are a valid one-day (or one-instant) range."""
    if start is not None and end is not None and start > end:
        raise InvalidRangeError(f"{start_name} must be on or before {end_name}")


def default_and_validate_window(
    start: date | None,
    end: date | None,
    *,
    window_days: int = 30,
    reference: date | None = None,
) -> tuple[date, date]:
    """
    Fill a missing start/end with the trailing window ending today, then validate.

    - start missing -> today - window_days
    - end missing   -> today
    """
    ref = reference or today()
    s = start if start is not None else ref - timedelta(days=window_days)
    e = end if end is not None else ref
    validate_range(s, e)
    return s, e


def parse_date_arg(value: str | None, name: str) -> date | None:
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date (YYYY-MM-DD)")


def parse_datetime_arg(value: str | None, name: str) -> datetime | None:
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


def parse_int_arg(value: str | None, name: str) -> int | None:
    stripped = blank_to_null(value)
    if stripped is None:
        return None
    # Reject decimals and scientific notation ("12.5", "1e3")
    if "." in stripped or "e" in stripped.lower():
        raise ValidationError(f"{name} must be a plain integer")
    try:
        return int(stripped)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")
