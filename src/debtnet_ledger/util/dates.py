from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Union

from dateutil import parser as date_parser


def parse_due_date(value: str) -> datetime:
    """
    Parse a due date typed by a user into a UTC datetime at midnight:
    - "2025-12-26"
    - "12/26/2025"
    - "Dec 26 2025"
    """
    if value is None:
        raise ValueError("parse_due_date: value is None")
    s = value.strip()
    if not s:
        raise ValueError("parse_due_date: empty string")
    try:
        dt = date_parser.parse(s, dayfirst=False, yearfirst=False)
    except (ValueError, OverflowError) as e:
        raise ValueError(f"parse_due_date: cannot parse {value!r}") from e
    return ensure_utc(dt)


def ensure_utc(value: Union[date, datetime]) -> datetime:
    """Naive datetimes are taken as UTC; bare dates become midnight UTC."""
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
