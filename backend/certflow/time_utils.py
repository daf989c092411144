from __future__ import annotations

import calendar
from datetime import date, datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DD" is interpreted as midnight UTC
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    # Normalize to UTC-naive
    if dt.tzinfo is None:
        # interpret naive as UTC
        return dt.replace(tzinfo=None)

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


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


def month_start(day: date) -> datetime:
    """First instant of the month containing ``day``."""
    return datetime(day.year, day.month, 1)


def month_end(day: date) -> datetime:
    """Last representable instant of the month containing ``day``."""
    last_day = calendar.monthrange(day.year, day.month)[1]
    return datetime(day.year, day.month, last_day, 23, 59, 59, 999999)


def parse_month(value: Optional[str]) -> Optional[date]:
    """Parse "YYYY-MM" (or a full ISO date) into the first day of that month."""
    if value is None or not value.strip():
        return None
    s = value.strip()
    if len(s) == 7:
        year, month = s.split("-")
        return date(int(year), int(month), 1)
    parsed = parse_iso_datetime(s)
    return date(parsed.year, parsed.month, 1)
