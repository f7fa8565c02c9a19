"""
Calendar-date helpers. Tasks only ever carry a pure date (YYYY-MM-DD); everything richer
is sanitized here before it reaches the state engine.
"""
from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# Already ISO date
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
# ISO date followed by a time component, optionally with Z or an offset
_ISO_DATETIME = re.compile(r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}")

_WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def _zone(tz_name: str | None) -> ZoneInfo:
    name = (tz_name or "").strip() or "UTC"
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def today_in_tz(tz_name: str | None = "UTC") -> date:
    """Current calendar date in the user's timezone (unknown names fall back to UTC)."""
    return datetime.now(_zone(tz_name)).date()


def as_date(value: date | datetime) -> date:
    """Strip the time component from a datetime; dates pass through."""
    if isinstance(value, datetime):
        return value.date()
    return value


def to_date_only(value: object, tz_name: str | None = None) -> date:
    """
    Sanitize a due date to a pure calendar date.
    Accepts date, datetime, "YYYY-MM-DD" and ISO datetimes ("2024-05-26T22:00:00.000Z").
    When tz_name is given, an aware datetime is converted to that zone before the date is
    taken, so a spreadsheet that stored local midnight as UTC still yields the right day.
    Raises ValueError for anything else.
    """
    if isinstance(value, datetime):
        if tz_name and value.tzinfo is not None:
            value = value.astimezone(_zone(tz_name))
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"not a date: {value!r}")
    raw = value.strip()
    if _ISO_DATE.match(raw):
        return date.fromisoformat(raw)
    if _ISO_DATETIME.match(raw):
        if tz_name:
            try:
                parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
            except ValueError:
                parsed = None
            if parsed is not None:
                return to_date_only(parsed, tz_name)
        return date.fromisoformat(raw[:10])
    raise ValueError(f"not a date: {value!r}")


def resolve_relative_date(value: str | None, today: date) -> str | None:
    """
    Convert a date phrase to YYYY-MM-DD relative to today.
    - If value is already YYYY-MM-DD (or an ISO datetime), return its date part.
    - 'today', 'tomorrow', 'yesterday', 'next week', 'in N days' and weekday names
      (next occurrence, never today) are resolved.
    - Otherwise return None.
    """
    if not value or not str(value).strip():
        return None
    raw = str(value).strip().lower()
    raw = re.sub(r"^(due|on)\s+", "", raw).strip()
    if _ISO_DATE.match(raw) or _ISO_DATETIME.match(raw):
        try:
            return to_date_only(raw).isoformat()
        except ValueError:
            return None
    if raw == "today":
        return today.isoformat()
    if raw == "tomorrow":
        return (today + timedelta(days=1)).isoformat()
    if raw == "yesterday":
        return (today - timedelta(days=1)).isoformat()
    if raw == "next week" or raw == "in a week":
        return (today + timedelta(days=7)).isoformat()
    m = re.match(r"^in\s+(\d+)\s+days?$", raw)
    if m:
        return (today + timedelta(days=int(m.group(1)))).isoformat()
    if raw in _WEEKDAYS:
        days_ahead = (_WEEKDAYS.index(raw) - today.weekday()) % 7
        if days_ahead == 0:
            days_ahead = 7  # "next" Monday if today is Monday
        return (today + timedelta(days=days_ahead)).isoformat()
    return None


def week_start(day: date) -> date:
    """Monday on or before day (ISO week start)."""
    return day - timedelta(days=day.weekday())


def month_start(day: date) -> date:
    return day.replace(day=1)
