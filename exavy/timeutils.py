"""Timestamp helpers. Stored timestamps are float epoch seconds in UTC."""

import calendar
from datetime import datetime, timezone


def coerce_timestamp(value):
    """Return epoch seconds for a stored timestamp, or None when absent/unparseable.

    Accepts floats written by this service, Firestore datetimes and ISO-8601
    strings written by older tooling.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        if raw.endswith('Z'):
            raw = raw[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return None
        return coerce_timestamp(parsed)
    return None


def month_start_ts(now_ts):
    """Start of the UTC calendar month containing ``now_ts``."""
    now = datetime.fromtimestamp(now_ts, tz=timezone.utc)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0).timestamp()


def add_months_ts(ts, months):
    """Shift ``ts`` by whole calendar months, clamping the day to the target month's end."""
    current = datetime.fromtimestamp(ts, tz=timezone.utc)
    month_index = current.month - 1 + months
    year = current.year + month_index // 12
    month = month_index % 12 + 1
    day = min(current.day, calendar.monthrange(year, month)[1])
    return current.replace(year=year, month=month, day=day).timestamp()


def to_iso(ts):
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()
