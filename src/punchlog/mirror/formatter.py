"""Transforms a daily log into the row shape the spreadsheet script expects."""
from datetime import date, datetime
from typing import Dict, Optional

from punchlog.engine.days import TimezoneLike, get_zone
from punchlog.models.log import PUNCH_SLOTS, REPORT_FIELDS, LogEntry, LogField

# Fields whose presence makes a record worth mirroring.
MIRROR_TRIGGER_FIELDS = (
    LogField.ACTIVITY,
    LogField.ACCOMPLISHED,
    LogField.AM_IN,
    LogField.PM_OUT,
)


def should_mirror(entry: LogEntry) -> bool:
    return any(entry.get(field) not in (None, "") for field in MIRROR_TRIGGER_FIELDS)


def format_clock_time(value: Optional[datetime], tz: TimezoneLike = None) -> str:
    """US-style 12-hour clock time, e.g. "9:05 AM". Empty string for no value."""
    if value is None:
        return ""
    local = value.astimezone(get_zone(tz))
    hour = local.hour % 12 or 12
    suffix = "AM" if local.hour < 12 else "PM"
    return f"{hour}:{local.minute:02d} {suffix}"


def to_mirror_payload(
    day_key: date, entry: LogEntry, tz: TimezoneLike = None
) -> Dict[str, str]:
    """
    Build the webhook body.

    Returns:
        {"dateKey": "YYYY-MM-DD", "amIn": "9:05 AM", ..., "activity": "...",
         "accomplished": "..."} with "" for every missing value.
    """
    payload = {"dateKey": day_key.isoformat()}
    for field in PUNCH_SLOTS:
        payload[field.value] = format_clock_time(entry.get(field), tz)
    for field in REPORT_FIELDS:
        payload[field.value] = entry.get(field) or ""
    return payload
