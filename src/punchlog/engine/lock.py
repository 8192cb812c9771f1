"""
Time-based edit lock.

Past days are read-only and future days are never editable. On the current
day a punch stays editable for a fixed window (one hour by default) after it
was recorded; report fields stay editable all day.

Eligibility decays with wall-clock time, so callers must evaluate this on
every check rather than caching the result.
"""
from datetime import date, datetime, timedelta
from typing import List, Optional

from punchlog.engine.days import TimezoneLike, day_key_for
from punchlog.models.log import LogEntry, LogField

DEFAULT_LOCK_THRESHOLD = timedelta(hours=1)


class EditNotAllowed(PermissionError):
    """Raised when a field is locked for the viewed day."""


def is_punch_locked(
    value: Optional[datetime],
    now: datetime,
    threshold: timedelta = DEFAULT_LOCK_THRESHOLD,
) -> bool:
    """A recorded punch locks once strictly more than `threshold` has elapsed."""
    if value is None:
        return False
    return now - value > threshold


def is_editable(
    entry: LogEntry,
    field: LogField,
    day: date,
    now: datetime,
    tz: TimezoneLike = None,
    threshold: timedelta = DEFAULT_LOCK_THRESHOLD,
) -> bool:
    """
    Whether `field` of `entry` (stored under `day`) may be changed at `now`.

    Args:
        entry: The day's current record.
        field: Punch slot or report field.
        day: Day key the entry belongs to.
        now: Current instant (timezone-aware).
        tz: Reference zone used to derive today's day key from `now`.
        threshold: Edit window for recorded punches.
    """
    today = day_key_for(now, tz)
    if day != today:
        return False
    if not field.is_punch:
        return True
    return not is_punch_locked(entry.get(field), now, threshold)


def locked_fields(
    entry: LogEntry,
    day: date,
    now: datetime,
    tz: TimezoneLike = None,
    threshold: timedelta = DEFAULT_LOCK_THRESHOLD,
) -> List[LogField]:
    return [
        field for field in LogField
        if not is_editable(entry, field, day, now, tz, threshold)
    ]


def require_editable(
    entry: LogEntry,
    field: LogField,
    day: date,
    now: datetime,
    tz: TimezoneLike = None,
    threshold: timedelta = DEFAULT_LOCK_THRESHOLD,
) -> None:
    if not is_editable(entry, field, day, now, tz, threshold):
        raise EditNotAllowed(f"{field.value} is read-only for {day.isoformat()}")
