"""
Day keys and calendar-day eligibility.

A day key is a plain `datetime.date` taken in a fixed reference timezone,
never a locale-rendered string.
"""
from datetime import date, datetime, timezone, tzinfo
from typing import Union
from zoneinfo import ZoneInfo

# JavaScript Date.toDateString() rendering, e.g. "Mon Oct 19 2026"
_LEGACY_KEY_FORMAT = "%a %b %d %Y"

TimezoneLike = Union[str, tzinfo, None]


def get_zone(tz: TimezoneLike) -> tzinfo:
    if tz is None:
        return timezone.utc
    if isinstance(tz, str):
        return timezone.utc if tz.upper() == "UTC" else ZoneInfo(tz)
    return tz


def day_key_for(instant: datetime, tz: TimezoneLike = None) -> date:
    """Calendar day of `instant` in the reference zone. Naive instants are taken as UTC."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(get_zone(tz)).date()


def parse_day_key(value: Union[str, date]) -> date:
    """
    Parse a wire day key: ISO "2026-10-19" or the legacy "Mon Oct 19 2026".

    Raises:
        ValueError: if neither format matches.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.strptime(text, _LEGACY_KEY_FORMAT).date()
    except ValueError:
        raise ValueError(f"Unrecognised day key: {value!r}") from None


def is_future(day: date, today: date) -> bool:
    return day > today


def is_day_selectable(day: date, today: date, has_data: bool) -> bool:
    """Future days never; today always; past days only when something was logged."""
    if is_future(day, today):
        return False
    return day == today or has_data
