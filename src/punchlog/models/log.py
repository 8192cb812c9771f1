"""Daily log models: the in-memory LogEntry value and its persisted DailyLog row."""
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional, Union

from sqlmodel import Field, SQLModel


class LogField(str, Enum):
    """The six updatable fields of a day, valued by their wire (camelCase) names."""

    AM_IN = "amIn"
    AM_OUT = "amOut"
    PM_IN = "pmIn"
    PM_OUT = "pmOut"
    ACTIVITY = "activity"
    ACCOMPLISHED = "accomplished"

    @property
    def attr(self) -> str:
        """Attribute name on LogEntry / DailyLog, e.g. "am_in"."""
        return _ATTRS[self]

    @property
    def is_punch(self) -> bool:
        return self in PUNCH_SLOTS


_ATTRS = {
    LogField.AM_IN: "am_in",
    LogField.AM_OUT: "am_out",
    LogField.PM_IN: "pm_in",
    LogField.PM_OUT: "pm_out",
    LogField.ACTIVITY: "activity",
    LogField.ACCOMPLISHED: "accomplished",
}

# Workday order matters: PunchEngine walks these left to right.
PUNCH_SLOTS = (LogField.AM_IN, LogField.AM_OUT, LogField.PM_IN, LogField.PM_OUT)
REPORT_FIELDS = (LogField.ACTIVITY, LogField.ACCOMPLISHED)

FieldValue = Union[datetime, str, None]


@dataclass(frozen=True)
class LogEntry:
    """
    One calendar day of attendance.

    Punch values are timezone-aware UTC instants. The four punches are
    conceptually ordered (am_in <= am_out <= pm_in <= pm_out) but nothing
    here enforces it; a cleared am_in next to a set am_out is a legal value.
    """

    am_in: Optional[datetime] = None
    am_out: Optional[datetime] = None
    pm_in: Optional[datetime] = None
    pm_out: Optional[datetime] = None
    activity: Optional[str] = None
    accomplished: Optional[str] = None

    def get(self, field: LogField) -> FieldValue:
        return getattr(self, field.attr)

    def with_value(self, field: LogField, value: FieldValue) -> "LogEntry":
        return replace(self, **{field.attr: value})

    @property
    def has_data(self) -> bool:
        """True once the day has been started (morning punch-in recorded)."""
        return self.am_in is not None


def to_aware_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalise an instant to aware UTC; naive values (as SQLite returns them) are read as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DailyLog(SQLModel, table=True):
    """One row per calendar day. day_key is the upsert key."""

    id: Optional[int] = Field(default=None, primary_key=True)
    day_key: date = Field(unique=True, index=True)

    # Punches, UTC
    am_in: Optional[datetime] = None
    am_out: Optional[datetime] = None
    pm_in: Optional[datetime] = None
    pm_out: Optional[datetime] = None

    # End-of-day report
    activity: Optional[str] = None
    accomplished: Optional[str] = None

    updated_at: datetime = Field(default_factory=utcnow)

    def to_entry(self) -> LogEntry:
        return LogEntry(
            am_in=to_aware_utc(self.am_in),
            am_out=to_aware_utc(self.am_out),
            pm_in=to_aware_utc(self.pm_in),
            pm_out=to_aware_utc(self.pm_out),
            activity=self.activity,
            accomplished=self.accomplished,
        )

    def apply_entry(self, entry: LogEntry) -> None:
        """Overwrite every column with the values from entry (full-record write)."""
        for field in PUNCH_SLOTS:
            setattr(self, field.attr, to_aware_utc(entry.get(field)))
        for field in REPORT_FIELDS:
            setattr(self, field.attr, entry.get(field))
        self.updated_at = utcnow()

    def to_record(self) -> dict:
        """Wire shape returned by GET /api/get-logs."""
        entry = self.to_entry()
        return {
            "date_key": self.day_key.isoformat(),
            "am_in": _iso(entry.am_in),
            "am_out": _iso(entry.am_out),
            "pm_in": _iso(entry.pm_in),
            "pm_out": _iso(entry.pm_out),
            "activity": entry.activity,
            "accomplished": entry.accomplished,
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None
