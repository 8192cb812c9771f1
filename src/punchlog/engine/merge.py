"""
Merge-on-write resolution of a partial update against the stored record.

Each field of a LogPatch is tri-state:
    OMITTED: not mentioned; the stored value is kept
    None: explicit clear; overwrites the stored value
    value: overwrites the stored value

resolve() is pure and idempotent: applying the same patch twice yields the
same record as applying it once.
"""
from dataclasses import dataclass
from typing import Any, Iterator, Mapping, Optional, Tuple

from punchlog.models.log import LogEntry, LogField


class _Omitted:
    """Sentinel type for a field the caller did not mention."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "OMITTED"

    def __bool__(self) -> bool:
        return False


OMITTED: Any = _Omitted()


@dataclass(frozen=True)
class LogPatch:
    am_in: Any = OMITTED
    am_out: Any = OMITTED
    pm_in: Any = OMITTED
    pm_out: Any = OMITTED
    activity: Any = OMITTED
    accomplished: Any = OMITTED

    @classmethod
    def from_mapping(cls, data: Mapping[Any, Any]) -> "LogPatch":
        """
        Build a patch from a mapping keyed by LogField, wire name ("amIn")
        or attribute name ("am_in"). Missing keys are omitted; None clears.

        Raises:
            ValueError: for keys that name no field.
        """
        kwargs = {}
        for key, value in data.items():
            kwargs[_field_for(key).attr] = value
        return cls(**kwargs)

    def get(self, field: LogField) -> Any:
        return getattr(self, field.attr)

    def items(self) -> Iterator[Tuple[LogField, Any]]:
        """Yield (field, value) for every field the patch mentions."""
        for field in LogField:
            value = self.get(field)
            if value is not OMITTED:
                yield field, value

    def mentions(self, field: LogField) -> bool:
        return self.get(field) is not OMITTED


def _field_for(key: Any) -> LogField:
    if isinstance(key, LogField):
        return key
    for field in LogField:
        if key == field.value or key == field.attr:
            return field
    raise ValueError(f"Unknown log field: {key!r}")


def resolve(existing: Optional[LogEntry], patch: LogPatch) -> LogEntry:
    """
    Compute the full record to persist.

    Args:
        existing: The stored record, or None when the day has never been written.
        patch: Partial update; omitted fields fall back to `existing`.

    Returns:
        The merged LogEntry.
    """
    merged = existing or LogEntry()
    for field, value in patch.items():
        merged = merged.with_value(field, value)
    return merged
