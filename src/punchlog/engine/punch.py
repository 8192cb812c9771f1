"""
Punch state machine for the four daily timestamp slots.

Eligibility per slot:
    amIn: amIn absent
    amOut: amIn present and amOut absent
    pmIn: amOut present and pmIn absent
    pmOut: pmIn present and pmOut absent

Only the first slot (in workday order) that satisfies its rule is offered,
so a day exposes at most one punchable slot even after out-of-order clears.

Clearing is unconditional on position and does not cascade: clearing amIn
while amOut is set leaves amOut in place.
"""
from datetime import datetime
from typing import Optional

from punchlog.engine.merge import LogPatch
from punchlog.models.log import PUNCH_SLOTS, LogEntry, LogField


class PunchNotAllowed(ValueError):
    """Raised when a punch targets a slot that is not currently eligible."""


def _rule_allows(entry: LogEntry, slot: LogField) -> bool:
    if entry.get(slot) is not None:
        return False
    index = PUNCH_SLOTS.index(slot)
    if index == 0:
        return True
    return entry.get(PUNCH_SLOTS[index - 1]) is not None


def next_slot(entry: LogEntry) -> Optional[LogField]:
    """Return the slot accepting the next punch, or None when the day is complete."""
    for slot in PUNCH_SLOTS:
        if _rule_allows(entry, slot):
            return slot
    return None


def is_eligible(entry: LogEntry, slot: LogField) -> bool:
    if slot not in PUNCH_SLOTS:
        return False
    return next_slot(entry) is slot


def is_day_complete(entry: LogEntry) -> bool:
    return next_slot(entry) is None


def punch(entry: LogEntry, slot: LogField, now: datetime) -> LogPatch:
    """
    Build the patch recording `now` into `slot`.

    Raises:
        PunchNotAllowed: slot is not a punch slot or is not the eligible one.
    """
    if not is_eligible(entry, slot):
        expected = next_slot(entry)
        raise PunchNotAllowed(
            f"Cannot punch {slot.value}: next eligible slot is "
            f"{expected.value if expected else 'none (day complete)'}"
        )
    return LogPatch(**{slot.attr: now})


def clear(slot: LogField) -> LogPatch:
    """Build the patch clearing `slot` (explicit null, no cascade)."""
    if slot not in PUNCH_SLOTS:
        raise PunchNotAllowed(f"{slot.value} is not a punch slot")
    return LogPatch(**{slot.attr: None})


def is_terminal(slot: LogField) -> bool:
    """Punching pmOut ends the workday and moves the user on to the report."""
    return slot is LogField.PM_OUT
