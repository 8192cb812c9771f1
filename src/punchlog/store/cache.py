"""
LogRecordStore: the session's in-memory view of every known day.

Built once per session and filled by an explicit load(); it never re-fetches
on its own. Local changes are two-phase: apply_tentative() updates the cache
immediately and returns a token, then the caller either confirm()s it with
the record the primary store acknowledged or revert()s it after a failed
write so the cache never shows a punch that was not persisted.
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional

from punchlog.engine.days import is_day_selectable
from punchlog.engine.merge import LogPatch, resolve
from punchlog.models.log import LogEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingChange:
    day_key: date
    previous: Optional[LogEntry]
    tentative: LogEntry


class LogRecordStore:
    def __init__(self, primary):
        """
        Args:
            primary: Store with async list_all() -> {date: LogEntry}.
        """
        self.primary = primary
        self._logs: Dict[date, LogEntry] = {}
        self.loaded = False

    async def load(self) -> None:
        """Bulk-fetch all stored days, replacing the cache contents."""
        logs = await self.primary.list_all()
        self._logs = dict(logs)
        self.loaded = True
        logger.info("Loaded %d daily logs", len(self._logs))

    def get(self, day_key: date) -> LogEntry:
        return self._logs.get(day_key) or LogEntry()

    def days_with_data(self) -> List[date]:
        return sorted(day for day, entry in self._logs.items() if entry.has_data)

    def is_day_selectable(self, day_key: date, today: date) -> bool:
        return is_day_selectable(day_key, today, self.get(day_key).has_data)

    # ─── Two-phase update ─────────────────────────────────────────────────────

    def apply_tentative(self, day_key: date, patch: LogPatch) -> PendingChange:
        previous = self._logs.get(day_key)
        tentative = resolve(previous, patch)
        self._logs[day_key] = tentative
        return PendingChange(day_key=day_key, previous=previous, tentative=tentative)

    def confirm(self, change: PendingChange, stored: LogEntry) -> None:
        self._logs[change.day_key] = stored

    def revert(self, change: PendingChange) -> None:
        if change.previous is None:
            self._logs.pop(change.day_key, None)
        else:
            self._logs[change.day_key] = change.previous
        logger.info("Reverted unsaved change for %s", change.day_key)
