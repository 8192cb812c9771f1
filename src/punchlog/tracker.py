"""
AttendanceTracker: the per-session facade the views talk to.

Wraps a LogRecordStore and a SyncCoordinator and exposes the three user
actions: punch a slot, clear a slot, submit the end-of-day report. Rule
checks (PunchEngine, LockPolicy) run before any I/O; each action is then a
tentative cache update confirmed or reverted by the sync outcome.
"""
import asyncio
import logging
from datetime import date, datetime, timedelta
from functools import partial
from typing import Callable, Optional

from punchlog.config import Settings
from punchlog.engine import punch as punch_engine
from punchlog.engine.days import TimezoneLike, day_key_for
from punchlog.engine.lock import DEFAULT_LOCK_THRESHOLD, EditNotAllowed, require_editable
from punchlog.engine.merge import LogPatch
from punchlog.models.log import REPORT_FIELDS, LogEntry, LogField, utcnow
from punchlog.models.sync import SyncResult, SyncStatus
from punchlog.store.cache import LogRecordStore, PendingChange
from punchlog.store.repository import SQLModelLogRepository
from punchlog.sync.coordinator import PrimaryWriteFailed, SyncCoordinator, build_coordinator

logger = logging.getLogger(__name__)

DEFAULT_DAY_COMPLETE_DELAY = 0.8  # seconds


class AttendanceTracker:
    def __init__(
        self,
        store: LogRecordStore,
        coordinator: SyncCoordinator,
        *,
        tz: TimezoneLike = None,
        lock_threshold: timedelta = DEFAULT_LOCK_THRESHOLD,
        day_complete_delay: float = DEFAULT_DAY_COMPLETE_DELAY,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.coordinator = coordinator
        self.tz = tz
        self.lock_threshold = lock_threshold
        self.day_complete_delay = day_complete_delay
        self.clock = clock

    @property
    def status(self) -> SyncStatus:
        return self.coordinator.status

    def today(self, now: Optional[datetime] = None) -> date:
        return day_key_for(now or self.clock(), self.tz)

    def entry(self, day_key: date) -> LogEntry:
        return self.store.get(day_key)

    async def punch(
        self,
        day_key: date,
        slot: LogField,
        now: Optional[datetime] = None,
        on_day_complete: Optional[Callable[[], None]] = None,
    ) -> SyncResult:
        """
        Record `now` into `slot` for `day_key`.

        Punching pmOut schedules `on_day_complete` after a short delay; the
        punch itself never waits on it.

        Raises:
            EditNotAllowed: day_key is not today.
            PunchNotAllowed: slot is not the eligible one.
            SyncError: the primary store rejected the write (cache reverted).
        """
        now = now or self.clock()
        if day_key != self.today(now):
            raise EditNotAllowed(f"Punches are only accepted for today, not {day_key.isoformat()}")
        patch = punch_engine.punch(self.store.get(day_key), slot, now)
        result = await self._commit(day_key, patch)

        if punch_engine.is_terminal(slot) and on_day_complete is not None:
            asyncio.get_event_loop().call_later(self.day_complete_delay, on_day_complete)
        return result

    async def clear(
        self,
        day_key: date,
        slot: LogField,
        now: Optional[datetime] = None,
        confirm: Optional[Callable[[], bool]] = None,
    ) -> Optional[SyncResult]:
        """
        Clear a recorded punch. Later slots are left untouched.

        Returns:
            The SyncResult, or None if `confirm` declined.

        Raises:
            EditNotAllowed: the slot is locked or holds no value.
        """
        now = now or self.clock()
        entry = self.store.get(day_key)
        require_editable(entry, slot, day_key, now, self.tz, self.lock_threshold)
        if entry.get(slot) is None:
            raise EditNotAllowed(f"{slot.value} has no recorded time to clear")
        patch = punch_engine.clear(slot)
        if confirm is not None and not confirm():
            logger.info("Clear of %s on %s cancelled", slot.value, day_key)
            return None
        return await self._commit(day_key, patch)

    async def submit_report(
        self,
        day_key: date,
        activity: Optional[str] = None,
        accomplished: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> SyncResult:
        """
        Save the end-of-day report and mirror the day to the sheet.

        Missing text is saved as "" so the report counts as submitted.
        """
        now = now or self.clock()
        entry = self.store.get(day_key)
        for field in REPORT_FIELDS:
            require_editable(entry, field, day_key, now, self.tz, self.lock_threshold)

        self.coordinator.reset_status()
        patch = LogPatch(activity=activity or "", accomplished=accomplished or "")
        return await self._commit(day_key, patch)

    async def _commit(self, day_key: date, patch: LogPatch) -> SyncResult:
        change = self.store.apply_tentative(day_key, patch)
        try:
            result = await self.coordinator.sync(day_key, patch)
        except PrimaryWriteFailed as exc:
            self.store.revert(change)
            if exc.pending is not None:
                exc.pending.add_done_callback(partial(self._late_write, change))
            raise
        except BaseException:
            # Includes cancellation: the write may not have landed.
            self.store.revert(change)
            raise
        self.store.confirm(change, result.entry)
        return result

    def _late_write(self, change: PendingChange, write: asyncio.Future) -> None:
        """Bring the cache back in line when a timed-out write lands after all."""
        if write.cancelled() or write.exception() is not None:
            return
        if self.store.get(change.day_key) != (change.previous or LogEntry()):
            logger.warning("Late write for %s ignored: day changed since", change.day_key)
            return
        self.store.confirm(change, write.result())
        logger.info("Late write for %s landed; cache updated", change.day_key)


async def open_tracker(engine, settings: Settings) -> AttendanceTracker:
    """Build a session tracker on `engine` and load every stored day into its cache."""
    repository = SQLModelLogRepository(engine)
    store = LogRecordStore(repository)
    await store.load()
    return AttendanceTracker(
        store,
        build_coordinator(repository, settings),
        tz=settings.timezone,
        lock_threshold=timedelta(minutes=settings.edit_lock_minutes),
        day_complete_delay=settings.day_complete_delay_ms / 1000,
    )
