"""
SyncCoordinator: writes one day to the primary store, then mirrors it.

Flow for a single sync (strictly sequential, no parallel writes):
  1. status = {loading, loading}
  2. Fetch the stored record for the day (may be absent)
  3. Merge the patch onto it (engine.merge.resolve)
  4. Upsert the merged record, retrying with backoff
  5. If the record has activity/accomplished/amIn/pmOut, POST it to the sheet
  6. status.db from step 4, status.sheet from step 5 (or waiting if skipped)

A failed fetch or write raises and the mirror is never attempted. The mirror
is best-effort: its failures are logged, recorded as sheet=error, and never
fail the call.

Every adapter call is bounded by a timeout. A timed-out upsert cannot be
cancelled (it runs in a worker thread), so its outcome is unknown: later
attempts wait on that same write, and before giving up the day is re-read
to see whether it landed.

No cross-client locking: two sessions syncing the same day race on
fetch → merge → write.
"""
import asyncio
import logging
from datetime import date
from functools import partial
from typing import Optional

from punchlog.config import Settings
from punchlog.engine.days import TimezoneLike
from punchlog.engine.merge import LogPatch, resolve
from punchlog.mirror.client import SheetMirrorClient
from punchlog.mirror.formatter import should_mirror, to_mirror_payload
from punchlog.models.log import LogEntry
from punchlog.models.sync import ChannelState, SyncResult, SyncStatus

logger = logging.getLogger(__name__)


class SyncError(RuntimeError):
    """Base class for primary-channel failures that fail a sync."""


class PrimaryReadFailed(SyncError):
    """The stored baseline could not be fetched; nothing was written."""


class PrimaryWriteFailed(SyncError):
    """
    The merged record could not be written to the primary store.

    `pending` is set when the last attempt timed out: that upsert is still
    running in its worker thread and may yet land.
    """

    def __init__(self, message: str, pending: Optional[asyncio.Future] = None):
        super().__init__(message)
        self.pending = pending


class SyncCoordinator:
    """Orchestrates primary write + best-effort mirror for one day at a time."""

    def __init__(
        self,
        primary,
        mirror=None,
        *,
        tz: TimezoneLike = None,
        timeout: Optional[float] = 10.0,
        write_attempts: int = 3,
        retry_backoff: float = 0.5,
    ):
        """
        Args:
            primary: Store with async fetch(day) / upsert(day, entry)
                (SQLModelLogRepository, or AsyncMock in tests).
            mirror: Client with async send(payload) -> MirrorResponse, or None
                to disable mirroring.
            tz: Reference zone for mirror clock times.
            timeout: Seconds allowed per adapter call; None disables.
            write_attempts: Total tries for the primary write.
            retry_backoff: Delay before the first retry, doubled each time.
        """
        self.primary = primary
        self.mirror = mirror
        self.tz = tz
        self.timeout = timeout
        self.write_attempts = max(1, write_attempts)
        self.retry_backoff = retry_backoff
        self.status = SyncStatus()

    def reset_status(self) -> None:
        self.status.set(db=ChannelState.WAITING, sheet=ChannelState.WAITING)

    async def sync(self, day_key: date, patch: LogPatch) -> SyncResult:
        """
        Persist `patch` for `day_key` and mirror the merged record.

        Returns:
            SyncResult with the persisted entry and a status snapshot.

        Raises:
            PrimaryReadFailed: the baseline fetch failed or timed out.
            PrimaryWriteFailed: every write attempt failed.
        """
        self.status.set(db=ChannelState.LOADING, sheet=ChannelState.LOADING)

        existing = await self._fetch_baseline(day_key)
        merged = resolve(existing, patch)
        stored = await self._write_primary(day_key, merged)
        self.status.set(db=ChannelState.SUCCESS)

        mirror_attempted = False
        mirror_result = None
        if self.mirror is not None and should_mirror(stored):
            mirror_attempted = True
            mirror_result = await self._write_mirror(day_key, stored)
        else:
            self.status.set(sheet=ChannelState.WAITING)

        return SyncResult(
            day_key=day_key,
            entry=stored,
            status=self.status.snapshot(),
            mirror_attempted=mirror_attempted,
            mirror_result=mirror_result,
        )

    # ─── Internal helpers ─────────────────────────────────────────────────────

    async def _call(self, coro):
        if self.timeout is None:
            return await coro
        return await asyncio.wait_for(coro, timeout=self.timeout)

    async def _fetch_baseline(self, day_key: date) -> Optional[LogEntry]:
        try:
            return await self._call(self.primary.fetch(day_key))
        except Exception as exc:
            logger.error("Fetching %s from primary store failed: %s", day_key, exc)
            self.status.set(db=ChannelState.ERROR, sheet=ChannelState.WAITING)
            raise PrimaryReadFailed(
                f"Could not load existing log for {day_key.isoformat()}: {exc}"
            ) from exc

    async def _write_primary(self, day_key: date, entry: LogEntry) -> LogEntry:
        last_exc: Optional[BaseException] = None
        write: Optional[asyncio.Future] = None
        for attempt in range(1, self.write_attempts + 1):
            landed = _landed(write)
            if landed is not None:
                logger.info("Timed-out write for %s has landed", day_key)
                return landed
            # An upsert that timed out is still running in its executor thread;
            # wait on it again instead of starting a second, concurrent write.
            if write is None or write.done():
                write = asyncio.ensure_future(self.primary.upsert(day_key, entry))
            try:
                return await self._call(asyncio.shield(write))
            except asyncio.TimeoutError as exc:
                last_exc = exc
                logger.warning(
                    "Primary write for %s timed out (attempt %d/%d); outcome unknown",
                    day_key, attempt, self.write_attempts,
                )
            except Exception as exc:
                last_exc = exc
                logger.warning(
                    "Primary write for %s failed (attempt %d/%d): %s",
                    day_key, attempt, self.write_attempts, exc,
                )
            if attempt < self.write_attempts and self.retry_backoff > 0:
                await asyncio.sleep(self.retry_backoff * 2 ** (attempt - 1))

        landed = _landed(write)
        if landed is not None:
            return landed
        pending = None
        if write is not None and not write.done():
            stored = await self._fetch_if_written(day_key, entry)
            if stored is not None:
                logger.info("Timed-out write for %s found in primary store", day_key)
                return stored
            pending = write
            pending.add_done_callback(partial(_log_late_write, day_key))

        logger.error("Giving up on primary write for %s", day_key)
        self.status.set(db=ChannelState.ERROR, sheet=ChannelState.WAITING)
        raise PrimaryWriteFailed(
            f"Database save failed for {day_key.isoformat()}: {last_exc!r}",
            pending=pending,
        ) from last_exc

    async def _fetch_if_written(self, day_key: date, entry: LogEntry) -> Optional[LogEntry]:
        try:
            stored = await self._call(self.primary.fetch(day_key))
        except Exception as exc:
            logger.warning("Re-reading %s after a timed-out write failed: %s", day_key, exc)
            return None
        return stored if stored == entry else None

    async def _write_mirror(self, day_key: date, entry: LogEntry) -> Optional[str]:
        payload = to_mirror_payload(day_key, entry, self.tz)
        try:
            response = await self._call(self.mirror.send(payload))
        except Exception as exc:
            # Non-fatal: the primary store already holds the record.
            logger.warning("Sheet mirror for %s failed: %s", day_key, exc)
            self.status.set(sheet=ChannelState.ERROR)
            return None

        logger.info("Sheet response for %s: %s", payload["dateKey"], response.result)
        for line in response.logs:
            logger.info("  > %s", line)

        if response.ok:
            self.status.set(sheet=ChannelState.SUCCESS)
        else:
            if response.result == "not_found":
                logger.warning("Date %s not found in sheet", payload["dateKey"])
            else:
                logger.warning("Sheet rejected %s: %s", payload["dateKey"], response.result)
            self.status.set(sheet=ChannelState.ERROR)
        return response.result


def build_coordinator(primary, settings: Settings) -> SyncCoordinator:
    """Wire a coordinator from settings; mirroring is off when no webhook URL is set."""
    mirror = None
    if settings.mirror_webhook_url:
        mirror = SheetMirrorClient(
            settings.mirror_webhook_url, timeout=settings.mirror_timeout_seconds
        )
    return SyncCoordinator(
        primary,
        mirror,
        tz=settings.timezone,
        timeout=settings.adapter_timeout_seconds,
        write_attempts=settings.primary_write_attempts,
        retry_backoff=settings.retry_backoff_seconds,
    )


def _landed(write: Optional[asyncio.Future]) -> Optional[LogEntry]:
    """The stored entry of a finished, successful write; None otherwise."""
    if write is None or not write.done() or write.cancelled():
        return None
    if write.exception() is not None:
        return None
    return write.result()


def _log_late_write(day_key: date, write: asyncio.Future) -> None:
    if write.cancelled():
        return
    exc = write.exception()
    if exc is not None:
        logger.warning("Abandoned write for %s failed: %s", day_key, exc)
    else:
        logger.warning("Abandoned write for %s landed after the sync gave up", day_key)
