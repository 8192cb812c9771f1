"""
Integration tests for SyncCoordinator.

The primary store is either the real SQLModel repository on in-memory SQLite
or an AsyncMock; the sheet mirror is always an AsyncMock. No network calls.
"""
import asyncio
import logging
from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from punchlog.config import Settings
from punchlog.engine.merge import LogPatch
from punchlog.mirror.client import MirrorError, MirrorResponse, SheetMirrorClient
from punchlog.models.log import LogEntry
from punchlog.models.sync import ChannelState
from punchlog.sync.coordinator import (
    PrimaryReadFailed,
    PrimaryWriteFailed,
    SyncCoordinator,
    build_coordinator,
)

DAY = date(2025, 3, 14)
T0 = datetime(2025, 3, 14, 8, 0, tzinfo=timezone.utc)


def make_mirror(result="success", logs=None, error=None):
    mirror = AsyncMock()
    if error is not None:
        mirror.send = AsyncMock(side_effect=error)
    else:
        mirror.send = AsyncMock(return_value=MirrorResponse(result=result, logs=logs or []))
    return mirror


def make_primary(existing=None, fetch_error=None, upsert_errors=()):
    """AsyncMock store whose upsert fails with each of `upsert_errors` before succeeding."""
    primary = AsyncMock()
    if fetch_error is not None:
        primary.fetch = AsyncMock(side_effect=fetch_error)
    else:
        primary.fetch = AsyncMock(return_value=existing)

    side_effects = list(upsert_errors)

    async def flaky_upsert(day_key, entry):
        if side_effects:
            raise side_effects.pop(0)
        return entry

    primary.upsert = AsyncMock(side_effect=flaky_upsert)
    return primary


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_first_punch_creates_record(self, repository):
        coordinator = SyncCoordinator(repository, make_mirror(), retry_backoff=0)
        result = await coordinator.sync(DAY, LogPatch(am_in=T0))
        assert result.entry == LogEntry(am_in=T0)
        assert await repository.fetch(DAY) == LogEntry(am_in=T0)

    @pytest.mark.asyncio
    async def test_second_punch_merges_with_stored(self, repository):
        coordinator = SyncCoordinator(repository, make_mirror(), retry_backoff=0)
        await coordinator.sync(DAY, LogPatch(am_in=T0))
        result = await coordinator.sync(DAY, LogPatch(am_out=T0 + timedelta(minutes=10)))
        assert result.entry.am_in == T0
        assert result.entry.am_out == T0 + timedelta(minutes=10)

    @pytest.mark.asyncio
    async def test_both_channels_succeed(self, repository):
        coordinator = SyncCoordinator(repository, make_mirror(), retry_backoff=0)
        result = await coordinator.sync(DAY, LogPatch(am_in=T0))
        assert result.status.as_dict() == {"db": "success", "sheet": "success"}
        assert result.mirror_attempted
        assert result.mirror_result == "success"
        assert coordinator.status.sheet is ChannelState.SUCCESS

    @pytest.mark.asyncio
    async def test_mirror_receives_formatted_row(self, repository):
        mirror = make_mirror()
        coordinator = SyncCoordinator(repository, mirror, retry_backoff=0)
        await coordinator.sync(DAY, LogPatch(am_in=T0, activity="Audit"))
        payload = mirror.send.await_args.args[0]
        assert payload["dateKey"] == "2025-03-14"
        assert payload["amIn"] == "8:00 AM"
        assert payload["pmOut"] == ""
        assert payload["activity"] == "Audit"
        assert payload["accomplished"] == ""

    @pytest.mark.asyncio
    async def test_clear_is_written_not_skipped(self, repository):
        coordinator = SyncCoordinator(repository, make_mirror(), retry_backoff=0)
        await coordinator.sync(DAY, LogPatch(am_in=T0, am_out=T0 + timedelta(hours=4)))
        result = await coordinator.sync(DAY, LogPatch(am_in=None))
        assert result.entry.am_in is None
        assert result.entry.am_out == T0 + timedelta(hours=4)
        assert (await repository.fetch(DAY)).am_in is None


class TestMirrorTrigger:
    @pytest.mark.asyncio
    async def test_no_trigger_fields_skips_mirror(self, repository):
        mirror = make_mirror()
        coordinator = SyncCoordinator(repository, mirror, retry_backoff=0)
        # am_out alone (am_in cleared earlier) does not qualify
        result = await coordinator.sync(DAY, LogPatch(am_out=T0))
        mirror.send.assert_not_awaited()
        assert not result.mirror_attempted
        assert result.status.as_dict() == {"db": "success", "sheet": "waiting"}

    @pytest.mark.asyncio
    async def test_no_mirror_configured(self, repository):
        coordinator = SyncCoordinator(repository, None, retry_backoff=0)
        result = await coordinator.sync(DAY, LogPatch(activity="A"))
        assert result.status.sheet is ChannelState.WAITING


class TestMirrorFailures:
    @pytest.mark.asyncio
    async def test_mirror_exception_does_not_fail_sync(self, repository):
        mirror = make_mirror(error=MirrorError("connection refused"))
        coordinator = SyncCoordinator(repository, mirror, retry_backoff=0)
        result = await coordinator.sync(DAY, LogPatch(activity="A", accomplished="B"))
        assert result.status.as_dict() == {"db": "success", "sheet": "error"}
        assert result.mirror_attempted
        assert result.mirror_result is None
        assert (await repository.fetch(DAY)).activity == "A"

    @pytest.mark.asyncio
    async def test_not_found_result_marks_sheet_error(self, repository, caplog):
        coordinator = SyncCoordinator(
            repository, make_mirror(result="not_found"), retry_backoff=0
        )
        with caplog.at_level(logging.WARNING):
            result = await coordinator.sync(DAY, LogPatch(am_in=T0))
        assert result.status.sheet is ChannelState.ERROR
        assert result.mirror_result == "not_found"
        assert "not found" in caplog.text

    @pytest.mark.asyncio
    async def test_script_logs_are_logged(self, repository, caplog):
        mirror = make_mirror(logs=["Found row 42", "Wrote 7 cells"])
        coordinator = SyncCoordinator(repository, mirror, retry_backoff=0)
        with caplog.at_level(logging.INFO, logger="punchlog.sync.coordinator"):
            await coordinator.sync(DAY, LogPatch(am_in=T0))
        assert "Found row 42" in caplog.text
        assert "Wrote 7 cells" in caplog.text

    @pytest.mark.asyncio
    async def test_mirror_timeout_is_best_effort(self):
        async def hang(payload):
            await asyncio.sleep(5)

        mirror = AsyncMock()
        mirror.send = AsyncMock(side_effect=hang)
        coordinator = SyncCoordinator(make_primary(), mirror, timeout=0.05, retry_backoff=0)
        result = await coordinator.sync(DAY, LogPatch(am_in=T0))
        assert result.status.as_dict() == {"db": "success", "sheet": "error"}


class TestPrimaryFailures:
    @pytest.mark.asyncio
    async def test_fetch_failure_aborts_without_writing(self):
        primary = make_primary(fetch_error=ConnectionError("db unreachable"))
        mirror = make_mirror()
        coordinator = SyncCoordinator(primary, mirror, retry_backoff=0)
        with pytest.raises(PrimaryReadFailed, match="db unreachable"):
            await coordinator.sync(DAY, LogPatch(activity="A"))
        primary.upsert.assert_not_awaited()
        mirror.send.assert_not_awaited()
        assert coordinator.status.as_dict() == {"db": "error", "sheet": "waiting"}

    @pytest.mark.asyncio
    async def test_write_failure_skips_mirror(self):
        primary = make_primary(upsert_errors=[RuntimeError("disk full")] * 3)
        mirror = make_mirror()
        coordinator = SyncCoordinator(primary, mirror, write_attempts=3, retry_backoff=0)
        with pytest.raises(PrimaryWriteFailed, match="disk full"):
            await coordinator.sync(DAY, LogPatch(am_in=T0))
        assert primary.upsert.await_count == 3
        mirror.send.assert_not_awaited()
        assert coordinator.status.db is ChannelState.ERROR

    @pytest.mark.asyncio
    async def test_write_retried_until_success(self):
        primary = make_primary(upsert_errors=[RuntimeError("locked")])
        coordinator = SyncCoordinator(primary, make_mirror(), write_attempts=3, retry_backoff=0)
        result = await coordinator.sync(DAY, LogPatch(am_in=T0))
        assert primary.upsert.await_count == 2
        assert result.status.db is ChannelState.SUCCESS

    @pytest.mark.asyncio
    async def test_backoff_doubles(self, monkeypatch):
        delays = []

        async def fake_sleep(seconds):
            delays.append(seconds)

        monkeypatch.setattr("punchlog.sync.coordinator.asyncio.sleep", fake_sleep)
        primary = make_primary(upsert_errors=[RuntimeError("x")] * 2)
        coordinator = SyncCoordinator(
            primary, None, timeout=None, write_attempts=3, retry_backoff=0.5
        )
        await coordinator.sync(DAY, LogPatch(am_in=T0))
        assert delays == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_merge_uses_fetched_baseline(self):
        existing = LogEntry(am_in=T0, activity="kept")
        primary = make_primary(existing=existing)
        coordinator = SyncCoordinator(primary, None, retry_backoff=0)
        await coordinator.sync(DAY, LogPatch(am_out=T0 + timedelta(hours=4)))
        written = primary.upsert.await_args.args[1]
        assert written.am_in == T0
        assert written.activity == "kept"


class TestTimedOutWrite:
    @staticmethod
    def slow_primary(delay):
        stored = {}
        primary = AsyncMock()

        async def fetch(day_key):
            return stored.get(day_key)

        async def upsert(day_key, entry):
            await asyncio.sleep(delay)
            stored[day_key] = entry
            return entry

        primary.fetch = AsyncMock(side_effect=fetch)
        primary.upsert = AsyncMock(side_effect=upsert)
        return primary

    @pytest.mark.asyncio
    async def test_retry_waits_on_in_flight_write(self):
        primary = self.slow_primary(0.2)
        coordinator = SyncCoordinator(primary, None, timeout=0.05, write_attempts=6, retry_backoff=0)
        result = await coordinator.sync(DAY, LogPatch(am_in=T0))
        assert primary.upsert.await_count == 1
        assert result.entry == LogEntry(am_in=T0)
        assert result.status.db is ChannelState.SUCCESS

    @pytest.mark.asyncio
    async def test_gives_up_with_pending_write(self):
        primary = self.slow_primary(0.3)
        coordinator = SyncCoordinator(primary, None, timeout=0.05, write_attempts=2, retry_backoff=0)
        with pytest.raises(PrimaryWriteFailed) as excinfo:
            await coordinator.sync(DAY, LogPatch(am_in=T0))
        assert primary.upsert.await_count == 1
        assert coordinator.status.db is ChannelState.ERROR
        assert await excinfo.value.pending == LogEntry(am_in=T0)

    @pytest.mark.asyncio
    async def test_write_found_on_reread_counts_as_success(self):
        primary = self.slow_primary(0.2)
        primary.fetch = AsyncMock(side_effect=[None, LogEntry(am_in=T0)])
        coordinator = SyncCoordinator(primary, None, timeout=0.05, write_attempts=1, retry_backoff=0)
        result = await coordinator.sync(DAY, LogPatch(am_in=T0))
        assert result.status.db is ChannelState.SUCCESS
        assert primary.fetch.await_count == 2
        await asyncio.sleep(0.25)

    @pytest.mark.asyncio
    async def test_failed_write_is_not_pending(self):
        primary = make_primary(upsert_errors=[RuntimeError("disk full")])
        coordinator = SyncCoordinator(primary, None, write_attempts=1, retry_backoff=0)
        with pytest.raises(PrimaryWriteFailed) as excinfo:
            await coordinator.sync(DAY, LogPatch(am_in=T0))
        assert excinfo.value.pending is None


class TestStatusLifecycle:
    @pytest.mark.asyncio
    async def test_loading_while_in_flight(self):
        seen = {}
        primary = make_primary()

        async def fetch(day_key):
            seen["status"] = coordinator.status.snapshot()
            return None

        primary.fetch = AsyncMock(side_effect=fetch)
        coordinator = SyncCoordinator(primary, None, retry_backoff=0)
        await coordinator.sync(DAY, LogPatch(am_in=T0))
        assert seen["status"].as_dict() == {"db": "loading", "sheet": "loading"}

    def test_reset_status(self):
        coordinator = SyncCoordinator(make_primary(), None)
        coordinator.status.set(db=ChannelState.ERROR, sheet=ChannelState.SUCCESS)
        coordinator.reset_status()
        assert coordinator.status.as_dict() == {"db": "waiting", "sheet": "waiting"}


class TestBuildCoordinator:
    def test_no_webhook_disables_mirror(self):
        coordinator = build_coordinator(make_primary(), Settings(mirror_webhook_url=""))
        assert coordinator.mirror is None

    def test_settings_are_applied(self):
        settings = Settings(
            mirror_webhook_url="https://script.example.com/exec",
            adapter_timeout_seconds=4.0,
            primary_write_attempts=5,
            retry_backoff_seconds=0.1,
            timezone="UTC",
        )
        coordinator = build_coordinator(make_primary(), settings)
        assert isinstance(coordinator.mirror, SheetMirrorClient)
        assert coordinator.mirror.url == "https://script.example.com/exec"
        assert coordinator.timeout == 4.0
        assert coordinator.write_attempts == 5
        assert coordinator.retry_backoff == 0.1
