"""
Primary store adapter: DailyLog rows in the SQL database.

SQLAlchemy sessions are blocking; every call runs in the thread pool
executor so it doesn't block the asyncio event loop.

Writes are idempotent upserts keyed by day_key: the whole merged record is
written, so a cleared field is persisted as NULL rather than skipped.
"""
import asyncio
from datetime import date
from typing import Dict, Optional

from sqlmodel import Session, select

from punchlog.models.log import DailyLog, LogEntry


class SQLModelLogRepository:
    """Reads and upserts daily logs through a SQLModel engine."""

    def __init__(self, engine):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result).
        """
        self.engine = engine

    async def _run(self, fn, *args):
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, lambda: fn(*args))

    async def fetch(self, day_key: date) -> Optional[LogEntry]:
        """Return the stored entry for day_key, or None if the day was never written."""
        return await self._run(self._fetch_sync, day_key)

    async def upsert(self, day_key: date, entry: LogEntry) -> LogEntry:
        """Write the full entry for day_key and return it as stored."""
        return await self._run(self._upsert_sync, day_key, entry)

    async def list_all(self) -> Dict[date, LogEntry]:
        """Bulk fetch of every stored day, oldest first."""
        return await self._run(self._list_all_sync)

    # ─── Blocking implementations ─────────────────────────────────────────────

    def _fetch_sync(self, day_key: date) -> Optional[LogEntry]:
        with Session(self.engine) as s:
            row = s.exec(
                select(DailyLog).where(DailyLog.day_key == day_key)
            ).first()
            return row.to_entry() if row else None

    def _upsert_sync(self, day_key: date, entry: LogEntry) -> LogEntry:
        with Session(self.engine) as s:
            row = s.exec(
                select(DailyLog).where(DailyLog.day_key == day_key)
            ).first()
            if row is None:
                row = DailyLog(day_key=day_key)
            row.apply_entry(entry)
            s.add(row)
            s.commit()
            s.refresh(row)
            return row.to_entry()

    def _list_all_sync(self) -> Dict[date, LogEntry]:
        with Session(self.engine) as s:
            rows = s.exec(select(DailyLog).order_by(DailyLog.day_key)).all()
            return {row.day_key: row.to_entry() for row in rows}
