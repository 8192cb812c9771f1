"""Two-channel sync status (primary store + spreadsheet mirror)."""
from dataclasses import dataclass, replace
from datetime import date
from enum import Enum
from typing import Optional

from punchlog.models.log import LogEntry


class ChannelState(str, Enum):
    WAITING = "waiting"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class SyncStatus:
    """db = primary store channel, sheet = mirror channel."""

    db: ChannelState = ChannelState.WAITING
    sheet: ChannelState = ChannelState.WAITING

    def set(self, db: Optional[ChannelState] = None, sheet: Optional[ChannelState] = None) -> None:
        if db is not None:
            self.db = db
        if sheet is not None:
            self.sheet = sheet

    def snapshot(self) -> "SyncStatus":
        return replace(self)

    def as_dict(self) -> dict:
        return {"db": self.db.value, "sheet": self.sheet.value}


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one successful SyncCoordinator.sync() call."""

    day_key: date
    entry: LogEntry
    status: SyncStatus
    mirror_attempted: bool = False
    mirror_result: Optional[str] = None
