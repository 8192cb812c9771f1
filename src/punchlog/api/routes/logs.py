"""Daily log routes: bulk fetch and merge-on-write save."""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlmodel import Session, select

from punchlog.config import ConfigurationError, Settings, get_settings
from punchlog.db.engine import get_engine, get_session
from punchlog.engine.days import parse_day_key
from punchlog.engine.merge import LogPatch
from punchlog.models.log import PUNCH_SLOTS, DailyLog, to_aware_utc
from punchlog.store.repository import SQLModelLogRepository
from punchlog.sync.coordinator import SyncCoordinator, SyncError, build_coordinator

logger = logging.getLogger(__name__)

router = APIRouter()


class SaveLogRequest(BaseModel):
    """
    Body of POST /save-log. A key left out of the JSON is "omitted" (keep the
    stored value); a key sent as null clears the stored value.
    """

    model_config = ConfigDict(populate_by_name=True)

    date_key: str = Field(alias="dateKey")
    am_in: Optional[datetime] = Field(default=None, alias="amIn")
    am_out: Optional[datetime] = Field(default=None, alias="amOut")
    pm_in: Optional[datetime] = Field(default=None, alias="pmIn")
    pm_out: Optional[datetime] = Field(default=None, alias="pmOut")
    activity: Optional[str] = None
    accomplished: Optional[str] = None

    def to_patch(self) -> LogPatch:
        sent = {}
        for name in self.model_fields_set - {"date_key"}:
            sent[name] = getattr(self, name)
        for slot in PUNCH_SLOTS:
            if slot.attr in sent:
                sent[slot.attr] = to_aware_utc(sent[slot.attr])
        return LogPatch.from_mapping(sent)


def get_repository() -> SQLModelLogRepository:
    return SQLModelLogRepository(get_engine())


def get_coordinator(
    repository: SQLModelLogRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> SyncCoordinator:
    return build_coordinator(repository, settings)


@router.get("/get-logs")
def get_logs(session: Session = Depends(get_session)):
    """Return every stored day, oldest first."""
    try:
        rows = session.exec(select(DailyLog).order_by(DailyLog.day_key)).all()
    except Exception as exc:
        logger.error("Fetching logs failed: %s", exc)
        return JSONResponse(status_code=500, content={"error": str(exc)})
    return {"data": [row.to_record() for row in rows]}


@router.post("/save-log")
async def save_log(
    request: SaveLogRequest,
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """
    Merge the sent fields onto the stored day, upsert it, and mirror it to the
    sheet. Sheet failures are logged but never fail the request.
    """
    try:
        day_key = parse_day_key(request.date_key)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    try:
        result = await coordinator.sync(day_key, request.to_patch())
    except (SyncError, ConfigurationError) as exc:
        return JSONResponse(
            status_code=500, content={"success": False, "error": str(exc)}
        )
    return {"success": True, **result.status.as_dict()}
