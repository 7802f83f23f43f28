"""
Admin monitoring endpoints for the batching engine.
All routes require the admin session cookie (same auth as the /admin panel).
Mounted at /admin/actions/
"""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from autokudos.database import get_db
from autokudos.dependencies import get_engine, require_admin
from autokudos.schemas import PendingActivitySchema, StatsSchema
from autokudos.services import pending_batch
from autokudos.services.activity_log import recent_activity
from autokudos.services.engine import KudosEngine

router = APIRouter(
    prefix="/admin/actions",
    tags=["admin-actions"],
    dependencies=[Depends(require_admin)],
)
logger = logging.getLogger(__name__)


@router.get("/status")
async def engine_status(engine: KudosEngine = Depends(get_engine)):
    snap = await engine.status()
    body = StatsSchema.model_validate(snap).model_dump(mode="json")
    body["config"] = {
        "size_threshold": engine.config.size_threshold,
        "age_threshold_minutes": int(engine.config.age_threshold.total_seconds() // 60),
        "max_drain": engine.config.max_drain,
        "send_delay": engine.config.send_delay,
        "opened_at_policy": engine.config.opened_at_policy.value,
        "time_zone": engine.config.time_zone,
    }
    return JSONResponse(body)


@router.get("/activity")
async def get_activity(category: str | None = None, limit: int = 60):
    """Recent engine events for the live log view."""
    return JSONResponse(recent_activity(limit=limit, category=category))


@router.get("/pending")
async def list_pending(limit: int = 100, db: AsyncSession = Depends(get_db)):
    rows = await pending_batch.list_pending(db, limit=limit)
    return JSONResponse([
        PendingActivitySchema.model_validate(r).model_dump(mode="json") for r in rows
    ])
