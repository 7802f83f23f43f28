import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from autokudos.config import settings
from autokudos.database import get_db
from autokudos.models import PendingActivity, SeenActivity

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    db_status = "ok"
    queue_size = 0
    seen_total = 0
    try:
        queue_size = (
            await db.execute(select(func.count(PendingActivity.activity_id)))
        ).scalar_one()
        seen_total = (
            await db.execute(select(func.count(SeenActivity.activity_id)))
        ).scalar_one()
    except SQLAlchemyError as exc:
        logger.error("Health check DB query failed: %s", exc)
        db_status = "error"

    scheduler = getattr(request.app.state, "scheduler", None)
    scheduler_status = "running" if scheduler and scheduler.running else "stopped"

    if settings.STRAVA_ACCESS_TOKEN:
        strava_auth = "static"
    elif settings.STRAVA_REFRESH_TOKEN:
        strava_auth = "refresh"
    else:
        strava_auth = "missing"

    overall_status = "ok"
    if db_status == "error" or strava_auth == "missing":
        overall_status = "degraded"

    return JSONResponse({
        "status":      overall_status,
        "db":          db_status,
        "scheduler":   scheduler_status,
        "strava_auth": strava_auth,
        "queue_size":  queue_size,
        "seen_total":  seen_total,
    })
