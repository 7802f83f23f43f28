import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqladmin import Admin
from starlette.middleware.sessions import SessionMiddleware

from autokudos.admin.views import (
    AdminAuth,
    PendingActivityAdmin,
    SeenActivityAdmin,
    UsageLedgerAdmin,
)
from autokudos.config import EngineConfig, settings
from autokudos.database import AsyncSessionLocal, create_all_tables, engine
from autokudos.routers.admin_actions import router as admin_actions_router
from autokudos.routers.dashboard import router as dashboard_router
from autokudos.routers.health import router as health_router
from autokudos.routers.webhook import router as webhook_router
from autokudos.services.activity_log import log_activity
from autokudos.services.engine import KudosEngine
from autokudos.services.scheduler import create_scheduler
from autokudos.services.strava import StravaClient

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── STARTUP ──────────────────────────────────────────────────────────────
    await create_all_tables()
    logger.info("Database tables ready")

    if not settings.SELF_ATHLETE_ID:
        logger.warning("SELF_ATHLETE_ID is not set; own activities will not be recognised")

    strava = StravaClient.from_settings(settings)
    kudos_engine = KudosEngine(
        EngineConfig.from_settings(settings),
        AsyncSessionLocal,
        strava,
    )
    await kudos_engine.prepare()
    app.state.engine = kudos_engine

    # Recovered state: a batch left over from before a restart keeps its open time
    snap = await kudos_engine.status()
    if snap.queue_size:
        logger.info(
            "Recovered pending batch: %d activities, open for %ds",
            snap.queue_size, snap.batch_age_seconds,
        )

    scheduler = create_scheduler(kudos_engine, settings)
    scheduler.start()
    app.state.scheduler = scheduler
    log_activity("info", "system", f"{settings.APP_NAME} online")
    logger.info("Scheduler started (poll every %d min)", settings.POLL_INTERVAL_MINUTES)

    yield

    # ── SHUTDOWN ─────────────────────────────────────────────────────────────
    scheduler.shutdown(wait=False)
    await strava.close()
    logger.info("Scheduler stopped")


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

# ── Session middleware — MUST be added before routes that use request.session ──
app.add_middleware(SessionMiddleware, secret_key=settings.ADMIN_PASSWORD)


# ── /admin/ redirect — must be registered BEFORE sqladmin mount ───────────────
@app.get("/admin/")
async def admin_home_redirect(request: Request):
    if request.session.get("authenticated"):
        return RedirectResponse("/admin/pending-activity/list", status_code=302)
    return RedirectResponse("/admin/login", status_code=302)


# ── Admin action routes — MUST be before Admin(app,...) mount ─────────────────
# sqladmin mounts at /admin and intercepts ALL /admin/* in route-order priority.
app.include_router(admin_actions_router)

# ── Admin ─────────────────────────────────────────────────────────────────────
auth_backend = AdminAuth(secret_key=settings.ADMIN_PASSWORD)
admin = Admin(app, engine, authentication_backend=auth_backend, base_url="/admin")
admin.add_view(PendingActivityAdmin)
admin.add_view(SeenActivityAdmin)
admin.add_view(UsageLedgerAdmin)

# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(webhook_router)
app.include_router(dashboard_router)
app.include_router(health_router)


# ── Request logging middleware ────────────────────────────────────────────────
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s → %d [%.1fms]",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    return response


# ── Global 500 handler ────────────────────────────────────────────────────────
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception on %s: %s", request.url.path, exc, exc_info=True)
    return JSONResponse({"error": str(exc), "status": 500}, status_code=500)
