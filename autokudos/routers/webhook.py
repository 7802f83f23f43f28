"""
Strava push subscription endpoint.

Events are acknowledged immediately and processed in a background task.
"""
import logging

from fastapi import APIRouter, BackgroundTasks, FastAPI, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError

from autokudos.config import settings
from autokudos.schemas import WebhookEvent
from autokudos.services.activity_log import log_activity
from autokudos.services.engine import KudosEngine

logger = logging.getLogger(__name__)

router = APIRouter()

ACK_BODY = "FORWARD_RECEIVED"


@router.get("/webhook")
async def verify_subscription(
    hub_mode: str = Query("", alias="hub.mode"),
    hub_challenge: str = Query("", alias="hub.challenge"),
    hub_verify_token: str = Query("", alias="hub.verify_token"),
):
    if (
        hub_mode == "subscribe"
        and settings.STRAVA_VERIFY_TOKEN
        and hub_verify_token == settings.STRAVA_VERIFY_TOKEN
    ):
        logger.info("Webhook subscription verified")
        return JSONResponse({"hub.challenge": hub_challenge})
    logger.warning("Webhook verification rejected (mode=%s)", hub_mode)
    return JSONResponse({"error": "verification failed"}, status_code=403)


@router.post("/webhook", response_class=PlainTextResponse)
async def receive_event(
    request: Request,
    background_tasks: BackgroundTasks,
) -> PlainTextResponse:
    try:
        event = WebhookEvent.model_validate(await request.json())
    except (ValueError, ValidationError) as exc:
        logger.warning("Unparseable webhook body: %s", exc)
        log_activity("warn", "webhook", "Unparseable webhook body ignored")
    else:
        background_tasks.add_task(_process_event, request.app, event)
    return PlainTextResponse(ACK_BODY, status_code=200)


async def _process_event(app: FastAPI, event: WebhookEvent) -> None:
    engine: KudosEngine | None = getattr(app.state, "engine", None)
    if engine is None:
        logger.warning("Webhook event %s dropped: engine not started", event.object_id)
        log_activity("warn", "webhook", f"Event {event.object_id} dropped, engine not started")
        return
    try:
        await engine.handle_webhook_event(event)
    except Exception as exc:
        # Already acknowledged; nothing left to report to Strava
        logger.error("Webhook processing failed for %s: %s", event.object_id, exc, exc_info=True)
        log_activity("error", "webhook", f"Processing failed for {event.object_id} — {exc}")
