import logging

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from autokudos.config import Settings
from autokudos.services.engine import KudosEngine

logger = logging.getLogger(__name__)


def create_scheduler(engine: KudosEngine, s: Settings) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        engine.poll,
        "interval",
        seconds=engine.config.poll_interval.total_seconds(),
        id="poll_job",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    if s.KEEPALIVE_URL:
        scheduler.add_job(
            ping_keepalive,
            "interval",
            minutes=s.KEEPALIVE_INTERVAL_MINUTES,
            args=[s.KEEPALIVE_URL],
            id="keepalive_job",
            replace_existing=True,
        )
    return scheduler


async def ping_keepalive(url: str, client: httpx.AsyncClient | None = None) -> bool:
    """GET the public URL to keep the host awake. Returns False on failure, never raises."""
    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=10.0)
    try:
        response = await client.get(url)
        logger.debug("Keep-alive %s → %d", url, response.status_code)
        return response.status_code < 500
    except httpx.HTTPError as exc:
        logger.debug("Keep-alive %s failed: %s", url, exc)
        return False
    finally:
        if owns_client:
            await client.aclose()
