import logging
from html import escape

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse, RedirectResponse

from autokudos.config import settings
from autokudos.dependencies import get_engine
from autokudos.schemas import StatsSchema
from autokudos.services.activity_log import log_activity
from autokudos.services.engine import KudosEngine

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/")
async def index() -> RedirectResponse:
    return RedirectResponse("/stats", status_code=302)


@router.get("/api/v1/stats", response_model=StatsSchema)
async def stats_json(engine: KudosEngine = Depends(get_engine)):
    return await engine.status()


@router.post("/trawl")
async def trawl(engine: KudosEngine = Depends(get_engine)) -> RedirectResponse:
    log_activity("info", "poll", "Manual trawl triggered from dashboard")
    logger.info("Manual trawl triggered")
    await engine.poll()
    return RedirectResponse("/stats", status_code=303)


@router.post("/fire")
async def fire(engine: KudosEngine = Depends(get_engine)) -> RedirectResponse:
    log_activity("info", "flush", "Manual fire triggered from dashboard")
    logger.info("Manual fire triggered")
    await engine.flush(reason="manual")
    return RedirectResponse("/stats", status_code=303)


@router.get("/stats", response_class=HTMLResponse)
async def stats_page(engine: KudosEngine = Depends(get_engine)) -> HTMLResponse:
    snap = await engine.status()

    next_min, next_sec = divmod(snap.next_poll_in_seconds, 60)
    if snap.last_flush_at:
        last_fired = snap.last_flush_at.astimezone(engine.config.tz).strftime("%H:%M:%S (%d %b)")
    else:
        last_fired = "Pending..."
    title = escape(settings.APP_NAME)

    html = f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <meta http-equiv="refresh" content="30">
  <title>{title}</title>
  <style>
    body {{ font-family: -apple-system, sans-serif; background: #121212; color: #fff; text-align: center; padding: 20px; }}
    .grid {{ display: grid; grid-template-columns: repeat(auto-fit, minmax(140px, 1fr)); gap: 10px; max-width: 500px; margin: 20px auto; }}
    .card {{ background: #1e1e1e; padding: 15px; border-radius: 12px; border: 1px solid #333; }}
    .label {{ font-size: 11px; color: #888; text-transform: uppercase; margin-bottom: 5px; }}
    .value {{ font-size: 22px; font-weight: bold; color: #fc4c02; }}
    .bar-container {{ background: #333; border-radius: 10px; height: 8px; margin: 15px 0; }}
    .bar {{ background: #fc4c02; height: 100%; border-radius: 10px; width: {snap.poll_progress_percent}%; }}
    .row {{ display: flex; justify-content: space-between; align-items: center; }}
    .section {{ max-width: 500px; margin: 20px auto; text-align: left; background: #1e1e1e; padding: 20px; border-radius: 12px; border: 1px solid #333; }}
    button {{ background: transparent; color: #fc4c02; border: 1px solid #fc4c02; border-radius: 6px; padding: 6px 12px; cursor: pointer; font-size: 11px; font-weight: bold; }}
    button:hover {{ background: #fc4c02; color: #fff; }}
  </style>
</head>
<body>
  <h2 style="color:#fc4c02">🧡 {title} Dashboard</h2>
  <div class="grid">
    <div class="card"><div class="label">Total Sent</div><div class="value">{snap.total_sent}</div></div>
    <div class="card"><div class="label">Daily Avg</div><div class="value">{snap.daily_average:.1f}</div></div>
    <div class="card"><div class="label">Queue</div><div class="value">{snap.queue_size}</div></div>
  </div>
  <div class="section">
    <div class="row">
      <div class="label">Next Trawl: {next_min}m {next_sec}s</div>
      <form action="/trawl" method="post"><button type="submit">TRAWL NOW</button></form>
    </div>
    <div class="bar-container"><div class="bar"></div></div>
    <div class="row" style="margin-top:20px">
      <div class="label">Last Fire: <span style="color:#fff;text-transform:none">{last_fired}</span></div>
      <form action="/fire" method="post"><button type="submit">FIRE QUEUE</button></form>
    </div>
  </div>
</body>
</html>"""
    return HTMLResponse(content=html)
