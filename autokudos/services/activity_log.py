"""
In-memory ring buffer of engine events (webhooks, polls, flushes) shown in
the admin console. Single-worker only. Oldest entries drop past ACTIVITY_LOG_SIZE.
"""
from collections import deque
from datetime import datetime, timezone
from typing import Literal, TypedDict

ACTIVITY_LOG_SIZE = 200

Level = Literal["info", "success", "error", "warn"]
Category = Literal["webhook", "poll", "flush", "system"]


class ActivityEntry(TypedDict):
    time: str      # HH:MM:SS UTC
    level: Level
    category: Category
    message: str


ACTIVITY_LOG: deque[ActivityEntry] = deque(maxlen=ACTIVITY_LOG_SIZE)


def log_activity(level: Level, category: Category, message: str) -> None:
    ACTIVITY_LOG.appendleft(
        ActivityEntry(
            time=datetime.now(timezone.utc).strftime("%H:%M:%S"),
            level=level,
            category=category,
            message=message,
        )
    )


def recent_activity(limit: int = 60, category: str | None = None) -> list[ActivityEntry]:
    entries = (e for e in ACTIVITY_LOG if category is None or e["category"] == category)
    out: list[ActivityEntry] = []
    for entry in entries:
        if len(out) >= limit:
            break
        out.append(entry)
    return out
