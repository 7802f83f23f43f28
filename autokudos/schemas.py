from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel


class WebhookEvent(BaseModel):
    object_type: str
    aspect_type: str
    object_id: int
    owner_id: int
    subscription_id: Optional[int] = None
    event_time: Optional[int] = None
    updates: dict[str, Any] = {}


class StatsSchema(BaseModel):
    total_sent: int
    active_days: int
    daily_average: float
    queue_size: int
    seen_total: int
    batch_opened_at: Optional[datetime]
    batch_age_seconds: int
    last_flush_at: Optional[datetime]
    last_poll_at: Optional[datetime]
    next_poll_in_seconds: int
    poll_progress_percent: int

    model_config = {"from_attributes": True}


class PendingActivitySchema(BaseModel):
    activity_id: int
    queued_at: datetime
    source: str

    model_config = {"from_attributes": True}
