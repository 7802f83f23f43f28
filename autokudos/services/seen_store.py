from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.ext.asyncio import AsyncSession

from autokudos.models import SeenActivity


async def mark_seen(db: AsyncSession, activity_id: int, now: datetime) -> bool:
    """Record an activity id. True only if this call inserted it."""
    result = await db.execute(
        insert(SeenActivity)
        .values(activity_id=activity_id, seen_at=now)
        .on_conflict_do_nothing(index_elements=[SeenActivity.activity_id])
    )
    return result.rowcount == 1


async def mark_seen_many(db: AsyncSession, activity_ids: Iterable[int], now: datetime) -> int:
    inserted = 0
    for activity_id in set(activity_ids):
        if await mark_seen(db, activity_id, now):
            inserted += 1
    return inserted


async def is_seen(db: AsyncSession, activity_id: int) -> bool:
    result = await db.execute(
        select(SeenActivity.activity_id).where(SeenActivity.activity_id == activity_id)
    )
    return result.scalar_one_or_none() is not None


async def count_seen(db: AsyncSession) -> int:
    return (await db.execute(select(func.count(SeenActivity.activity_id)))).scalar_one()
