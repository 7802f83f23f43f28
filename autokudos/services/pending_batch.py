"""
Persistent pending batch: a set of activity ids plus the time it was opened.

The open time is set when the batch goes from empty to non-empty and cleared
when a drain empties it. Callers serialise add and drain_up_to (the engine
holds its batch lock around both) and commit the session themselves.
"""
from collections.abc import Iterable
from datetime import datetime, timedelta

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.ext.asyncio import AsyncSession

from autokudos.config import OpenedAtPolicy
from autokudos.models import STATE_ROW_ID, BatchState, PendingActivity
from autokudos.services.clock import as_utc


async def ensure_state(db: AsyncSession) -> None:
    await db.execute(
        insert(BatchState)
        .values(id=STATE_ROW_ID, opened_at=None)
        .on_conflict_do_nothing(index_elements=[BatchState.id])
    )


async def _state(db: AsyncSession) -> BatchState:
    state = await db.get(BatchState, STATE_ROW_ID)
    if state is None:
        await ensure_state(db)
        state = await db.get(BatchState, STATE_ROW_ID, populate_existing=True)
    return state


async def size(db: AsyncSession) -> int:
    return (await db.execute(select(func.count(PendingActivity.activity_id)))).scalar_one()


async def opened_at(db: AsyncSession) -> datetime | None:
    state = await db.get(BatchState, STATE_ROW_ID)
    return as_utc(state.opened_at) if state else None


async def age(db: AsyncSession, now: datetime) -> timedelta:
    started = await opened_at(db)
    if started is None:
        return timedelta(0)
    return max(timedelta(0), now - started)


async def add(
    db: AsyncSession,
    activity_ids: Iterable[int],
    now: datetime,
    source: str = "webhook",
) -> int:
    """Union ids into the batch. Returns how many were not already pending."""
    added = 0
    for activity_id in set(activity_ids):
        result = await db.execute(
            insert(PendingActivity)
            .values(activity_id=activity_id, queued_at=now, source=source)
            .on_conflict_do_nothing(index_elements=[PendingActivity.activity_id])
        )
        added += result.rowcount

    state = await _state(db)
    if state.opened_at is None and await size(db) > 0:
        state.opened_at = now
    await db.flush()
    return added


async def drain_up_to(
    db: AsyncSession,
    n: int,
    now: datetime,
    policy: OpenedAtPolicy = OpenedAtPolicy.RESET,
) -> list[int]:
    """Remove and return up to n pending ids (ascending, order carries no meaning)."""
    result = await db.execute(
        select(PendingActivity.activity_id)
        .order_by(PendingActivity.activity_id)
        .limit(n)
    )
    drained = list(result.scalars().all())
    if not drained:
        return []

    await db.execute(
        delete(PendingActivity).where(PendingActivity.activity_id.in_(drained))
    )

    state = await _state(db)
    if await size(db) == 0:
        state.opened_at = None
    elif policy is OpenedAtPolicy.RESET or state.opened_at is None:
        state.opened_at = now
    await db.flush()
    return drained


async def list_pending(db: AsyncSession, limit: int = 100) -> list[PendingActivity]:
    result = await db.execute(
        select(PendingActivity).order_by(PendingActivity.queued_at.asc()).limit(limit)
    )
    return list(result.scalars().all())
