from datetime import date, datetime

from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.ext.asyncio import AsyncSession

from autokudos.models import STATE_ROW_ID, UsageLedger


async def ensure_ledger(db: AsyncSession) -> None:
    """Create the singleton row if missing. Safe to race with other sessions."""
    await db.execute(
        insert(UsageLedger)
        .values(id=STATE_ROW_ID, total_sent=0, active_days=0)
        .on_conflict_do_nothing(index_elements=[UsageLedger.id])
    )


async def read_ledger(db: AsyncSession) -> UsageLedger | None:
    """Read-only lookup; None on a database that has never been written."""
    return await db.get(UsageLedger, STATE_ROW_ID)


async def get_ledger(db: AsyncSession) -> UsageLedger:
    ledger = await db.get(UsageLedger, STATE_ROW_ID)
    if ledger is None:
        await ensure_ledger(db)
        ledger = await db.get(UsageLedger, STATE_ROW_ID, populate_existing=True)
    return ledger


async def record_active_day(db: AsyncSession, today: date) -> bool:
    """Count today as active unless it already was. True if the counter moved."""
    ledger = await get_ledger(db)
    if ledger.last_active_day == today:
        return False
    ledger.active_days = (ledger.active_days or 0) + 1
    ledger.last_active_day = today
    await db.flush()
    return True


async def increment_sent(db: AsyncSession) -> None:
    ledger = await get_ledger(db)
    # Evaluated in SQL, then reloaded
    ledger.total_sent = UsageLedger.total_sent + 1
    await db.flush()
    await db.refresh(ledger, ["total_sent"])


async def set_last_flush(db: AsyncSession, when: datetime) -> None:
    ledger = await get_ledger(db)
    ledger.last_flush_at = when
    await db.flush()
