from datetime import date, datetime, timezone

from sqlalchemy import BigInteger, Date, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from autokudos.database import Base

# Singleton rows live at this primary key
STATE_ROW_ID = 1


class SeenActivity(Base):
    __tablename__ = "seen_activities"

    activity_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    seen_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


class PendingActivity(Base):
    __tablename__ = "pending_activities"

    activity_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    queued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    source: Mapped[str] = mapped_column(String(20), default="webhook")


class BatchState(Base):
    __tablename__ = "batch_state"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=STATE_ROW_ID)
    opened_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class UsageLedger(Base):
    __tablename__ = "usage_ledger"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=STATE_ROW_ID)
    total_sent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    active_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_active_day: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_flush_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
