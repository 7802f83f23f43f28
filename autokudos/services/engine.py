"""
Kudos batching engine.

Ids arrive from the webhook (push) and the following-feed poll (pull), are
deduplicated against the seen store, accumulate in the pending batch and are
flushed as sequential, rate-limited kudos calls once the batch is big or old
enough. The database is the only authoritative state; the engine adds two
asyncio locks on top:

- ``_batch_lock`` guards add-then-evaluate and drain, so a trigger decision
  never interleaves with an addition.
- ``_flush_lock`` serialises whole flushes. A second flush request waits for
  the first and then drains whatever is left, usually nothing.
"""
import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from autokudos.config import EngineConfig
from autokudos.schemas import WebhookEvent
from autokudos.services import ledger, pending_batch, seen_store
from autokudos.services.activity_log import log_activity
from autokudos.services.clock import Clock, SystemClock, as_utc
from autokudos.services.strava import StravaApiError, StravaAuthError, StravaClient, StravaError
from autokudos.services.trigger import should_flush

logger = logging.getLogger(__name__)


@dataclass
class FlushReport:
    reason: str
    drained: int = 0
    sent: int = 0
    failed: int = 0
    aborted: bool = False


@dataclass
class PollReport:
    skipped: bool = False
    aborted: bool = False
    fetched: int = 0
    new: int = 0
    flushed: bool = False


@dataclass
class StatusSnapshot:
    total_sent: int
    active_days: int
    daily_average: float
    queue_size: int
    seen_total: int
    batch_opened_at: datetime | None
    batch_age_seconds: int
    last_flush_at: datetime | None
    last_poll_at: datetime | None
    next_poll_in_seconds: int
    poll_progress_percent: int


class KudosEngine:
    def __init__(
        self,
        config: EngineConfig,
        session_factory: async_sessionmaker[AsyncSession],
        strava: StravaClient,
        clock: Clock | None = None,
    ) -> None:
        self.config = config
        self._session_factory = session_factory
        self._strava = strava
        self._clock = clock or SystemClock()
        self._batch_lock = asyncio.Lock()
        self._flush_lock = asyncio.Lock()
        self.last_poll_at: datetime = self._clock.now()

    async def prepare(self) -> None:
        """Create the singleton state rows before any job or request touches them."""
        async with self._session_factory() as db:
            await ledger.ensure_ledger(db)
            await pending_batch.ensure_state(db)
            await db.commit()

    # ── Ingestion ─────────────────────────────────────────────────────────────

    async def enqueue(
        self,
        activity_ids: Iterable[int],
        *,
        source: str,
        dedupe: bool = False,
    ) -> tuple[int, bool]:
        """
        Add ids to the pending batch and flush if the trigger fires.

        With ``dedupe`` only ids the seen store has never recorded are added;
        without it every id is added and merely recorded as seen.
        Returns (ids forwarded into the batch, whether a flush ran).
        """
        ids = set(activity_ids)
        if not ids:
            return 0, False

        async with self._batch_lock:
            now = self._clock.now()
            async with self._session_factory() as db:
                if dedupe:
                    forwarded = [i for i in sorted(ids) if await seen_store.mark_seen(db, i, now)]
                else:
                    await seen_store.mark_seen_many(db, ids, now)
                    forwarded = sorted(ids)

                if forwarded:
                    await pending_batch.add(db, forwarded, now, source=source)
                size = await pending_batch.size(db)
                age = await pending_batch.age(db, now)
                await db.commit()

            due = bool(forwarded) and should_flush(
                size, age, self.config.size_threshold, self.config.age_threshold
            )

        if forwarded:
            logger.info(
                "Queued %d activities from %s (batch size %d, age %ds)",
                len(forwarded), source, size, int(age.total_seconds()),
            )
        if due:
            await self.flush(reason=f"trigger:{source}")
        return len(forwarded), due

    async def handle_webhook_event(self, event: WebhookEvent) -> int:
        """Push path. Returns how many ids were queued."""
        if event.object_type != "activity" or event.aspect_type != "create":
            logger.debug(
                "Ignoring webhook %s/%s for %s",
                event.object_type, event.aspect_type, event.object_id,
            )
            return 0

        if event.owner_id != self.config.self_id:
            queued, _ = await self.enqueue([event.object_id], source="webhook")
            log_activity("info", "webhook", f"Activity {event.object_id} queued")
            return queued

        # Our own upload: kudos everyone else who was on the same activity
        try:
            token = await self._strava.get_access_token()
            related = await self._strava.get_related_activity_ids(event.object_id, token)
        except StravaAuthError as exc:
            logger.error("Webhook %s: auth failed: %s", event.object_id, exc)
            log_activity("error", "webhook", f"Auth failed — {exc}")
            return 0
        except StravaApiError as exc:
            logger.error("Webhook %s: related fetch failed: %s", event.object_id, exc)
            log_activity("error", "webhook", f"Related fetch failed for {event.object_id} — {exc}")
            return 0

        if not related:
            logger.info("Webhook %s: no related activities", event.object_id)
            return 0
        queued, _ = await self.enqueue(related, source="related")
        log_activity("info", "webhook", f"{queued} related activities queued from {event.object_id}")
        return queued

    async def poll(self) -> PollReport:
        """Pull path: scan the following feed for activities not seen before."""
        now = self._clock.now()
        self.last_poll_at = now
        local_hour = now.astimezone(self.config.tz).hour
        if self.config.in_quiet_window(local_hour):
            logger.debug("Poll skipped: quiet window (local hour %d)", local_hour)
            return PollReport(skipped=True)

        try:
            token = await self._strava.get_access_token()
            feed = await self._strava.get_following_feed(token)
        except StravaAuthError as exc:
            logger.error("Poll aborted: auth failed: %s", exc)
            log_activity("error", "poll", f"Auth failed — {exc}")
            return PollReport(aborted=True)
        except StravaApiError as exc:
            logger.error("Poll aborted: feed fetch failed: %s", exc)
            log_activity("error", "poll", f"Feed fetch failed — {exc}")
            return PollReport(aborted=True)

        candidates = [e.activity_id for e in feed if e.owner_id != self.config.self_id]
        new, flushed = await self.enqueue(candidates, source="poll", dedupe=True)
        if new:
            log_activity("success", "poll", f"{new} new activit{'ies' if new != 1 else 'y'} from feed")
        logger.info("Poll complete: %d in feed, %d new", len(feed), new)
        return PollReport(fetched=len(feed), new=new, flushed=flushed)

    # ── Flush ─────────────────────────────────────────────────────────────────

    async def flush(self, reason: str = "manual") -> FlushReport:
        report = FlushReport(reason=reason)
        async with self._flush_lock:
            async with self._batch_lock:
                async with self._session_factory() as db:
                    drained = await pending_batch.drain_up_to(
                        db, self.config.max_drain, self._clock.now(),
                        self.config.opened_at_policy,
                    )
                    await db.commit()

            report.drained = len(drained)
            if not drained:
                logger.debug("Flush (%s): batch empty", reason)
                return report

            try:
                token = await self._strava.get_access_token()
            except StravaAuthError as exc:
                report.aborted = True
                logger.error(
                    "Flush (%s) aborted, %d activities dropped: auth failed: %s",
                    reason, len(drained), exc,
                )
                log_activity("error", "flush", f"Auth failed, {len(drained)} dropped — {exc}")
                return report

            today = self._clock.now().astimezone(self.config.tz).date()
            async with self._session_factory() as db:
                if await ledger.record_active_day(db, today):
                    logger.info("New active day: %s", today.isoformat())
                await db.commit()

            logger.info("Flush (%s): sending kudos to %d activities", reason, len(drained))
            for idx, activity_id in enumerate(drained):
                try:
                    await self._strava.give_kudos(activity_id, token)
                except StravaError as exc:
                    report.failed += 1
                    logger.warning(
                        "[%d/%d] ✗ Kudos failed for %d: %s",
                        idx + 1, len(drained), activity_id, exc,
                    )
                else:
                    async with self._session_factory() as db:
                        await ledger.increment_sent(db)
                        await db.commit()
                    report.sent += 1
                    logger.debug("[%d/%d] ✓ Kudos sent to %d", idx + 1, len(drained), activity_id)
                await self._clock.sleep(self.config.send_delay)

            async with self._session_factory() as db:
                await ledger.set_last_flush(db, self._clock.now())
                await db.commit()

        level = "success" if not report.failed else "warn"
        log_activity(level, "flush", f"Flush ({reason}): {report.sent} sent, {report.failed} failed")
        logger.info(
            "Flush (%s) complete: %d sent, %d failed, %d drained",
            reason, report.sent, report.failed, report.drained,
        )
        return report

    # ── Status ────────────────────────────────────────────────────────────────

    async def status(self) -> StatusSnapshot:
        now = self._clock.now()
        async with self._session_factory() as db:
            # Read-only: never creates rows
            usage = await ledger.read_ledger(db)
            queue_size = await pending_batch.size(db)
            opened = await pending_batch.opened_at(db)
            age = await pending_batch.age(db, now)
            seen_total = await seen_store.count_seen(db)
            total_sent = (usage.total_sent or 0) if usage else 0
            active_days = (usage.active_days or 0) if usage else 0
            last_flush_at = as_utc(usage.last_flush_at) if usage else None

        interval = self.config.poll_interval.total_seconds()
        remaining = (self.last_poll_at + self.config.poll_interval - now).total_seconds()
        remaining = max(0.0, min(interval, remaining))
        return StatusSnapshot(
            total_sent=total_sent,
            active_days=active_days,
            daily_average=round(total_sent / max(active_days, 1), 1),
            queue_size=queue_size,
            seen_total=seen_total,
            batch_opened_at=opened,
            batch_age_seconds=int(age.total_seconds()),
            last_flush_at=last_flush_at,
            last_poll_at=self.last_poll_at,
            next_poll_in_seconds=int(remaining),
            poll_progress_percent=round((interval - remaining) / interval * 100),
        )
