"""Periodic sync jobs on an APScheduler AsyncIOScheduler."""

import logging
from datetime import UTC, datetime, timedelta
from typing import Literal

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from clipsync.services.clip_sync import ClipSyncService

logger = logging.getLogger(__name__)

BACKFILL_JOB_ID = "clips_full_backfill"
CHECK_JOB_ID = "clips_recent_check"
LIVENESS_JOB_ID = "clips_liveness_probe"

LIVE_CHECK_INTERVAL = timedelta(minutes=1)
OFFLINE_CHECK_INTERVAL = timedelta(hours=1)


class ClipScheduler:
    """Drives the full backfill and the incremental check.

    In ``fixed`` mode the check follows its own cron expression. In
    ``adaptive`` mode a liveness probe picks the check cadence: every minute
    while the broadcaster is live, hourly otherwise.
    """

    def __init__(
        self,
        sync_service: ClipSyncService,
        *,
        backfill_cron: str = "0 */6 * * *",
        check_mode: Literal["fixed", "adaptive"] = "adaptive",
        check_cron: str = "0 */6 * * *",
        liveness_interval_minutes: int = 5,
        scheduler: AsyncIOScheduler | None = None,
    ):
        self.sync_service = sync_service
        self.backfill_cron = backfill_cron
        self.check_mode = check_mode
        self.check_cron = check_cron
        self.liveness_interval = timedelta(minutes=liveness_interval_minutes)
        self.scheduler = scheduler or AsyncIOScheduler(timezone="UTC")
        self.check_interval: timedelta | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Register jobs and start; the backfill and first probe run immediately."""
        now = datetime.now(UTC)

        self.scheduler.add_job(
            self.run_backfill,
            trigger=CronTrigger.from_crontab(self.backfill_cron, timezone="UTC"),
            id=BACKFILL_JOB_ID,
            next_run_time=now,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        if self.check_mode == "fixed":
            self.scheduler.add_job(
                self.run_check,
                trigger=CronTrigger.from_crontab(self.check_cron, timezone="UTC"),
                id=CHECK_JOB_ID,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
        else:
            self._schedule_check(OFFLINE_CHECK_INTERVAL)
            self.scheduler.add_job(
                self.probe_liveness,
                trigger=IntervalTrigger(
                    seconds=self.liveness_interval.total_seconds(), timezone="UTC"
                ),
                id=LIVENESS_JOB_ID,
                next_run_time=now,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )

        self.scheduler.start()
        logger.info(
            f"Scheduler started (backfill='{self.backfill_cron}', check_mode={self.check_mode})"
        )

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")

    def _schedule_check(self, interval: timedelta) -> None:
        """Tear down the check job and recreate it at *interval*."""
        if self.scheduler.get_job(CHECK_JOB_ID):
            self.scheduler.remove_job(CHECK_JOB_ID)

        self.scheduler.add_job(
            self.run_check,
            trigger=IntervalTrigger(seconds=interval.total_seconds(), timezone="UTC"),
            id=CHECK_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.check_interval = interval
        logger.info(f"Incremental check every {interval}")

    # ------------------------------------------------------------------
    # Jobs (never raise: a failed run must not affect the next tick)
    # ------------------------------------------------------------------

    async def run_backfill(self) -> None:
        try:
            await self.sync_service.update_clips()
        except Exception as e:
            logger.exception(f"Full backfill failed: {e}")

    async def run_check(self) -> None:
        try:
            await self.sync_service.check_recent_clips()
        except Exception as e:
            logger.exception(f"Incremental check failed: {e}")

    async def probe_liveness(self) -> None:
        """Adapt the check cadence to the stream state, then check once."""
        try:
            live, changed = await self.sync_service.refresh_liveness()
        except Exception as e:
            logger.exception(f"Liveness probe failed, keeping current cadence: {e}")
        else:
            interval = LIVE_CHECK_INTERVAL if live else OFFLINE_CHECK_INTERVAL
            if changed and interval != self.check_interval:
                self._schedule_check(interval)

        await self.run_check()
