"""Midnight refresh: force-refresh every pro subscriber once a day.

Fires at 00:00 in the reference timezone. Subscribers are processed
concurrently; the cycle ends once every one of them has settled.
"""

import asyncio
from datetime import datetime, timedelta

from apscheduler.schedulers.base import BaseScheduler

from beacon.anchor import delay_until_next_midnight
from beacon.directory import CONTENT_COLUMNS, Directory, DirectoryError
from beacon.jobs.base import RecurringJob
from beacon.otel import get_logger
from beacon.processors import ContentProcessor
from beacon.state import SchedulerState
from beacon.subscribers import Subscriber

log = get_logger()


class MidnightRefreshJob(RecurringJob):
    name = "midnight_refresh"
    label = "MidnightRefresh"
    run_at_start = False

    def __init__(
        self,
        state: SchedulerState,
        scheduler: BaseScheduler,
        directory: Directory,
        processor: ContentProcessor,
        timezone_name: str,
    ):
        super().__init__(state, scheduler, directory, interval=timedelta(days=1))
        self.processor = processor
        self.timezone_name = timezone_name

    def next_run_at(self, now: datetime) -> datetime:
        return now + delay_until_next_midnight(self.timezone_name, now)

    def arm(self, immediate: bool = False) -> datetime | None:
        run_date = super().arm(immediate)
        if run_date is not None and not immediate:
            log.info(
                f"[Scheduler] Next Midnight Refresh at {run_date.isoformat()} "
                f"(00:00 {self.timezone_name})"
            )
        return run_date

    async def refresh(self, subscriber: Subscriber) -> bool:
        if not self.locks.try_acquire(subscriber.id):
            log.info(f" -> [{self.label}] Skipping {subscriber.id}, already processing.")
            return False
        try:
            await self.processor.process(subscriber, force=True)
        except Exception as e:
            log.error(f"!!! [{self.label}] Error processing {subscriber.id}: {e}")
        finally:
            self.locks.release(subscriber.id)
        return True

    async def run_cycle(self) -> int:
        log.info(f"============ [{self.label}] Starting Cycle ============")
        try:
            try:
                subscribers = await self.directory.select(CONTENT_COLUMNS)
            except DirectoryError as e:
                log.error(f" -> Error fetching users for midnight refresh: {e}")
                return 0

            if not subscribers:
                log.info(" -> No Pro users found for midnight refresh.")
                return 0

            log.info(f" -> Found {len(subscribers)} Pro users for midnight refresh.")
            results = await asyncio.gather(
                *(self.refresh(subscriber) for subscriber in subscribers),
                return_exceptions=True,
            )
            log.info(" -> Finished midnight refresh processing loop.")
            return sum(1 for result in results if result is True)
        finally:
            log.info(f"============ [{self.label}] Cycle Ended ============")
