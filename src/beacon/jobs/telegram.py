"""Telegram job: offer every pro subscriber with a Telegram id to the notifier.

The notifier owns the decision to send, so it gets the lock registry and
takes the lock itself when it actually does work.
"""

from datetime import timedelta

from apscheduler.schedulers.base import BaseScheduler

from beacon.directory import TELEGRAM_COLUMNS, Directory, DirectoryError
from beacon.jobs.base import RecurringJob
from beacon.otel import get_logger
from beacon.processors import NotificationProcessor
from beacon.state import SchedulerState

log = get_logger()


class TelegramJob(RecurringJob):
    name = "telegram"
    label = "TelegramJob"

    def __init__(
        self,
        state: SchedulerState,
        scheduler: BaseScheduler,
        directory: Directory,
        interval: timedelta,
        processor: NotificationProcessor,
    ):
        super().__init__(state, scheduler, directory, interval)
        self.processor = processor

    async def run_cycle(self) -> int:
        try:
            subscribers = await self.directory.select(TELEGRAM_COLUMNS, not_null=("telegramid",))
        except DirectoryError as e:
            log.error(f" -> [{self.label}] Error fetching users for Telegram: {e}")
            return 0

        for subscriber in subscribers:
            try:
                await self.processor.process(subscriber, self.locks)
            except Exception as e:
                log.error(f"!!! [{self.label}] Error processing Telegram for {subscriber.id}: {e}")
        return len(subscribers)
