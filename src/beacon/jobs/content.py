"""Content jobs: scheduled refresh and the fast preference-change check.

Both walk the pro subscribers in directory order, one at a time, and only
process those their predicate selects and no other job currently holds.
"""

from datetime import timedelta
from functools import partial
from typing import Callable

from apscheduler.schedulers.base import BaseScheduler

from beacon.directory import CONTENT_COLUMNS, Directory, DirectoryError
from beacon.jobs.base import RecurringJob
from beacon.otel import get_logger
from beacon.processors import ContentProcessor, needs_immediate_update, needs_scheduled_update
from beacon.state import SchedulerState
from beacon.subscribers import Subscriber

log = get_logger()

Predicate = Callable[[Subscriber], bool]


class ContentJob(RecurringJob):
    def __init__(
        self,
        state: SchedulerState,
        scheduler: BaseScheduler,
        directory: Directory,
        interval: timedelta,
        processor: ContentProcessor,
        predicate: Predicate,
    ):
        super().__init__(state, scheduler, directory, interval)
        self.processor = processor
        self.predicate = predicate

    async def run_cycle(self) -> int:
        try:
            subscribers = await self.directory.select(CONTENT_COLUMNS)
        except DirectoryError as e:
            log.error(f" -> [{self.label}] Error fetching users: {e}")
            return 0

        processed = 0
        for subscriber in subscribers:
            if subscriber.id in self.locks or not self.predicate(subscriber):
                continue
            if not self.locks.try_acquire(subscriber.id):
                continue
            try:
                await self.processor.process(subscriber)
            except Exception as e:
                log.error(f"!!! [{self.label}] Error processing {subscriber.id}: {e}")
            finally:
                self.locks.release(subscriber.id)
            processed += 1
        return processed


class ScheduledContentJob(ContentJob):
    name = "scheduled_content"
    label = "ScheduledContentJob"

    def __init__(self, state, scheduler, directory, interval, processor, refresh: timedelta, predicate=None):
        super().__init__(
            state,
            scheduler,
            directory,
            interval,
            processor,
            predicate or partial(needs_scheduled_update, refresh=refresh),
        )


class ImmediateCheckJob(ContentJob):
    name = "immediate_check"
    label = "ImmediateCheck"

    def __init__(self, state, scheduler, directory, interval, processor, predicate=None):
        super().__init__(state, scheduler, directory, interval, processor, predicate or needs_immediate_update)
