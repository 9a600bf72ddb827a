"""Worker - owns the shared state, the scheduler, and the four jobs."""

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from beacon.config import Settings
from beacon.directory import Directory
from beacon.jobs import ImmediateCheckJob, MidnightRefreshJob, RecurringJob, ScheduledContentJob, TelegramJob
from beacon.otel import get_logger
from beacon.processors import ContentProcessor, NotificationProcessor
from beacon.scheduler import build_scheduler
from beacon.state import SchedulerState

log = get_logger()


class Worker:
    def __init__(
        self,
        settings: Settings,
        directory: Directory,
        content: ContentProcessor,
        telegram: NotificationProcessor,
        scheduler: AsyncIOScheduler | None = None,
    ):
        self.settings = settings
        self.state = SchedulerState()
        self.scheduler = scheduler or build_scheduler()
        self.jobs: list[RecurringJob] = [
            ScheduledContentJob(
                self.state,
                self.scheduler,
                directory,
                settings.job_interval,
                content,
                refresh=settings.job_refresh,
            ),
            ImmediateCheckJob(self.state, self.scheduler, directory, settings.instant_check_interval, content),
            TelegramJob(self.state, self.scheduler, directory, settings.telegram_job_interval, telegram),
            MidnightRefreshJob(self.state, self.scheduler, directory, content, settings.refresh_timezone),
        ]

    def start(self):
        """Start the scheduler and arm every job. Needs a running event loop."""
        if not self.scheduler.running:
            self.scheduler.start()
        for job in self.jobs:
            job.start()

    def stop(self):
        """Cancel every pending timer. In-flight cycles are left to finish."""
        self.state.stopping = True
        for job in self.jobs:
            job.cancel()
        busy = [job.name for job in self.jobs if job.status.running]
        if busy:
            log.info(f"[Worker] Timers cancelled; still running: {', '.join(busy)}")
        else:
            log.info("[Worker] Timers cancelled")

    def close(self):
        """Shut the scheduler down. Its executor cancels anything still running."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
