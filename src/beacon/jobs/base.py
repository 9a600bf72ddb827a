"""Self-rescheduling job: guard, run one cycle, re-arm.

Each activation is a one-shot APScheduler date job keyed by the job name, so
at most one timer is pending per job. ``tick`` never raises; a job keeps
rescheduling itself whatever its cycle does.
"""

from datetime import datetime, timedelta, timezone

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler

from beacon.directory import Directory
from beacon.otel import get_logger, get_tracer
from beacon.state import SchedulerState

log = get_logger()


class RecurringJob:
    name: str = ""
    label: str = ""
    run_at_start: bool = True

    def __init__(
        self,
        state: SchedulerState,
        scheduler: BaseScheduler,
        directory: Directory,
        interval: timedelta,
    ):
        self.state = state
        self.scheduler = scheduler
        self.directory = directory
        self.interval = interval
        self.status = state.register(self.name)

    @property
    def locks(self):
        return self.state.locks

    def next_run_at(self, now: datetime) -> datetime:
        return now + self.interval

    def start(self):
        self.arm(immediate=self.run_at_start)

    def arm(self, immediate: bool = False) -> datetime | None:
        """Schedule the next activation, replacing any pending one."""
        if self.state.stopping:
            return None
        now = datetime.now(timezone.utc)
        run_date = now if immediate else self.next_run_at(now)
        self.status.timer = self.scheduler.add_job(
            self.tick,
            "date",
            run_date=run_date,
            id=self.name,
            name=self.label,
            replace_existing=True,
        )
        return run_date

    def cancel(self):
        timer, self.status.timer = self.status.timer, None
        if timer is None:
            return
        try:
            timer.remove()
        except JobLookupError:
            pass  # already fired

    async def tick(self):
        """One activation."""
        self.status.timer = None
        if self.state.stopping:
            return

        if self.status.running:
            log.warning(f"[{self.label}] Previous cycle still running, skipping this one")
            self.arm()
            return

        self.status.running = True
        tracer = get_tracer()
        try:
            with tracer.start_as_current_span(f"beacon.job.{self.name}") as s:
                s.set_attribute("job", self.name)
                processed = await self.run_cycle()
                s.set_attribute("processed", processed)
        except Exception as e:
            log.error(f"!!! [{self.label}] Critical error during cycle: {e}", exc_info=True)
        finally:
            self.status.running = False
            self.arm()

    async def run_cycle(self) -> int:
        """Query and dispatch. Returns how many subscribers were dispatched."""
        raise NotImplementedError
