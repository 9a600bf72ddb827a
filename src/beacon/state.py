"""Scheduler state shared by the jobs, and the read-only status snapshot."""

from dataclasses import dataclass, field

from apscheduler.job import Job

from beacon.locks import LockRegistry

# job name -> (running key, scheduled key) in the /health body
HEALTH_FIELDS = {
    "scheduled_content": ("scheduledContentJobRunning", "nextScheduledContentRunScheduled"),
    "immediate_check": ("immediateContentCheckRunning", "nextImmediateCheckScheduled"),
    "telegram": ("telegramJobRunning", "nextTelegramRunScheduled"),
    "midnight_refresh": ("midnightRefreshRunning", "nextMidnightRefreshScheduled"),
}


@dataclass
class JobState:
    name: str
    running: bool = False
    timer: Job | None = None

    @property
    def scheduled(self) -> bool:
        return self.timer is not None


@dataclass(frozen=True)
class JobStatus:
    running: bool
    next_run_scheduled: bool


@dataclass(frozen=True)
class StatusSnapshot:
    jobs: dict[str, JobStatus]
    locked: list[str]

    def to_health(self) -> dict:
        """Render the /health response body."""
        body: dict = {"status": "ok"}
        for name, (running_key, _) in HEALTH_FIELDS.items():
            body[running_key] = name in self.jobs and self.jobs[name].running
        for name, (_, scheduled_key) in HEALTH_FIELDS.items():
            body[scheduled_key] = name in self.jobs and self.jobs[name].next_run_scheduled
        body["usersProcessingContent"] = list(self.locked)
        return body


@dataclass
class SchedulerState:
    """Everything the four jobs share. Owned by the Worker."""

    locks: LockRegistry = field(default_factory=LockRegistry)
    jobs: dict[str, JobState] = field(default_factory=dict)
    stopping: bool = False

    def register(self, name: str) -> JobState:
        if name in self.jobs:
            raise ValueError(f"Job {name!r} is already registered")
        self.jobs[name] = JobState(name)
        return self.jobs[name]

    def snapshot(self) -> StatusSnapshot:
        return StatusSnapshot(
            jobs={
                name: JobStatus(running=job.running, next_run_scheduled=job.scheduled)
                for name, job in self.jobs.items()
            },
            locked=self.locks.snapshot(),
        )
