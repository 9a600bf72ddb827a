"""APScheduler instance factory. Jobs arm themselves with one-shot date triggers."""

from apscheduler.schedulers.asyncio import AsyncIOScheduler


def build_scheduler() -> AsyncIOScheduler:
    return AsyncIOScheduler(
        timezone="UTC",
        job_defaults={
            "coalesce": True,  # If multiple runs were missed, run once not N times
            # The running cycle plus one activation that finds it busy and re-arms.
            # Overlap itself is rejected by each job's running flag.
            "max_instances": 2,
            "misfire_grace_time": None,  # A late timer still fires, or its job would never re-arm
        },
    )
