"""The four recurring jobs."""

from beacon.jobs.base import RecurringJob
from beacon.jobs.content import ImmediateCheckJob, ScheduledContentJob
from beacon.jobs.midnight import MidnightRefreshJob
from beacon.jobs.telegram import TelegramJob

__all__ = [
    "RecurringJob",
    "ScheduledContentJob",
    "ImmediateCheckJob",
    "TelegramJob",
    "MidnightRefreshJob",
]
