"""Shared fakes: an in-memory directory and recording processors."""

import asyncio

import pytest
import pytest_asyncio

from beacon.config import Settings
from beacon.directory import DirectoryError
from beacon.scheduler import build_scheduler
from beacon.state import SchedulerState
from beacon.subscribers import Subscriber


class FakeDirectory:
    def __init__(self, subscribers=(), error: Exception | None = None):
        self.subscribers = list(subscribers)
        self.error = error
        self.calls = []

    async def select(self, columns, *, not_null=()):
        self.calls.append((tuple(columns), tuple(not_null)))
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        if "telegramid" in not_null:
            return [s for s in self.subscribers if s.telegram_id is not None]
        return list(self.subscribers)


class RecordingProcessor:
    """Content processor that records start/end order.

    ``delays`` maps subscriber id to seconds to sleep, ``failures`` is a set
    of ids that raise, ``gates`` maps ids to events the call waits on.
    """

    def __init__(self, delays=None, failures=(), gates=None):
        self.delays = delays or {}
        self.failures = set(failures)
        self.gates = gates or {}
        self.events = []
        self.calls = []

    async def process(self, subscriber, force=False):
        self.calls.append((subscriber.id, force))
        self.events.append(("start", subscriber.id))
        try:
            if subscriber.id in self.gates:
                await self.gates[subscriber.id].wait()
            await asyncio.sleep(self.delays.get(subscriber.id, 0))
            if subscriber.id in self.failures:
                raise RuntimeError(f"boom for {subscriber.id}")
        finally:
            self.events.append(("end", subscriber.id))


class RecordingNotifier:
    def __init__(self, failures=()):
        self.failures = set(failures)
        self.calls = []

    async def process(self, subscriber, locks):
        self.calls.append((subscriber.id, locks))
        await asyncio.sleep(0)
        if subscriber.id in self.failures:
            raise RuntimeError(f"telegram down for {subscriber.id}")


def make_subscriber(email, **kwargs) -> Subscriber:
    return Subscriber(email=email, is_pro=True, **kwargs)


@pytest.fixture
def state():
    return SchedulerState()


@pytest.fixture
def settings():
    return Settings(
        supabase_url="https://db.example.com",
        content_webhook_url="https://content.example.com/process",
        telegram_webhook_url="https://telegram.example.com/send",
    )


@pytest_asyncio.fixture
async def scheduler():
    sched = build_scheduler()
    sched.start()
    yield sched
    if sched.running:
        sched.shutdown(wait=False)


async def wait_for(predicate, timeout=2.0):
    """Poll until predicate() is true or fail."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


def directory_error():
    return DirectoryError("connection refused")
