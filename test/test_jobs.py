import asyncio
from datetime import timedelta

import pendulum
import pytest

from beacon.directory import CONTENT_COLUMNS, TELEGRAM_COLUMNS
from beacon.jobs import ImmediateCheckJob, MidnightRefreshJob, ScheduledContentJob, TelegramJob
from conftest import FakeDirectory, RecordingNotifier, RecordingProcessor, directory_error, make_subscriber, wait_for

HOUR = timedelta(hours=1)


def always(subscriber):
    return True


def content_job(state, scheduler, directory, processor, predicate=always):
    return ScheduledContentJob(state, scheduler, directory, HOUR, processor, refresh=HOUR, predicate=predicate)


def timers(scheduler, name):
    return [job for job in scheduler.get_jobs() if job.id == name]


@pytest.mark.asyncio
async def test_sequential_dispatch_in_directory_order(state, scheduler):
    subs = [make_subscriber(f"user{i}@example.com") for i in range(4)]
    processor = RecordingProcessor(delays={"user0@example.com": 0.03, "user2@example.com": 0.02})
    job = content_job(state, scheduler, FakeDirectory(subs), processor)

    await job.tick()

    expected = []
    for sub in subs:
        expected += [("start", sub.id), ("end", sub.id)]
    assert processor.events == expected
    assert processor.calls == [(sub.id, False) for sub in subs]
    assert len(state.locks) == 0


@pytest.mark.asyncio
async def test_failure_releases_lock_and_continues(state, scheduler):
    subs = [make_subscriber("a@example.com"), make_subscriber("b@example.com")]
    processor = RecordingProcessor(failures={"a@example.com"})
    job = content_job(state, scheduler, FakeDirectory(subs), processor)

    await job.tick()

    assert [sid for sid, _ in processor.calls] == ["a@example.com", "b@example.com"]
    assert "a@example.com" not in state.locks
    assert not job.status.running
    assert job.status.scheduled


@pytest.mark.asyncio
async def test_locked_and_ineligible_subscribers_are_skipped(state, scheduler):
    subs = [make_subscriber("busy@example.com"), make_subscriber("fresh@example.com"), make_subscriber("due@example.com")]
    processor = RecordingProcessor()
    job = content_job(
        state, scheduler, FakeDirectory(subs), processor, predicate=lambda s: s.id != "fresh@example.com"
    )
    state.locks.try_acquire("busy@example.com")

    await job.tick()

    assert processor.calls == [("due@example.com", False)]
    assert "busy@example.com" in state.locks


@pytest.mark.asyncio
async def test_directory_failure_still_reschedules(state, scheduler):
    directory = FakeDirectory([make_subscriber("a@example.com")], error=directory_error())
    processor = RecordingProcessor()
    job = content_job(state, scheduler, directory, processor)

    await job.tick()

    assert processor.calls == []
    assert not job.status.running
    assert len(timers(scheduler, job.name)) == 1


@pytest.mark.asyncio
async def test_unexpected_cycle_error_resets_running_flag(state, scheduler):
    def broken(subscriber):
        raise ValueError("bad predicate")

    job = content_job(state, scheduler, FakeDirectory([make_subscriber("a@example.com")]), RecordingProcessor(), broken)

    await job.tick()

    assert not job.status.running
    assert job.status.scheduled
    assert len(state.locks) == 0


@pytest.mark.asyncio
async def test_reentrant_activation_skips_body_and_keeps_one_timer(state, scheduler):
    gate = asyncio.Event()
    processor = RecordingProcessor(gates={"a@example.com": gate})
    job = content_job(state, scheduler, FakeDirectory([make_subscriber("a@example.com")]), processor)

    first = asyncio.create_task(job.tick())
    await wait_for(lambda: "a@example.com" in state.locks)
    assert job.status.running

    await job.tick()
    assert processor.calls == [("a@example.com", False)]
    assert job.status.running
    assert len(timers(scheduler, job.name)) == 1

    gate.set()
    await first
    assert not job.status.running
    assert len(timers(scheduler, job.name)) == 1
    assert len(processor.calls) == 1


@pytest.mark.asyncio
async def test_rearm_uses_interval(state, scheduler):
    job = content_job(state, scheduler, FakeDirectory(), RecordingProcessor())
    before = pendulum.now("UTC")

    await job.tick()

    (timer,) = timers(scheduler, job.name)
    assert before + HOUR <= timer.next_run_time <= pendulum.now("UTC") + HOUR


@pytest.mark.asyncio
async def test_timer_fires_and_rearms(state, scheduler):
    directory = FakeDirectory([make_subscriber("a@example.com")])
    processor = RecordingProcessor()
    job = ScheduledContentJob(state, scheduler, directory, timedelta(seconds=0.05), processor, refresh=HOUR, predicate=always)

    job.start()
    await wait_for(lambda: len(processor.calls) >= 2)

    assert job.status.scheduled or job.status.running


@pytest.mark.asyncio
async def test_immediate_check_uses_preference_change(state, scheduler):
    now = pendulum.now("UTC")
    subs = [
        make_subscriber("changed@example.com", last_job=now.subtract(hours=2), preference_update=now.subtract(minutes=1)),
        make_subscriber("stale@example.com", last_job=now.subtract(hours=30)),
    ]
    processor = RecordingProcessor()
    directory = FakeDirectory(subs)
    job = ImmediateCheckJob(state, scheduler, directory, timedelta(seconds=60), processor)

    await job.tick()

    assert processor.calls == [("changed@example.com", False)]
    assert directory.calls == [(CONTENT_COLUMNS, ())]


@pytest.mark.asyncio
async def test_telegram_passes_registry_through_sequentially(state, scheduler):
    subs = [
        make_subscriber("a@example.com", telegram_id="1"),
        make_subscriber("nochat@example.com"),
        make_subscriber("b@example.com", telegram_id="2"),
    ]
    notifier = RecordingNotifier(failures={"a@example.com"})
    directory = FakeDirectory(subs)
    job = TelegramJob(state, scheduler, directory, timedelta(minutes=5), notifier)

    await job.tick()

    assert [sid for sid, _ in notifier.calls] == ["a@example.com", "b@example.com"]
    assert all(locks is state.locks for _, locks in notifier.calls)
    assert directory.calls == [(TELEGRAM_COLUMNS, ("telegramid",))]
    assert len(state.locks) == 0


@pytest.mark.asyncio
async def test_midnight_refresh_runs_concurrently_and_waits_for_slowest(state, scheduler):
    subs = [make_subscriber(f"user{i}@example.com") for i in range(3)]
    delays = {"user0@example.com": 0.15, "user1@example.com": 0.05, "user2@example.com": 0.1}
    processor = RecordingProcessor(delays=delays, failures={"user1@example.com"})
    job = MidnightRefreshJob(state, scheduler, FakeDirectory(subs), processor, "Europe/London")

    await job.tick()

    starts = [i for i, (kind, _) in enumerate(processor.events) if kind == "start"]
    assert starts == [0, 1, 2]
    assert processor.events[-1] == ("end", "user0@example.com")
    assert sorted(processor.calls) == [(sub.id, True) for sub in subs]
    assert len(state.locks) == 0
    assert not job.status.running


@pytest.mark.asyncio
async def test_midnight_refresh_skips_locked(state, scheduler):
    subs = [make_subscriber("busy@example.com"), make_subscriber("free@example.com")]
    processor = RecordingProcessor()
    job = MidnightRefreshJob(state, scheduler, FakeDirectory(subs), processor, "Europe/London")
    state.locks.try_acquire("busy@example.com")

    await job.tick()

    assert processor.calls == [("free@example.com", True)]
    assert state.locks.snapshot() == ["busy@example.com"]


@pytest.mark.asyncio
async def test_midnight_refresh_arms_for_local_midnight(state, scheduler):
    job = MidnightRefreshJob(state, scheduler, FakeDirectory(), RecordingProcessor(), "Asia/Kolkata")

    job.start()

    (timer,) = timers(scheduler, job.name)
    local = pendulum.instance(timer.next_run_time).in_timezone("Asia/Kolkata")
    assert (local.hour, local.minute, local.second, local.microsecond) == (0, 0, 0, 0)
    assert timer.next_run_time > pendulum.now("UTC")


@pytest.mark.asyncio
async def test_cancel_removes_timer(state, scheduler):
    job = content_job(state, scheduler, FakeDirectory(), RecordingProcessor())
    job.arm()
    assert job.status.scheduled

    job.cancel()
    job.cancel()

    assert not job.status.scheduled
    assert timers(scheduler, job.name) == []


@pytest.mark.asyncio
async def test_timer_firing_during_a_cycle_rearms_instead_of_being_dropped(state, scheduler):
    gate = asyncio.Event()
    processor = RecordingProcessor(gates={"a@example.com": gate})
    job = content_job(state, scheduler, FakeDirectory([make_subscriber("a@example.com")]), processor)

    job.start()
    await wait_for(lambda: job.status.running and "a@example.com" in state.locks)

    job.arm(immediate=True)
    later = pendulum.now("UTC").add(minutes=30)
    await wait_for(lambda: any(t.next_run_time > later for t in timers(scheduler, job.name)))

    assert len(timers(scheduler, job.name)) == 1
    assert job.status.scheduled
    assert processor.calls == [("a@example.com", False)]

    gate.set()
    await wait_for(lambda: not job.status.running)
    assert len(timers(scheduler, job.name)) == 1
