"""Tests for the engine lifecycle."""

import asyncio
from unittest.mock import Mock

import pytest

from helpers import DAY, OFFSET
from leadwatch.db.models import AssignedItem, Principal, ReminderSlot, ScheduleConfig
from leadwatch.engine.controller import Engine
from leadwatch.engine.dedup import DedupStore
from leadwatch.engine.poller import ASSIGNMENT_TITLE
from leadwatch.engine.scheduler import REMINDER_TITLE
from leadwatch.utils.exceptions import FetchFailed, NotRunning


def make_engine(store, backend, clock, job_queue, **kwargs) -> Engine:
    kwargs.setdefault("poll_interval", 3600)
    kwargs.setdefault("fetch_timeout", 1)
    return Engine(
        backend=backend,
        store=store,
        job_queue=job_queue,
        clock=clock,
        offset_minutes=OFFSET,
        **kwargs,
    )


@pytest.fixture
async def engines(job_queue):
    started = []
    yield started
    for engine in started:
        await engine.stop()


async def test_admin_principal_is_gated(store, backend, clock, job_queue, engines):
    """Test no reminders and no polling run for administrators."""
    engine = make_engine(store, backend, clock, job_queue)
    engines.append(engine)

    await engine.start(Principal(id="root", name="Admin", role="admin"))

    assert not engine.is_running
    assert engine.scheduler is None
    backend.get_schedule_config.assert_not_awaited()
    backend.get_assigned_items.assert_not_awaited()
    assert store.data == {}


async def test_catch_up_reminder_on_start(store, backend, principal, clock, job_queue, engines):
    """Test starting at 09:05 with a 09:00 slot yields exactly one reminder."""
    engine = make_engine(store, backend, clock, job_queue)
    engines.append(engine)

    await engine.start(principal)

    entries = await engine.log.list()
    assert [e.title for e in entries] == [REMINDER_TITLE]
    assert "9 AM" in entries[0].message
    assert await DedupStore(store, principal.id).was_reminder_sent(DAY, "am")

    await engine.reschedule()
    assert len(await engine.log.list()) == 1


async def test_start_is_idempotent(store, backend, principal, clock, job_queue, engines):
    """Test a second start does not spawn a second poller."""
    engine = make_engine(store, backend, clock, job_queue)
    engines.append(engine)

    await engine.start(principal)
    await engine.start(principal)
    await asyncio.sleep(0.1)

    assert backend.get_schedule_config.await_count == 1
    assert backend.get_assigned_items.await_count == 1


async def test_start_polls_immediately(store, backend, principal, clock, job_queue, engines):
    """Test the poller ticks once right after start."""
    engine = make_engine(store, backend, clock, job_queue)
    engines.append(engine)

    await engine.start(principal)
    await asyncio.sleep(0.1)

    backend.get_assigned_items.assert_awaited_once_with(principal)
    backend.get_followup_events.assert_awaited_once_with(principal)


async def test_stop_cancels_everything(store, backend, principal, clock, job_queue):
    """Test stop() leaves no timers or jobs behind and can be repeated."""
    backend.get_schedule_config.return_value = ScheduleConfig(
        slots=[ReminderSlot(key="pm", time="14:30")]
    )
    engine = make_engine(store, backend, clock, job_queue)

    await engine.start(principal)
    assert engine.scheduler.armed_slots == ["pm"]

    await engine.stop()

    assert not engine.is_running
    assert engine.scheduler.armed_slots == []
    assert not engine.scheduler.rollover_pending
    assert job_queue.jobs() == ()

    await engine.stop()


async def test_stop_before_start_is_safe(store, backend, clock, job_queue):
    """Test stop() on a never-started engine does nothing."""
    engine = make_engine(store, backend, clock, job_queue)

    await engine.stop()

    assert not engine.is_running


async def test_schedule_fetch_failure_still_polls(store, backend, principal, clock, job_queue, engines):
    """Test a failed schedule fetch starts with no slots but keeps polling."""
    backend.get_schedule_config.side_effect = FetchFailed("503")
    engine = make_engine(store, backend, clock, job_queue)
    engines.append(engine)

    await engine.start(principal)
    await asyncio.sleep(0.1)

    assert engine.is_running
    assert engine.scheduler.armed_slots == []
    assert engine.scheduler.rollover_pending
    backend.get_assigned_items.assert_awaited_once()


async def test_schedule_fetch_timeout(store, backend, principal, clock, job_queue, engines):
    """Test a hanging schedule fetch is abandoned after the fetch timeout."""

    async def hang(_principal):
        await asyncio.sleep(10)

    backend.get_schedule_config.side_effect = hang
    engine = make_engine(store, backend, clock, job_queue, fetch_timeout=0.05)
    engines.append(engine)

    await engine.start(principal)

    assert engine.is_running
    assert await engine.log.list() == []


async def test_reschedule_keeps_config_on_failure(store, backend, principal, clock, job_queue, engines):
    """Test a failed refresh keeps the schedule already armed."""
    backend.get_schedule_config.return_value = ScheduleConfig(
        slots=[ReminderSlot(key="pm", time="14:30")]
    )
    engine = make_engine(store, backend, clock, job_queue)
    engines.append(engine)
    await engine.start(principal)

    backend.get_schedule_config.side_effect = FetchFailed("offline")
    await engine.reschedule()

    assert engine.scheduler.armed_slots == ["pm"]


async def test_reschedule_picks_up_new_slots(store, backend, principal, clock, job_queue, engines):
    """Test an explicit reschedule arms the new configuration."""
    engine = make_engine(store, backend, clock, job_queue)
    engines.append(engine)
    await engine.start(principal)

    backend.get_schedule_config.return_value = ScheduleConfig(
        slots=[ReminderSlot(key="am", time="09:00"), ReminderSlot(key="eve", time="18:00")]
    )
    await engine.reschedule()

    assert engine.scheduler.armed_slots == ["eve"]
    assert len(await engine.log.list()) == 1


async def test_calls_when_not_running_are_noops(store, backend, clock, job_queue):
    """Test reschedule and poll_now do nothing before start."""
    engine = make_engine(store, backend, clock, job_queue)

    await engine.reschedule()
    await engine.poll_now()

    backend.get_schedule_config.assert_not_awaited()
    backend.get_assigned_items.assert_not_awaited()


async def test_poll_now_runs_a_tick(store, backend, principal, clock, job_queue, engines):
    """Test poll_now triggers an immediate poll."""
    engine = make_engine(store, backend, clock, job_queue)
    engines.append(engine)
    await engine.start(principal)
    await asyncio.sleep(0.1)

    await engine.poll_now()

    assert backend.get_assigned_items.await_count == 2


async def test_inbox_watcher_opt_in(store, backend, principal, clock, job_queue, engines):
    """Test the inbox watcher only runs when an interval is configured."""
    engine = make_engine(store, backend, clock, job_queue)
    engines.append(engine)
    await engine.start(principal)
    await asyncio.sleep(0.1)
    assert engine.inbox is None
    backend.get_inbox.assert_not_awaited()

    other = make_engine(store, backend, clock, job_queue, inbox_interval=3600)
    engines.append(other)
    await other.start(principal)
    await asyncio.sleep(0.1)
    assert other.inbox is not None
    backend.get_inbox.assert_awaited_once()


def gate():
    """An (entered, release) pair of events for holding a call open."""
    return asyncio.Event(), asyncio.Event()


async def test_stop_during_schedule_fetch_at_start(store, backend, principal, clock, job_queue):
    """Test start() arms nothing when stop() lands during the schedule fetch."""
    entered, release = gate()

    async def slow_config(_principal):
        entered.set()
        await release.wait()
        return ScheduleConfig(slots=[ReminderSlot(key="pm", time="14:30")])

    backend.get_schedule_config.side_effect = slow_config
    engine = make_engine(store, backend, clock, job_queue)

    starting = asyncio.create_task(engine.start(principal))
    await asyncio.wait_for(entered.wait(), 1)
    await asyncio.wait_for(engine.stop(), 1)
    release.set()
    await asyncio.wait_for(starting, 1)
    await asyncio.sleep(0.1)

    assert not engine.is_running
    assert engine.scheduler.armed_slots == []
    assert not engine.scheduler.rollover_pending
    assert job_queue.jobs() == ()
    backend.get_assigned_items.assert_not_awaited()


async def test_stop_during_catch_up_alert_at_start(store, backend, principal, clock, job_queue):
    """Test start() schedules no polls when stop() lands while a catch-up alert is sent."""
    entered, release = gate()

    async def slow_alert(title, body):
        entered.set()
        await release.wait()

    alerts = Mock(is_authorized=Mock(return_value=True), send_alert=slow_alert)
    backend.get_schedule_config.return_value = ScheduleConfig(
        slots=[ReminderSlot(key="am", time="09:00"), ReminderSlot(key="pm", time="14:30")]
    )
    engine = make_engine(store, backend, clock, job_queue, alerts=alerts, inbox_interval=3600)

    starting = asyncio.create_task(engine.start(principal))
    await asyncio.wait_for(entered.wait(), 1)
    await asyncio.wait_for(engine.stop(), 1)
    release.set()
    await asyncio.wait_for(starting, 1)
    await asyncio.sleep(0.1)

    assert engine.scheduler.armed_slots == []
    assert not engine.scheduler.rollover_pending
    assert job_queue.jobs() == ()
    backend.get_assigned_items.assert_not_awaited()
    backend.get_inbox.assert_not_awaited()


async def test_stop_during_reschedule_fetch(store, backend, principal, clock, job_queue):
    """Test a reschedule whose fetch outlives stop() does not re-arm timers."""
    backend.get_schedule_config.return_value = ScheduleConfig(
        slots=[ReminderSlot(key="pm", time="14:30")]
    )
    engine = make_engine(store, backend, clock, job_queue)
    await engine.start(principal)
    entered, release = gate()

    async def slow_config(_principal):
        entered.set()
        await release.wait()
        return ScheduleConfig(slots=[ReminderSlot(key="eve", time="18:00")])

    backend.get_schedule_config.side_effect = slow_config
    rescheduling = asyncio.create_task(engine.reschedule())
    await asyncio.wait_for(entered.wait(), 1)
    await asyncio.wait_for(engine.stop(), 1)
    release.set()
    await asyncio.wait_for(rescheduling, 1)

    assert engine.scheduler.armed_slots == []
    assert not engine.scheduler.rollover_pending
    assert job_queue.jobs() == ()


async def test_stop_during_poll_returns_promptly(store, backend, principal, clock, job_queue):
    """Test stop() does not wait for an in-flight poll, which then emits nothing."""
    entered, release = gate()

    async def slow_items(_principal):
        entered.set()
        await release.wait()
        return [AssignedItem(id="1", batch="Batch-10", sheet="Main")]

    backend.get_assigned_items.side_effect = slow_items
    engine = make_engine(store, backend, clock, job_queue)
    await engine.start(principal)

    await asyncio.wait_for(entered.wait(), 1)
    await asyncio.wait_for(engine.stop(), 1)
    release.set()
    await asyncio.sleep(0.1)

    titles = [e.title for e in await engine.log.list()]
    assert ASSIGNMENT_TITLE not in titles
    assert job_queue.jobs() == ()


async def test_schedule_fetch_requires_a_principal(store, backend, clock, job_queue):
    """Test the schedule fetch raises instead of asserting when unbound."""
    engine = make_engine(store, backend, clock, job_queue)

    with pytest.raises(NotRunning):
        await engine._fetch_config()

    backend.get_schedule_config.assert_not_awaited()
