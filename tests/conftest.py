"""Shared fixtures."""

from unittest.mock import AsyncMock, Mock

import pytest
from telegram.ext import Application

from helpers import FakeClock, local
from leadwatch.db.models import FollowUpFeed, Principal, ReminderSlot, ScheduleConfig
from leadwatch.db.repository import MemoryStore


@pytest.fixture
async def job_queue():
    """A running JobQueue from an application that never connects."""
    application = Application.builder().token("123:ABC").build()
    await application.job_queue.start()
    yield application.job_queue
    await application.job_queue.stop(wait=False)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def clock():
    return FakeClock(local("09:05"))


@pytest.fixture
def principal():
    return Principal(id="officer-1", name="Nimal", role="user")


@pytest.fixture
def am_config():
    return ScheduleConfig(
        slots=[ReminderSlot(key="am", time="09:00", label="9 AM")], grace_minutes=20
    )


@pytest.fixture
def backend(am_config):
    backend = Mock()
    backend.get_schedule_config = AsyncMock(return_value=am_config)
    backend.get_assigned_items = AsyncMock(return_value=[])
    backend.get_followup_events = AsyncMock(
        return_value=FollowUpFeed(server_now="2026-03-01T09:05")
    )
    backend.get_inbox = AsyncMock(return_value=[])
    return backend
