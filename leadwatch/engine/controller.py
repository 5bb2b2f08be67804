"""Engine controller - owns the scheduler, poller and their lifecycle."""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable

from telegram.ext import ContextTypes, Job, JobQueue

from leadwatch.db.models import Principal, ScheduleConfig
from leadwatch.db.repository import PersistentStore
from leadwatch.engine.dedup import DedupStore
from leadwatch.engine.differ import SnapshotStore
from leadwatch.engine.notifications import AlertChannel, NotificationLog, NotificationSettings
from leadwatch.engine.poller import InboxWatcher, Poller, fetch_with_timeout
from leadwatch.engine.scheduler import SlotScheduler, remove_job
from leadwatch.utils.constants import (
    DEFAULT_FETCH_TIMEOUT,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_UTC_OFFSET_MINUTES,
    ROLLOVER_BUFFER_SECONDS,
)
from leadwatch.utils.exceptions import FetchFailed, NotRunning
from leadwatch.utils.time_utils import utc_now

logger = logging.getLogger(__name__)


class Engine:
    """Reminder scheduler and change-detection engine for one principal.

    Timers and polls are jobs on the application's JobQueue. Administrators
    get no reminders and no polling; for them start() only records the
    principal.
    """

    def __init__(
        self,
        backend: Any,
        store: PersistentStore,
        job_queue: JobQueue,
        alerts: AlertChannel | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
        offset_minutes: int = DEFAULT_UTC_OFFSET_MINUTES,
        rollover_buffer_seconds: int = ROLLOVER_BUFFER_SECONDS,
        inbox_interval: float | None = None,
        notify_missed: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.backend = backend
        self.store = store
        self.job_queue = job_queue
        self.alerts = alerts
        self.poll_interval = poll_interval
        self.fetch_timeout = fetch_timeout
        self.offset_minutes = offset_minutes
        self.rollover_buffer_seconds = rollover_buffer_seconds
        self.inbox_interval = inbox_interval
        self.notify_missed = notify_missed
        self.clock = clock

        self.principal: Principal | None = None
        self.log: NotificationLog | None = None
        self.settings: NotificationSettings | None = None
        self.scheduler: SlotScheduler | None = None
        self.poller: Poller | None = None
        self.inbox: InboxWatcher | None = None

        self._lock = asyncio.Lock()
        self._jobs: list[Job] = []
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def _bind(self, principal: Principal) -> None:
        """Build the principal-scoped components."""
        self.principal = principal
        self.settings = NotificationSettings(self.store, principal.id)
        self.log = NotificationLog(
            self.store, principal.id, alerts=self.alerts, settings=self.settings, clock=self.clock
        )
        dedup = DedupStore(self.store, principal.id)

        self.scheduler = SlotScheduler(
            log=self.log,
            dedup=dedup,
            settings=self.settings,
            fetch_config=self._fetch_config,
            lock=self._lock,
            job_queue=self.job_queue,
            clock=self.clock,
            offset_minutes=self.offset_minutes,
            rollover_buffer_seconds=self.rollover_buffer_seconds,
            fetch_timeout=self.fetch_timeout,
            notify_missed=self.notify_missed,
        )
        self.poller = Poller(
            backend=self.backend,
            principal=principal,
            log=self.log,
            dedup=dedup,
            snapshots=SnapshotStore(self.store, principal.id),
            settings=self.settings,
            lock=self._lock,
            interval=self.poll_interval,
            fetch_timeout=self.fetch_timeout,
        )
        self.inbox = None
        if self.inbox_interval:
            self.inbox = InboxWatcher(
                backend=self.backend,
                principal=principal,
                log=self.log,
                store=self.store,
                lock=self._lock,
                interval=self.inbox_interval,
                fetch_timeout=self.fetch_timeout,
            )

    async def _fetch_config(self) -> ScheduleConfig:
        if self.principal is None:
            raise NotRunning("No principal bound")
        return await self.backend.get_schedule_config(self.principal)

    async def _load_config(self) -> ScheduleConfig | None:
        try:
            return await fetch_with_timeout(self._fetch_config, self.fetch_timeout, "Schedule fetch")
        except FetchFailed as e:
            logger.error(f"Could not load schedule config: {e}")
            return None

    def _schedule_polls(self, name: str, callback, interval: float) -> None:
        """Tick now, then every interval seconds."""
        self._jobs.append(
            self.job_queue.run_once(
                callback, when=0, name=f"{name}:first", job_kwargs={"misfire_grace_time": None}
            )
        )
        self._jobs.append(
            self.job_queue.run_repeating(callback, interval=interval, first=interval, name=name)
        )

    async def _poll_job(self, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Job callback for the assignment and follow-up poll."""
        if not self._running or self.poller is None:
            return
        await self.poller.tick()

    async def _inbox_job(self, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Job callback for the server inbox poll."""
        if not self._running or self.inbox is None:
            return
        await self.inbox.tick()

    async def start(self, principal: Principal) -> None:
        """Start reminders and polling for principal. No-op if already running."""
        if self._running:
            logger.debug("Engine already running")
            return

        if principal.is_admin:
            self.principal = principal
            logger.info(f"Engine disabled for administrator {principal.id}")
            return

        self._bind(principal)
        self._running = True
        scheduler = self.scheduler

        config = await self._load_config()
        if scheduler.is_stopped:
            logger.info("Engine stopped while loading the schedule")
            return

        await scheduler.reschedule(config or ScheduleConfig())
        if scheduler.is_stopped:
            logger.info("Engine stopped while arming the schedule")
            return

        self._schedule_polls("poll", self._poll_job, self.poller.interval)
        if self.inbox is not None:
            self._schedule_polls("inbox", self._inbox_job, self.inbox.interval)

        logger.info(
            f"Engine started for {principal.id} "
            f"(poll every {self.poll_interval}s, {len(config.slots) if config else 0} slot(s))"
        )

    async def stop(self) -> None:
        """Remove all timers and polling jobs. Safe to call when not running.

        In-flight jobs are not awaited; they check the stop flags under the
        engine lock and emit nothing further.
        """
        if not self._running:
            return

        self._running = False
        for component in (self.scheduler, self.poller, self.inbox):
            if component is not None:
                component.stop()

        for job in self._jobs:
            remove_job(job)
        self._jobs.clear()

        logger.info("Engine stopped")

    def _ensure_running(self) -> None:
        if not self._running or self.scheduler is None or self.poller is None:
            raise NotRunning("Engine is not running")

    async def reschedule(self) -> None:
        """Re-pull the schedule and re-arm today's slots.

        A failed fetch keeps the current schedule.
        """
        try:
            self._ensure_running()
        except NotRunning as e:
            logger.debug(f"Reschedule ignored: {e}")
            return

        scheduler = self.scheduler
        config = await self._load_config()
        if scheduler.is_stopped:
            logger.debug("Engine stopped during schedule fetch, reschedule dropped")
            return

        await scheduler.reschedule(config)

    async def poll_now(self) -> None:
        """Run one poll tick immediately, e.g. after connectivity returns."""
        try:
            self._ensure_running()
        except NotRunning as e:
            logger.debug(f"Poll ignored: {e}")
            return

        await self.poller.tick()
        if self.inbox is not None:
            await self.inbox.tick()
