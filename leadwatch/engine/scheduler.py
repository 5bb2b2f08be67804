"""Daily report slot scheduler.

For each local day the scheduler arms one timer per configured slot and one
rollover timer shortly after the next local midnight. A slot fires at most
once per local date; the flag lives in the dedup store so restarts and
repeated reschedules never fire it twice.
"""

import asyncio
import logging
from datetime import date, datetime, timedelta
from typing import Awaitable, Callable

from apscheduler.jobstores.base import JobLookupError
from telegram.ext import ContextTypes, Job, JobQueue

from leadwatch.db.models import ReminderSlot, ScheduleConfig
from leadwatch.engine.dedup import DedupStore
from leadwatch.engine.notifications import NotificationLog, NotificationSettings
from leadwatch.utils.constants import (
    DEFAULT_FETCH_TIMEOUT,
    DEFAULT_UTC_OFFSET_MINUTES,
    ROLLOVER_BUFFER_SECONDS,
    SETTING_REMINDERS,
)
from leadwatch.utils.exceptions import InvalidTimeFormat
from leadwatch.utils.time_utils import instant_of, local_date_of, next_rollover_at, utc_now

logger = logging.getLogger(__name__)

REMINDER_TITLE = "Daily Report Reminder"
MISSED_TITLE = "Missed Daily Report"


def format_reminder_message(slot: ReminderSlot, grace_minutes: int) -> str:
    return (
        f"Daily report time: {slot.display_label}. "
        f"Please submit within {grace_minutes} minutes."
    )


def format_missed_message(slot: ReminderSlot, day: date) -> str:
    return f"Missed daily report slot: {slot.display_label} ({day.isoformat()})."


def remove_job(job: Job) -> None:
    """Unschedule job. One-shot jobs that already ran are left alone."""
    try:
        job.schedule_removal()
    except JobLookupError:
        logger.debug(f"Job {job.name} already left the queue")


class SlotScheduler:
    """Arms, fires and rolls over the day's reminder slots.

    Timers are one-shot jobs on the application's JobQueue. All fire and
    reschedule work runs under the shared engine lock. Once stopped, a
    scheduler never arms again; the engine builds a fresh one per start.
    """

    def __init__(
        self,
        log: NotificationLog,
        dedup: DedupStore,
        settings: NotificationSettings,
        fetch_config: Callable[[], Awaitable[ScheduleConfig]],
        lock: asyncio.Lock,
        job_queue: JobQueue,
        clock: Callable[[], datetime] = utc_now,
        offset_minutes: int = DEFAULT_UTC_OFFSET_MINUTES,
        rollover_buffer_seconds: int = ROLLOVER_BUFFER_SECONDS,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
        notify_missed: bool = False,
    ):
        self.log = log
        self.dedup = dedup
        self.settings = settings
        self.fetch_config = fetch_config
        self.lock = lock
        self.job_queue = job_queue
        self.clock = clock
        self.offset_minutes = offset_minutes
        self.rollover_buffer_seconds = rollover_buffer_seconds
        self.fetch_timeout = fetch_timeout
        self.notify_missed = notify_missed

        self.config: ScheduleConfig | None = None
        self.day: date | None = None
        self._slot_jobs: dict[str, Job] = {}
        self._rollover_job: Job | None = None
        self._stopped = False

    @property
    def armed_slots(self) -> list[str]:
        """Keys of slots with a pending timer."""
        return [key for key, job in self._slot_jobs.items() if not job.removed]

    @property
    def rollover_pending(self) -> bool:
        return self._rollover_job is not None and not self._rollover_job.removed

    @property
    def is_stopped(self) -> bool:
        return self._stopped

    async def reschedule(
        self, config: ScheduleConfig | None = None, day: date | None = None
    ) -> None:
        """Remove today's timers and arm the slots of config for day.

        Without a config the last one is reused; without a day the current
        local date is used. Does nothing once stopped.
        """
        async with self.lock:
            await self._reschedule_locked(config, day)

    async def _reschedule_locked(self, config: ScheduleConfig | None, day: date | None) -> None:
        if self._stopped:
            logger.debug("Scheduler stopped, reschedule ignored")
            return

        if config is not None:
            self.config = config
        if self.config is None:
            logger.warning("No schedule config loaded, nothing to arm")
            return

        self.day = day or local_date_of(self.clock(), self.offset_minutes)
        self._remove_slots()
        await self._arm_day(self.config, self.day)
        if not self._stopped:
            self._arm_rollover()

    async def _arm_day(self, config: ScheduleConfig, day: date) -> None:
        if not config.slots:
            logger.warning(f"Schedule for {day} has no slots, nothing to arm")
            return

        now = self.clock()
        grace = timedelta(minutes=config.grace_minutes)

        for slot in config.slots:
            # stop() may land while an inline fire awaits the alert channel
            if self._stopped:
                return

            try:
                fire_at = instant_of(day, slot.time, self.offset_minutes)
            except InvalidTimeFormat as e:
                logger.error(f"Skipping slot {slot.key}: {e}")
                continue

            if now - fire_at > grace:
                logger.info(f"Slot {slot.key} on {day} elapsed beyond grace, skipped")
                if self.notify_missed:
                    try:
                        await self._fire_missed(config, day, slot)
                    except Exception as e:
                        logger.error(f"Error recording missed slot {slot.key} on {day}: {e}")
                continue

            if fire_at <= now:
                # Catch-up inside the grace window
                try:
                    await self._fire(config, day, slot)
                except Exception as e:
                    logger.error(f"Error firing slot {slot.key} on {day}: {e}")
                continue

            delay = (fire_at - now).total_seconds()
            self._slot_jobs[slot.key] = self.job_queue.run_once(
                self._slot_job,
                when=delay,
                data=(config, day, slot),
                name=f"slot:{slot.key}",
                job_kwargs={"misfire_grace_time": None},
            )
            logger.info(f"Armed slot {slot.key} for {fire_at.isoformat()} (in {delay:.0f}s)")

    async def _slot_job(self, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Job callback for an armed slot."""
        config, day, slot = context.job.data
        async with self.lock:
            if self._slot_jobs.get(slot.key) is context.job:
                del self._slot_jobs[slot.key]
            if self._stopped:
                return
            try:
                await self._fire(config, day, slot)
            except Exception as e:
                logger.error(f"Error firing slot {slot.key} on {day}: {e}")

    async def fire_slot(self, slot: ReminderSlot, day: date | None = None) -> None:
        """Run the fire path for slot now (deduplicated like a timer fire)."""
        async with self.lock:
            config = self.config or ScheduleConfig(slots=[slot])
            await self._fire(config, day or local_date_of(self.clock(), self.offset_minutes), slot)

    async def _fire(self, config: ScheduleConfig, day: date, slot: ReminderSlot) -> None:
        """Emit the reminder for slot unless it already fired on day."""
        if not await self.settings.is_enabled(SETTING_REMINDERS):
            logger.info(f"Reminders disabled, slot {slot.key} not fired")
            return

        if await self.dedup.was_reminder_sent(day, slot.key):
            logger.debug(f"Slot {slot.key} already fired on {day}")
            return

        await self.log.add(REMINDER_TITLE, format_reminder_message(slot, config.grace_minutes), "info")
        await self.dedup.mark_reminder_sent(day, slot.key)
        logger.info(f"Fired slot {slot.key} for {day}")

    async def _fire_missed(self, config: ScheduleConfig, day: date, slot: ReminderSlot) -> None:
        if not await self.settings.is_enabled(SETTING_REMINDERS):
            return
        if await self.dedup.was_reminder_sent(day, slot.key):
            return
        if await self.dedup.was_missed_sent(day, slot.key):
            return

        await self.log.add(MISSED_TITLE, format_missed_message(slot, day), "warning")
        await self.dedup.mark_missed_sent(day, slot.key)

    def _arm_rollover(self) -> None:
        if self._rollover_job is not None:
            remove_job(self._rollover_job)

        now = self.clock()
        fire_at = next_rollover_at(now, self.offset_minutes, self.rollover_buffer_seconds)
        delay = max(float(self.rollover_buffer_seconds), (fire_at - now).total_seconds())
        self._rollover_job = self.job_queue.run_once(
            self._rollover,
            when=delay,
            name="rollover",
            job_kwargs={"misfire_grace_time": None},
        )
        logger.debug(f"Rollover armed for {fire_at.isoformat()}")

    async def _rollover(self, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Job callback: refresh the schedule and arm the new local day."""
        if self._stopped:
            return

        config = None
        try:
            config = await asyncio.wait_for(self.fetch_config(), timeout=self.fetch_timeout)
        except Exception as e:
            logger.error(f"Schedule refresh failed at rollover, keeping previous config: {e}")

        async with self.lock:
            try:
                await self._reschedule_locked(config, None)
            except Exception as e:
                logger.error(f"Rollover reschedule failed: {e}")

    def _remove_slots(self) -> None:
        for job in self._slot_jobs.values():
            remove_job(job)
        self._slot_jobs.clear()

    def stop(self) -> None:
        """Remove every pending slot timer and the rollover."""
        self._stopped = True
        self._remove_slots()
        if self._rollover_job is not None:
            remove_job(self._rollover_job)
            self._rollover_job = None
