"""Periodic change detection against the dashboard backend.

Each tick runs two independent sub-polls:
- assignments: diff the leads grouped by batch/sheet against the last snapshot
  and raise one aggregated notification per group with new leads;
- follow-ups: raise one notification per follow-up that is due by the
  server's clock and has not been notified before.

A failure in one sub-poll never aborts the other, and nothing escapes a tick.
The engine runs ticks as repeating JobQueue jobs; after stop() a tick that is
already in flight emits nothing.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, TypeVar

from leadwatch.db.models import AssignedItem, FollowUpEvent, FollowUpFeed, InboxNotification, Principal
from leadwatch.db.repository import PersistentStore
from leadwatch.engine.dedup import DedupStore
from leadwatch.engine.differ import SnapshotStore, diff, group_by_batch_sheet, split_group_key
from leadwatch.engine.notifications import NotificationLog, NotificationSettings
from leadwatch.utils.constants import (
    DEFAULT_FETCH_TIMEOUT,
    DEFAULT_POLL_INTERVAL,
    INBOX_FETCH_LIMIT,
    MAX_FOLLOWUP_EVENTS,
    SETTING_ASSIGNMENTS,
    SETTING_FOLLOWUPS,
)
from leadwatch.utils.exceptions import FetchFailed
from leadwatch.utils.time_utils import normalize_due

logger = logging.getLogger(__name__)

T = TypeVar("T")

ASSIGNMENT_TITLE = "New leads assigned"
FOLLOWUP_TITLE = "Follow-up due"


def format_assignment_message(count: int, batch: str, sheet: str) -> str:
    where = f"{batch} / {sheet}" if sheet else batch
    return f"{count} lead(s) assigned — {where}"


def format_followup_message(event: FollowUpEvent) -> str:
    where = f"{event.batch} / {event.sheet}" if event.sheet else event.batch
    return (
        f"Follow-up FU{event.sequence} due now — "
        f"{event.display_name} ({event.phone}) — {where}"
    )


async def fetch_with_timeout(fetch: Callable[[], Awaitable[T]], timeout: float, what: str) -> T:
    """Await an external read, turning timeouts and errors into FetchFailed."""
    try:
        return await asyncio.wait_for(fetch(), timeout=timeout)
    except FetchFailed:
        raise
    except asyncio.TimeoutError as e:
        raise FetchFailed(f"{what} timed out after {timeout}s") from e
    except Exception as e:
        raise FetchFailed(f"{what} failed: {e}") from e


class Poller:
    """Assignment and follow-up polls for one principal."""

    def __init__(
        self,
        backend: Any,
        principal: Principal,
        log: NotificationLog,
        dedup: DedupStore,
        snapshots: SnapshotStore,
        settings: NotificationSettings,
        lock: asyncio.Lock,
        interval: float = DEFAULT_POLL_INTERVAL,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
    ):
        self.backend = backend
        self.principal = principal
        self.log = log
        self.dedup = dedup
        self.snapshots = snapshots
        self.settings = settings
        self.lock = lock
        self.interval = interval
        self.fetch_timeout = fetch_timeout
        self._stopped = False

    def stop(self) -> None:
        self._stopped = True

    async def tick(self) -> None:
        try:
            await self.poll_assignments()
        except FetchFailed as e:
            logger.warning(f"Assignment poll skipped: {e}")
        except Exception as e:
            logger.error(f"Assignment poll error: {e}")

        try:
            await self.poll_followups()
        except FetchFailed as e:
            logger.warning(f"Follow-up poll skipped: {e}")
        except Exception as e:
            logger.error(f"Follow-up poll error: {e}")

    async def poll_assignments(self) -> int:
        """Notify about newly assigned leads.

        Returns:
            Number of notifications emitted
        """
        if not await self.settings.is_enabled(SETTING_ASSIGNMENTS):
            return 0

        items: List[AssignedItem] = await fetch_with_timeout(
            lambda: self.backend.get_assigned_items(self.principal),
            self.fetch_timeout,
            "Assigned items fetch",
        )
        current = group_by_batch_sheet(items)

        async with self.lock:
            if self._stopped:
                return 0
            previous = await self.snapshots.load()
            added = diff(previous, current)

            for group, ids in sorted(added.items()):
                batch, sheet = split_group_key(group)
                await self.log.add(
                    ASSIGNMENT_TITLE, format_assignment_message(len(ids), batch, sheet), "info"
                )

            # Persisted only after the notifications; a crash in between re-notifies
            await self.snapshots.save(current)

        if added:
            logger.info(f"Assignment poll: new leads in {len(added)} group(s)")
        return len(added)

    async def poll_followups(self) -> int:
        """Notify about follow-ups that are due by the server's clock.

        Returns:
            Number of notifications emitted
        """
        if not await self.settings.is_enabled(SETTING_FOLLOWUPS):
            return 0

        feed: FollowUpFeed = await fetch_with_timeout(
            lambda: self.backend.get_followup_events(self.principal),
            self.fetch_timeout,
            "Follow-up events fetch",
        )
        if not feed.server_now:
            logger.warning("Follow-up feed has no server time, skipping")
            return 0

        events = feed.overdue[:MAX_FOLLOWUP_EVENTS] + feed.upcoming[:MAX_FOLLOWUP_EVENTS]
        emitted = 0

        async with self.lock:
            if self._stopped:
                return 0
            for event in events:
                if normalize_due(event.due_date) > feed.server_now:
                    continue
                if await self.dedup.was_followup_notified(event):
                    continue

                await self.log.add(FOLLOWUP_TITLE, format_followup_message(event), "warning")
                await self.dedup.mark_followup_notified(event)
                emitted += 1

        if emitted:
            logger.info(f"Follow-up poll: {emitted} follow-up(s) due")
        return emitted


class InboxWatcher:
    """Surfaces server-generated notifications newer than the last one seen.

    The first poll only records the newest id so an existing inbox is not
    replayed.
    """

    def __init__(
        self,
        backend: Any,
        principal: Principal,
        log: NotificationLog,
        store: PersistentStore,
        lock: asyncio.Lock,
        interval: float,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
    ):
        self.backend = backend
        self.principal = principal
        self.log = log
        self.store = store
        self.lock = lock
        self.interval = interval
        self.fetch_timeout = fetch_timeout
        self._stopped = False

    @property
    def cursor_key(self) -> str:
        return f"inbox_last_seen:{self.principal.id}"

    def stop(self) -> None:
        self._stopped = True

    async def tick(self) -> None:
        try:
            await self.poll()
        except FetchFailed as e:
            logger.warning(f"Inbox poll skipped: {e}")
        except Exception as e:
            logger.error(f"Inbox poll error: {e}")

    async def poll(self) -> int:
        rows: List[InboxNotification] = await fetch_with_timeout(
            lambda: self.backend.get_inbox(self.principal, INBOX_FETCH_LIMIT),
            self.fetch_timeout,
            "Inbox fetch",
        )
        if not rows:
            return 0

        newest = rows[0]
        emitted = 0

        async with self.lock:
            if self._stopped:
                return 0
            last_seen = await self.store.get(self.cursor_key)
            if last_seen is None:
                await self.store.set(self.cursor_key, newest.id)
                return 0

            ids = [row.id for row in rows]
            new_rows = rows[: ids.index(last_seen)] if last_seen in ids else rows

            for row in reversed(new_rows):
                if row.read_at is not None:
                    continue
                await self.log.add(row.title, row.message, row.kind)
                emitted += 1

            await self.store.set(self.cursor_key, newest.id)

        return emitted
