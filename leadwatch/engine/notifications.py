"""Local notification log and per-principal notification settings."""

import logging
from datetime import datetime
from typing import Callable, List, Protocol

from dateutil.parser import isoparse

from leadwatch.db.models import NotificationEntry, NotificationKind, dump_entries, load_entries
from leadwatch.db.repository import PersistentStore
from leadwatch.utils.constants import MAX_NOTIFICATIONS, SETTING_ALERTS, SETTING_NAMES
from leadwatch.utils.exceptions import AuthorizationDenied
from leadwatch.utils.time_utils import utc_now

logger = logging.getLogger(__name__)


class AlertChannel(Protocol):
    """External alert channel. send_alert must not raise on delivery failure."""

    def is_authorized(self) -> bool: ...

    async def send_alert(self, title: str, body: str) -> None: ...


class NotificationSettings:
    """Independent on/off toggles for each notification category."""

    def __init__(self, store: PersistentStore, principal_id: str):
        self.store = store
        self.principal_id = principal_id

    def _key(self, name: str) -> str:
        return f"settings:{self.principal_id}:{name}"

    async def is_enabled(self, name: str) -> bool:
        return await self.store.get(self._key(name)) != "false"

    async def get_settings(self) -> dict[str, bool]:
        return {name: await self.is_enabled(name) for name in SETTING_NAMES}

    async def set_setting(self, name: str, enabled: bool) -> None:
        if name not in SETTING_NAMES:
            raise ValueError(f"Unknown notification setting: {name}")
        await self.store.set(self._key(name), "true" if enabled else "false")
        logger.info(f"Setting {name} {'enabled' if enabled else 'disabled'} for {self.principal_id}")


class NotificationLog:
    """Bounded, newest-first notification log with unread tracking.

    Every added entry is also forwarded to the alert channel when alerts are
    enabled and the channel is authorized. Forwarding is best effort.
    """

    def __init__(
        self,
        store: PersistentStore,
        principal_id: str,
        alerts: AlertChannel | None = None,
        settings: NotificationSettings | None = None,
        clock: Callable[[], datetime] = utc_now,
        max_items: int = MAX_NOTIFICATIONS,
    ):
        self.store = store
        self.principal_id = principal_id
        self.alerts = alerts
        self.settings = settings
        self.clock = clock
        self.max_items = max_items

    @property
    def items_key(self) -> str:
        return f"notifications:{self.principal_id}:items"

    @property
    def read_key(self) -> str:
        return f"notifications:{self.principal_id}:read_at"

    async def list(self) -> List[NotificationEntry]:
        """Get entries, newest first."""
        return load_entries(await self.store.get(self.items_key))

    async def add(
        self, title: str, message: str, kind: NotificationKind = "info"
    ) -> NotificationEntry:
        """Create an entry stamped with the current time and add it."""
        entry = NotificationEntry(title=title, message=message, timestamp=self.clock(), kind=kind)
        await self.add_entry(entry)
        return entry

    async def add_entry(self, entry: NotificationEntry) -> None:
        entries = await self.list()
        entries.insert(0, entry)
        del entries[self.max_items:]
        await self.store.set(self.items_key, dump_entries(entries))

        logger.info(f"Notification [{entry.kind}] {entry.title}: {entry.message}")

        await self._forward(entry)

    async def _forward(self, entry: NotificationEntry) -> None:
        if self.alerts is None:
            return

        try:
            if self.settings is not None and not await self.settings.is_enabled(SETTING_ALERTS):
                return
            if not self.alerts.is_authorized():
                raise AuthorizationDenied("Alert channel not authorized")
            await self.alerts.send_alert(entry.title, entry.message)
        except AuthorizationDenied as e:
            logger.debug(f"External alert suppressed for {entry.id}: {e}")
        except Exception as e:
            logger.error(f"Failed to forward notification {entry.id}: {e}")

    async def last_read_at(self) -> datetime | None:
        raw = await self.store.get(self.read_key)
        if not raw:
            return None
        try:
            return isoparse(raw)
        except ValueError:
            logger.warning(f"Ignoring unreadable read marker: {raw!r}")
            return None

    async def unread_count(self) -> int:
        read_at = await self.last_read_at()
        entries = await self.list()
        if read_at is None:
            return len(entries)
        return sum(1 for entry in entries if entry.timestamp > read_at)

    async def mark_all_read(self) -> None:
        await self.store.set(self.read_key, self.clock().isoformat())
