"""Persisted at-most-once flags for reminders and follow-up alerts."""

from datetime import date

from leadwatch.db.models import FollowUpEvent
from leadwatch.db.repository import PersistentStore


class DedupStore:
    """Records which notification keys already fired for a principal.

    Flags are written once and never cleared here.
    """

    def __init__(self, store: PersistentStore, principal_id: str):
        self.store = store
        self.principal_id = principal_id

    def reminder_key(self, day: date, slot_key: str) -> str:
        return f"reminder_sent:{self.principal_id}:{day.isoformat()}:{slot_key}"

    def missed_key(self, day: date, slot_key: str) -> str:
        return f"reminder_missed:{self.principal_id}:{day.isoformat()}:{slot_key}"

    def followup_key(self, event: FollowUpEvent) -> str:
        return f"followup_due:{self.principal_id}:" + "::".join(
            str(part) for part in event.natural_key
        )

    async def _is_set(self, key: str) -> bool:
        return await self.store.get(key) == "true"

    async def _mark(self, key: str) -> None:
        await self.store.set(key, "true")

    async def was_reminder_sent(self, day: date, slot_key: str) -> bool:
        return await self._is_set(self.reminder_key(day, slot_key))

    async def mark_reminder_sent(self, day: date, slot_key: str) -> None:
        await self._mark(self.reminder_key(day, slot_key))

    async def was_missed_sent(self, day: date, slot_key: str) -> bool:
        return await self._is_set(self.missed_key(day, slot_key))

    async def mark_missed_sent(self, day: date, slot_key: str) -> None:
        await self._mark(self.missed_key(day, slot_key))

    async def was_followup_notified(self, event: FollowUpEvent) -> bool:
        return await self._is_set(self.followup_key(event))

    async def mark_followup_notified(self, event: FollowUpEvent) -> None:
        await self._mark(self.followup_key(event))
