"""Data models."""

import json
import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Literal

from dateutil.parser import isoparse

from leadwatch.utils.constants import ADMIN_ROLE, DEFAULT_GRACE_MINUTES, NOTIFICATION_KINDS

logger = logging.getLogger(__name__)


NotificationKind = Literal["info", "warning", "success", "error"]


def _first(data: dict, *names: str, default: Any = "") -> Any:
    """Return the first non-empty value among several field aliases."""
    for name in names:
        value = data.get(name)
        if value not in (None, ""):
            return value
    return default


def _kind(value: Any) -> NotificationKind:
    return value if value in NOTIFICATION_KINDS else "info"


@dataclass
class Principal:
    """The authenticated officer the engine runs for."""

    id: str
    name: str = ""
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    @classmethod
    def from_dict(cls, data: dict) -> "Principal":
        return cls(
            id=str(_first(data, "id", "email", default="me")),
            name=str(_first(data, "name", "full_name", "email")),
            role=str(_first(data, "role", default="user")),
        )


@dataclass
class ReminderSlot:
    """A configured time-of-day reminder."""

    key: str
    time: str  # HH:MM local
    label: str = ""

    @property
    def display_label(self) -> str:
        return self.label or self.time


@dataclass
class ScheduleConfig:
    """Reminder slot definitions for a day."""

    slots: list[ReminderSlot] = field(default_factory=list)
    grace_minutes: int = DEFAULT_GRACE_MINUTES

    @classmethod
    def from_dict(cls, data: dict | None) -> "ScheduleConfig":
        """Build a config from the backend payload.

        Slot times are not validated here; the scheduler skips malformed
        slots one by one. Duplicate keys keep the first definition.
        """
        data = data or {}

        raw_grace = data.get("graceMinutes", data.get("grace_minutes"))
        try:
            grace = max(0, int(raw_grace)) if raw_grace is not None else DEFAULT_GRACE_MINUTES
        except (TypeError, ValueError):
            grace = DEFAULT_GRACE_MINUTES

        slots: list[ReminderSlot] = []
        seen: set[str] = set()
        for raw in data.get("slots") or []:
            if not isinstance(raw, dict):
                continue
            key = str(raw.get("key") or "").strip()
            if not key:
                logger.warning(f"Ignoring schedule slot without a key: {raw}")
                continue
            if key in seen:
                logger.warning(f"Ignoring duplicate schedule slot key: {key}")
                continue
            seen.add(key)
            slots.append(
                ReminderSlot(
                    key=key,
                    time=str(raw.get("time") or "").strip(),
                    label=str(raw.get("label") or "").strip(),
                )
            )

        return cls(slots=slots, grace_minutes=grace)


@dataclass
class NotificationEntry:
    """One entry in the local notification log."""

    title: str
    message: str
    timestamp: datetime  # UTC
    kind: NotificationKind = "info"
    id: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            self.id = f"{int(self.timestamp.timestamp() * 1000)}:{uuid.uuid4().hex[:8]}"

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "NotificationEntry":
        return cls(
            id=str(data.get("id") or ""),
            title=str(data.get("title") or ""),
            message=str(data.get("message") or ""),
            timestamp=isoparse(data["timestamp"]),
            kind=_kind(data.get("kind")),
        )


def dump_entries(entries: list[NotificationEntry]) -> str:
    return json.dumps([entry.to_dict() for entry in entries])


def load_entries(raw: str | None) -> list[NotificationEntry]:
    """Parse a stored notification log, dropping unreadable entries."""
    if not raw:
        return []
    try:
        items = json.loads(raw)
    except ValueError:
        logger.warning("Stored notification log is not valid JSON, starting empty")
        return []

    entries = []
    for item in items if isinstance(items, list) else []:
        try:
            entries.append(NotificationEntry.from_dict(item))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Dropping unreadable notification entry: {e}")
    return entries


@dataclass
class AssignedItem:
    """A lead currently assigned to the principal."""

    id: str
    batch: str = ""
    sheet: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "AssignedItem":
        return cls(
            id=str(_first(data, "id", "sheetLeadId", "sheet_lead_id", "leadId")),
            batch=str(_first(data, "batch", "batchName", "batch_name")),
            sheet=str(_first(data, "sheet", "sheetName", "sheet_name")),
        )


@dataclass
class FollowUpEvent:
    """A scheduled follow-up call for a lead."""

    owner_id: str
    batch: str
    sheet: str
    lead_id: str
    sequence: int
    due_date: str  # YYYY-MM-DD or YYYY-MM-DDTHH:MM, local
    display_name: str = ""
    phone: str = ""

    @property
    def natural_key(self) -> tuple:
        return (
            self.owner_id,
            self.batch,
            self.sheet,
            self.lead_id,
            self.sequence,
            self.due_date,
        )

    @classmethod
    def from_dict(cls, data: dict, owner_id: str = "") -> "FollowUpEvent":
        try:
            sequence = int(_first(data, "sequence", "followUpNo", "followup_no", default=0))
        except (TypeError, ValueError):
            sequence = 0
        return cls(
            owner_id=str(_first(data, "ownerId", "owner_id", "officerId", default=owner_id)),
            batch=str(_first(data, "batch", "batchName", "batch_name")),
            sheet=str(_first(data, "sheet", "sheetName", "sheet_name")),
            lead_id=str(_first(data, "leadId", "lead_id", "id")),
            sequence=sequence,
            due_date=str(_first(data, "dueDate", "due_date", "date")),
            display_name=str(_first(data, "displayName", "full_name", "name")),
            phone=str(_first(data, "phone")),
        )


@dataclass
class FollowUpFeed:
    """Overdue and upcoming follow-ups with the server's local "now"."""

    server_now: str  # YYYY-MM-DDTHH:MM, local
    overdue: list[FollowUpEvent] = field(default_factory=list)
    upcoming: list[FollowUpEvent] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict, owner_id: str = "") -> "FollowUpFeed":
        return cls(
            server_now=str(data.get("now") or data.get("serverNow") or ""),
            overdue=[FollowUpEvent.from_dict(e, owner_id) for e in data.get("overdue") or []],
            upcoming=[FollowUpEvent.from_dict(e, owner_id) for e in data.get("upcoming") or []],
        )


@dataclass
class InboxNotification:
    """A server-generated notification from the backend inbox."""

    id: str
    title: str
    message: str
    kind: NotificationKind = "info"
    read_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "InboxNotification":
        return cls(
            id=str(data.get("id") or ""),
            title=str(data.get("title") or ""),
            message=str(data.get("message") or ""),
            kind=_kind(data.get("type") or data.get("kind")),
            read_at=isoparse(data["read_at"]) if data.get("read_at") else None,
        )
