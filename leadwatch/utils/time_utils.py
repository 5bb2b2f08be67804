"""Time and fixed-offset timezone utilities.

The deployment runs on a single fixed UTC offset (no DST), so the local
business date and slot instants are computed by shifting, not by zone rules.
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Tuple
from zoneinfo import ZoneInfo

from leadwatch.utils.constants import DEFAULT_UTC_OFFSET_MINUTES, ROLLOVER_BUFFER_SECONDS
from leadwatch.utils.exceptions import InvalidTimeFormat

UTC = ZoneInfo("UTC")

_HHMM_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def utc_now() -> datetime:
    return datetime.now(UTC)


def fixed_offset(offset_minutes: int = DEFAULT_UTC_OFFSET_MINUTES) -> timezone:
    return timezone(timedelta(minutes=offset_minutes))


def parse_hhmm(value: str) -> Tuple[int, int]:
    """Parse an HH:MM wall-clock time.

    Raises:
        InvalidTimeFormat: unless value is H:MM or HH:MM within [00:00, 23:59]
    """
    match = _HHMM_RE.match(str(value or "").strip())
    if not match:
        raise InvalidTimeFormat(value)

    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise InvalidTimeFormat(value)

    return hour, minute


def local_date_of(
    instant: datetime, offset_minutes: int = DEFAULT_UTC_OFFSET_MINUTES
) -> date:
    """Get the local business date of an instant."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    return instant.astimezone(fixed_offset(offset_minutes)).date()


def instant_of(
    day: date, hhmm: str, offset_minutes: int = DEFAULT_UTC_OFFSET_MINUTES
) -> datetime:
    """Get the UTC instant of a local wall-clock time on a local date.

    Raises:
        InvalidTimeFormat: if hhmm is not a valid HH:MM
    """
    hour, minute = parse_hhmm(hhmm)
    local = datetime.combine(day, time(hour, minute), tzinfo=fixed_offset(offset_minutes))
    return local.astimezone(UTC)


def next_rollover_at(
    now: datetime,
    offset_minutes: int = DEFAULT_UTC_OFFSET_MINUTES,
    buffer_seconds: int = ROLLOVER_BUFFER_SECONDS,
) -> datetime:
    """Get the instant buffer_seconds after the next local midnight."""
    tomorrow = local_date_of(now, offset_minutes) + timedelta(days=1)
    midnight = instant_of(tomorrow, "00:00", offset_minutes)
    return midnight + timedelta(seconds=buffer_seconds)


def normalize_due(value: str) -> str:
    """Normalize a due date for string comparison with a server "now".

    Date-only values count as due at the end of that day:
        "2026-03-01" -> "2026-03-01T23:59"
        "2026-03-01T10:00" -> "2026-03-01T10:00"
    """
    text = str(value or "").strip()
    if _DATE_ONLY_RE.match(text):
        return f"{text}T23:59"
    return text


def format_relative_time(dt: datetime, now: datetime | None = None) -> str:
    """Format a past datetime relative to now.

    Examples:
        "just now"
        "5 minutes ago"
        "2 hours ago"
        "3 days ago"
    """
    if now is None:
        now = utc_now()

    total_seconds = (now - dt).total_seconds()

    if total_seconds < 60:
        return "just now"
    elif total_seconds < 3600:
        minutes = int(total_seconds / 60)
        return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
    elif total_seconds < 86400:
        hours = int(total_seconds / 3600)
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    else:
        days = int(total_seconds / 86400)
        return f"{days} day{'s' if days != 1 else ''} ago"
