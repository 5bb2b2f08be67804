"""Message text formatters."""

import html
from datetime import datetime

from leadwatch.bot.keyboards import SETTING_LABELS
from leadwatch.db.models import NotificationEntry, ScheduleConfig
from leadwatch.utils.time_utils import fixed_offset, format_relative_time


def format_entry(entry: NotificationEntry, read_at: datetime | None, now: datetime) -> str:
    """Format one notification log entry."""
    kind_emoji = {
        "info": "🔔",
        "warning": "⚠️",
        "success": "✅",
        "error": "❌",
    }.get(entry.kind, "🔔")

    unread = read_at is None or entry.timestamp > read_at
    marker = "🆕 " if unread else ""

    return (
        f"{marker}{kind_emoji} <b>{html.escape(entry.title)}</b>\n"
        f"   {html.escape(entry.message)}\n"
        f"   <i>{format_relative_time(entry.timestamp, now)}</i>"
    )


def format_notification_list(
    entries: list[NotificationEntry],
    unread: int,
    read_at: datetime | None,
    now: datetime,
    limit: int = 10,
) -> str:
    """Format the newest notifications with an unread count header."""
    if not entries:
        return "No notifications yet."

    lines = [f"<b>Notifications</b> ({unread} unread)\n"]
    for entry in entries[:limit]:
        lines.append(format_entry(entry, read_at, now))

    if len(entries) > limit:
        lines.append(f"<i>…and {len(entries) - limit} older</i>")

    return "\n\n".join(lines)


def format_settings(settings: dict[str, bool]) -> str:
    lines = ["<b>Notification Settings</b>\n"]
    for name, enabled in settings.items():
        lines.append(f"{'✅' if enabled else '⛔'} {SETTING_LABELS.get(name, name)}")
    lines.append("\nTap a button to toggle.")
    return "\n".join(lines)


def format_schedule(config: ScheduleConfig | None, offset_minutes: int) -> str:
    """Format the active daily report schedule."""
    if config is None or not config.slots:
        return "No daily report slots are scheduled."

    tz = fixed_offset(offset_minutes).tzname(None)
    lines = [f"<b>Daily Report Schedule</b> ({tz})\n"]
    for slot in config.slots:
        lines.append(f"• {html.escape(slot.display_label)} ({slot.time})")
    lines.append(f"\nGrace window: {config.grace_minutes} minutes")
    return "\n".join(lines)


def format_welcome_message(name: str) -> str:
    """Format the welcome message for /start."""
    greeting = f"Hi {html.escape(name)}!" if name else "Hi!"
    return f"""
<b>LeadWatch</b> 📋

{greeting} I'll remind you when daily reports are due, and tell you about newly assigned leads and follow-ups that are due.

• /notifications - Recent notifications
• /settings - Choose what you're notified about
• /help - Full command list
""".strip()


def format_help_message() -> str:
    """Format the help message."""
    return """
<b>LeadWatch Commands 📋</b>

<b>Notifications:</b>
/notifications - Recent notifications and unread count
/read - Mark all notifications as read

<b>Settings:</b>
/settings - Toggle reminders, assignments, follow-ups and alerts
/schedule - Today's daily report slots
/reschedule - Reload the report schedule now
/refresh - Check for new leads and due follow-ups now
""".strip()
