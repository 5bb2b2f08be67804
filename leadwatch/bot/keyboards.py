"""Inline keyboard builders."""

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

SETTING_LABELS = {
    "reminders": "Daily report reminders",
    "assignments": "New lead assignments",
    "followups": "Follow-ups due",
    "alerts": "Telegram alerts",
}


def settings_keyboard(settings: dict[str, bool]) -> InlineKeyboardMarkup:
    """One toggle button per notification setting."""
    return InlineKeyboardMarkup(
        [
            [
                InlineKeyboardButton(
                    f"{'✅' if enabled else '⛔'} {SETTING_LABELS.get(name, name)}",
                    callback_data=f"toggle:{name}",
                )
            ]
            for name, enabled in settings.items()
        ]
    )


def mark_read_keyboard() -> InlineKeyboardMarkup:
    """Keyboard under the notification list: Mark all read."""
    return InlineKeyboardMarkup(
        [[InlineKeyboardButton("✓ Mark all read", callback_data="mark_read")]]
    )
