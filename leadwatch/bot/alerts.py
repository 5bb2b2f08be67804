"""Telegram chat as the external alert channel."""

import html
import logging

from telegram import Bot
from telegram.error import TelegramError

logger = logging.getLogger(__name__)


class TelegramAlertChannel:
    """Sends notification alerts to a single Telegram chat.

    The channel is authorized only when a chat is configured and the server
    preference has not turned external alerts off.
    """

    def __init__(self, bot: Bot, chat_id: int | str | None):
        self.bot = bot
        self.chat_id = chat_id
        self.server_enabled: bool | None = None

    def is_authorized(self) -> bool:
        if not self.chat_id:
            return False
        return self.server_enabled is not False

    async def send_alert(self, title: str, body: str) -> None:
        """Send an alert. Delivery failures are logged, never raised."""
        text = f"🔔 <b>{html.escape(title)}</b>\n{html.escape(body)}"
        try:
            await self.bot.send_message(chat_id=self.chat_id, text=text, parse_mode="HTML")
        except TelegramError as e:
            logger.error(f"Failed to send alert to chat {self.chat_id}: {e}")
