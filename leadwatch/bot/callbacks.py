"""Callback query handlers for inline buttons."""

import logging

from telegram import Update
from telegram.error import BadRequest
from telegram.ext import ContextTypes

from leadwatch.bot.formatters import format_settings
from leadwatch.bot.handlers import DISABLED_MESSAGE, active_engine, mark_all_read
from leadwatch.bot.keyboards import settings_keyboard
from leadwatch.utils.constants import SETTING_NAMES

logger = logging.getLogger(__name__)


async def handle_toggle_callback(
    update: Update, context: ContextTypes.DEFAULT_TYPE, name: str
) -> None:
    """Handle a settings toggle button."""
    query = update.callback_query
    engine = active_engine(context)
    if engine is None:
        await query.answer(DISABLED_MESSAGE)
        return

    if name not in SETTING_NAMES:
        await query.answer("Unknown setting.")
        return

    enabled = await engine.settings.is_enabled(name)
    await engine.settings.set_setting(name, not enabled)
    settings = await engine.settings.get_settings()

    await query.answer("Enabled" if not enabled else "Disabled")
    if query.message:
        try:
            await query.message.edit_text(
                format_settings(settings),
                parse_mode="HTML",
                reply_markup=settings_keyboard(settings),
            )
        except BadRequest as e:
            # Telegram rejects edits that leave the message unchanged
            logger.debug(f"Settings message not edited: {e}")


async def handle_mark_read_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle 'Mark all read' button press."""
    query = update.callback_query
    engine = active_engine(context)
    if engine is None:
        await query.answer(DISABLED_MESSAGE)
        return

    await mark_all_read(context, engine)
    await query.answer("All notifications marked as read")
    if query.message:
        await query.message.edit_reply_markup(reply_markup=None)


async def callback_router(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Route callback queries to the appropriate handler."""
    if not update.callback_query or not update.callback_query.data:
        return

    data = update.callback_query.data
    action, _, arg = data.partition(":")

    if action == "toggle":
        await handle_toggle_callback(update, context, arg)
    elif action == "mark_read":
        await handle_mark_read_callback(update, context)
    else:
        logger.warning(f"Unknown callback action: {data}")
        await update.callback_query.answer("Unknown action.")
