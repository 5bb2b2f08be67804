"""Command handlers."""

import logging

from telegram import Update
from telegram.ext import ContextTypes

from leadwatch.bot.formatters import (
    format_help_message,
    format_notification_list,
    format_schedule,
    format_settings,
    format_welcome_message,
)
from leadwatch.bot.keyboards import mark_read_keyboard, settings_keyboard
from leadwatch.engine.controller import Engine
from leadwatch.utils.exceptions import FetchFailed

logger = logging.getLogger(__name__)

DISABLED_MESSAGE = "Notifications are not active for this account."


def active_engine(context: ContextTypes.DEFAULT_TYPE) -> Engine | None:
    """Get the engine if it runs for a non-admin principal."""
    engine: Engine | None = context.bot_data.get("engine")
    if engine is None or engine.log is None or engine.settings is None:
        return None
    return engine


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start command."""
    if not update.message:
        return

    engine: Engine | None = context.bot_data.get("engine")
    name = engine.principal.name if engine and engine.principal else ""
    await update.message.reply_html(format_welcome_message(name))


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help command."""
    if not update.message:
        return

    await update.message.reply_html(format_help_message())


async def notifications_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /notifications command - show the notification log."""
    if not update.message:
        return

    engine = active_engine(context)
    if engine is None:
        await update.message.reply_text(DISABLED_MESSAGE)
        return

    entries = await engine.log.list()
    unread = await engine.log.unread_count()
    read_at = await engine.log.last_read_at()
    message = format_notification_list(entries, unread, read_at, engine.clock())

    await update.message.reply_html(
        message, reply_markup=mark_read_keyboard() if unread else None
    )


async def mark_all_read(context: ContextTypes.DEFAULT_TYPE, engine: Engine) -> None:
    """Mark the local log read and mirror it to the backend (best effort)."""
    await engine.log.mark_all_read()

    backend = context.bot_data.get("backend")
    if backend is None or engine.principal is None:
        return
    try:
        await backend.mark_all_read(engine.principal)
    except FetchFailed as e:
        logger.warning(f"Server mark-all-read failed: {e}")


async def read_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /read command."""
    if not update.message:
        return

    engine = active_engine(context)
    if engine is None:
        await update.message.reply_text(DISABLED_MESSAGE)
        return

    await mark_all_read(context, engine)
    await update.message.reply_text("✓ All notifications marked as read.")


async def settings_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /settings command - show toggles."""
    if not update.message:
        return

    engine = active_engine(context)
    if engine is None:
        await update.message.reply_text(DISABLED_MESSAGE)
        return

    settings = await engine.settings.get_settings()
    await update.message.reply_html(
        format_settings(settings), reply_markup=settings_keyboard(settings)
    )


async def schedule_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /schedule command."""
    if not update.message:
        return

    engine = active_engine(context)
    if engine is None or engine.scheduler is None:
        await update.message.reply_text(DISABLED_MESSAGE)
        return

    await update.message.reply_html(
        format_schedule(engine.scheduler.config, engine.offset_minutes)
    )


async def reschedule_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /reschedule command - reload the schedule without waiting for midnight."""
    if not update.message:
        return

    engine = active_engine(context)
    if engine is None or not engine.is_running:
        await update.message.reply_text(DISABLED_MESSAGE)
        return

    await engine.reschedule()
    await update.message.reply_html(
        format_schedule(engine.scheduler.config, engine.offset_minutes)
    )


async def refresh_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /refresh command - poll now."""
    if not update.message:
        return

    engine = active_engine(context)
    if engine is None or not engine.is_running:
        await update.message.reply_text(DISABLED_MESSAGE)
        return

    await engine.poll_now()
    unread = await engine.log.unread_count()
    await update.message.reply_text(f"✓ Checked. {unread} unread notification(s).")
