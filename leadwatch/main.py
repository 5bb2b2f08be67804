"""Main entry point for the LeadWatch notifier."""

import logging
import sys

from telegram.ext import Application, CallbackQueryHandler, CommandHandler

from leadwatch.bot.alerts import TelegramAlertChannel
from leadwatch.bot.callbacks import callback_router
from leadwatch.bot.handlers import (
    help_command,
    notifications_command,
    read_command,
    refresh_command,
    reschedule_command,
    schedule_command,
    settings_command,
    start_command,
)
from leadwatch.clients.backend import BackendClient
from leadwatch.config import Config
from leadwatch.db.migrations import run_migrations
from leadwatch.db.models import Principal
from leadwatch.db.repository import SqliteStore
from leadwatch.engine.controller import Engine
from leadwatch.utils.error_handler import error_handler
from leadwatch.utils.exceptions import FetchFailed

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, Config.LOG_LEVEL),
    stream=sys.stdout,
)

logger = logging.getLogger(__name__)


async def resolve_principal(backend: BackendClient) -> Principal:
    """Ask the backend who we are, falling back to the configured principal."""
    try:
        return await backend.get_principal()
    except FetchFailed as e:
        if not Config.PRINCIPAL_ID:
            raise
        logger.warning(f"Could not resolve principal from backend, using configured one: {e}")
        return Principal(
            id=Config.PRINCIPAL_ID, name=Config.PRINCIPAL_NAME, role=Config.PRINCIPAL_ROLE
        )


async def post_init(application: Application) -> None:
    """Initialize resources and start the engine after the application is created."""
    await run_migrations(Config.DATABASE_PATH)

    store = SqliteStore(Config.DATABASE_PATH)
    await store.connect()
    application.bot_data["store"] = store

    backend = BackendClient(Config.BACKEND_URL, Config.BACKEND_TOKEN, timeout=Config.FETCH_TIMEOUT)
    await backend.connect()
    application.bot_data["backend"] = backend

    alerts = TelegramAlertChannel(application.bot, Config.TELEGRAM_CHAT_ID or None)

    if application.job_queue is None:
        raise RuntimeError("JobQueue unavailable, install python-telegram-bot[job-queue]")

    engine = Engine(
        backend=backend,
        store=store,
        job_queue=application.job_queue,
        alerts=alerts,
        poll_interval=Config.POLL_INTERVAL,
        fetch_timeout=Config.FETCH_TIMEOUT,
        offset_minutes=Config.UTC_OFFSET_MINUTES,
        rollover_buffer_seconds=Config.ROLLOVER_BUFFER_SECONDS,
        inbox_interval=Config.INBOX_POLL_INTERVAL or None,
        notify_missed=Config.NOTIFY_MISSED_SLOTS,
    )
    application.bot_data["engine"] = engine

    try:
        principal = await resolve_principal(backend)
    except FetchFailed as e:
        logger.error(f"No principal available, notifications stay off: {e}")
        return

    try:
        alerts.server_enabled = await backend.get_alert_preference(principal)
    except FetchFailed as e:
        logger.warning(f"Could not load alert preference: {e}")

    await engine.start(principal)
    logger.info("LeadWatch initialized successfully")


async def post_shutdown(application: Application) -> None:
    """Stop the engine and release resources on shutdown."""
    engine: Engine | None = application.bot_data.get("engine")
    if engine:
        await engine.stop()

    backend: BackendClient | None = application.bot_data.get("backend")
    if backend:
        await backend.close()

    store: SqliteStore | None = application.bot_data.get("store")
    if store:
        await store.close()

    logger.info("LeadWatch shut down")


def main() -> None:
    """Start the bot."""
    try:
        Config.validate()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    application = (
        Application.builder()
        .token(Config.TELEGRAM_BOT_TOKEN)
        .post_init(post_init)
        .post_shutdown(post_shutdown)
        .build()
    )

    # Commands
    application.add_handler(CommandHandler("start", start_command))
    application.add_handler(CommandHandler("help", help_command))
    application.add_handler(CommandHandler("notifications", notifications_command))
    application.add_handler(CommandHandler("read", read_command))
    application.add_handler(CommandHandler("settings", settings_command))
    application.add_handler(CommandHandler("schedule", schedule_command))
    application.add_handler(CommandHandler("reschedule", reschedule_command))
    application.add_handler(CommandHandler("refresh", refresh_command))

    # Callback queries (buttons)
    application.add_handler(CallbackQueryHandler(callback_router))

    # Error handler
    application.add_error_handler(error_handler)

    logger.info("Starting LeadWatch...")
    application.run_polling(allowed_updates=["message", "callback_query"])


if __name__ == "__main__":
    main()
