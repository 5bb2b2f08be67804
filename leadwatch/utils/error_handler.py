"""Global error handler for the bot."""

import logging
import traceback

from telegram import Update
from telegram.error import NetworkError, TimedOut
from telegram.ext import ContextTypes

from leadwatch.utils.exceptions import FetchFailed

logger = logging.getLogger(__name__)


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle errors raised while processing an update."""
    logger.error("Exception while handling an update:", exc_info=context.error)

    tb_list = traceback.format_exception(None, context.error, context.error.__traceback__)
    tb_string = "".join(tb_list)
    logger.error(f"Traceback:\n{tb_string}")

    if isinstance(update, Update) and update.effective_message:
        try:
            error = context.error
            error_message = (
                "😅 Oops! Something went wrong.\n\n"
                "The error has been logged. Please try again or use /help."
            )

            if isinstance(error, FetchFailed):
                error_message = (
                    "🌐 The dashboard is not reachable right now.\n\n"
                    "Notifications will catch up on the next check."
                )
            elif isinstance(error, TimedOut):
                error_message = "⏱️ Request timed out.\n\nPlease try again in a moment."
            elif isinstance(error, NetworkError):
                error_message = "🌐 Network error.\n\nPlease check your connection and try again."

            await update.effective_message.reply_text(error_message)

        except Exception as e:
            logger.error(f"Failed to send error message to user: {e}")
