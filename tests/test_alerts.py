"""Tests for the Telegram alert channel."""

from unittest.mock import AsyncMock, Mock

from telegram.error import NetworkError

from leadwatch.bot.alerts import TelegramAlertChannel


def make_bot() -> Mock:
    bot = Mock()
    bot.send_message = AsyncMock()
    return bot


def test_authorization():
    """Test the channel needs a chat and no server opt-out."""
    channel = TelegramAlertChannel(make_bot(), chat_id=1234)
    assert channel.is_authorized()

    channel.server_enabled = False
    assert not channel.is_authorized()

    channel.server_enabled = True
    assert channel.is_authorized()

    assert not TelegramAlertChannel(make_bot(), chat_id=None).is_authorized()


async def test_send_alert_escapes_html():
    """Test alerts are sent as escaped HTML to the configured chat."""
    bot = make_bot()
    channel = TelegramAlertChannel(bot, chat_id=1234)

    await channel.send_alert("Follow-up due", "Call <Kamal> & co")

    bot.send_message.assert_awaited_once()
    kwargs = bot.send_message.await_args.kwargs
    assert kwargs["chat_id"] == 1234
    assert kwargs["parse_mode"] == "HTML"
    assert "<b>Follow-up due</b>" in kwargs["text"]
    assert "Call &lt;Kamal&gt; &amp; co" in kwargs["text"]


async def test_send_failure_is_logged_not_raised():
    """Test Telegram errors never escape send_alert."""
    bot = make_bot()
    bot.send_message.side_effect = NetworkError("connection reset")
    channel = TelegramAlertChannel(bot, chat_id=1234)

    await channel.send_alert("Title", "Body")

    bot.send_message.assert_awaited_once()
