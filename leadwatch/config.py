"""Configuration management from environment variables."""

import os
from pathlib import Path

from dotenv import load_dotenv

from leadwatch.utils.constants import (
    DEFAULT_FETCH_TIMEOUT,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_UTC_OFFSET_MINUTES,
    ROLLOVER_BUFFER_SECONDS,
)

load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Application configuration loaded from environment variables."""

    # Telegram (external alert channel + commands)
    TELEGRAM_BOT_TOKEN: str = os.getenv("TELEGRAM_BOT_TOKEN", "")
    TELEGRAM_CHAT_ID: str = os.getenv("TELEGRAM_CHAT_ID", "")

    # Dashboard backend
    BACKEND_URL: str = os.getenv("BACKEND_URL", "")
    BACKEND_TOKEN: str = os.getenv("BACKEND_TOKEN", "")

    # Principal fallback when /api/auth/me is unavailable
    PRINCIPAL_ID: str = os.getenv("PRINCIPAL_ID", "")
    PRINCIPAL_NAME: str = os.getenv("PRINCIPAL_NAME", "")
    PRINCIPAL_ROLE: str = os.getenv("PRINCIPAL_ROLE", "user")

    # Database
    DATABASE_PATH: Path = Path(os.getenv("DATABASE_PATH", "./data/leadwatch.db"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Engine
    POLL_INTERVAL: int = int(os.getenv("POLL_INTERVAL", str(DEFAULT_POLL_INTERVAL)))
    FETCH_TIMEOUT: float = float(os.getenv("FETCH_TIMEOUT", str(DEFAULT_FETCH_TIMEOUT)))
    UTC_OFFSET_MINUTES: int = int(os.getenv("UTC_OFFSET_MINUTES", str(DEFAULT_UTC_OFFSET_MINUTES)))
    ROLLOVER_BUFFER_SECONDS: int = int(
        os.getenv("ROLLOVER_BUFFER_SECONDS", str(ROLLOVER_BUFFER_SECONDS))
    )
    INBOX_POLL_INTERVAL: int = int(os.getenv("INBOX_POLL_INTERVAL", "0"))  # 0 = off
    NOTIFY_MISSED_SLOTS: bool = _env_bool("NOTIFY_MISSED_SLOTS")

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration."""
        if not cls.TELEGRAM_BOT_TOKEN:
            raise ValueError("TELEGRAM_BOT_TOKEN environment variable is required")

        if not cls.BACKEND_URL:
            raise ValueError("BACKEND_URL environment variable is required")

        if cls.POLL_INTERVAL <= 0:
            raise ValueError("POLL_INTERVAL must be positive")

        if cls.FETCH_TIMEOUT <= 0:
            raise ValueError("FETCH_TIMEOUT must be positive")

        # Ensure database directory exists
        cls.DATABASE_PATH.parent.mkdir(parents=True, exist_ok=True)
