"""
Cadence — Centralized configuration.

Loads all settings from .env and validates them.
Poll intervals, retention and the optional Telegram channel live here.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError, field_validator

# Load .env from project root (two levels up from cadence/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # SQLite key/value state store
    DATABASE_PATH: str = "data/cadence.db"

    # Scheduler loops (seconds)
    REMINDER_POLL_SECONDS: int = 30
    PATTERN_POLL_SECONDS: int = 3600

    # Triggered reminders older than this are purged
    REMINDER_RETENTION_DAYS: int = 7

    # Notifications
    NOTIFICATION_TITLE: str = "Cadence reminder"

    # Telegram native channel (optional, in-app fallback is used otherwise)
    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_CHAT_IDS: list[int] = []

    LOG_LEVEL: str = "INFO"

    @field_validator("TELEGRAM_CHAT_IDS", mode="before")
    @classmethod
    def parse_chat_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(cid.strip()) for cid in v.split(",") if cid.strip()]
        return []

    @field_validator(
        "REMINDER_POLL_SECONDS",
        "PATTERN_POLL_SECONDS",
        "REMINDER_RETENTION_DAYS",
        mode="before",
    )
    @classmethod
    def parse_positive_int(cls, v: str | int) -> int:
        value = int(v)
        if value <= 0:
            raise ValueError(f"must be a positive integer, got {value}")
        return value

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return str(v).strip().upper() or "INFO"

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.TELEGRAM_BOT_TOKEN) and bool(self.TELEGRAM_CHAT_IDS)


def _load_settings() -> Settings:
    """Load settings from environment, exiting on invalid values."""
    try:
        return Settings(
            DATABASE_PATH=os.getenv("DATABASE_PATH", "data/cadence.db"),
            REMINDER_POLL_SECONDS=os.getenv("REMINDER_POLL_SECONDS", "30"),
            PATTERN_POLL_SECONDS=os.getenv("PATTERN_POLL_SECONDS", "3600"),
            REMINDER_RETENTION_DAYS=os.getenv("REMINDER_RETENTION_DAYS", "7"),
            NOTIFICATION_TITLE=os.getenv("NOTIFICATION_TITLE", "Cadence reminder"),
            TELEGRAM_BOT_TOKEN=os.getenv("TELEGRAM_BOT_TOKEN", ""),
            TELEGRAM_CHAT_IDS=os.getenv("TELEGRAM_CHAT_IDS", ""),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
        )
    except ValidationError as exc:
        print(f"ERROR: invalid configuration in environment/.env:\n{exc}", file=sys.stderr)
        sys.exit(1)


# Singleton — imported by other modules as:
#   from cadence.config import settings
settings = _load_settings()
