"""
SiteCrew Assistant — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (one level up from sitecrew/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str

    # LLM: provider-agnostic (gemini, anthropic, openai, cohere)
    LLM_PROVIDER: str = "gemini"
    LLM_MODEL: str = ""          # empty → smart default per provider
    LLM_API_KEY: str
    LLM_TIMEOUT_SECONDS: float = 10.0

    # Audio: OpenAI Whisper (transcription only)
    OPENAI_API_KEY: str = ""
    TRANSCRIPTION_LANGUAGE: str = "en"

    # SQLite
    DATABASE_PATH: str = "data/sitecrew.db"

    # Reminders (local wall-clock time in TIMEZONE)
    TIMEZONE: str = "Europe/London"
    MORNING_CHECKIN_HOUR: int = 8
    MORNING_CHECKIN_MINUTE: int = 15
    DAILY_REPORT_HOUR: int = 17
    DAILY_REPORT_MINUTE: int = 0

    # Background polling and pacing
    ASSIGNMENT_POLL_SECONDS: int = 30
    BATCH_SEND_DELAY_SECONDS: float = 0.1

    # Conversations and collaborators
    SESSION_TTL_MINUTES: int = 30
    COLLABORATOR_TIMEOUT_SECONDS: float = 20.0

    # Which unacknowledged assignment an "ACCEPT" applies to: "oldest" | "newest"
    ACK_ORDER: str = "oldest"

    @field_validator("MORNING_CHECKIN_HOUR", "DAILY_REPORT_HOUR", mode="before")
    @classmethod
    def parse_hour(cls, v: str | int) -> int:
        hour = int(v)
        if not 0 <= hour <= 23:
            raise ValueError(f"hour must be 0-23, got {hour}")
        return hour

    @field_validator("MORNING_CHECKIN_MINUTE", "DAILY_REPORT_MINUTE", mode="before")
    @classmethod
    def parse_minute(cls, v: str | int) -> int:
        minute = int(v)
        if not 0 <= minute <= 59:
            raise ValueError(f"minute must be 0-59, got {minute}")
        return minute

    @field_validator("ACK_ORDER", mode="before")
    @classmethod
    def parse_ack_order(cls, v: str) -> str:
        order = (v or "oldest").strip().lower()
        if order not in ("oldest", "newest"):
            raise ValueError(f"ACK_ORDER must be 'oldest' or 'newest', got {v!r}")
        return order


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")
    llm_api_key = os.getenv("LLM_API_KEY", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    if not llm_api_key or llm_api_key.startswith("your-"):
        print("ERROR: LLM_API_KEY is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        LLM_PROVIDER=os.getenv("LLM_PROVIDER", "gemini"),
        LLM_MODEL=os.getenv("LLM_MODEL", ""),
        LLM_API_KEY=llm_api_key,
        LLM_TIMEOUT_SECONDS=os.getenv("LLM_TIMEOUT_SECONDS", "10"),
        OPENAI_API_KEY=os.getenv("OPENAI_API_KEY", ""),
        TRANSCRIPTION_LANGUAGE=os.getenv("TRANSCRIPTION_LANGUAGE", "en"),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/sitecrew.db"),
        TIMEZONE=os.getenv("TIMEZONE", "Europe/London"),
        MORNING_CHECKIN_HOUR=os.getenv("MORNING_CHECKIN_HOUR", "8"),
        MORNING_CHECKIN_MINUTE=os.getenv("MORNING_CHECKIN_MINUTE", "15"),
        DAILY_REPORT_HOUR=os.getenv("DAILY_REPORT_HOUR", "17"),
        DAILY_REPORT_MINUTE=os.getenv("DAILY_REPORT_MINUTE", "0"),
        ASSIGNMENT_POLL_SECONDS=os.getenv("ASSIGNMENT_POLL_SECONDS", "30"),
        BATCH_SEND_DELAY_SECONDS=os.getenv("BATCH_SEND_DELAY_SECONDS", "0.1"),
        SESSION_TTL_MINUTES=os.getenv("SESSION_TTL_MINUTES", "30"),
        COLLABORATOR_TIMEOUT_SECONDS=os.getenv("COLLABORATOR_TIMEOUT_SECONDS", "20"),
        ACK_ORDER=os.getenv("ACK_ORDER", "oldest"),
    )


# Singleton, imported by all other modules as:
#   from sitecrew.config import settings
settings = _load_settings()
