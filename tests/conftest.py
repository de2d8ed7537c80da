"""Shared test fixtures and configuration.

Sets up fake environment variables so sitecrew.config doesn't sys.exit(),
and provides temp-file SQLite stores plus a mocked chat transport.
"""

import os

# Patch env vars BEFORE any sitecrew imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("LLM_API_KEY", "fake-llm-key-for-tests")
os.environ.setdefault("LLM_PROVIDER", "gemini")
os.environ.setdefault("OPENAI_API_KEY", "fake-openai-key-for-tests")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "Europe/London")
os.environ.setdefault("BATCH_SEND_DELAY_SECONDS", "0")

from datetime import datetime
from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

import pytest

TZ = ZoneInfo("Europe/London")


def at(hour: int, minute: int = 0, day: int = 15) -> datetime:
    """An aware datetime on 2025-01-<day> in the test timezone."""
    return datetime(2025, 1, day, hour, minute, tzinfo=TZ)


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path shared by all stores in a test."""
    return str(tmp_path / "test_sitecrew.db")


@pytest.fixture
def contractor_db(tmp_db_path):
    from sitecrew.data.db import ContractorDB
    return ContractorDB(db_path=tmp_db_path)


@pytest.fixture
def activity_db(tmp_db_path):
    from sitecrew.data.db import ActivityDB
    return ActivityDB(db_path=tmp_db_path)


@pytest.fixture
def report_db(tmp_db_path):
    from sitecrew.data.db import ReportDB
    return ReportDB(db_path=tmp_db_path)


@pytest.fixture
def transport():
    """A ChatTransport whose sends succeed with message id 1."""
    mock = AsyncMock()
    mock.send_message = AsyncMock(return_value=1)
    mock.get_file_url = AsyncMock(return_value="https://files.example/voice/file_1.oga")
    return mock


@pytest.fixture
def dispatcher(transport):
    from sitecrew.core.dispatcher import NotificationDispatcher
    return NotificationDispatcher(transport)


@pytest.fixture
def alice(contractor_db):
    """A linked contractor."""
    return contractor_db.add_contractor("Alice", "Mason", chat_id="1001")


@pytest.fixture
def admin(contractor_db):
    """A linked admin."""
    return contractor_db.add_contractor("Sam", "Boss", chat_id="9001", is_admin=True)
