"""Telegram transport adapter — implements ChatTransport.

Wraps a telegram.Bot instance to satisfy the ChatTransport protocol.
"""

from __future__ import annotations

import logging

from telegram import Bot

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Telegram implementation of ChatTransport."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send_message(
        self, chat_id: str, text: str, parse_mode: str | None = None,
    ) -> int | None:
        message = await self._bot.send_message(
            chat_id=chat_id, text=text, parse_mode=parse_mode,
        )
        return message.message_id

    async def get_file_url(self, file_ref: str) -> str:
        # Bot API file paths come back as absolute download URLs
        tg_file = await self._bot.get_file(file_ref)
        return tg_file.file_path
