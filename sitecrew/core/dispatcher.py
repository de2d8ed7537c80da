"""
SiteCrew Assistant — Notification Dispatcher.

The only outbound path to contractors. Every send returns a DispatchResult;
transport errors never escape, so callers (scheduler batches, the reply path
of the bot) can keep going after a failed delivery.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

from sitecrew.config import settings

if TYPE_CHECKING:
    from sitecrew.ports.notification_port import ChatTransport

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    success: bool
    message_id: int | None = None
    error: str | None = None


class NotificationDispatcher:
    """Sends messages through a ChatTransport and reports the outcome."""

    def __init__(self, transport: ChatTransport) -> None:
        self._transport = transport

    async def send(
        self, recipient: str | None, body: str, parse_mode: str | None = "Markdown",
    ) -> DispatchResult:
        """Send one message. Never raises."""
        if not recipient:
            return DispatchResult(success=False, error="missing recipient")

        try:
            message_id = await self._transport.send_message(
                str(recipient), body, parse_mode=parse_mode,
            )
        except Exception as exc:
            logger.warning("Send to chat %s failed: %s", recipient, exc)
            return DispatchResult(success=False, error=str(exc) or type(exc).__name__)

        logger.debug("Sent message %s to chat %s", message_id, recipient)
        return DispatchResult(success=True, message_id=message_id)

    async def send_batch(
        self,
        items: Iterable[tuple[str, str]],
        delay: float | None = None,
        parse_mode: str | None = "Markdown",
    ) -> list[DispatchResult]:
        """Send (recipient, body) pairs one after another with a pacing delay.

        One result per item, in order. A failed item does not stop the batch.
        """
        if delay is None:
            delay = settings.BATCH_SEND_DELAY_SECONDS

        results: list[DispatchResult] = []
        for index, (recipient, body) in enumerate(items):
            if index and delay > 0:
                await asyncio.sleep(delay)
            results.append(await self.send(recipient, body, parse_mode=parse_mode))

        failed = sum(1 for r in results if not r.success)
        logger.info("Batch send finished: %d sent, %d failed", len(results) - failed, failed)
        return results
