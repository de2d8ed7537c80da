"""
SiteCrew Assistant — Admin broadcasts.

Announcements go to every active contractor with a linked chat (or to a
chosen subset) through NotificationDispatcher.send_batch. Payment notices go
to one contractor.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Iterable

from sitecrew.core import templates
from sitecrew.data.models import ContractorStatus

if TYPE_CHECKING:
    from sitecrew.core.dispatcher import DispatchResult, NotificationDispatcher
    from sitecrew.data.db import ContractorDB

logger = logging.getLogger(__name__)


class BroadcastError(ValueError):
    """Nobody could be addressed."""


@dataclass
class BroadcastSummary:
    sent: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.sent + self.failed

    def __str__(self) -> str:
        return f"sent={self.sent} failed={self.failed} total={self.total}"


async def announce(
    contractor_db: ContractorDB,
    dispatcher: NotificationDispatcher,
    title: str,
    message: str,
    contractor_ids: Iterable[int] | None = None,
) -> BroadcastSummary:
    """Send an announcement. Raises BroadcastError if no recipient has a chat."""
    if not title.strip() or not message.strip():
        raise BroadcastError("An announcement needs a title and a message.")

    recipients = contractor_db.list_by_status(ContractorStatus.ACTIVE)
    if contractor_ids is not None:
        wanted = set(contractor_ids)
        recipients = [c for c in recipients if c.id in wanted]
    recipients = [c for c in recipients if c.chat_id]
    if not recipients:
        raise BroadcastError("No contractors with a linked chat to send to.")

    body = templates.announcement(title.strip(), message.strip())
    results = await dispatcher.send_batch([(c.chat_id, body) for c in recipients])

    summary = BroadcastSummary()
    for contractor, result in zip(recipients, results):
        if result.success:
            summary.sent += 1
        else:
            summary.failed += 1
            logger.warning("Announcement to contractor #%d failed: %s", contractor.id, result.error)
    logger.info("Announcement '%s' finished: %s", title, summary)
    return summary


def _period(start: date | None, end: date | None) -> str:
    if start and end:
        return f"{start:%d %b %Y} - {end:%d %b %Y}"
    return "Recent work"


async def notify_payment(
    contractor_db: ContractorDB,
    dispatcher: NotificationDispatcher,
    contractor_id: int,
    amount_pence: int,
    period_start: date | None = None,
    period_end: date | None = None,
) -> DispatchResult:
    """Tell one contractor their payment went through."""
    if amount_pence <= 0:
        raise BroadcastError("The payment amount must be positive.")

    contractor = contractor_db.get_contractor(contractor_id)
    if contractor is None:
        raise BroadcastError(f"No contractor #{contractor_id}.")
    if not contractor.chat_id:
        raise BroadcastError(f"{contractor.full_name} has no linked chat.")

    result = await dispatcher.send(
        contractor.chat_id,
        templates.payment_processed(amount_pence, _period(period_start, period_end)),
    )
    if result.success:
        logger.info("Payment notice sent to contractor #%d", contractor.id)
    else:
        logger.warning("Payment notice to contractor #%d failed: %s", contractor.id, result.error)
    return result
