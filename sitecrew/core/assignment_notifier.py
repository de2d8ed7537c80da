"""
SiteCrew Assistant — New Assignment Notifier.

Polls for assignments nobody has been told about yet (notified_at IS NULL)
and sends each contractor the assignment details with an ACCEPT prompt.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sitecrew.core import templates
from sitecrew.data.db import StorageError

if TYPE_CHECKING:
    from sitecrew.core.dispatcher import NotificationDispatcher
    from sitecrew.data.db import ContractorDB

logger = logging.getLogger(__name__)


async def notify_new_assignments(
    contractor_db: ContractorDB,
    dispatcher: NotificationDispatcher,
    now: datetime | None = None,
) -> int:
    """Send one notification per unnotified assignment. Returns how many were sent.

    Contractors without a chat handle are marked notified anyway so they are
    not retried on every poll. Failed sends stay unnotified for the next poll.
    """
    now = now or datetime.now(timezone.utc)
    pending = contractor_db.list_unnotified_assignments()
    if pending:
        logger.info("Found %d unnotified assignments", len(pending))

    sent = 0
    for assignment in pending:
        contractor = contractor_db.get_contractor(assignment.contractor_id)
        try:
            if contractor is None or not contractor.chat_id:
                logger.info(
                    "Skipping assignment #%d: contractor #%d has no chat handle",
                    assignment.id, assignment.contractor_id,
                )
                contractor_db.mark_notified(assignment.id, now)
                continue

            job = contractor_db.get_job(assignment.job_id)
            result = await dispatcher.send(
                contractor.chat_id, templates.job_assigned(assignment, job),
            )
            if not result.success:
                logger.error(
                    "Failed to notify assignment #%d to contractor #%d: %s",
                    assignment.id, contractor.id, result.error,
                )
                continue

            contractor_db.mark_notified(assignment.id, now)
            sent += 1
            logger.info(
                "Notified assignment #%d to contractor #%d (%s)",
                assignment.id, contractor.id, contractor.full_name,
            )
        except StorageError as exc:
            logger.error("Could not mark assignment #%d notified: %s", assignment.id, exc)

    return sent
