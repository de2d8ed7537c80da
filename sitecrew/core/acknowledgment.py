"""
SiteCrew Assistant — Assignment Acknowledgment.

A contractor replies "ACCEPT" to a new-assignment notification. The reply
carries no assignment id, so it is applied to one unacknowledged assignment
chosen by creation order: oldest first by default (first assigned, first
acknowledged), newest first when ACK_ORDER=newest.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sitecrew.config import settings

if TYPE_CHECKING:
    from sitecrew.data.db import ContractorDB
    from sitecrew.data.models import Assignment, ContractorProfile

logger = logging.getLogger(__name__)

NOTHING_PENDING = "I don't see any pending assignments to acknowledge. You're all set! 👍"


@dataclass
class AcknowledgmentResult:
    reply: str
    assignment: Assignment | None = None

    @property
    def acknowledged(self) -> bool:
        return self.assignment is not None


class AcknowledgmentHandler:
    def __init__(self, contractor_db: ContractorDB, newest_first: bool | None = None) -> None:
        self._contractors = contractor_db
        if newest_first is None:
            newest_first = settings.ACK_ORDER == "newest"
        self._newest_first = newest_first

    def acknowledge(
        self, contractor: ContractorProfile, now: datetime | None = None,
    ) -> AcknowledgmentResult:
        """Mark one pending assignment acknowledged.

        No pending assignment is a normal outcome and gets a friendly reply.
        Write failures propagate as StorageError.
        """
        now = now or datetime.now(timezone.utc)
        assignment = self._contractors.next_unacknowledged(
            contractor.id, newest_first=self._newest_first,
        )
        if assignment is None or not self._contractors.mark_acknowledged(assignment.id, now):
            logger.info("Contractor #%d has no pending assignment to acknowledge", contractor.id)
            return AcknowledgmentResult(reply=NOTHING_PENDING)

        assignment.acknowledged = True
        assignment.acknowledged_at = now
        job = self._contractors.get_job(assignment.job_id)

        reply = (
            "✅ *Assignment Acknowledged*\n\n"
            f"Thanks {contractor.first_name}! I've recorded your acknowledgment for:\n"
            f"📍 {job.title if job else 'Unknown Job'}\n"
            f"📌 {job.address if job and job.address else 'N/A'}"
        )
        return AcknowledgmentResult(reply=reply, assignment=assignment)
