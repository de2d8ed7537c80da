"""
SiteCrew Assistant — Reminder replies.

Any message that arrives within 24 hours of an unanswered reminder is
taken as the answer to it: the reminder is marked responded, a check-in is
appended, and the contractor gets an acknowledgment worded for the kind of
reminder (attendance, absence, or evening report).
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from sitecrew.data.models import CheckInKind, ReminderKind

if TYPE_CHECKING:
    from sitecrew.data.db import ActivityDB
    from sitecrew.data.models import ContractorProfile, ReminderRecord

logger = logging.getLogger(__name__)

REPLY_WINDOW = timedelta(hours=24)

_NOT_WORKING_KEYWORDS = ("can't", "cannot", "cant", "not working", "sick", "off")

ALREADY_ANSWERED = "Thanks, {name}! I already have your reply to that reminder. 👍"


def is_absence(text: str) -> bool:
    lowered = text.lower().replace("’", "'")
    return any(keyword in lowered for keyword in _NOT_WORKING_KEYWORDS)


class ReminderReplyHandler:
    def __init__(self, activity_db: ActivityDB) -> None:
        self._activity = activity_db

    def open_reminder(
        self, contractor_id: int, now: datetime | None = None,
    ) -> ReminderRecord | None:
        """Latest reminder sent within the reply window and not yet answered."""
        now = now or datetime.now(timezone.utc)
        return self._activity.latest_open_reminder(contractor_id, since=now - REPLY_WINDOW)

    def reply(
        self,
        contractor: ContractorProfile,
        reminder: ReminderRecord,
        text: str,
        is_voice: bool = False,
        now: datetime | None = None,
    ) -> str:
        """Record the response and return the acknowledgment text."""
        now = now or datetime.now(timezone.utc)
        if not self._activity.mark_reminder_responded(reminder.id, text, responded_at=now):
            logger.info(
                "Reminder #%d already answered; no check-in added for contractor #%d",
                reminder.id, contractor.id,
            )
            return ALREADY_ANSWERED.format(name=contractor.first_name)
        self._activity.add_check_in(
            contractor.id,
            CheckInKind.VOICE_MESSAGE if is_voice else CheckInKind.TELEGRAM_RESPONSE,
            time=now,
            notes=text,
        )
        logger.info(
            "Contractor #%d answered %s reminder #%d",
            contractor.id, reminder.kind.value, reminder.id,
        )

        name = contractor.first_name
        if reminder.kind is ReminderKind.MORNING_CHECKIN:
            if is_absence(text):
                return (
                    f"Thanks for letting me know, {name}. I've recorded that you won't be "
                    "working today. Hope everything is okay! 👍"
                )
            return f"Great! Thanks for checking in, {name}. Have a productive day! 💪"
        return (
            f"Thanks for the update, {name}! Your progress has been recorded. "
            "Have a good evening! 🌙"
        )
