"""
SiteCrew Assistant — Progress Report Conversation.

A linear four-question dialogue that turns a contractor's replies into one
ProgressReport:

    waiting_work_completed → waiting_progress_percentage
        → waiting_issues → waiting_materials → complete

One session per chat (the chat id is the session's primary key). Starting a
report while a session exists resets it. Sessions expire 30 minutes after
they start; an expired session is deleted the first time it is touched.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from sitecrew.config import settings
from sitecrew.data.models import SessionStep

if TYPE_CHECKING:
    from sitecrew.data.db import ContractorDB, ReportDB
    from sitecrew.data.models import ConversationSession, ProgressReport

logger = logging.getLogger(__name__)


class ConversationError(Exception):
    """Raised when a finished conversation cannot be turned into a report."""


@dataclass(frozen=True)
class StepSpec:
    step: SessionStep
    prompt: str
    field: str
    next_step: SessionStep


STEPS: tuple[StepSpec, ...] = (
    StepSpec(
        step=SessionStep.WAITING_WORK_COMPLETED,
        prompt=(
            "📝 *Progress Report*\n\n"
            "Please describe the work you completed today.\n\n"
            "You can reply with voice or text."
        ),
        field="work_completed",
        next_step=SessionStep.WAITING_PROGRESS_PERCENTAGE,
    ),
    StepSpec(
        step=SessionStep.WAITING_PROGRESS_PERCENTAGE,
        prompt="✅ Got it!\n\nWhat's your progress percentage? (0-100)\n\nExample: 50",
        field="progress_percentage",
        next_step=SessionStep.WAITING_ISSUES,
    ),
    StepSpec(
        step=SessionStep.WAITING_ISSUES,
        prompt="✅ Progress recorded!\n\nAny issues or delays?\n\nSay 'none' if everything is fine.",
        field="issues",
        next_step=SessionStep.WAITING_MATERIALS,
    ),
    StepSpec(
        step=SessionStep.WAITING_MATERIALS,
        prompt="✅ Noted!\n\nDo you need any materials?\n\nSay 'none' if you have everything.",
        field="materials",
        next_step=SessionStep.COMPLETE,
    ),
)

_BY_STEP = {spec.step: spec for spec in STEPS}

PERCENTAGE_ERROR = "Please enter a valid percentage between 0 and 100."
EMPTY_ANSWER_ERROR = "I didn't catch that. Please reply with some text or a voice message."
COMPLETED_TEXT = (
    "✅ *Progress Report Submitted!*\n\n"
    "Thank you for your update. Your supervisor will review it shortly."
)


@dataclass
class ConversationReply:
    text: str
    advanced: bool = False
    completed: bool = False
    report: ProgressReport | None = None


def parse_percentage(text: str) -> int | None:
    """Strip non-digits and accept an integer in [0, 100]; None otherwise."""
    digits = re.sub(r"[^0-9]", "", text or "")
    if not digits:
        return None
    value = int(digits)
    if 0 <= value <= 100:
        return value
    return None


def build_report_notes(session: ConversationSession) -> str:
    return (
        f"Work Completed: {session.work_completed}\n\n"
        f"Progress: {session.progress_percentage}%\n\n"
        f"Issues: {session.issues}\n\n"
        f"Materials Needed: {session.materials}"
    )


class ConversationMachine:
    """Drives ConversationSession rows through the report questions."""

    def __init__(
        self,
        report_db: ReportDB,
        contractor_db: ContractorDB,
        ttl_minutes: int | None = None,
        tz: ZoneInfo | None = None,
    ) -> None:
        self._reports = report_db
        self._contractors = contractor_db
        self._ttl = timedelta(minutes=ttl_minutes or settings.SESSION_TTL_MINUTES)
        self._tz = tz or ZoneInfo(settings.TIMEZONE)

    def _now(self, now: datetime | None) -> datetime:
        return now or datetime.now(self._tz)

    def start(self, chat_id: str, now: datetime | None = None) -> str:
        """Create or reset the chat's session and return the first question."""
        now = self._now(now)
        self._reports.reset_session(chat_id, now=now, expires_at=now + self._ttl)
        logger.info("Progress report conversation started for chat %s", chat_id)
        return STEPS[0].prompt

    def active_session(
        self, chat_id: str, now: datetime | None = None,
    ) -> ConversationSession | None:
        """The chat's live session, or None. Expired sessions are deleted here."""
        session = self._reports.get_session(chat_id)
        if session is None:
            return None

        if session.is_expired(self._now(now)) or session.step is SessionStep.COMPLETE:
            self._reports.delete_session(chat_id)
            logger.info("Conversation for chat %s expired", chat_id)
            return None
        return session

    def cancel(self, chat_id: str) -> bool:
        return self._reports.delete_session(chat_id)

    def advance(
        self,
        session: ConversationSession,
        text: str,
        now: datetime | None = None,
        media_ref: str | None = None,
    ) -> ConversationReply:
        """Record `text` as the answer to the current question.

        Invalid answers re-issue the same question and leave the step alone.
        """
        now = self._now(now)
        spec = _BY_STEP.get(session.step)
        if spec is None:
            raise ConversationError(f"Session for chat {session.chat_id} is in step {session.step}")

        answer = (text or "").strip()
        if spec.step is SessionStep.WAITING_PROGRESS_PERCENTAGE:
            value = parse_percentage(answer)
            if value is None:
                logger.info("Chat %s sent an invalid percentage: %r", session.chat_id, answer)
                return ConversationReply(text=f"{PERCENTAGE_ERROR}\n\n{spec.prompt}")
        elif not answer:
            return ConversationReply(text=f"{EMPTY_ANSWER_ERROR}\n\n{spec.prompt}")
        else:
            value = answer

        setattr(session, spec.field, value)
        if media_ref:
            session.media_refs.append(media_ref)
        session.last_activity_at = now

        if spec.next_step is SessionStep.COMPLETE:
            report = self._finalize(session, now)
            return ConversationReply(
                text=COMPLETED_TEXT, advanced=True, completed=True, report=report,
            )

        session.step = spec.next_step
        self._reports.update_session(session)
        return ConversationReply(text=_BY_STEP[spec.next_step].prompt, advanced=True)

    def _finalize(self, session: ConversationSession, now: datetime) -> ProgressReport:
        contractor = self._contractors.get_by_chat_id(session.chat_id)
        if contractor is None:
            raise ConversationError(
                f"Chat {session.chat_id} finished a report but is not linked to a contractor"
            )

        local_day = now.astimezone(self._tz).date()
        assignment = self._contractors.current_assignment(contractor.id, local_day)

        report = self._reports.add_progress_report(
            contractor_id=contractor.id,
            assignment_id=assignment.id if assignment else None,
            job_id=assignment.job_id if assignment else None,
            report_date=local_day.isoformat(),
            notes=build_report_notes(session),
            transcribed_text=session.work_completed,
            progress_percentage=session.progress_percentage,
            media_refs=list(session.media_refs),
            created_at=now,
        )
        self._reports.delete_session(session.chat_id)
        logger.info(
            "Progress report #%d submitted by contractor #%d via chat %s",
            report.id, contractor.id, session.chat_id,
        )
        return report
