"""
SiteCrew Assistant — Direct Queries.

Cheap heuristic answers for the questions admins ask most ("did Rudy check
in?", "how many hours has John worked?", "what do I owe Freddy?") without a
round trip to the LLM. A message matches when it names another contractor
as a whole word and mentions one of the known topics.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from sitecrew.config import settings
from sitecrew.core import templates
from sitecrew.core.scheduler import day_bounds

if TYPE_CHECKING:
    from sitecrew.data.db import ActivityDB, ContractorDB
    from sitecrew.data.models import CallerScope, ContractorProfile

logger = logging.getLogger(__name__)

PAYMENT_WINDOW = timedelta(days=30)

SCOPE_REFUSAL = (
    "Sorry, you can only look up your own records. "
    "Ask your supervisor if you need details about someone else."
)


class QueryTopic(str, Enum):
    CHECK_INS = "check_ins"
    PAYMENT = "payment"
    HOURS = "hours"


# First matching topic wins.
_TOPIC_PATTERNS: tuple[tuple[QueryTopic, re.Pattern], ...] = (
    (QueryTopic.CHECK_INS, re.compile(r"check-?\s?in|checked in|\bclock")),
    (QueryTopic.PAYMENT, re.compile(r"\b(payments?|pay|paid|owe|owed)\b")),
    (QueryTopic.HOURS, re.compile(r"\b(hours?|work|worked|working)\b")),
)


@dataclass
class DirectQuery:
    target: ContractorProfile
    topic: QueryTopic


def _names_match(contractor: ContractorProfile, lowered: str) -> bool:
    for name in (contractor.first_name, contractor.last_name):
        name = (name or "").strip().lower()
        if len(name) < 2:
            continue
        if re.search(rf"\b{re.escape(name)}\b", lowered):
            return True
    return False


class DirectQueryResolver:
    def __init__(
        self,
        contractor_db: ContractorDB,
        activity_db: ActivityDB,
        tz: ZoneInfo | None = None,
    ) -> None:
        self._contractors = contractor_db
        self._activity = activity_db
        self._tz = tz or ZoneInfo(settings.TIMEZONE)

    def match(self, text: str, caller: ContractorProfile) -> DirectQuery | None:
        lowered = (text or "").lower()
        topic = next((t for t, pattern in _TOPIC_PATTERNS if pattern.search(lowered)), None)
        if topic is None:
            return None

        for contractor in self._contractors.list_contractors():
            if contractor.id == caller.id:
                continue
            if _names_match(contractor, lowered):
                return DirectQuery(target=contractor, topic=topic)
        return None

    def answer(
        self, query: DirectQuery, scope: CallerScope, now: datetime | None = None,
    ) -> str:
        if not scope.can_see(query.target.id):
            logger.info(
                "Contractor #%s asked about contractor #%d; refused",
                scope.contractor_id, query.target.id,
            )
            return SCOPE_REFUSAL

        now = now or datetime.now(self._tz)
        if query.topic is QueryTopic.CHECK_INS:
            return self._check_ins_today(query.target, now)
        if query.topic is QueryTopic.HOURS:
            return self._hours_this_week(query.target, now)
        return self._recent_pay(query.target, now)

    # ------------------------------------------------------------------

    def _check_ins_today(self, target: ContractorProfile, now: datetime) -> str:
        start, _ = day_bounds(now, self._tz)
        check_ins = self._activity.list_check_ins(contractor_id=target.id, since=start)
        if not check_ins:
            return f"{target.full_name} hasn't checked in today."

        lines = [f"✅ *Check-ins for {target.full_name} today ({len(check_ins)})*", ""]
        for check_in in check_ins:
            lines.append(
                f"• {check_in.time.astimezone(self._tz):%H:%M} - {check_in.kind.value}"
            )
            if check_in.location:
                lines.append(f"  📍 {check_in.location}")
        return "\n".join(lines)

    def _hours_this_week(self, target: ContractorProfile, now: datetime) -> str:
        today_start, _ = day_bounds(now, self._tz)
        week_start = today_start - timedelta(days=today_start.weekday())
        sessions = self._contractors.list_work_sessions(target.id, since=week_start)
        if not sessions:
            return f"No work sessions found for {target.full_name} this week."

        minutes = sum(s.minutes_worked for s in sessions)
        return (
            f"⏱️ *{target.full_name}: hours this week*\n\n"
            f"Total: {minutes / 60:.1f}h across {len(sessions)} sessions"
        )

    def _recent_pay(self, target: ContractorProfile, now: datetime) -> str:
        sessions = self._contractors.list_work_sessions(target.id, since=now - PAYMENT_WINDOW)
        if not sessions:
            return f"No payments found for {target.full_name} in the last 30 days."

        net = sum(s.net_pay_pence for s in sessions)
        gross = sum(s.gross_pay_pence for s in sessions)
        return (
            f"💰 *{target.full_name}: last 30 days*\n\n"
            f"Net pay: {templates.format_pence(net)}\n"
            f"Gross pay: {templates.format_pence(gross)}\n"
            f"Sessions: {len(sessions)}"
        )
