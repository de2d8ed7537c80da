"""
SiteCrew Assistant — Free-text Query Service.

Anything the router could not classify lands here. The configured LLM sorts
the question into a category; a handler per category then reads storage and
formats the answer. Every handler respects the caller's scope: contractors
see their own records, admins see everyone's.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Literal
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ValidationError

from sitecrew.config import settings
from sitecrew.core.llm import LLMError, complete_json
from sitecrew.core.scheduler import day_bounds

if TYPE_CHECKING:
    from sitecrew.data.db import ActivityDB, ContractorDB, ReportDB
    from sitecrew.data.models import CallerScope, ContractorProfile

logger = logging.getLogger(__name__)


class QueryIntent(BaseModel):
    """Classification of a free-text question.

    JSON example:
    {
        "category": "check_ins",
        "time_range": "today",
        "entities": ["Rudy"]
    }
    """
    category: Literal["jobs", "progress_reports", "check_ins", "reminders", "general"] = "general"
    time_range: str = ""
    entities: list[str] = []


_SYSTEM_PROMPT = """\
You classify questions sent to a construction job-tracking assistant.
Today is {today}. The person asking is {who}.

Return ONLY a JSON object with these keys:
- "category": one of "jobs", "progress_reports", "check_ins", "reminders", "general"
- "time_range": "today", "yesterday", "this week", "this month" or "" if none
- "entities": list of contractor names mentioned (may be empty)

Use "jobs" for assignments, sites and addresses; "progress_reports" for
reports, updates and issues; "check_ins" for attendance; "reminders" for
reminder history; "general" for anything else.
"""

GENERAL_HELP = """Hi {first_name}! 👋

I can help you with:
• 🏗️ Jobs (your assignments, sites, addresses)
• 📋 Progress Reports (updates, issues)
• ✅ Check-ins (recent activity)
• ⏰ Reminders (what was sent, what was answered)

Just ask! For example:
- "What jobs am I on?"
- "Show my progress reports"
- "Who checked in today?"

To submit today's report, send "report"."""


def _since(time_range: str, now: datetime, tz: ZoneInfo) -> datetime | None:
    start, _ = day_bounds(now, tz)
    time_range = (time_range or "").strip().lower()
    if time_range == "today":
        return start
    if time_range == "yesterday":
        return start - timedelta(days=1)
    if time_range == "this week":
        return start - timedelta(days=start.weekday())
    if time_range == "this month":
        return start.replace(day=1)
    return None


class QueryService:
    """QueryPort backed by the configured LLM and the local stores."""

    def __init__(
        self,
        contractor_db: ContractorDB,
        activity_db: ActivityDB,
        report_db: ReportDB,
        tz: ZoneInfo | None = None,
    ) -> None:
        self._contractors = contractor_db
        self._activity = activity_db
        self._reports = report_db
        self._tz = tz or ZoneInfo(settings.TIMEZONE)

    async def classify(self, message: str, scope: CallerScope) -> QueryIntent:
        """Ask the LLM for a QueryIntent; fall back to `general` on any failure."""
        who = "an admin (can see all data)" if scope.is_admin else "a contractor (own data only)"
        system = _SYSTEM_PROMPT.format(today=datetime.now(self._tz).date().isoformat(), who=who)
        try:
            return QueryIntent.model_validate(await complete_json(system, message, max_tokens=256))
        except ValidationError as exc:
            logger.warning("Could not parse query intent: %s", exc)
        except (LLMError, ValueError) as exc:
            logger.error("LLM intent classification failed: %s", exc)
        return QueryIntent()

    async def answer(self, message: str, scope: CallerScope) -> str:
        intent = await self.classify(message, scope)
        logger.info(
            "Query from contractor #%s classified as %s (%s)",
            scope.contractor_id, intent.category, intent.time_range or "any time",
        )

        caller = (
            self._contractors.get_contractor(scope.contractor_id)
            if scope.contractor_id is not None else None
        )
        if intent.category == "general":
            return GENERAL_HELP.format(first_name=caller.first_name if caller else "there")

        targets = self._target_ids(intent, scope)
        if targets == []:
            if intent.entities:
                return f"No contractor found matching \"{intent.entities[0]}\"."
            return "No records found."

        now = datetime.now(self._tz)
        handlers = {
            "jobs": self._jobs,
            "progress_reports": self._progress_reports,
            "check_ins": self._check_ins,
            "reminders": self._reminders,
        }
        return handlers[intent.category](targets, intent, now)

    def _target_ids(self, intent: QueryIntent, scope: CallerScope) -> list[int] | None:
        """Contractor ids to read, or None for everyone."""
        if not scope.is_admin:
            return [scope.contractor_id] if scope.contractor_id is not None else []
        if not intent.entities:
            return None

        wanted = intent.entities[0].strip().lower()
        return [
            c.id for c in self._contractors.list_contractors()
            if wanted and wanted in c.full_name.lower()
        ]

    def _name(self, contractor_id: int, cache: dict[int, ContractorProfile | None]) -> str:
        if contractor_id not in cache:
            cache[contractor_id] = self._contractors.get_contractor(contractor_id)
        contractor = cache[contractor_id]
        return contractor.full_name if contractor else f"Contractor #{contractor_id}"

    # ------------------------------------------------------------------
    # Category handlers
    # ------------------------------------------------------------------

    def _jobs(self, targets: list[int] | None, intent: QueryIntent, now: datetime) -> str:
        if targets is None:
            assignments = self._contractors.list_assignments()
        else:
            assignments = [a for cid in targets for a in self._contractors.list_assignments(cid)]

        today = now.date().isoformat()
        active = [
            a for a in assignments
            if a.start_date <= today and (a.end_date is None or a.end_date >= today)
        ]
        if not active:
            return "No active job assignments found."

        names: dict[int, ContractorProfile | None] = {}
        lines = [f"🏗️ *Active Assignments ({len(active)})*", ""]
        for assignment in active[:10]:
            job = self._contractors.get_job(assignment.job_id)
            lines.append(f"• {job.title if job else 'Unknown Job'}")
            if targets is None or len(targets) > 1:
                lines.append(f"  👷 {self._name(assignment.contractor_id, names)}")
            if job and job.address:
                lines.append(f"  📍 {job.address}")
            lines.append(f"  {'✅ Acknowledged' if assignment.acknowledged else '⏳ Not acknowledged'}")
        return "\n".join(lines)

    def _progress_reports(self, targets: list[int] | None, intent: QueryIntent, now: datetime) -> str:
        if targets is None:
            reports = self._reports.list_progress_reports()
        else:
            reports = [r for cid in targets for r in self._reports.list_progress_reports(cid)]

        since = _since(intent.time_range, now, self._tz)
        if since is not None:
            reports = [r for r in reports if r.report_date >= since.date().isoformat()]
        if not reports:
            return "No progress reports found."

        names: dict[int, ContractorProfile | None] = {}
        lines = [f"📋 *Progress Reports ({len(reports)})*", ""]
        for report in reports[:10]:
            lines.append(f"• {self._name(report.contractor_id, names)} - {report.report_date}")
            if report.progress_percentage is not None:
                lines.append(f"  Progress: {report.progress_percentage}%")
            summary = report.transcribed_text or report.notes
            if summary:
                lines.append(f"  {summary[:50]}{'...' if len(summary) > 50 else ''}")
        return "\n".join(lines)

    def _check_ins(self, targets: list[int] | None, intent: QueryIntent, now: datetime) -> str:
        since = _since(intent.time_range, now, self._tz)
        if targets is None:
            check_ins = self._activity.list_check_ins(since=since)
        else:
            check_ins = [
                c for cid in targets
                for c in self._activity.list_check_ins(contractor_id=cid, since=since)
            ]
        if not check_ins:
            return f"No check-ins found{' ' + intent.time_range if intent.time_range else ''}."

        names: dict[int, ContractorProfile | None] = {}
        lines = [f"✅ *Recent Check-ins ({len(check_ins)})*", ""]
        for check_in in check_ins[:15]:
            lines.append(f"• {self._name(check_in.contractor_id, names)}")
            lines.append(
                f"  {check_in.time.astimezone(self._tz):%Y-%m-%d %H:%M} - {check_in.kind.value}"
            )
            if check_in.location:
                lines.append(f"  📍 {check_in.location}")
        return "\n".join(lines)

    def _reminders(self, targets: list[int] | None, intent: QueryIntent, now: datetime) -> str:
        since = _since(intent.time_range, now, self._tz)
        if targets is None:
            reminders = self._activity.list_reminders(since=since)
        else:
            reminders = [
                r for cid in targets
                for r in self._activity.list_reminders(contractor_id=cid, since=since)
            ]
        if not reminders:
            return "No reminders found."

        names: dict[int, ContractorProfile | None] = {}
        answered = sum(1 for r in reminders if r.responded)
        lines = [f"⏰ *Reminders ({answered}/{len(reminders)} answered)*", ""]
        for reminder in reminders[:15]:
            status = "✅" if reminder.responded else "⏳"
            lines.append(
                f"{status} {self._name(reminder.contractor_id, names)} - "
                f"{reminder.kind.value} at {reminder.sent_at.astimezone(self._tz):%Y-%m-%d %H:%M}"
            )
        return "\n".join(lines)
