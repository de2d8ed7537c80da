"""
SiteCrew Assistant — Reminder Scheduler.

Morning check-in: a daily push (default 08:15) asking every contractor on an
active assignment to confirm they are working, unless they already checked
in today.

Daily report: a daily push (default 17:00) asking for a progress report,
unless one was already submitted today.

Both triggers, plus the new-assignment poller, run on python-telegram-bot's
JobQueue. Their handles live in a SchedulerState owned by one
ReminderScheduler instance, so rescheduling replaces exactly one trigger and
shutdown can cancel every future firing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, time as dt_time, timedelta
from typing import TYPE_CHECKING, Any, Awaitable, Callable
from zoneinfo import ZoneInfo

from sitecrew.config import settings
from sitecrew.core import templates
from sitecrew.core.assignment_notifier import notify_new_assignments
from sitecrew.data.db import StorageError
from sitecrew.data.models import ReminderKind

if TYPE_CHECKING:
    from telegram.ext import Job, JobQueue

    from sitecrew.core.dispatcher import NotificationDispatcher
    from sitecrew.data.db import ActivityDB, ContractorDB, ReportDB
    from sitecrew.data.models import ContractorProfile

logger = logging.getLogger(__name__)

ASSIGNMENT_POLL_TRIGGER = "assignment_notifier"


class RescheduleError(ValueError):
    """Raised for an out-of-range reminder time."""


@dataclass
class BatchSummary:
    """Outcome counts for one scheduler firing."""

    kind: ReminderKind
    sent: int = 0
    failed: int = 0
    skipped: int = 0        # no chat handle
    already_done: int = 0   # checked in / reported today

    def __str__(self) -> str:
        return (
            f"{self.kind.value}: sent={self.sent} failed={self.failed} "
            f"skipped={self.skipped} already_done={self.already_done}"
        )


@dataclass
class SchedulerState:
    """Live trigger handles, keyed by trigger name."""

    job_queue: JobQueue | None = None
    triggers: dict[str, Job] = field(default_factory=dict)
    times: dict[str, tuple[int, int]] = field(default_factory=dict)


def day_bounds(now: datetime, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """Return [today 00:00, tomorrow 00:00) in `tz` for the wall-clock day of `now`."""
    local_day = now.astimezone(tz).date()
    start = datetime.combine(local_day, dt_time.min, tzinfo=tz)
    end = datetime.combine(local_day + timedelta(days=1), dt_time.min, tzinfo=tz)
    return start, end


def validate_time(hour: int, minute: int) -> None:
    if not 0 <= hour <= 23:
        raise RescheduleError(f"Invalid hour {hour} (must be 0-23)")
    if not 0 <= minute <= 59:
        raise RescheduleError(f"Invalid minute {minute} (must be 0-59)")


class ReminderScheduler:
    """Daily reminder batches and the triggers that fire them."""

    def __init__(
        self,
        contractor_db: ContractorDB,
        activity_db: ActivityDB,
        report_db: ReportDB,
        dispatcher: NotificationDispatcher,
        tz: ZoneInfo | None = None,
    ) -> None:
        self._contractors = contractor_db
        self._activity = activity_db
        self._reports = report_db
        self._dispatcher = dispatcher
        self._tz = tz or ZoneInfo(settings.TIMEZONE)
        self.state = SchedulerState()

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def run_morning_checkins(self, now: datetime | None = None) -> BatchSummary:
        """Ask contractors without a check-in today to confirm they are working."""
        return await self._run_batch(ReminderKind.MORNING_CHECKIN, now)

    async def run_daily_reports(self, now: datetime | None = None) -> BatchSummary:
        """Ask contractors without a progress report today to submit one."""
        return await self._run_batch(ReminderKind.DAILY_REPORT, now)

    async def _run_batch(self, kind: ReminderKind, now: datetime | None) -> BatchSummary:
        now = now or datetime.now(self._tz)
        start, end = day_bounds(now, self._tz)
        summary = BatchSummary(kind=kind)

        contractors = self._contractors.list_contractors_active_on(start.date())
        logger.info(
            "[%s] Found %d contractors with active assignments on %s",
            kind.value, len(contractors), start.date().isoformat(),
        )

        for contractor in contractors:
            if not contractor.chat_id:
                logger.info(
                    "[%s] Skipping contractor #%d (%s): no chat handle",
                    kind.value, contractor.id, contractor.full_name,
                )
                summary.skipped += 1
                continue

            if self._already_done(kind, contractor, start, end):
                logger.info(
                    "[%s] Contractor #%d already responded today", kind.value, contractor.id,
                )
                summary.already_done += 1
                continue

            result = await self._dispatcher.send(contractor.chat_id, self._body(kind, contractor))
            if not result.success:
                logger.warning(
                    "[%s] Failed to send reminder to contractor #%d: %s",
                    kind.value, contractor.id, result.error,
                )
                summary.failed += 1
                continue

            try:
                self._activity.add_reminder(contractor.id, kind, sent_at=now)
            except StorageError as exc:
                logger.error(
                    "[%s] Reminder sent to contractor #%d but not logged: %s",
                    kind.value, contractor.id, exc,
                )
                summary.failed += 1
                continue

            logger.info("[%s] Reminder sent to contractor #%d", kind.value, contractor.id)
            summary.sent += 1

        logger.info("[%s] Batch complete — %s", kind.value, summary)
        return summary

    def _already_done(
        self, kind: ReminderKind, contractor: ContractorProfile, start: datetime, end: datetime,
    ) -> bool:
        if kind is ReminderKind.MORNING_CHECKIN:
            return self._activity.has_check_in_between(contractor.id, start, end)
        return self._reports.has_report_between(contractor.id, start, end)

    @staticmethod
    def _body(kind: ReminderKind, contractor: ContractorProfile) -> str:
        if kind is ReminderKind.MORNING_CHECKIN:
            return templates.morning_checkin(contractor.first_name)
        return templates.daily_report(contractor.first_name)

    def _runner(self, kind: ReminderKind) -> Callable[[], Awaitable[Any]]:
        if kind is ReminderKind.MORNING_CHECKIN:
            return self.run_morning_checkins
        return self.run_daily_reports

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def start(self, job_queue: JobQueue) -> SchedulerState:
        """Register both daily triggers and the assignment poller."""
        self.state.job_queue = job_queue
        self.reschedule(
            ReminderKind.MORNING_CHECKIN,
            settings.MORNING_CHECKIN_HOUR,
            settings.MORNING_CHECKIN_MINUTE,
        )
        self.reschedule(
            ReminderKind.DAILY_REPORT,
            settings.DAILY_REPORT_HOUR,
            settings.DAILY_REPORT_MINUTE,
        )
        self._start_assignment_poller()
        logger.info("Scheduler started with %d triggers", len(self.state.triggers))
        return self.state

    def reschedule(self, kind: ReminderKind, hour: int, minute: int) -> Job:
        """Replace the trigger for `kind` with one firing daily at hour:minute."""
        validate_time(hour, minute)
        job_queue = self._require_job_queue()
        runner = self._runner(kind)

        async def _callback(context: Any) -> None:
            await runner()

        job = job_queue.run_daily(
            _callback,
            time=dt_time(hour=hour, minute=minute, tzinfo=self._tz),
            name=kind.value,
        )
        old = self.state.triggers.get(kind.value)
        self.state.triggers[kind.value] = job
        if old is not None:
            old.schedule_removal()
        self.state.times[kind.value] = (hour, minute)
        logger.info(
            "Trigger %s scheduled at %02d:%02d %s", kind.value, hour, minute, self._tz.key,
        )
        return job

    def _start_assignment_poller(self) -> None:
        job_queue = self._require_job_queue()

        async def _poll(context: Any) -> None:
            await notify_new_assignments(self._contractors, self._dispatcher)

        job = job_queue.run_repeating(
            _poll,
            interval=settings.ASSIGNMENT_POLL_SECONDS,
            first=1,
            name=ASSIGNMENT_POLL_TRIGGER,
        )
        old = self.state.triggers.get(ASSIGNMENT_POLL_TRIGGER)
        self.state.triggers[ASSIGNMENT_POLL_TRIGGER] = job
        if old is not None:
            old.schedule_removal()
        logger.info("Assignment notifier polling every %ds", settings.ASSIGNMENT_POLL_SECONDS)

    def stop(self) -> None:
        """Cancel every future firing. Batches already running are left to finish."""
        for name, job in self.state.triggers.items():
            job.schedule_removal()
            logger.info("Stopped trigger: %s", name)
        self.state.triggers.clear()
        self.state.times.clear()

    def status(self) -> dict:
        tasks = []
        for name, job in self.state.triggers.items():
            next_run = getattr(job, "next_t", None)
            tasks.append({
                "name": name,
                "time": "%02d:%02d" % self.state.times[name] if name in self.state.times else None,
                "next_run": next_run.isoformat() if next_run else None,
            })
        return {"initialized": bool(self.state.triggers), "tasks": tasks}

    def _require_job_queue(self) -> JobQueue:
        if self.state.job_queue is None:
            raise RuntimeError("Scheduler not started: no job queue")
        return self.state.job_queue
