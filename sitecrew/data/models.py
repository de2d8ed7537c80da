"""
SiteCrew Assistant — Data Models.

Records the engagement orchestrator reads and writes. Jobs, contractors and
assignments are owned by the job-management side of the product; this
process only links chats to contractors and writes acknowledgment and
notification timestamps. Reminders, check-ins and progress reports are the
audit trail this process produces.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ContractorStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"


class ReminderKind(str, Enum):
    MORNING_CHECKIN = "morning_checkin"
    DAILY_REPORT = "daily_report"


class CheckInKind(str, Enum):
    LOGIN = "login"
    PROGRESS_REPORT = "progress_report"
    VOICE_MESSAGE = "voice_message"
    TELEGRAM_RESPONSE = "telegram_response"
    TELEGRAM_CONFIRM = "telegram_confirm"


class SessionStep(str, Enum):
    WAITING_WORK_COMPLETED = "waiting_work_completed"
    WAITING_PROGRESS_PERCENTAGE = "waiting_progress_percentage"
    WAITING_ISSUES = "waiting_issues"
    WAITING_MATERIALS = "waiting_materials"
    COMPLETE = "complete"


class ReportStatus(str, Enum):
    SUBMITTED = "submitted"
    REVIEWED = "reviewed"
    APPROVED = "approved"


@dataclass
class ContractorProfile:
    """A contractor (or admin) known to the job tracker.

    `chat_id` stays None until the contractor links their Telegram account.
    Self-registered contractors start out PENDING until an admin approves them.
    """

    id: int
    first_name: str
    last_name: str = ""
    chat_id: str | None = None
    is_admin: bool = False
    status: ContractorStatus = ContractorStatus.ACTIVE
    created_at: datetime | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_pending(self) -> bool:
        return self.status is ContractorStatus.PENDING


@dataclass
class Job:
    id: int
    title: str
    address: str = ""
    post_code: str = ""


@dataclass
class Assignment:
    """A contractor's linkage to a job, including acknowledgment state."""

    id: int
    job_id: int
    contractor_id: int
    start_date: str                       # ISO date YYYY-MM-DD
    end_date: str | None = None           # None = open-ended
    special_instructions: str = ""
    notified_at: datetime | None = None
    acknowledged: bool = False
    acknowledged_at: datetime | None = None
    created_at: datetime | None = None


@dataclass
class ReminderRecord:
    id: int
    contractor_id: int
    kind: ReminderKind
    sent_at: datetime
    responded: bool = False
    responded_at: datetime | None = None
    response_text: str | None = None


@dataclass
class CheckInRecord:
    id: int
    contractor_id: int
    time: datetime
    kind: CheckInKind
    location: str | None = None
    notes: str | None = None


@dataclass
class ConversationSession:
    """Transient per-chat state while a progress report is being collected."""

    chat_id: str
    step: SessionStep
    started_at: datetime
    last_activity_at: datetime
    expires_at: datetime
    work_completed: str | None = None
    progress_percentage: int | None = None
    issues: str | None = None
    materials: str | None = None
    media_refs: list[str] = field(default_factory=list)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass
class ProgressReport:
    id: int
    contractor_id: int
    notes: str
    report_date: str                      # ISO date YYYY-MM-DD
    assignment_id: int | None = None
    job_id: int | None = None
    transcribed_text: str | None = None
    progress_percentage: int | None = None
    media_refs: list[str] = field(default_factory=list)
    status: ReportStatus = ReportStatus.SUBMITTED
    created_at: datetime | None = None


@dataclass
class WorkSession:
    """Clocked work recorded by the payroll side. Read-only here."""

    id: int
    contractor_id: int
    start_time: datetime
    end_time: datetime | None = None
    minutes_worked: int = 0
    gross_pay_pence: int = 0
    net_pay_pence: int = 0


@dataclass(frozen=True)
class CallerScope:
    """Visibility scope for query answering.

    Contractors only see their own records; admins see everything.
    """

    is_admin: bool
    contractor_id: int | None

    @classmethod
    def for_contractor(cls, contractor: ContractorProfile) -> CallerScope:
        return cls(is_admin=contractor.is_admin, contractor_id=contractor.id)

    def can_see(self, contractor_id: int) -> bool:
        return self.is_admin or contractor_id == self.contractor_id
