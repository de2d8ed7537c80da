"""
SiteCrew Assistant — SQLite storage.

Three stores share one database file:
- ContractorDB: contractors, jobs, assignments, work sessions
- ActivityDB:   reminders and check-ins (the engagement audit trail)
- ReportDB:     conversation sessions and progress reports

Reads degrade: a failing read logs a warning and returns an empty result.
Writes fail loudly: a failing write logs an error and raises StorageError,
because a silently dropped write would corrupt the audit trail.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Sequence

from sitecrew.data.models import (
    Assignment,
    CheckInKind,
    CheckInRecord,
    ContractorProfile,
    ContractorStatus,
    ConversationSession,
    Job,
    ProgressReport,
    ReminderKind,
    ReminderRecord,
    ReportStatus,
    SessionStep,
    WorkSession,
)

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a write to the store fails."""


def _ts(value: datetime | None) -> str | None:
    """Serialize an aware datetime as a sortable UTC ISO string."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_ts(raw: str | None) -> datetime | None:
    if not raw:
        return None
    return datetime.fromisoformat(raw)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class _SQLiteStore:
    """Connection handling and read/write error policy shared by all stores."""

    _SCHEMA: tuple[str, ...] = ()

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from sitecrew.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            for ddl in self._SCHEMA:
                conn.execute(ddl)
        logger.debug("%s tables initialized at %s", type(self).__name__, self._db_path)

    def _read_all(self, query: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        try:
            with self._connect() as conn:
                return conn.execute(query, params).fetchall()
        except sqlite3.Error as exc:
            logger.warning("Storage read failed, returning empty result: %s", exc)
            return []

    def _read_one(self, query: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
        try:
            with self._connect() as conn:
                return conn.execute(query, params).fetchone()
        except sqlite3.Error as exc:
            logger.warning("Storage read failed, returning no row: %s", exc)
            return None

    def _write(self, query: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        try:
            with self._connect() as conn:
                return conn.execute(query, params)
        except sqlite3.Error as exc:
            logger.error("Storage write failed: %s", exc)
            raise StorageError(str(exc)) from exc


# ---------------------------------------------------------------------------
# Contractors, jobs, assignments
# ---------------------------------------------------------------------------


class ContractorDB(_SQLiteStore):
    """Contractor profiles and their job assignments."""

    _SCHEMA = (
        """
        CREATE TABLE IF NOT EXISTS contractors (
            id          INTEGER PRIMARY KEY AUTOINCREMENT,
            first_name  TEXT    NOT NULL,
            last_name   TEXT    NOT NULL DEFAULT '',
            chat_id     TEXT    UNIQUE,
            is_admin    INTEGER NOT NULL DEFAULT 0,
            status      TEXT    NOT NULL DEFAULT 'active',
            created_at  TEXT    NOT NULL
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS jobs (
            id        INTEGER PRIMARY KEY AUTOINCREMENT,
            title     TEXT NOT NULL,
            address   TEXT NOT NULL DEFAULT '',
            post_code TEXT NOT NULL DEFAULT ''
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS assignments (
            id                   INTEGER PRIMARY KEY AUTOINCREMENT,
            job_id               INTEGER NOT NULL,
            contractor_id        INTEGER NOT NULL,
            start_date           TEXT    NOT NULL,
            end_date             TEXT,
            special_instructions TEXT    NOT NULL DEFAULT '',
            notified_at          TEXT,
            acknowledged         INTEGER NOT NULL DEFAULT 0,
            acknowledged_at      TEXT,
            created_at           TEXT    NOT NULL
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS work_sessions (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            contractor_id   INTEGER NOT NULL,
            start_time      TEXT    NOT NULL,
            end_time        TEXT,
            minutes_worked  INTEGER NOT NULL DEFAULT 0,
            gross_pay_pence INTEGER NOT NULL DEFAULT 0,
            net_pay_pence   INTEGER NOT NULL DEFAULT 0
        )
        """,
    )

    @staticmethod
    def _row_to_contractor(row: sqlite3.Row) -> ContractorProfile:
        return ContractorProfile(
            id=row["id"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            chat_id=row["chat_id"],
            is_admin=bool(row["is_admin"]),
            status=ContractorStatus(row["status"]),
            created_at=_parse_ts(row["created_at"]),
        )

    @staticmethod
    def _row_to_assignment(row: sqlite3.Row) -> Assignment:
        return Assignment(
            id=row["id"],
            job_id=row["job_id"],
            contractor_id=row["contractor_id"],
            start_date=row["start_date"],
            end_date=row["end_date"],
            special_instructions=row["special_instructions"],
            notified_at=_parse_ts(row["notified_at"]),
            acknowledged=bool(row["acknowledged"]),
            acknowledged_at=_parse_ts(row["acknowledged_at"]),
            created_at=_parse_ts(row["created_at"]),
        )

    # -- contractors --------------------------------------------------------

    def add_contractor(
        self,
        first_name: str,
        last_name: str = "",
        chat_id: str | None = None,
        is_admin: bool = False,
        status: ContractorStatus = ContractorStatus.ACTIVE,
    ) -> ContractorProfile:
        """Register a contractor. The chat handle may be linked later."""
        now = _now()
        cursor = self._write(
            """
            INSERT INTO contractors (first_name, last_name, chat_id, is_admin, status, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (first_name, last_name, chat_id, int(is_admin), status.value, _ts(now)),
        )
        contractor = ContractorProfile(
            id=cursor.lastrowid,
            first_name=first_name,
            last_name=last_name,
            chat_id=chat_id,
            is_admin=is_admin,
            status=status,
            created_at=now,
        )
        logger.info(
            "Contractor registered: #%d '%s' (%s)", contractor.id, contractor.full_name, status.value,
        )
        return contractor

    def set_status(self, contractor_id: int, status: ContractorStatus) -> bool:
        """Change a contractor's status. Returns False if the contractor does not exist."""
        cursor = self._write(
            "UPDATE contractors SET status = ? WHERE id = ?",
            (status.value, contractor_id),
        )
        return cursor.rowcount > 0

    def link_chat(self, contractor_id: int, chat_id: str | None) -> None:
        """Attach a Telegram chat handle to a contractor, or detach it with None."""
        self._write(
            "UPDATE contractors SET chat_id = ? WHERE id = ?",
            (chat_id, contractor_id),
        )
        logger.info("Contractor #%d linked to chat %s", contractor_id, chat_id)

    def get_contractor(self, contractor_id: int) -> ContractorProfile | None:
        row = self._read_one("SELECT * FROM contractors WHERE id = ?", (contractor_id,))
        return self._row_to_contractor(row) if row else None

    def get_by_chat_id(self, chat_id: str) -> ContractorProfile | None:
        """Resolve the contractor behind a chat handle, or None if unlinked."""
        row = self._read_one(
            "SELECT * FROM contractors WHERE chat_id = ?", (str(chat_id),)
        )
        return self._row_to_contractor(row) if row else None

    def list_contractors(self) -> list[ContractorProfile]:
        rows = self._read_all("SELECT * FROM contractors ORDER BY first_name, last_name")
        return [self._row_to_contractor(r) for r in rows]

    def list_by_status(self, status: ContractorStatus) -> list[ContractorProfile]:
        rows = self._read_all(
            "SELECT * FROM contractors WHERE status = ? ORDER BY created_at, id", (status.value,),
        )
        return [self._row_to_contractor(r) for r in rows]

    def list_admins(self) -> list[ContractorProfile]:
        rows = self._read_all(
            "SELECT * FROM contractors WHERE is_admin = 1 AND status = 'active' ORDER BY id"
        )
        return [self._row_to_contractor(r) for r in rows]

    def list_contractors_active_on(self, day: date) -> list[ContractorProfile]:
        """Contractors with at least one assignment whose date range covers `day`."""
        iso = day.isoformat()
        rows = self._read_all(
            """
            SELECT DISTINCT c.* FROM contractors c
            JOIN assignments a ON a.contractor_id = c.id
            WHERE c.status = 'active'
              AND a.start_date <= ? AND (a.end_date IS NULL OR a.end_date >= ?)
            ORDER BY c.id
            """,
            (iso, iso),
        )
        return [self._row_to_contractor(r) for r in rows]

    # -- jobs ---------------------------------------------------------------

    def add_job(self, title: str, address: str = "", post_code: str = "") -> Job:
        cursor = self._write(
            "INSERT INTO jobs (title, address, post_code) VALUES (?, ?, ?)",
            (title, address, post_code),
        )
        return Job(id=cursor.lastrowid, title=title, address=address, post_code=post_code)

    def get_job(self, job_id: int) -> Job | None:
        row = self._read_one("SELECT * FROM jobs WHERE id = ?", (job_id,))
        if row is None:
            return None
        return Job(
            id=row["id"], title=row["title"], address=row["address"], post_code=row["post_code"],
        )

    # -- assignments --------------------------------------------------------

    def add_assignment(
        self,
        job_id: int,
        contractor_id: int,
        start_date: str,
        end_date: str | None = None,
        special_instructions: str = "",
        created_at: datetime | None = None,
    ) -> Assignment:
        created_at = created_at or _now()
        cursor = self._write(
            """
            INSERT INTO assignments
                (job_id, contractor_id, start_date, end_date,
                 special_instructions, acknowledged, created_at)
            VALUES (?, ?, ?, ?, ?, 0, ?)
            """,
            (job_id, contractor_id, start_date, end_date, special_instructions, _ts(created_at)),
        )
        assignment = Assignment(
            id=cursor.lastrowid,
            job_id=job_id,
            contractor_id=contractor_id,
            start_date=start_date,
            end_date=end_date,
            special_instructions=special_instructions,
            created_at=created_at,
        )
        logger.info(
            "Assignment #%d: contractor #%d on job #%d", assignment.id, contractor_id, job_id,
        )
        return assignment

    def get_assignment(self, assignment_id: int) -> Assignment | None:
        row = self._read_one("SELECT * FROM assignments WHERE id = ?", (assignment_id,))
        return self._row_to_assignment(row) if row else None

    def list_assignments(self, contractor_id: int | None = None) -> list[Assignment]:
        query = "SELECT * FROM assignments"
        params: list = []
        if contractor_id is not None:
            query += " WHERE contractor_id = ?"
            params.append(contractor_id)
        query += " ORDER BY created_at DESC, id DESC"
        return [self._row_to_assignment(r) for r in self._read_all(query, params)]

    def current_assignment(self, contractor_id: int, day: date) -> Assignment | None:
        """Most recently created assignment of this contractor covering `day`."""
        iso = day.isoformat()
        row = self._read_one(
            """
            SELECT * FROM assignments
            WHERE contractor_id = ?
              AND start_date <= ? AND (end_date IS NULL OR end_date >= ?)
            ORDER BY created_at DESC, id DESC
            LIMIT 1
            """,
            (contractor_id, iso, iso),
        )
        return self._row_to_assignment(row) if row else None

    def list_unnotified_assignments(self) -> list[Assignment]:
        rows = self._read_all(
            "SELECT * FROM assignments WHERE notified_at IS NULL ORDER BY created_at, id"
        )
        return [self._row_to_assignment(r) for r in rows]

    def mark_notified(self, assignment_id: int, when: datetime | None = None) -> None:
        self._write(
            "UPDATE assignments SET notified_at = ? WHERE id = ?",
            (_ts(when or _now()), assignment_id),
        )

    def next_unacknowledged(
        self, contractor_id: int, newest_first: bool = False,
    ) -> Assignment | None:
        """Pick the assignment an acknowledgment applies to."""
        direction = "DESC" if newest_first else "ASC"
        row = self._read_one(
            f"""
            SELECT * FROM assignments
            WHERE contractor_id = ? AND acknowledged = 0
            ORDER BY created_at {direction}, id {direction}
            LIMIT 1
            """,
            (contractor_id,),
        )
        return self._row_to_assignment(row) if row else None

    def mark_acknowledged(self, assignment_id: int, when: datetime | None = None) -> bool:
        """Set the acknowledgment fields. Returns False if it was already acknowledged."""
        cursor = self._write(
            """
            UPDATE assignments SET acknowledged = 1, acknowledged_at = ?
            WHERE id = ? AND acknowledged = 0
            """,
            (_ts(when or _now()), assignment_id),
        )
        updated = cursor.rowcount > 0
        if updated:
            logger.info("Assignment #%d acknowledged", assignment_id)
        return updated

    # -- work sessions (read-only for the orchestrator) --------------------

    def add_work_session(
        self,
        contractor_id: int,
        start_time: datetime,
        end_time: datetime | None = None,
        minutes_worked: int = 0,
        gross_pay_pence: int = 0,
        net_pay_pence: int = 0,
    ) -> WorkSession:
        cursor = self._write(
            """
            INSERT INTO work_sessions
                (contractor_id, start_time, end_time, minutes_worked,
                 gross_pay_pence, net_pay_pence)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                contractor_id, _ts(start_time), _ts(end_time),
                minutes_worked, gross_pay_pence, net_pay_pence,
            ),
        )
        return WorkSession(
            id=cursor.lastrowid,
            contractor_id=contractor_id,
            start_time=start_time,
            end_time=end_time,
            minutes_worked=minutes_worked,
            gross_pay_pence=gross_pay_pence,
            net_pay_pence=net_pay_pence,
        )

    def list_work_sessions(
        self, contractor_id: int, since: datetime | None = None,
    ) -> list[WorkSession]:
        query = "SELECT * FROM work_sessions WHERE contractor_id = ?"
        params: list = [contractor_id]
        if since is not None:
            query += " AND start_time >= ?"
            params.append(_ts(since))
        query += " ORDER BY start_time DESC"
        return [
            WorkSession(
                id=r["id"],
                contractor_id=r["contractor_id"],
                start_time=_parse_ts(r["start_time"]),
                end_time=_parse_ts(r["end_time"]),
                minutes_worked=r["minutes_worked"],
                gross_pay_pence=r["gross_pay_pence"],
                net_pay_pence=r["net_pay_pence"],
            )
            for r in self._read_all(query, params)
        ]


# ---------------------------------------------------------------------------
# Reminders and check-ins
# ---------------------------------------------------------------------------


class ActivityDB(_SQLiteStore):
    """Append-mostly audit trail of reminders sent and check-ins received."""

    _SCHEMA = (
        """
        CREATE TABLE IF NOT EXISTS reminders (
            id            INTEGER PRIMARY KEY AUTOINCREMENT,
            contractor_id INTEGER NOT NULL,
            kind          TEXT    NOT NULL,
            sent_at       TEXT    NOT NULL,
            responded     INTEGER NOT NULL DEFAULT 0,
            responded_at  TEXT,
            response_text TEXT
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS check_ins (
            id            INTEGER PRIMARY KEY AUTOINCREMENT,
            contractor_id INTEGER NOT NULL,
            time          TEXT    NOT NULL,
            kind          TEXT    NOT NULL,
            location      TEXT,
            notes         TEXT
        )
        """,
    )

    @staticmethod
    def _row_to_reminder(row: sqlite3.Row) -> ReminderRecord:
        return ReminderRecord(
            id=row["id"],
            contractor_id=row["contractor_id"],
            kind=ReminderKind(row["kind"]),
            sent_at=_parse_ts(row["sent_at"]),
            responded=bool(row["responded"]),
            responded_at=_parse_ts(row["responded_at"]),
            response_text=row["response_text"],
        )

    @staticmethod
    def _row_to_check_in(row: sqlite3.Row) -> CheckInRecord:
        return CheckInRecord(
            id=row["id"],
            contractor_id=row["contractor_id"],
            time=_parse_ts(row["time"]),
            kind=CheckInKind(row["kind"]),
            location=row["location"],
            notes=row["notes"],
        )

    # -- reminders ----------------------------------------------------------

    def add_reminder(
        self, contractor_id: int, kind: ReminderKind, sent_at: datetime | None = None,
    ) -> ReminderRecord:
        sent_at = sent_at or _now()
        cursor = self._write(
            "INSERT INTO reminders (contractor_id, kind, sent_at, responded) VALUES (?, ?, ?, 0)",
            (contractor_id, kind.value, _ts(sent_at)),
        )
        return ReminderRecord(
            id=cursor.lastrowid, contractor_id=contractor_id, kind=kind, sent_at=sent_at,
        )

    def latest_open_reminder(
        self, contractor_id: int, since: datetime,
    ) -> ReminderRecord | None:
        """Most recent unanswered reminder sent at or after `since`."""
        row = self._read_one(
            """
            SELECT * FROM reminders
            WHERE contractor_id = ? AND sent_at >= ? AND responded = 0
            ORDER BY sent_at DESC, id DESC
            LIMIT 1
            """,
            (contractor_id, _ts(since)),
        )
        return self._row_to_reminder(row) if row else None

    def mark_reminder_responded(
        self, reminder_id: int, text: str, responded_at: datetime | None = None,
    ) -> bool:
        """Record the reply. Returns False if the reminder was already answered."""
        cursor = self._write(
            """
            UPDATE reminders SET responded = 1, responded_at = ?, response_text = ?
            WHERE id = ? AND responded = 0
            """,
            (_ts(responded_at or _now()), text, reminder_id),
        )
        return cursor.rowcount > 0

    def list_reminders(
        self, contractor_id: int | None = None, since: datetime | None = None,
    ) -> list[ReminderRecord]:
        conditions: list[str] = []
        params: list = []
        if contractor_id is not None:
            conditions.append("contractor_id = ?")
            params.append(contractor_id)
        if since is not None:
            conditions.append("sent_at >= ?")
            params.append(_ts(since))

        query = "SELECT * FROM reminders"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY sent_at DESC, id DESC"
        return [self._row_to_reminder(r) for r in self._read_all(query, params)]

    # -- check-ins ----------------------------------------------------------

    def add_check_in(
        self,
        contractor_id: int,
        kind: CheckInKind,
        time: datetime | None = None,
        notes: str | None = None,
        location: str | None = None,
    ) -> CheckInRecord:
        time = time or _now()
        cursor = self._write(
            """
            INSERT INTO check_ins (contractor_id, time, kind, location, notes)
            VALUES (?, ?, ?, ?, ?)
            """,
            (contractor_id, _ts(time), kind.value, location, notes),
        )
        logger.info("Check-in recorded for contractor #%d (%s)", contractor_id, kind.value)
        return CheckInRecord(
            id=cursor.lastrowid,
            contractor_id=contractor_id,
            time=time,
            kind=kind,
            location=location,
            notes=notes,
        )

    def has_check_in_between(self, contractor_id: int, start: datetime, end: datetime) -> bool:
        row = self._read_one(
            "SELECT 1 FROM check_ins WHERE contractor_id = ? AND time >= ? AND time < ? LIMIT 1",
            (contractor_id, _ts(start), _ts(end)),
        )
        return row is not None

    def list_check_ins(
        self,
        contractor_id: int | None = None,
        since: datetime | None = None,
        limit: int = 20,
    ) -> list[CheckInRecord]:
        conditions: list[str] = []
        params: list = []
        if contractor_id is not None:
            conditions.append("contractor_id = ?")
            params.append(contractor_id)
        if since is not None:
            conditions.append("time >= ?")
            params.append(_ts(since))

        query = "SELECT * FROM check_ins"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY time DESC, id DESC LIMIT ?"
        params.append(limit)
        return [self._row_to_check_in(r) for r in self._read_all(query, params)]


# ---------------------------------------------------------------------------
# Conversation sessions and progress reports
# ---------------------------------------------------------------------------


class ReportDB(_SQLiteStore):
    """Progress-report conversations and the reports they produce."""

    _SCHEMA = (
        """
        CREATE TABLE IF NOT EXISTS conversation_sessions (
            chat_id             TEXT PRIMARY KEY,
            step                TEXT NOT NULL,
            work_completed      TEXT,
            progress_percentage INTEGER,
            issues              TEXT,
            materials           TEXT,
            media_refs          TEXT NOT NULL DEFAULT '[]',
            started_at          TEXT NOT NULL,
            last_activity_at    TEXT NOT NULL,
            expires_at          TEXT NOT NULL
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS progress_reports (
            id                  INTEGER PRIMARY KEY AUTOINCREMENT,
            contractor_id       INTEGER NOT NULL,
            assignment_id       INTEGER,
            job_id              INTEGER,
            report_date         TEXT    NOT NULL,
            notes               TEXT    NOT NULL,
            transcribed_text    TEXT,
            progress_percentage INTEGER,
            media_refs          TEXT    NOT NULL DEFAULT '[]',
            status              TEXT    NOT NULL DEFAULT 'submitted',
            created_at          TEXT    NOT NULL
        )
        """,
    )

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> ConversationSession:
        return ConversationSession(
            chat_id=row["chat_id"],
            step=SessionStep(row["step"]),
            work_completed=row["work_completed"],
            progress_percentage=row["progress_percentage"],
            issues=row["issues"],
            materials=row["materials"],
            media_refs=json.loads(row["media_refs"] or "[]"),
            started_at=_parse_ts(row["started_at"]),
            last_activity_at=_parse_ts(row["last_activity_at"]),
            expires_at=_parse_ts(row["expires_at"]),
        )

    @staticmethod
    def _row_to_report(row: sqlite3.Row) -> ProgressReport:
        return ProgressReport(
            id=row["id"],
            contractor_id=row["contractor_id"],
            assignment_id=row["assignment_id"],
            job_id=row["job_id"],
            report_date=row["report_date"],
            notes=row["notes"],
            transcribed_text=row["transcribed_text"],
            progress_percentage=row["progress_percentage"],
            media_refs=json.loads(row["media_refs"] or "[]"),
            status=ReportStatus(row["status"]),
            created_at=_parse_ts(row["created_at"]),
        )

    # -- sessions -----------------------------------------------------------

    def reset_session(
        self, chat_id: str, now: datetime, expires_at: datetime,
    ) -> ConversationSession:
        """Create the chat's session, or wipe and restart the existing one."""
        self._write(
            """
            INSERT INTO conversation_sessions
                (chat_id, step, work_completed, progress_percentage, issues, materials,
                 media_refs, started_at, last_activity_at, expires_at)
            VALUES (?, ?, NULL, NULL, NULL, NULL, '[]', ?, ?, ?)
            ON CONFLICT(chat_id) DO UPDATE SET
                step = excluded.step,
                work_completed = NULL,
                progress_percentage = NULL,
                issues = NULL,
                materials = NULL,
                media_refs = '[]',
                started_at = excluded.started_at,
                last_activity_at = excluded.last_activity_at,
                expires_at = excluded.expires_at
            """,
            (
                str(chat_id), SessionStep.WAITING_WORK_COMPLETED.value,
                _ts(now), _ts(now), _ts(expires_at),
            ),
        )
        return ConversationSession(
            chat_id=str(chat_id),
            step=SessionStep.WAITING_WORK_COMPLETED,
            started_at=now,
            last_activity_at=now,
            expires_at=expires_at,
        )

    def get_session(self, chat_id: str) -> ConversationSession | None:
        row = self._read_one(
            "SELECT * FROM conversation_sessions WHERE chat_id = ?", (str(chat_id),)
        )
        return self._row_to_session(row) if row else None

    def update_session(self, session: ConversationSession) -> None:
        self._write(
            """
            UPDATE conversation_sessions
            SET step = ?, work_completed = ?, progress_percentage = ?, issues = ?,
                materials = ?, media_refs = ?, last_activity_at = ?
            WHERE chat_id = ?
            """,
            (
                session.step.value,
                session.work_completed,
                session.progress_percentage,
                session.issues,
                session.materials,
                json.dumps(session.media_refs),
                _ts(session.last_activity_at),
                session.chat_id,
            ),
        )

    def delete_session(self, chat_id: str) -> bool:
        cursor = self._write(
            "DELETE FROM conversation_sessions WHERE chat_id = ?", (str(chat_id),)
        )
        return cursor.rowcount > 0

    def count_sessions(self, chat_id: str) -> int:
        row = self._read_one(
            "SELECT COUNT(*) AS n FROM conversation_sessions WHERE chat_id = ?", (str(chat_id),)
        )
        return row["n"] if row else 0

    # -- progress reports ---------------------------------------------------

    def add_progress_report(
        self,
        contractor_id: int,
        notes: str,
        report_date: str,
        assignment_id: int | None = None,
        job_id: int | None = None,
        transcribed_text: str | None = None,
        progress_percentage: int | None = None,
        media_refs: list[str] | None = None,
        created_at: datetime | None = None,
    ) -> ProgressReport:
        created_at = created_at or _now()
        media_refs = media_refs or []
        cursor = self._write(
            """
            INSERT INTO progress_reports
                (contractor_id, assignment_id, job_id, report_date, notes,
                 transcribed_text, progress_percentage, media_refs, status, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                contractor_id, assignment_id, job_id, report_date, notes,
                transcribed_text, progress_percentage, json.dumps(media_refs),
                ReportStatus.SUBMITTED.value, _ts(created_at),
            ),
        )
        report = ProgressReport(
            id=cursor.lastrowid,
            contractor_id=contractor_id,
            assignment_id=assignment_id,
            job_id=job_id,
            report_date=report_date,
            notes=notes,
            transcribed_text=transcribed_text,
            progress_percentage=progress_percentage,
            media_refs=media_refs,
            created_at=created_at,
        )
        logger.info("Progress report #%d saved for contractor #%d", report.id, contractor_id)
        return report

    def has_report_between(self, contractor_id: int, start: datetime, end: datetime) -> bool:
        row = self._read_one(
            """
            SELECT 1 FROM progress_reports
            WHERE contractor_id = ? AND created_at >= ? AND created_at < ?
            LIMIT 1
            """,
            (contractor_id, _ts(start), _ts(end)),
        )
        return row is not None

    def list_progress_reports(
        self, contractor_id: int | None = None, limit: int = 15,
    ) -> list[ProgressReport]:
        query = "SELECT * FROM progress_reports"
        params: list = []
        if contractor_id is not None:
            query += " WHERE contractor_id = ?"
            params.append(contractor_id)
        query += " ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(limit)
        return [self._row_to_report(r) for r in self._read_all(query, params)]
