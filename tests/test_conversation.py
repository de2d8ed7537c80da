"""Tests for sitecrew.core.conversation — progress report state machine."""

from unittest.mock import patch

import pytest

from conftest import TZ, at
from sitecrew.core.conversation import (
    COMPLETED_TEXT,
    PERCENTAGE_ERROR,
    STEPS,
    ConversationError,
    ConversationMachine,
    build_report_notes,
    parse_percentage,
)
from sitecrew.data.db import StorageError
from sitecrew.data.models import SessionStep


@pytest.fixture
def machine(report_db, contractor_db):
    return ConversationMachine(report_db, contractor_db, ttl_minutes=30, tz=TZ)


def _answer(machine, chat_id, text, now, media_ref=None):
    session = machine.active_session(chat_id, now)
    assert session is not None
    return machine.advance(session, text, now, media_ref=media_ref)


class TestParsePercentage:
    @pytest.mark.parametrize("text,expected", [
        ("50", 50), ("  75%", 75), ("0", 0), ("100", 100), ("about 30 %", 30),
    ])
    def test_accepts(self, text, expected):
        assert parse_percentage(text) == expected

    @pytest.mark.parametrize("text", ["150", "abc", "", "101"])
    def test_rejects(self, text):
        assert parse_percentage(text) is None


class TestStart:
    def test_start_returns_first_prompt(self, machine, report_db):
        prompt = machine.start("1001", at(17))
        assert prompt == STEPS[0].prompt
        assert report_db.get_session("1001").step is SessionStep.WAITING_WORK_COMPLETED

    def test_restart_resets_without_duplicating(self, machine, report_db):
        machine.start("1001", at(17))
        _answer(machine, "1001", "Tiled the bathroom", at(17, 1))

        machine.start("1001", at(17, 2))

        assert report_db.count_sessions("1001") == 1
        session = report_db.get_session("1001")
        assert session.step is SessionStep.WAITING_WORK_COMPLETED
        assert session.work_completed is None


class TestAdvance:
    def test_full_round_trip_creates_report(self, machine, report_db, contractor_db, alice):
        job = contractor_db.add_job("Bathroom")
        assignment = contractor_db.add_assignment(job.id, alice.id, "2025-01-01")
        machine.start("1001", at(17))

        r1 = _answer(machine, "1001", "Tiled walls", at(17, 1))
        assert r1.advanced and r1.text == STEPS[1].prompt
        r2 = _answer(machine, "1001", "60%", at(17, 2))
        assert r2.text == STEPS[2].prompt
        r3 = _answer(machine, "1001", "none", at(17, 3))
        assert r3.text == STEPS[3].prompt
        r4 = _answer(machine, "1001", "Grout", at(17, 4))

        assert r4.completed is True
        assert r4.text == COMPLETED_TEXT
        assert report_db.get_session("1001") is None

        report = report_db.list_progress_reports(contractor_id=alice.id)[0]
        assert report.progress_percentage == 60
        assert report.assignment_id == assignment.id
        assert report.job_id == job.id
        assert report.report_date == "2025-01-15"
        assert report.notes == (
            "Work Completed: Tiled walls\n\nProgress: 60%\n\nIssues: none\n\nMaterials Needed: Grout"
        )

    def test_report_without_active_assignment_has_null_link(self, machine, report_db, alice):
        machine.start("1001", at(17))
        for text in ("Work", "10", "none", "none"):
            reply = _answer(machine, "1001", text, at(17, 5))
        assert reply.completed
        report = report_db.list_progress_reports(contractor_id=alice.id)[0]
        assert report.assignment_id is None
        assert report.job_id is None

    @pytest.mark.parametrize("bad", ["150", "abc", ""])
    def test_invalid_percentage_reprompts_without_advancing(self, machine, report_db, alice, bad):
        machine.start("1001", at(17))
        _answer(machine, "1001", "Work", at(17, 1))

        reply = _answer(machine, "1001", bad, at(17, 2))

        assert reply.advanced is False
        assert reply.text.startswith(PERCENTAGE_ERROR)
        assert STEPS[1].prompt in reply.text
        assert report_db.get_session("1001").step is SessionStep.WAITING_PROGRESS_PERCENTAGE

    def test_empty_text_answer_reprompts(self, machine, report_db):
        machine.start("1001", at(17))
        reply = _answer(machine, "1001", "   ", at(17, 1))
        assert reply.advanced is False
        assert report_db.get_session("1001").step is SessionStep.WAITING_WORK_COMPLETED

    def test_voice_refs_collected_into_report(self, machine, report_db, alice):
        machine.start("1001", at(17))
        _answer(machine, "1001", "Plastered", at(17, 1), media_ref="voice-a")
        _answer(machine, "1001", "50", at(17, 2))
        _answer(machine, "1001", "Leak", at(17, 3), media_ref="voice-b")
        _answer(machine, "1001", "none", at(17, 4))
        report = report_db.list_progress_reports(contractor_id=alice.id)[0]
        assert report.media_refs == ["voice-a", "voice-b"]
        assert report.transcribed_text == "Plastered"

    def test_unlinked_chat_keeps_session_at_last_step(self, machine, report_db):
        machine.start("4040", at(17))
        for text in ("Work", "10", "none"):
            _answer(machine, "4040", text, at(17, 1))

        with pytest.raises(ConversationError):
            _answer(machine, "4040", "none", at(17, 2))
        assert report_db.get_session("4040").step is SessionStep.WAITING_MATERIALS

    def test_storage_failure_propagates(self, machine, report_db):
        machine.start("1001", at(17))
        with patch.object(report_db, "update_session", side_effect=StorageError("locked")):
            with pytest.raises(StorageError):
                _answer(machine, "1001", "Work", at(17, 1))


class TestExpiry:
    def test_live_session_returned(self, machine):
        machine.start("1001", at(17))
        assert machine.active_session("1001", at(17, 29)) is not None

    def test_expired_session_deleted_on_access(self, machine, report_db):
        machine.start("1001", at(17))
        assert machine.active_session("1001", at(17, 31)) is None
        assert report_db.get_session("1001") is None

    def test_cancel(self, machine):
        machine.start("1001", at(17))
        assert machine.cancel("1001") is True
        assert machine.active_session("1001", at(17, 1)) is None


class TestBuildReportNotes:
    def test_format(self):
        from sitecrew.data.models import ConversationSession

        session = ConversationSession(
            chat_id="1", step=SessionStep.WAITING_MATERIALS,
            started_at=at(17), last_activity_at=at(17), expires_at=at(17, 30),
            work_completed="A", progress_percentage=5, issues="B", materials="C",
        )
        assert build_report_notes(session) == (
            "Work Completed: A\n\nProgress: 5%\n\nIssues: B\n\nMaterials Needed: C"
        )
