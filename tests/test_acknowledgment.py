"""Tests for sitecrew.core.acknowledgment."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from conftest import at
from sitecrew.core.acknowledgment import NOTHING_PENDING, AcknowledgmentHandler
from sitecrew.data.db import StorageError

BASE = datetime(2025, 1, 1, 9, tzinfo=timezone.utc)


def _two_assignments(contractor_db, contractor):
    first_job = contractor_db.add_job("First job", address="1 A St")
    second_job = contractor_db.add_job("Second job", address="2 B St")
    first = contractor_db.add_assignment(first_job.id, contractor.id, "2025-01-02", created_at=BASE)
    second = contractor_db.add_assignment(
        second_job.id, contractor.id, "2025-01-03", created_at=BASE + timedelta(days=1),
    )
    return first, second


class TestAcknowledge:
    def test_oldest_first_by_default(self, contractor_db, alice):
        first, second = _two_assignments(contractor_db, alice)
        handler = AcknowledgmentHandler(contractor_db, newest_first=False)

        result = handler.acknowledge(alice, at(10))

        assert result.acknowledged
        assert result.assignment.id == first.id
        assert "First job" in result.reply
        assert contractor_db.get_assignment(first.id).acknowledged is True
        assert contractor_db.get_assignment(second.id).acknowledged is False

    def test_newest_first_when_configured(self, contractor_db, alice):
        first, second = _two_assignments(contractor_db, alice)
        result = AcknowledgmentHandler(contractor_db, newest_first=True).acknowledge(alice, at(10))
        assert result.assignment.id == second.id

    def test_exactly_one_assignment_per_reply(self, contractor_db, alice):
        _two_assignments(contractor_db, alice)
        handler = AcknowledgmentHandler(contractor_db, newest_first=False)

        handler.acknowledge(alice, at(10))
        pending = [a for a in contractor_db.list_assignments(alice.id) if not a.acknowledged]
        assert len(pending) == 1

        handler.acknowledge(alice, at(11))
        third = handler.acknowledge(alice, at(12))
        assert third.acknowledged is False
        assert third.reply == NOTHING_PENDING

    def test_other_contractors_untouched(self, contractor_db, alice, admin):
        job = contractor_db.add_job("Shared")
        theirs = contractor_db.add_assignment(job.id, admin.id, "2025-01-01")
        result = AcknowledgmentHandler(contractor_db).acknowledge(alice, at(10))
        assert result.reply == NOTHING_PENDING
        assert contractor_db.get_assignment(theirs.id).acknowledged is False

    def test_records_timestamp(self, contractor_db, alice):
        first, _ = _two_assignments(contractor_db, alice)
        AcknowledgmentHandler(contractor_db).acknowledge(alice, at(10))
        assert contractor_db.get_assignment(first.id).acknowledged_at == at(10)

    def test_write_failure_propagates(self, contractor_db, alice):
        _two_assignments(contractor_db, alice)
        with patch.object(contractor_db, "mark_acknowledged", side_effect=StorageError("locked")):
            with pytest.raises(StorageError):
                AcknowledgmentHandler(contractor_db).acknowledge(alice, at(10))
