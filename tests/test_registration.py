"""Tests for sitecrew.core.registration — self-registration, approval, linking."""

import pytest

from sitecrew.core import templates
from sitecrew.core.registration import RegistrationError, RegistrationService
from sitecrew.data.models import ContractorStatus


@pytest.fixture
def registration(contractor_db):
    return RegistrationService(contractor_db)


class TestRegister:
    def test_creates_pending_contractor(self, registration, contractor_db):
        result = registration.register("5005", " Bo ", "Diddley")

        assert result.created is True
        assert result.contractor.status is ContractorStatus.PENDING
        stored = contractor_db.get_by_chat_id("5005")
        assert stored.full_name == "Bo Diddley"
        assert stored.is_pending
        assert "admin will approve" in result.reply

    def test_known_chat_is_not_duplicated(self, registration, contractor_db, alice):
        result = registration.register("1001", "Alice", "Again")
        assert result.created is False
        assert result.contractor.id == alice.id
        assert result.reply == templates.ALREADY_REGISTERED
        assert len(contractor_db.list_contractors()) == 1

    def test_pending_chat_reminded_to_wait(self, registration):
        registration.register("5005", "Bo")
        result = registration.register("5005", "Bo")
        assert result.created is False
        assert result.reply == templates.AWAITING_APPROVAL

    def test_name_required(self, registration, contractor_db):
        with pytest.raises(RegistrationError):
            registration.register("5005", "  ")
        assert contractor_db.get_by_chat_id("5005") is None


class TestApprove:
    def test_activates_pending(self, registration, contractor_db):
        bo = registration.register("5005", "Bo").contractor
        approved = registration.approve(bo.id)
        assert approved.is_pending is False
        assert contractor_db.get_contractor(bo.id).status is ContractorStatus.ACTIVE

    def test_unknown_id(self, registration):
        with pytest.raises(RegistrationError, match="No contractor"):
            registration.approve(999)

    def test_already_active(self, registration, alice):
        with pytest.raises(RegistrationError, match="already active"):
            registration.approve(alice.id)


class TestLink:
    def test_links_unlinked_contractor(self, registration, contractor_db):
        rudy = contractor_db.add_contractor("Rudy", "Khan")
        linked = registration.link(rudy.id, "2002")
        assert linked.chat_id == "2002"
        assert contractor_db.get_by_chat_id("2002").id == rudy.id

    def test_takes_chat_from_pending_registration(self, registration, contractor_db):
        rudy = contractor_db.add_contractor("Rudy", "Khan")
        pending = registration.register("2002", "Rudy").contractor

        registration.link(rudy.id, "2002")

        assert contractor_db.get_by_chat_id("2002").id == rudy.id
        assert contractor_db.get_contractor(pending.id).chat_id is None

    def test_never_displaces_active_contractor(self, registration, contractor_db, alice):
        rudy = contractor_db.add_contractor("Rudy", "Khan")
        with pytest.raises(RegistrationError, match="already belongs"):
            registration.link(rudy.id, "1001")
        assert contractor_db.get_by_chat_id("1001").id == alice.id

    def test_linking_pending_target_activates_it(self, registration, contractor_db):
        bo = contractor_db.add_contractor("Bo", status=ContractorStatus.PENDING)
        linked = registration.link(bo.id, "5005")
        assert linked.is_pending is False
        assert contractor_db.get_contractor(bo.id).status is ContractorStatus.ACTIVE
