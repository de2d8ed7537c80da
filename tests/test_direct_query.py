"""Tests for sitecrew.core.direct_query."""

import pytest

from conftest import TZ, at
from sitecrew.core.direct_query import SCOPE_REFUSAL, DirectQueryResolver, QueryTopic
from sitecrew.data.models import CallerScope, CheckInKind


@pytest.fixture
def resolver(contractor_db, activity_db):
    return DirectQueryResolver(contractor_db, activity_db, tz=TZ)


@pytest.fixture
def rudy(contractor_db):
    return contractor_db.add_contractor("Rudy", "Khan", chat_id="2002")


class TestMatch:
    @pytest.mark.parametrize("text,topic", [
        ("Did Rudy check in today?", QueryTopic.CHECK_INS),
        ("has rudy clocked in", QueryTopic.CHECK_INS),
        ("How many hours has Rudy worked?", QueryTopic.HOURS),
        ("How much do I owe Khan?", QueryTopic.PAYMENT),
    ])
    def test_name_plus_topic(self, resolver, admin, rudy, text, topic):
        query = resolver.match(text, admin)
        assert query is not None
        assert query.target.id == rudy.id
        assert query.topic is topic

    def test_name_without_topic(self, resolver, admin, rudy):
        assert resolver.match("Rudy is great", admin) is None

    def test_topic_without_name(self, resolver, admin, rudy):
        assert resolver.match("How many hours did I work?", admin) is None

    def test_partial_name_does_not_match(self, resolver, admin, rudy):
        assert resolver.match("Rudyard's hours?", admin) is None

    def test_caller_own_name_ignored(self, resolver, admin):
        assert resolver.match("How many hours has Sam worked?", admin) is None


class TestAnswer:
    def test_non_admin_refused(self, resolver, alice, rudy, activity_db):
        activity_db.add_check_in(rudy.id, CheckInKind.LOGIN, time=at(8))
        query = resolver.match("Did Rudy check in?", alice)
        reply = resolver.answer(query, CallerScope.for_contractor(alice), now=at(12))
        assert reply == SCOPE_REFUSAL

    def test_check_ins_today(self, resolver, admin, rudy, activity_db):
        activity_db.add_check_in(rudy.id, CheckInKind.LOGIN, time=at(7, 55), location="Site A")
        activity_db.add_check_in(rudy.id, CheckInKind.LOGIN, time=at(8, day=14))
        query = resolver.match("Did Rudy check in?", admin)

        reply = resolver.answer(query, CallerScope.for_contractor(admin), now=at(12))

        assert "(1)" in reply
        assert "07:55" in reply
        assert "Site A" in reply

    def test_no_check_ins(self, resolver, admin, rudy):
        query = resolver.match("Did Rudy check in?", admin)
        reply = resolver.answer(query, CallerScope.for_contractor(admin), now=at(12))
        assert reply == "Rudy Khan hasn't checked in today."

    def test_hours_this_week(self, resolver, admin, rudy, contractor_db):
        # 2025-01-15 is a Wednesday; the week starts Monday the 13th
        contractor_db.add_work_session(rudy.id, at(8, day=13), minutes_worked=240)
        contractor_db.add_work_session(rudy.id, at(8, day=14), minutes_worked=90)
        contractor_db.add_work_session(rudy.id, at(8, day=10), minutes_worked=600)
        query = resolver.match("Rudy hours?", admin)

        reply = resolver.answer(query, CallerScope.for_contractor(admin), now=at(12))

        assert "5.5h" in reply
        assert "2 sessions" in reply

    def test_payment_last_30_days(self, resolver, admin, rudy, contractor_db):
        contractor_db.add_work_session(rudy.id, at(8, day=14), net_pay_pence=12050, gross_pay_pence=15000)
        query = resolver.match("What do we owe Rudy?", admin)
        reply = resolver.answer(query, CallerScope.for_contractor(admin), now=at(12))
        assert "£120.50" in reply
        assert "£150.00" in reply
