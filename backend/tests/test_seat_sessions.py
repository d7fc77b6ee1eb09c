# Overview: Pytest coverage for seat sessions and timer billing.

from datetime import timedelta

import pytest

from boardcafe.models import MembershipUsage
from boardcafe.services import membership_service, seat_session_service
from boardcafe.services.seat_session_service import TimerStateError
from boardcafe.time_utils import utcnow
from boardcafe.validation import NotFoundError, ValidationError


class TestLifecycle:

    def test_open_starts_timer(self, db_session):
        start = utcnow()
        session = seat_session_service.open_session("T1", now=start)
        assert session.seat_label == "T1"
        assert session.started_at == start
        assert session.is_running is True

    def test_open_without_timer(self, db_session):
        session = seat_session_service.open_session("T1", start_timer=False)
        assert session.started_at is None
        charge = seat_session_service.current_charge(session.id)
        assert charge["running"] is False
        assert charge["charge"] == 0

    def test_one_open_session_per_seat(self, db_session):
        seat_session_service.open_session("T1")
        with pytest.raises(TimerStateError):
            seat_session_service.open_session("T1")
        # Another seat is fine
        seat_session_service.open_session("T2")

    def test_seat_reusable_after_close(self, db_session):
        start = utcnow() - timedelta(minutes=30)
        session = seat_session_service.open_session("T1", now=start)
        seat_session_service.stop_timer(session.id, now=start + timedelta(minutes=30))
        seat_session_service.close_session(session.id)
        assert seat_session_service.open_session("T1").id != session.id

    def test_blank_label_rejected(self, db_session):
        with pytest.raises(ValidationError):
            seat_session_service.open_session("  ")

    def test_unknown_customer(self, db_session):
        with pytest.raises(NotFoundError):
            seat_session_service.open_session("T1", customer_id=9999)

    def test_start_timer_later(self, db_session):
        session = seat_session_service.open_session("T1", start_timer=False)
        started = seat_session_service.start_timer(session.id)
        assert started.started_at is not None
        with pytest.raises(TimerStateError):
            seat_session_service.start_timer(session.id)


class TestBilling:

    def test_live_charge_while_running(self, db_session):
        start = utcnow() - timedelta(hours=2)
        session = seat_session_service.open_session("T1", now=start)
        charge = seat_session_service.current_charge(session.id, now=start + timedelta(minutes=95))
        assert charge["running"] is True
        assert charge["minutes"] == 95
        # 1h35m -> 1h + half hour
        assert charge["charge"] == 750

    def test_stop_freezes_charge(self, db_session):
        start = utcnow() - timedelta(hours=3)
        session = seat_session_service.open_session("T1", now=start)
        result = seat_session_service.stop_timer(session.id, now=start + timedelta(minutes=125))

        assert result.charge == 1000
        assert result.membership_usage is None
        assert result.session.billed_minutes == 125
        assert result.session.billed_charge == 1000
        assert result.session.rate_applied == "standard"

        # Later quotes return the frozen values
        charge = seat_session_service.current_charge(session.id, now=start + timedelta(minutes=400))
        assert charge["frozen"] is True
        assert charge["charge"] == 1000
        assert charge["minutes"] == 125

    def test_stop_twice_refused(self, db_session):
        start = utcnow() - timedelta(minutes=30)
        session = seat_session_service.open_session("T1", now=start)
        seat_session_service.stop_timer(session.id, now=start + timedelta(minutes=20))
        with pytest.raises(TimerStateError):
            seat_session_service.stop_timer(session.id)

    def test_stop_without_timer_refused(self, db_session):
        session = seat_session_service.open_session("T1", start_timer=False)
        with pytest.raises(TimerStateError):
            seat_session_service.stop_timer(session.id)

    def test_close_running_refused(self, db_session):
        session = seat_session_service.open_session("T1")
        with pytest.raises(TimerStateError):
            seat_session_service.close_session(session.id)

    def test_close_twice_refused(self, db_session):
        session = seat_session_service.open_session("T1", start_timer=False)
        seat_session_service.close_session(session.id)
        with pytest.raises(TimerStateError):
            seat_session_service.close_session(session.id)

    def test_walk_in_customer_without_membership(self, db_session, customer):
        start = utcnow() - timedelta(hours=6)
        session = seat_session_service.open_session("T1", customer_id=customer.id, now=start)
        result = seat_session_service.stop_timer(session.id, now=start + timedelta(minutes=300))
        assert result.charge == 2100
        assert result.session.rate_applied == "5hour"


class TestMemberSessions:

    def test_member_time_within_allowance_is_free(self, db_session, customer, membership):
        start = utcnow()
        session = seat_session_service.open_session("T1", customer_id=customer.id, now=start)
        result = seat_session_service.stop_timer(session.id, now=start + timedelta(minutes=120))

        assert result.charge == 0
        assert result.session.rate_applied == "membership"
        assert result.membership_usage.included_hours_used == 2
        assert membership_service.get_membership(membership.id).hours_used == 2

        usage = db_session.query(MembershipUsage).filter_by(membership_id=membership.id).one()
        assert usage.seat_session_id == session.id

    def test_member_overage_billed(self, db_session, customer, membership):
        membership_service.track_hour_usage(membership.id, 19)
        start = utcnow()
        session = seat_session_service.open_session("T1", customer_id=customer.id, now=start)
        result = seat_session_service.stop_timer(session.id, now=start + timedelta(minutes=180))

        # 1h included, 2h at ¥300
        assert result.membership_usage.overage_hours == 2
        assert result.charge == 600
        assert result.session.billed_charge == 600
        assert membership_service.get_membership(membership.id).hours_used == 22

    def test_short_member_visit_records_no_usage_when_zero_minutes(self, db_session, customer, membership):
        start = utcnow()
        session = seat_session_service.open_session("T1", customer_id=customer.id, now=start)
        result = seat_session_service.stop_timer(session.id, now=start + timedelta(seconds=30))
        assert result.membership_usage is None
        assert result.charge == 0
        assert db_session.query(MembershipUsage).count() == 0
