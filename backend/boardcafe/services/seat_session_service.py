# Overview: Service-layer operations for seat sessions; timer lifecycle and frozen time charges.

"""
Seat Sessions

WHY: The floor staff open a session when a customer sits down and run a
timer for table time. While the timer runs, the charge is quoted live.
Stopping the timer freezes billed_minutes and billed_charge once; after that
only the frozen values are authoritative.

If the seated customer holds an active membership, stopping the timer
commits the hours against the membership in the same transaction and the
frozen charge becomes the membership overage charge.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import Customer, SeatSession
from ..validation import ConflictError, NotFoundError, ValidationError
from . import membership_service
from . import time_billing_service
from .concurrency import lock_for_update, run_with_retry
from .time_billing_service import TimeBilling
from boardcafe.time_utils import utcnow


class TimerStateError(ConflictError):
    """Raised for timer transitions the session's state does not allow."""


@dataclass
class StopResult:
    session: SeatSession
    billing: TimeBilling
    charge: int  # yen, what the order line is billed
    membership_usage: Optional[membership_service.UsageResult] = None

    def to_dict(self) -> dict:
        return {
            "session": self.session.to_dict(),
            "billing": self.billing.to_dict(),
            "charge": self.charge,
            "membership_usage": self.membership_usage.to_dict() if self.membership_usage else None,
        }


def _get_session_locked(session_id: int) -> SeatSession:
    session = lock_for_update(db.session.query(SeatSession).filter_by(id=session_id)).first()
    if not session:
        raise NotFoundError("Seat session not found")
    return session


def get_session(session_id: int) -> SeatSession:
    session = db.session.query(SeatSession).filter_by(id=session_id).first()
    if not session:
        raise NotFoundError("Seat session not found")
    return session


def open_session(
    seat_label: str,
    customer_id: Optional[int] = None,
    order_ref: Optional[str] = None,
    start_timer: bool = True,
    now: Optional[datetime] = None,
) -> SeatSession:
    """Seat a customer. A seat holds at most one open session."""
    seat_label = (seat_label or "").strip()
    if not seat_label:
        raise ValidationError("seat_label is required")

    def _op() -> SeatSession:
        if customer_id is not None:
            if not db.session.query(Customer.id).filter_by(id=customer_id).first():
                raise NotFoundError("Customer not found")

        existing = (
            db.session.query(SeatSession.id)
            .filter(SeatSession.seat_label == seat_label, SeatSession.closed_at.is_(None))
            .first()
        )
        if existing:
            raise TimerStateError("Seat already has an open session")

        session = SeatSession(
            seat_label=seat_label,
            customer_id=customer_id,
            order_ref=order_ref,
            started_at=(now or utcnow()) if start_timer else None,
        )
        db.session.add(session)
        db.session.commit()
        return session

    return run_with_retry(_op)


def start_timer(session_id: int, now: Optional[datetime] = None) -> SeatSession:
    def _op() -> SeatSession:
        session = _get_session_locked(session_id)
        if session.closed_at is not None:
            raise TimerStateError("Session is closed")
        if session.started_at is not None:
            raise TimerStateError("Timer already started")
        session.started_at = now or utcnow()
        db.session.commit()
        return session

    return run_with_retry(_op)


def current_charge(session_id: int, now: Optional[datetime] = None) -> dict:
    """
    Frozen charge for a stopped timer, live estimate for a running one,
    zero for a session without a timer.
    """
    session = get_session(session_id)

    if session.started_at is None:
        return {"session_id": session.id, "running": False, "frozen": False,
                "minutes": 0, "charge": 0, "rate_applied": None}

    if session.ended_at is not None:
        return {"session_id": session.id, "running": False, "frozen": True,
                "minutes": session.billed_minutes, "charge": session.billed_charge,
                "rate_applied": session.rate_applied}

    billing = time_billing_service.get_estimated_charge(session.started_at, now=now)
    return {
        "session_id": session.id,
        "running": True,
        "frozen": False,
        "minutes": billing.minutes,
        "charge": billing.total_charge,
        "rate_applied": billing.rate_applied,
        "description": time_billing_service.get_time_charge_description(billing),
    }


def stop_timer(session_id: int, now: Optional[datetime] = None) -> StopResult:
    """
    Stop the timer and freeze the charge. Member time is committed against
    the membership in the same transaction.
    """
    def _op() -> StopResult:
        session = _get_session_locked(session_id)
        if session.started_at is None:
            raise TimerStateError("Timer was never started")
        if session.ended_at is not None:
            raise TimerStateError("Timer already stopped")

        ended_at = now or utcnow()
        minutes = time_billing_service.elapsed_minutes(session.started_at, ended_at=ended_at)
        billing = time_billing_service.calculate_time_charge(minutes)
        charge = billing.total_charge

        usage = None
        if session.customer_id is not None and minutes > 0:
            membership = membership_service.get_active_membership(session.customer_id, ended_at)
            if membership is not None:
                usage = membership_service.track_hour_usage(
                    membership.id,
                    time_billing_service.minutes_to_hours(minutes),
                    seat_session_id=session.id,
                    description=f"Seat {session.seat_label} ({minutes} min)",
                    commit=False,
                )
                charge = usage.overage_charge // 100

        session.ended_at = ended_at
        session.billed_minutes = minutes
        session.billed_charge = charge
        session.rate_applied = "membership" if usage is not None else billing.rate_applied
        db.session.commit()
        return StopResult(session=session, billing=billing, charge=charge, membership_usage=usage)

    return run_with_retry(_op)


def close_session(session_id: int, now: Optional[datetime] = None) -> SeatSession:
    """Mark the session paid. A running timer must be stopped first."""
    def _op() -> SeatSession:
        session = _get_session_locked(session_id)
        if session.closed_at is not None:
            raise TimerStateError("Session already closed")
        if session.is_running:
            raise TimerStateError("Stop the timer before closing the session")
        session.closed_at = now or utcnow()
        db.session.commit()
        return session

    return run_with_retry(_op)
