# Overview: Service-layer operations for memberships; subscription lifecycle and included-hour billing.

"""
Membership Service

WHY: Members prepay for a monthly allowance of seat hours. Time inside the
allowance is free; time beyond it is billed at the plan's overage rate.

LIFECYCLE:
- purchase: ACTIVE for one calendar month, bonus points credited; any
  lapsed ACTIVE row the sweep has not reached is EXPIRED first
- usage: hours_used grows; each event leaves an immutable MembershipUsage
- renew: old row EXPIRED, new ACTIVE row from the old end date
- cancel: CANCELLED (terminal), auto_renew off
- sweep: ACTIVE rows past end_date are renewed (auto_renew) or EXPIRED

A customer holds at most one ACTIVE membership.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer, CustomerMembership, MembershipPlan, MembershipUsage
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    enforce_rules_plan,
    require_hours,
)
from . import points_service
from .concurrency import lock_for_update, run_with_retry, run_unit_of_work
from boardcafe.time_utils import add_months, utcnow

logger = logging.getLogger(__name__)

DEFAULT_REGULAR_HOURLY_RATE_MINOR = 50000  # ¥500/hour
DEFAULT_FLAT_PLAN_PRICE_MINOR = 800000  # ¥8000

# Overage is billed in steps of 1000 minor units (¥10)
OVERAGE_ROUNDING_MINOR = 1000

PLAN_WRITABLE_FIELDS = (
    "name", "description", "price", "hours_included", "overage_rate",
    "points_on_purchase", "earn_rate_denominator",
)


class DuplicateMembershipError(ConflictError):
    """Raised when a customer already holds an active membership."""


class MembershipStateError(ConflictError):
    """Raised for lifecycle transitions the membership's status does not allow."""


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _round_hours(value: float) -> float:
    return round(value, 4)


@dataclass(frozen=True)
class HourSplit:
    remaining_included: float
    included_hours_used: float
    overage_hours: float
    overage_charge: int  # minor units

    @property
    def remaining_after(self) -> float:
        return _round_hours(max(0.0, self.remaining_included - self.included_hours_used))

    def to_dict(self) -> dict:
        return {
            "remaining_included": self.remaining_included,
            "included_hours_used": self.included_hours_used,
            "overage_hours": self.overage_hours,
            "overage_charge": self.overage_charge,
            "remaining_after": self.remaining_after,
        }


def split_hours(plan: MembershipPlan, hours_used_so_far: float, hours_to_use: float) -> HourSplit:
    """
    Divide a usage into included and overage hours.

    Shared by track_hour_usage (commits) and calculate_time_charges (quotes)
    so both always bill the same amount.
    """
    remaining = _round_hours(max(0.0, plan.hours_included - hours_used_so_far))
    included = _round_hours(min(hours_to_use, remaining))
    overage = _round_hours(max(0.0, hours_to_use - included))
    charge = round_half_up(overage * plan.overage_rate / OVERAGE_ROUNDING_MINOR) * OVERAGE_ROUNDING_MINOR
    return HourSplit(
        remaining_included=remaining,
        included_hours_used=included,
        overage_hours=overage,
        overage_charge=charge,
    )


@dataclass
class UsageResult:
    membership: CustomerMembership
    usage: MembershipUsage
    split: HourSplit

    @property
    def included_hours_used(self) -> float:
        return self.split.included_hours_used

    @property
    def overage_hours(self) -> float:
        return self.split.overage_hours

    @property
    def overage_charge(self) -> int:
        return self.split.overage_charge

    @property
    def remaining_hours(self) -> float:
        return self.split.remaining_after

    def to_dict(self) -> dict:
        return {
            "membership": self.membership.to_dict(),
            "usage": self.usage.to_dict(),
            "included_hours_used": self.included_hours_used,
            "overage_hours": self.overage_hours,
            "overage_charge": self.overage_charge,
            "remaining_hours": self.remaining_hours,
        }


# =============================================================================
# PLANS
# =============================================================================

def get_plans() -> list[MembershipPlan]:
    return (
        db.session.query(MembershipPlan)
        .filter_by(is_active=True)
        .order_by(MembershipPlan.price.asc(), MembershipPlan.id.asc())
        .all()
    )


def get_plan(plan_id: int) -> MembershipPlan:
    plan = db.session.query(MembershipPlan).filter_by(id=plan_id).first()
    if not plan:
        raise NotFoundError("Membership plan not found")
    return plan


def _clean_plan_patch(data: dict) -> dict:
    unknown = [k for k in data if k not in PLAN_WRITABLE_FIELDS]
    if unknown:
        raise ValidationError(f"Field not allowed: {unknown[0]}")
    patch = dict(data)
    enforce_rules_plan(patch)
    return patch


def create_plan(data: dict) -> MembershipPlan:
    missing = [f for f in ("name", "price") if f not in (data or {})]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    plan = MembershipPlan(**_clean_plan_patch(data))
    db.session.add(plan)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A plan with this name already exists")
    return plan


def update_plan(plan_id: int, data: dict) -> MembershipPlan:
    """
    Administrative edit. Existing memberships keep pointing at the plan but
    usage already recorded is not re-billed.
    """
    patch = _clean_plan_patch(data or {})
    plan = get_plan(plan_id)
    for key, value in patch.items():
        setattr(plan, key, value)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A plan with this name already exists")
    return plan


def deactivate_plan(plan_id: int) -> MembershipPlan:
    """Soft delete. Refused while any ACTIVE membership uses the plan."""
    plan = get_plan(plan_id)
    active = (
        db.session.query(func.count(CustomerMembership.id))
        .filter_by(plan_id=plan_id, status="ACTIVE")
        .scalar()
    )
    if active:
        raise ConflictError("Cannot delete plan with active memberships")
    plan.is_active = False
    db.session.commit()
    return plan


# =============================================================================
# MEMBERSHIPS
# =============================================================================

def _active_query(customer_id: int, now: datetime):
    return db.session.query(CustomerMembership).filter(
        CustomerMembership.customer_id == customer_id,
        CustomerMembership.status == "ACTIVE",
        CustomerMembership.end_date >= now,
    )


def get_active_membership(customer_id: int, now: Optional[datetime] = None) -> CustomerMembership | None:
    """The customer's ACTIVE, unexpired membership (plan loaded), or None."""
    return _active_query(customer_id, now or utcnow()).first()


def get_membership(membership_id: int) -> CustomerMembership:
    membership = db.session.query(CustomerMembership).filter_by(id=membership_id).first()
    if not membership:
        raise NotFoundError("Membership not found")
    return membership


def _get_membership_locked(membership_id: int) -> CustomerMembership:
    membership = lock_for_update(
        db.session.query(CustomerMembership).filter_by(id=membership_id)
    ).first()
    if not membership:
        raise NotFoundError("Membership not found")
    return membership


def _claim_customer(customer_id: int, now: datetime) -> Customer:
    """
    Lock the customer row and bump its version so two concurrent purchases
    for the same customer cannot both pass the one-active check.
    """
    customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
    if not customer:
        raise NotFoundError("Customer not found")
    customer.updated_at = now
    return customer


def _expire_lapsed(customer_id: int, now: datetime) -> None:
    """
    EXPIRE the customer's ACTIVE rows whose period ended before `now` but
    which the sweep has not reached yet. Caller holds the customer claim.
    """
    lapsed = lock_for_update(
        db.session.query(CustomerMembership).filter(
            CustomerMembership.customer_id == customer_id,
            CustomerMembership.status == "ACTIVE",
            CustomerMembership.end_date < now,
        )
    ).all()
    for membership in lapsed:
        membership.status = "EXPIRED"
        logger.info("Expired lapsed membership %s for customer %s", membership.id, customer_id)


def purchase_membership(
    customer_id: int,
    plan_id: int,
    auto_renew: bool = False,
    now: Optional[datetime] = None,
) -> CustomerMembership:
    """
    Start a one-month membership and credit the plan's purchase bonus.

    Membership row and bonus points commit together or not at all.
    """
    def _op() -> CustomerMembership:
        start_date = now or utcnow()

        plan = db.session.query(MembershipPlan).filter_by(id=plan_id).first()
        if not plan:
            raise NotFoundError("Membership plan not found")
        if not plan.is_active:
            raise ValidationError("Invalid or inactive membership plan")

        _claim_customer(customer_id, start_date)
        _expire_lapsed(customer_id, start_date)

        if _active_query(customer_id, start_date).first():
            raise DuplicateMembershipError("Customer already has an active membership")

        membership = CustomerMembership(
            customer_id=customer_id,
            plan_id=plan.id,
            start_date=start_date,
            end_date=add_months(start_date, 1),
            hours_used=0,
            carried_over_hours=0,
            auto_renew=bool(auto_renew),
            status="ACTIVE",
        )
        db.session.add(membership)
        db.session.flush()

        if plan.points_on_purchase > 0:
            points_service.add_bonus_points(
                customer_id,
                plan.points_on_purchase,
                f"{plan.name} purchase bonus",
                commit=False,
            )

        db.session.commit()
        return membership

    return run_with_retry(_op)


def track_hour_usage(
    membership_id: int,
    hours_to_use: float,
    seat_session_id: Optional[int] = None,
    description: Optional[str] = None,
    *,
    commit: bool = True,
) -> UsageResult:
    """
    Consume hours against a membership.

    Updates hours_used and appends the usage row in one unit of work.
    """
    hours_to_use = _round_hours(require_hours(hours_to_use, "hours", allow_zero=False))

    def _op() -> UsageResult:
        membership = _get_membership_locked(membership_id)
        if membership.status != "ACTIVE":
            raise MembershipStateError("Membership is not active")

        split = split_hours(membership.plan, membership.hours_used, hours_to_use)

        membership.hours_used = _round_hours(membership.hours_used + hours_to_use)
        usage = MembershipUsage(
            membership_id=membership.id,
            seat_session_id=seat_session_id,
            hours_used=hours_to_use,
            overage_hours=split.overage_hours,
            overage_charge=split.overage_charge,
            description=description or "Table time usage",
        )
        db.session.add(usage)

        if commit:
            db.session.commit()
        else:
            db.session.flush()
        return UsageResult(membership=membership, usage=usage, split=split)

    return run_unit_of_work(_op, commit=commit)


def _regular_rate() -> int:
    return int(current_app.config.get("REGULAR_HOURLY_RATE_MINOR", DEFAULT_REGULAR_HOURLY_RATE_MINOR))


def calculate_time_charges(
    customer_id: Optional[int],
    hours_used: float,
    regular_hourly_rate: Optional[int] = None,
    now: Optional[datetime] = None,
) -> dict:
    """
    Quote seat time at checkout. Read-only: hours_used on the membership is
    not touched; track_hour_usage commits the usage.
    """
    hours_used = require_hours(hours_used, "hours")
    rate = _regular_rate() if regular_hourly_rate is None else regular_hourly_rate
    if isinstance(rate, bool) or not isinstance(rate, int) or rate < 0:
        raise ValidationError("regular_hourly_rate must be a non-negative integer")

    membership = get_active_membership(customer_id, now) if customer_id is not None else None

    if membership is None:
        return {
            "total_charge": round_half_up(hours_used * rate),
            "included_hours": 0,
            "charged_hours": hours_used,
            "overage_hours": 0,
            "membership": None,
        }

    split = split_hours(membership.plan, membership.hours_used, hours_used)
    return {
        "total_charge": split.overage_charge,
        "included_hours": split.included_hours_used,
        "charged_hours": split.overage_hours,
        "overage_hours": split.overage_hours,
        "membership": {
            "id": membership.id,
            "plan_name": membership.plan.name,
            "remaining_hours": split.remaining_after,
        },
    }


def renew_membership(membership_id: int, carry_over_unused_hours: bool = False) -> CustomerMembership:
    """
    Roll a membership into its next one-month period.

    The new period starts when the old one ends. With carry-over, the unused
    allowance is recorded as carried credit, capped at one plan allotment;
    the new period's available hours never exceed that single allotment.
    Old row expiry, new row and renewal bonus commit together.
    """
    def _op() -> CustomerMembership:
        membership = _get_membership_locked(membership_id)
        if membership.status == "CANCELLED":
            raise MembershipStateError("Cancelled memberships cannot be renewed")

        plan = membership.plan
        other_active = (
            db.session.query(CustomerMembership.id)
            .filter(
                CustomerMembership.customer_id == membership.customer_id,
                CustomerMembership.status == "ACTIVE",
                CustomerMembership.id != membership.id,
            )
            .first()
        )
        if other_active:
            raise DuplicateMembershipError("Customer already has an active membership")

        start_date = membership.end_date
        end_date = add_months(start_date, 1)

        carried = 0.0
        if carry_over_unused_hours:
            unused = max(0.0, plan.hours_included - membership.hours_used)
            carried = _round_hours(min(unused, plan.hours_included))

        membership.status = "EXPIRED"
        renewed = CustomerMembership(
            customer_id=membership.customer_id,
            plan_id=membership.plan_id,
            start_date=start_date,
            end_date=end_date,
            hours_used=0,
            carried_over_hours=carried,
            auto_renew=membership.auto_renew,
            status="ACTIVE",
        )
        db.session.add(renewed)
        db.session.flush()

        if plan.points_on_purchase > 0:
            points_service.add_bonus_points(
                membership.customer_id,
                plan.points_on_purchase,
                f"{plan.name} renewal bonus",
                commit=False,
            )

        db.session.commit()
        return renewed

    return run_with_retry(_op)


def cancel_membership(membership_id: int) -> CustomerMembership:
    def _op() -> CustomerMembership:
        membership = _get_membership_locked(membership_id)
        if membership.status != "ACTIVE":
            raise MembershipStateError(f"Cannot cancel membership with status {membership.status}")
        membership.status = "CANCELLED"
        membership.auto_renew = False
        db.session.commit()
        return membership

    return run_with_retry(_op)


def _expire(membership_id: int) -> None:
    def _op() -> None:
        membership = _get_membership_locked(membership_id)
        if membership.status == "ACTIVE":
            membership.status = "EXPIRED"
        db.session.commit()

    run_with_retry(_op)


def process_expired_memberships(now: Optional[datetime] = None) -> int:
    """
    Sweep ACTIVE memberships whose end_date has passed.

    auto_renew rows are renewed with carry-over, the rest EXPIRED. Each row
    is its own transaction; a failure is logged and the sweep continues.
    Returns the number of memberships processed.
    """
    now = now or utcnow()
    due = (
        db.session.query(CustomerMembership.id, CustomerMembership.auto_renew, CustomerMembership.customer_id)
        .filter(CustomerMembership.status == "ACTIVE", CustomerMembership.end_date < now)
        .order_by(CustomerMembership.id.asc())
        .all()
    )

    for membership_id, auto_renew, customer_id in due:
        try:
            if auto_renew:
                try:
                    renewed = renew_membership(membership_id, carry_over_unused_hours=True)
                    logger.info("Auto-renewed membership %s for customer %s as %s", membership_id, customer_id, renewed.id)
                except DuplicateMembershipError:
                    _expire(membership_id)
                    logger.warning(
                        "Customer %s already holds another active membership; expired %s instead of renewing",
                        customer_id, membership_id,
                    )
            else:
                _expire(membership_id)
                logger.info("Expired membership %s for customer %s", membership_id, customer_id)
        except Exception:
            logger.exception("Failed to process expired membership %s", membership_id)

    return len(due)


def get_membership_stats(now: Optional[datetime] = None) -> dict:
    """
    Reporting aggregates. total_revenue is an estimate (ACTIVE + EXPIRED
    memberships x flat plan price), in yen.
    """
    now = now or utcnow()
    flat_price = int(current_app.config.get("MEMBERSHIP_STATS_FLAT_PRICE_MINOR", DEFAULT_FLAT_PLAN_PRICE_MINOR))

    active_members = (
        db.session.query(func.count(CustomerMembership.id))
        .filter(CustomerMembership.status == "ACTIVE", CustomerMembership.end_date >= now)
        .scalar()
    )
    billed_count = (
        db.session.query(func.count(CustomerMembership.id))
        .filter(CustomerMembership.status.in_(("ACTIVE", "EXPIRED")))
        .scalar()
    )
    avg_hours = (
        db.session.query(func.avg(CustomerMembership.hours_used))
        .filter(CustomerMembership.status == "ACTIVE")
        .scalar()
    )

    return {
        "active_members": int(active_members or 0),
        "total_revenue": (int(billed_count or 0) * flat_price) // 100,
        "average_hours_used": float(avg_hours or 0),
    }


def get_usage_history(membership_id: int) -> list[MembershipUsage]:
    get_membership(membership_id)
    return (
        db.session.query(MembershipUsage)
        .filter_by(membership_id=membership_id)
        .order_by(MembershipUsage.created_at.desc(), MembershipUsage.id.desc())
        .all()
    )
