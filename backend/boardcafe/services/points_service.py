# Overview: Service-layer operations for loyalty points; append-only ledger plus cached balance.

"""
Points Ledger Invariants (authoritative)

- PointsTransaction rows are append-only; never updated or deleted.
- Customer.points_balance is a cache of the ledger. It is written only in
  the same unit of work that appends the transaction recording the change.
- amount is the delta actually applied; balance_after is the balance after
  it. Summing amounts in id order reconstructs points_balance.
- points_balance never goes negative: redemption beyond the balance is
  rejected, refunds and manual adjustments clamp at zero.
- Every read-compute-write re-reads the customer row under a lock inside a
  retried unit of work; nothing is cached across requests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer, CustomerMembership, PointsSettings, PointsTransaction
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    require_non_negative_int,
    require_positive_int,
    coerce_int,
)
from .concurrency import lock_for_update, run_with_retry, run_unit_of_work
from boardcafe.time_utils import utcnow

logger = logging.getLogger(__name__)

SETTINGS_ID = "default"
DEFAULT_REGULAR_EARN_RATE = 50
DEFAULT_MEMBER_EARN_RATE = 40
DEFAULT_POINTS_PER_YEN = 1

MAX_HISTORY_LIMIT = 500


class InsufficientPointsError(ConflictError):
    """Raised when a redemption exceeds the customer's balance."""
    def __init__(self, balance: int, requested: int):
        super().__init__(f"Insufficient points. Balance: {balance}, Requested: {requested}")
        self.balance = balance
        self.requested = requested


@dataclass
class PointsResult:
    new_balance: int
    transaction: PointsTransaction
    value_in_yen: Optional[int] = None
    points_deducted: Optional[int] = None
    requested_amount: Optional[int] = None

    def to_dict(self) -> dict:
        data = {
            "new_balance": self.new_balance,
            "transaction": self.transaction.to_dict(),
        }
        if self.value_in_yen is not None:
            data["value_in_yen"] = self.value_in_yen
        if self.points_deducted is not None:
            data["points_deducted"] = self.points_deducted
        if self.requested_amount is not None:
            data["requested_amount"] = self.requested_amount
        return data


# =============================================================================
# SETTINGS
# =============================================================================

def get_settings() -> PointsSettings:
    """
    Singleton settings row, created with defaults on first access.

    Two concurrent first reads both try to insert; the loser hits the primary
    key and re-reads the winner's row.
    """
    settings = db.session.get(PointsSettings, SETTINGS_ID)
    if settings:
        return settings

    def _op() -> PointsSettings:
        settings = PointsSettings(
            id=SETTINGS_ID,
            regular_earn_rate=DEFAULT_REGULAR_EARN_RATE,
            member_earn_rate=DEFAULT_MEMBER_EARN_RATE,
            points_per_yen=DEFAULT_POINTS_PER_YEN,
        )
        db.session.add(settings)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            settings = db.session.get(PointsSettings, SETTINGS_ID)
            if settings is None:
                raise
        return settings

    return run_with_retry(_op)


def update_settings(
    *,
    regular_earn_rate=None,
    member_earn_rate=None,
    points_per_yen=None,
) -> PointsSettings:
    """Admin upsert of the loyalty rates. Omitted values keep their current setting."""
    patch = {}
    if regular_earn_rate is not None:
        patch["regular_earn_rate"] = require_positive_int(regular_earn_rate, "regular_earn_rate")
    if member_earn_rate is not None:
        patch["member_earn_rate"] = require_positive_int(member_earn_rate, "member_earn_rate")
    if points_per_yen is not None:
        patch["points_per_yen"] = require_positive_int(points_per_yen, "points_per_yen")

    get_settings()

    def _op() -> PointsSettings:
        settings = lock_for_update(db.session.query(PointsSettings).filter_by(id=SETTINGS_ID)).first()
        for key, value in patch.items():
            setattr(settings, key, value)
        db.session.commit()
        return settings

    return run_with_retry(_op)


# =============================================================================
# EARN RATE
# =============================================================================

def has_active_membership(customer_id: int, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    membership = (
        db.session.query(CustomerMembership.id)
        .filter(
            CustomerMembership.customer_id == customer_id,
            CustomerMembership.status == "ACTIVE",
            CustomerMembership.end_date >= now,
        )
        .first()
    )
    return membership is not None


def calculate_points_earned(amount_minor: int, customer_id: Optional[int] = None) -> int:
    """
    Points earned for a paid amount.

    Minor units are truncated to whole yen, then divided by the earn rate
    (member rate while the customer holds an active membership).
    e.g. ¥5000 / 50 = 100 points, ¥5000 / 40 = 125 points for members.
    """
    amount_minor = require_non_negative_int(amount_minor, "amount")
    settings = get_settings()

    earn_rate = settings.regular_earn_rate
    if customer_id is not None and has_active_membership(customer_id):
        earn_rate = settings.member_earn_rate

    amount_yen = amount_minor // 100
    return amount_yen // earn_rate


# =============================================================================
# LEDGER MUTATIONS
# =============================================================================

def _get_customer_locked(customer_id: int) -> Customer:
    customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
    if not customer:
        raise NotFoundError("Customer not found")
    return customer


def _append_transaction(
    customer: Customer,
    *,
    transaction_type: str,
    amount: int,
    new_balance: int,
    order_ref: Optional[str] = None,
    description: Optional[str] = None,
) -> PointsTransaction:
    customer.points_balance = new_balance
    txn = PointsTransaction(
        customer_id=customer.id,
        order_ref=order_ref,
        transaction_type=transaction_type,
        amount=amount,
        balance_after=new_balance,
        description=description,
    )
    db.session.add(txn)
    db.session.flush()
    return txn


def _finish(commit: bool) -> None:
    if commit:
        db.session.commit()
    else:
        db.session.flush()


def award_points(
    customer_id: int,
    amount: int,
    order_ref: Optional[str] = None,
    description: Optional[str] = None,
    *,
    commit: bool = True,
) -> PointsResult:
    """Credit points earned from a paid order (EARNED)."""
    amount = require_non_negative_int(amount, "amount")

    def _op() -> PointsResult:
        customer = _get_customer_locked(customer_id)
        new_balance = customer.points_balance + amount
        txn = _append_transaction(
            customer,
            transaction_type="EARNED",
            amount=amount,
            new_balance=new_balance,
            order_ref=order_ref,
            description=description or f"Earned from order {order_ref or 'N/A'}",
        )
        _finish(commit)
        return PointsResult(new_balance=new_balance, transaction=txn)

    return run_unit_of_work(_op, commit=commit)


def redeem_points(
    customer_id: int,
    points_to_redeem: int,
    order_ref: Optional[str] = None,
    description: Optional[str] = None,
    *,
    commit: bool = True,
) -> PointsResult:
    """
    Spend points against an order (REDEEMED).

    Raises InsufficientPointsError before any write when the balance is too
    small. Returns the yen value of the redeemed points.
    """
    points_to_redeem = require_positive_int(points_to_redeem, "points")
    points_per_yen = get_settings().points_per_yen

    def _op() -> PointsResult:
        customer = _get_customer_locked(customer_id)
        if customer.points_balance < points_to_redeem:
            raise InsufficientPointsError(customer.points_balance, points_to_redeem)

        new_balance = customer.points_balance - points_to_redeem
        txn = _append_transaction(
            customer,
            transaction_type="REDEEMED",
            amount=-points_to_redeem,
            new_balance=new_balance,
            order_ref=order_ref,
            description=description or f"Redeemed for order {order_ref or 'N/A'}",
        )
        _finish(commit)
        return PointsResult(
            new_balance=new_balance,
            transaction=txn,
            value_in_yen=points_to_redeem * points_per_yen,
        )

    return run_unit_of_work(_op, commit=commit)


def refund_points(
    customer_id: int,
    points_earned: int,
    order_ref: Optional[str] = None,
    description: Optional[str] = None,
    *,
    commit: bool = True,
) -> PointsResult:
    """
    Claw back points earned on a refunded order (REFUNDED).

    Best effort: if the customer already spent them, only what is left is
    deducted and the balance stops at zero.
    """
    points_earned = require_non_negative_int(points_earned, "points")

    def _op() -> PointsResult:
        customer = _get_customer_locked(customer_id)
        points_to_deduct = min(points_earned, customer.points_balance)
        if points_to_deduct < points_earned:
            logger.warning(
                "Points refund clamped for customer %s: requested %s, deducted %s",
                customer_id, points_earned, points_to_deduct,
            )
        new_balance = customer.points_balance - points_to_deduct
        txn = _append_transaction(
            customer,
            transaction_type="REFUNDED",
            amount=-points_to_deduct,
            new_balance=new_balance,
            order_ref=order_ref,
            description=description or f"Refunded from order {order_ref or 'N/A'}",
        )
        _finish(commit)
        return PointsResult(
            new_balance=new_balance,
            transaction=txn,
            points_deducted=points_to_deduct,
            requested_amount=points_earned,
        )

    return run_unit_of_work(_op, commit=commit)


def add_bonus_points(
    customer_id: int,
    bonus_amount: int,
    description: str,
    *,
    commit: bool = True,
) -> PointsResult:
    """Credit promotional points (BONUS), e.g. membership purchase or renewal."""
    bonus_amount = require_non_negative_int(bonus_amount, "bonus_amount")

    def _op() -> PointsResult:
        customer = _get_customer_locked(customer_id)
        new_balance = customer.points_balance + bonus_amount
        txn = _append_transaction(
            customer,
            transaction_type="BONUS",
            amount=bonus_amount,
            new_balance=new_balance,
            description=description,
        )
        _finish(commit)
        return PointsResult(new_balance=new_balance, transaction=txn)

    return run_unit_of_work(_op, commit=commit)


def adjust_points(customer_id: int, adjustment_amount: int, reason: str) -> PointsResult:
    """
    Manual signed correction by an admin (MANUAL_ADJUSTMENT).

    The balance is floored at zero rather than rejected. The ledger row
    records the delta that was actually applied so the ledger still sums to
    the balance; the requested amount is kept in the description.
    """
    adjustment_amount = coerce_int(adjustment_amount, "amount")
    if adjustment_amount == 0:
        raise ValidationError("amount must be non-zero")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("reason is required")

    def _op() -> PointsResult:
        customer = _get_customer_locked(customer_id)
        new_balance = max(0, customer.points_balance + adjustment_amount)
        applied = new_balance - customer.points_balance
        description = f"Manual adjustment: {reason}"
        if applied != adjustment_amount:
            logger.warning(
                "Points adjustment clamped at zero for customer %s: requested %s, applied %s",
                customer_id, adjustment_amount, applied,
            )
            description = f"{description} (requested {adjustment_amount}, clamped to {applied})"
        txn = _append_transaction(
            customer,
            transaction_type="MANUAL_ADJUSTMENT",
            amount=applied,
            new_balance=new_balance,
            description=description[:255],
        )
        db.session.commit()
        return PointsResult(new_balance=new_balance, transaction=txn, requested_amount=adjustment_amount)

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_customer(customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id).first()
    if not customer:
        raise NotFoundError("Customer not found")
    return customer


def get_points_history(customer_id: int, limit: int = 50) -> list[PointsTransaction]:
    """Newest first."""
    return list_transactions(customer_id=customer_id, limit=limit)


def list_transactions(
    customer_id: Optional[int] = None,
    order_ref: Optional[str] = None,
    limit: int = 50,
) -> list[PointsTransaction]:
    limit = max(1, min(int(limit), MAX_HISTORY_LIMIT))
    q = db.session.query(PointsTransaction)
    if customer_id is not None:
        q = q.filter(PointsTransaction.customer_id == customer_id)
    if order_ref:
        q = q.filter(PointsTransaction.order_ref == order_ref)
    return (
        q.order_by(PointsTransaction.created_at.desc(), PointsTransaction.id.desc())
        .limit(limit)
        .all()
    )


def get_total_points_liability() -> int:
    """Outstanding points across all customers (1 point = ¥1)."""
    total = db.session.query(func.coalesce(func.sum(Customer.points_balance), 0)).scalar()
    return int(total or 0)


# =============================================================================
# RECONCILIATION
# =============================================================================

def reconcile_customer(customer_id: int) -> dict:
    """
    Replay the ledger in id order and compare with the cached balance.

    Returns a report; "ok" is False on any drift.
    """
    customer = get_customer(customer_id)
    rows = (
        db.session.query(PointsTransaction)
        .filter_by(customer_id=customer_id)
        .order_by(PointsTransaction.id.asc())
        .all()
    )

    running = 0
    broken_rows = []
    for row in rows:
        running += row.amount
        if row.balance_after != running:
            broken_rows.append({"id": row.id, "expected": running, "balance_after": row.balance_after})
            running = row.balance_after

    ledger_sum = sum(row.amount for row in rows)
    return {
        "customer_id": customer.id,
        "cached_balance": customer.points_balance,
        "ledger_sum": ledger_sum,
        "transaction_count": len(rows),
        "broken_rows": broken_rows,
        "ok": ledger_sum == customer.points_balance and not broken_rows,
    }


def reconcile_all() -> list[dict]:
    """Reports for every customer whose ledger does not reconcile."""
    ids = [row.id for row in db.session.query(Customer.id).order_by(Customer.id).all()]
    reports = [reconcile_customer(customer_id) for customer_id in ids]
    return [r for r in reports if not r["ok"]]
