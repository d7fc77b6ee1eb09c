from __future__ import annotations

from ..extensions import db
from boardcafe.time_utils import to_utc_z


MEMBERSHIP_STATUSES = ("ACTIVE", "EXPIRED", "CANCELLED")


class MembershipPlan(db.Model):
    """
    Purchasable subscription tier.

    price and overage_rate are minor units (100 = ¥1). Plans are soft-deleted
    via is_active; edits never rewrite existing memberships.
    """
    __tablename__ = "membership_plans"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_membership_plans_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)

    price = db.Column(db.Integer, nullable=False)
    hours_included = db.Column(db.Float, nullable=False, default=0)
    overage_rate = db.Column(db.Integer, nullable=False, default=0)
    points_on_purchase = db.Column(db.Integer, nullable=False, default=0)
    earn_rate_denominator = db.Column(db.Integer, nullable=False, default=40)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "hours_included": self.hours_included,
            "overage_rate": self.overage_rate,
            "points_on_purchase": self.points_on_purchase,
            "earn_rate_denominator": self.earn_rate_denominator,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CustomerMembership(db.Model):
    """
    One subscription period owned by a customer.

    STATUS:
    - ACTIVE: Current period; at most one per customer
    - EXPIRED: Period ended (or superseded by a renewal)
    - CANCELLED: Terminal, auto_renew forced off

    hours_used only grows within a period; a renewal starts a new row.
    """
    __tablename__ = "customer_memberships"
    __table_args__ = (
        db.Index("ix_memberships_customer_status", "customer_id", "status"),
        db.Index("ix_memberships_status_end", "status", "end_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    plan_id = db.Column(db.Integer, db.ForeignKey("membership_plans.id"), nullable=False, index=True)

    start_date = db.Column(db.DateTime(timezone=True), nullable=False)
    end_date = db.Column(db.DateTime(timezone=True), nullable=False)

    hours_used = db.Column(db.Float, nullable=False, default=0)
    carried_over_hours = db.Column(db.Float, nullable=False, default=0)
    auto_renew = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(db.String(16), nullable=False, default="ACTIVE", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("memberships", lazy=True))
    plan = db.relationship("MembershipPlan", backref=db.backref("memberships", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_plan: bool = False) -> dict:
        data = {
            "id": self.id,
            "customer_id": self.customer_id,
            "plan_id": self.plan_id,
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "hours_used": self.hours_used,
            "carried_over_hours": self.carried_over_hours,
            "auto_renew": self.auto_renew,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_plan and self.plan is not None:
            data["plan"] = self.plan.to_dict()
        return data


class MembershipUsage(db.Model):
    """
    Append-only record of hours consumed against a membership.

    IMMUTABLE: the hours_used of all rows for a membership sum to the
    membership's hours_used.
    """
    __tablename__ = "membership_usages"
    __table_args__ = (
        db.Index("ix_membership_usages_membership_created", "membership_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    membership_id = db.Column(db.Integer, db.ForeignKey("customer_memberships.id"), nullable=False, index=True)
    seat_session_id = db.Column(db.Integer, db.ForeignKey("seat_sessions.id"), nullable=True, index=True)

    hours_used = db.Column(db.Float, nullable=False)
    overage_hours = db.Column(db.Float, nullable=False, default=0)
    overage_charge = db.Column(db.Integer, nullable=False, default=0)
    description = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    membership = db.relationship("CustomerMembership", backref=db.backref("usages", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "membership_id": self.membership_id,
            "seat_session_id": self.seat_session_id,
            "hours_used": self.hours_used,
            "overage_hours": self.overage_hours,
            "overage_charge": self.overage_charge,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }
