from __future__ import annotations

from ..extensions import db
from boardcafe.time_utils import to_utc_z


POINTS_TRANSACTION_TYPES = ("EARNED", "REDEEMED", "REFUNDED", "BONUS", "MANUAL_ADJUSTMENT")


class Customer(db.Model):
    """
    Customer master data for loyalty and memberships.

    points_balance is a denormalized cache of the points ledger. It is only
    ever written in the same unit of work that appends a PointsTransaction.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_customers_email"),
        db.CheckConstraint("points_balance >= 0", name="ck_customers_points_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    display_name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    points_balance = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "email": self.email,
            "phone": self.phone,
            "points_balance": self.points_balance,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class PointsTransaction(db.Model):
    """
    Append-only ledger of loyalty point events.

    TRANSACTION TYPES:
    - EARNED: Points earned from a paid order
    - REDEEMED: Points spent against an order (negative)
    - REFUNDED: Earned points clawed back after an order refund (negative)
    - BONUS: Membership purchase/renewal bonus
    - MANUAL_ADJUSTMENT: Admin correction (signed)

    amount is the delta actually applied to the balance; balance_after is
    the resulting balance. IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "points_transactions"
    __table_args__ = (
        db.Index("ix_points_txns_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    order_ref = db.Column(db.String(64), nullable=True, index=True)

    transaction_type = db.Column("type", db.String(32), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False)
    balance_after = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    customer = db.relationship("Customer", backref=db.backref("points_transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "order_ref": self.order_ref,
            "type": self.transaction_type,
            "amount": self.amount,
            "balance_after": self.balance_after,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class PointsSettings(db.Model):
    """
    Singleton loyalty configuration (id = 'default').

    Earn rates are yen spent per point earned; points_per_yen is the yen
    value of one point on redemption.
    """
    __tablename__ = "points_settings"

    id = db.Column(db.String(16), primary_key=True, default="default")
    regular_earn_rate = db.Column(db.Integer, nullable=False, default=50)
    member_earn_rate = db.Column(db.Integer, nullable=False, default=40)
    points_per_yen = db.Column(db.Integer, nullable=False, default=1)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "regular_earn_rate": self.regular_earn_rate,
            "member_earn_rate": self.member_earn_rate,
            "points_per_yen": self.points_per_yen,
            "updated_at": to_utc_z(self.updated_at),
        }
