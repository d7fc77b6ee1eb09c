from __future__ import annotations

from ..extensions import db
from boardcafe.time_utils import to_utc_z


class SeatSession(db.Model):
    """
    One customer occupying one seat.

    The timer is optional ("no-timer order only" sessions never get a
    started_at). billed_minutes/billed_charge are written once, when the
    timer is stopped, and are authoritative from then on.
    """
    __tablename__ = "seat_sessions"
    __table_args__ = (
        db.Index("ix_seat_sessions_seat_closed", "seat_label", "closed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    seat_label = db.Column(db.String(64), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    order_ref = db.Column(db.String(64), nullable=True, index=True)

    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    ended_at = db.Column(db.DateTime(timezone=True), nullable=True)

    billed_minutes = db.Column(db.Integer, nullable=True)
    billed_charge = db.Column(db.Integer, nullable=True)  # yen
    rate_applied = db.Column(db.String(16), nullable=True)

    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("seat_sessions", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_running(self) -> bool:
        return self.started_at is not None and self.ended_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "seat_label": self.seat_label,
            "customer_id": self.customer_id,
            "order_ref": self.order_ref,
            "started_at": to_utc_z(self.started_at),
            "ended_at": to_utc_z(self.ended_at),
            "billed_minutes": self.billed_minutes,
            "billed_charge": self.billed_charge,
            "rate_applied": self.rate_applied,
            "closed_at": to_utc_z(self.closed_at),
            "created_at": to_utc_z(self.created_at),
        }
