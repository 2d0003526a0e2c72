from __future__ import annotations

from ..extensions import db
from maslow.time_utils import to_utc_z


class Booking(db.Model):
    """
    A reservation binding a user, a suite and a time window.

    STATUS (monotonic):
    - confirmed -> checked_in -> completed
    - confirmed -> cancelled

    REFUND STATUS:
    - NULL while the booking is active
    - pending: cancelled, refund not yet committed
    - refunded: refund transaction(s) committed
    - not_applicable: cash booking, nothing to refund

    IMMUTABLE: suite_id, start_time, end_time never change after insert.
    Completed and cancelled bookings are never modified again.
    """
    __tablename__ = "bookings"
    __table_args__ = (
        db.Index("ix_bookings_user_start", "user_id", "start_time"),
        db.Index("ix_bookings_suite_status", "suite_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    suite_id = db.Column(db.Integer, db.ForeignKey("suites.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    start_time = db.Column(db.DateTime(timezone=True), nullable=False)
    end_time = db.Column(db.DateTime(timezone=True), nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="confirmed", index=True)
    payment_method = db.Column(db.String(16), nullable=False, default="credits")
    credits_used = db.Column(db.Integer, nullable=False, default=1)
    refund_status = db.Column(db.String(16), nullable=True, index=True)

    preferences = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    checked_in_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    suite = db.relationship("Suite", backref=db.backref("bookings", lazy=True))
    location = db.relationship("Location", backref=db.backref("bookings", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Booking id={self.id} suite_id={self.suite_id} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "suite_id": self.suite_id,
            "location_id": self.location_id,
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time),
            "duration_minutes": self.duration_minutes,
            "status": self.status,
            "payment_method": self.payment_method,
            "credits_used": self.credits_used,
            "refund_status": self.refund_status,
            "preferences": dict(self.preferences or {}),
            "created_at": to_utc_z(self.created_at),
            "checked_in_at": to_utc_z(self.checked_in_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
        }
