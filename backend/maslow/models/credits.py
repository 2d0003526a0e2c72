from __future__ import annotations

from ..extensions import db
from maslow.time_utils import to_utc_z


class CreditGrant(db.Model):
    """
    A batch of prepaid credits issued to a user at one time.

    STATUS: active, used, expired, refunded-void

    INVARIANTS:
    - amount is never negative (conditional decrement with a floor check)
    - amount 0 means exhausted; the grant is never selected for a debit
    - rows are never deleted, only driven to amount 0 / status used
    """
    __tablename__ = "credits"
    __table_args__ = (
        db.CheckConstraint("amount >= 0", name="ck_credits_amount_non_negative"),
        db.Index("ix_credits_user_status_issued", "user_id", "status", "issued_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="active", index=True)
    issued_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)  # NULL = never expires
    description = db.Column(db.String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<CreditGrant id={self.id} user_id={self.user_id!r} amount={self.amount} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "amount": self.amount,
            "status": self.status,
            "issued_at": to_utc_z(self.issued_at),
            "expires_at": to_utc_z(self.expires_at),
            "description": self.description,
        }


class CreditTransaction(db.Model):
    """
    Append-only audit record of ledger movement.

    TRANSACTION TYPES:
    - purchase: grant issued (+amount)
    - booking: credit spent on a booking (-1)
    - refund: credit returned after cancellation (+1)
    - void: grant voided (-remaining amount)

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "credit_transactions"
    __table_args__ = (
        db.Index("ix_credit_txns_user_created", "user_id", "created_at"),
        db.Index("ix_credit_txns_booking_type", "booking_id", "transaction_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=True, index=True)
    grant_id = db.Column(db.Integer, db.ForeignKey("credits.id"), nullable=True, index=True)

    amount = db.Column(db.Integer, nullable=False)  # Negative for debit, positive for refund
    transaction_type = db.Column(db.String(16), nullable=False, index=True)
    description = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    grant = db.relationship("CreditGrant", backref=db.backref("transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "booking_id": self.booking_id,
            "grant_id": self.grant_id,
            "amount": self.amount,
            "transaction_type": self.transaction_type,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }
