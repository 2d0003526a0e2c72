# Overview: Service-layer operations for the credit ledger; owns grant balances and their audit trail.

"""
Credit Ledger Service

WHY: Members spend prepaid credits on bookings. Credits arrive in grants
(batches with their own expiry), so "how many credits do I have" and
"which credit do I spend" are ledger questions, not a single counter.

DESIGN PRINCIPLES:
- CreditGrant.amount is mutated only here, only via conditional updates
  with a floor check (never read-then-write from application memory)
- FIFO debits: the oldest eligible grant is spent first so credits closest
  to expiry are not forfeited
- Every debit and refund appends exactly one CreditTransaction
- debit_one/refund_one never commit; they run inside the caller's unit of work
- InsufficientCreditError is a business outcome, never retried
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import case, func, or_

from ..extensions import db
from ..models import CreditGrant, CreditTransaction
from maslow.time_utils import utcnow
from .concurrency import conditional_update, lock_for_update


# =============================================================================
# STATUS / TYPE CONSTANTS
# =============================================================================

GRANT_STATUS_ACTIVE = "active"
GRANT_STATUS_USED = "used"
GRANT_STATUS_EXPIRED = "expired"
GRANT_STATUS_VOID = "refunded-void"

TXN_TYPE_PURCHASE = "purchase"
TXN_TYPE_BOOKING = "booking"
TXN_TYPE_REFUND = "refund"
TXN_TYPE_VOID = "void"

ALTERNATIVE_PAY_WITH_CASH = "pay_with_cash"
ALTERNATIVE_BUY_CREDITS = "buy_credits"


class LedgerError(Exception):
    """Raised for credit ledger operation errors."""
    pass


class InsufficientCreditError(LedgerError):
    """
    The user cannot cover the credit cost.

    Expected business outcome: surfaced to the user together with the ways
    out (pay with cash, buy credits). Never retried automatically.
    """

    def __init__(self, user_id: str, balance: int = 0, required: int = 1):
        self.user_id = user_id
        self.balance = balance
        self.required = required
        self.alternatives = (ALTERNATIVE_PAY_WITH_CASH, ALTERNATIVE_BUY_CREDITS)
        super().__init__(
            f"Insufficient credits: {required} required, {balance} available"
        )

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "code": "insufficient_credits",
            "balance": self.balance,
            "required": self.required,
            "alternatives": list(self.alternatives),
        }


@dataclass(frozen=True)
class DebitResult:
    grant_id: int
    new_grant_amount: int
    transaction_id: int


@dataclass(frozen=True)
class RefundResult:
    grant_id: int
    transaction_id: int


# =============================================================================
# BALANCE (read-only)
# =============================================================================

def _spendable_filter(user_id: str, as_of: datetime) -> list:
    return [
        CreditGrant.user_id == user_id,
        CreditGrant.status == GRANT_STATUS_ACTIVE,
        or_(CreditGrant.expires_at.is_(None), CreditGrant.expires_at > as_of),
    ]


def available_balance(user_id: str, as_of: datetime | None = None) -> int:
    """
    Sum of active, unexpired grant amounts.

    Side-effect free: safe to call from UI paths and pre-checks.
    """
    as_of = as_of or utcnow()
    total = db.session.query(
        func.coalesce(func.sum(CreditGrant.amount), 0)
    ).filter(*_spendable_filter(user_id, as_of)).scalar()
    return int(total or 0)


def list_grants(user_id: str, include_inactive: bool = True) -> list[CreditGrant]:
    query = db.session.query(CreditGrant).filter(CreditGrant.user_id == user_id)
    if not include_inactive:
        query = query.filter(CreditGrant.status == GRANT_STATUS_ACTIVE)
    return query.order_by(CreditGrant.issued_at.asc(), CreditGrant.id.asc()).all()


def list_transactions(user_id: str, limit: int = 50) -> list[CreditTransaction]:
    return (
        db.session.query(CreditTransaction)
        .filter(CreditTransaction.user_id == user_id)
        .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
        .limit(limit)
        .all()
    )


def get_booking_transactions(booking_id: int, transaction_type: str | None = None) -> list[CreditTransaction]:
    query = db.session.query(CreditTransaction).filter(CreditTransaction.booking_id == booking_id)
    if transaction_type:
        query = query.filter(CreditTransaction.transaction_type == transaction_type)
    return query.order_by(CreditTransaction.id.asc()).all()


# =============================================================================
# GRANT ISSUANCE
# =============================================================================

def issue_grant(
    user_id: str,
    amount: int,
    *,
    expires_at: datetime | None = None,
    issued_at: datetime | None = None,
    description: str | None = None,
    commit: bool = True,
) -> CreditGrant:
    """
    Issue a new active grant and log a purchase transaction.

    WHY: Card capture happens outside this service; whatever settles the
    payment calls this to put the credits on the member's ledger.
    """
    if amount <= 0:
        raise LedgerError("Grant amount must be positive")

    now = utcnow()
    grant = CreditGrant(
        user_id=user_id,
        amount=amount,
        status=GRANT_STATUS_ACTIVE,
        issued_at=issued_at or now,
        expires_at=expires_at,
        description=description,
    )
    db.session.add(grant)
    db.session.flush()

    _append_transaction(
        user_id=user_id,
        amount=amount,
        transaction_type=TXN_TYPE_PURCHASE,
        grant_id=grant.id,
        description=description or f"{amount} credit(s) issued",
    )

    if commit:
        db.session.commit()
    return grant


# =============================================================================
# DEBIT / REFUND
# =============================================================================

def debit_one(
    user_id: str,
    *,
    booking_id: int | None = None,
    description: str | None = None,
    as_of: datetime | None = None,
) -> DebitResult:
    """
    Spend exactly one credit from the oldest eligible grant.

    The decrement is a conditional UPDATE guarded by amount > 0, so two
    concurrent debits can never take the same unit below zero. If another
    writer drained the selected grant first, the next oldest is tried.

    Does not commit.

    Raises:
        InsufficientCreditError: no active, unexpired grant with amount > 0
    """
    as_of = as_of or utcnow()

    while True:
        grant = (
            lock_for_update(
                db.session.query(CreditGrant).filter(
                    *_spendable_filter(user_id, as_of),
                    CreditGrant.amount > 0,
                )
            )
            .order_by(CreditGrant.issued_at.asc(), CreditGrant.id.asc())
            .first()
        )
        if grant is None:
            raise InsufficientCreditError(user_id, balance=0, required=1)

        grant_id = grant.id
        matched = conditional_update(
            CreditGrant,
            [
                CreditGrant.id == grant_id,
                CreditGrant.status == GRANT_STATUS_ACTIVE,
                CreditGrant.amount > 0,
            ],
            {
                "amount": CreditGrant.amount - 1,
                "status": case(
                    (CreditGrant.amount == 1, GRANT_STATUS_USED),
                    else_=CreditGrant.status,
                ),
            },
        )
        if matched:
            break

    grant = db.session.get(CreditGrant, grant_id)
    txn = _append_transaction(
        user_id=user_id,
        amount=-1,
        transaction_type=TXN_TYPE_BOOKING,
        grant_id=grant_id,
        booking_id=booking_id,
        description=description,
    )
    return DebitResult(grant_id=grant_id, new_grant_amount=grant.amount, transaction_id=txn.id)


def refund_one(
    user_id: str,
    originating_grant_id: int | None = None,
    *,
    booking_id: int | None = None,
    description: str | None = None,
    as_of: datetime | None = None,
) -> RefundResult:
    """
    Return one credit to the user.

    Prefers the grant the credit came from (or, without a hint, the most
    recently debited grant) when it is still active and unexpired. Otherwise
    a new one-credit grant is issued carrying the origin grant's issue time
    and expiry, so the refunded credit keeps its place in FIFO order.
    An origin expiry already in the past is dropped (the credit never expires).

    Does not commit.
    """
    as_of = as_of or utcnow()
    hint = originating_grant_id or _most_recently_debited_grant_id(user_id)

    grant_id = None
    if hint:
        matched = conditional_update(
            CreditGrant,
            [CreditGrant.id == hint, *_spendable_filter(user_id, as_of)],
            {"amount": CreditGrant.amount + 1},
        )
        if matched:
            grant_id = hint

    if grant_id is None:
        origin = db.session.get(CreditGrant, hint) if hint else None
        keeps_expiry = origin is not None and origin.expires_at is not None and origin.expires_at > as_of
        grant = CreditGrant(
            user_id=user_id,
            amount=1,
            status=GRANT_STATUS_ACTIVE,
            issued_at=origin.issued_at if keeps_expiry else as_of,
            expires_at=origin.expires_at if keeps_expiry else None,
            description="Refunded credit",
        )
        db.session.add(grant)
        db.session.flush()
        grant_id = grant.id

    txn = _append_transaction(
        user_id=user_id,
        amount=1,
        transaction_type=TXN_TYPE_REFUND,
        grant_id=grant_id,
        booking_id=booking_id,
        description=description,
    )
    return RefundResult(grant_id=grant_id, transaction_id=txn.id)


# =============================================================================
# MAINTENANCE
# =============================================================================

def expire_grants(as_of: datetime | None = None) -> int:
    """Mark active grants whose expiry has passed as expired. Returns the count."""
    as_of = as_of or utcnow()
    count = conditional_update(
        CreditGrant,
        [
            CreditGrant.status == GRANT_STATUS_ACTIVE,
            CreditGrant.expires_at.is_not(None),
            CreditGrant.expires_at <= as_of,
        ],
        {"status": GRANT_STATUS_EXPIRED},
    )
    db.session.commit()
    return count


def void_grant(grant_id: int, reason: str) -> CreditGrant:
    """
    Void a grant (e.g. its purchase was reversed upstream).

    The remaining amount is written off with a single void transaction so
    the grant and its transactions still sum to zero.
    """
    grant = db.session.get(CreditGrant, grant_id)
    if not grant:
        raise LedgerError(f"Grant {grant_id} not found")
    if grant.status == GRANT_STATUS_VOID:
        raise LedgerError(f"Grant {grant_id} already voided")

    remaining = grant.amount
    user_id = grant.user_id
    matched = conditional_update(
        CreditGrant,
        [
            CreditGrant.id == grant_id,
            CreditGrant.status != GRANT_STATUS_VOID,
            CreditGrant.amount == remaining,
        ],
        {"status": GRANT_STATUS_VOID, "amount": 0},
    )
    if not matched:
        db.session.rollback()
        raise LedgerError(f"Grant {grant_id} changed while voiding; reload and try again")

    if remaining:
        _append_transaction(
            user_id=user_id,
            amount=-remaining,
            transaction_type=TXN_TYPE_VOID,
            grant_id=grant_id,
            description=reason,
        )
    db.session.commit()
    return db.session.get(CreditGrant, grant_id)


# =============================================================================
# INTERNAL HELPERS
# =============================================================================

def _most_recently_debited_grant_id(user_id: str) -> int | None:
    txn = (
        db.session.query(CreditTransaction)
        .filter(
            CreditTransaction.user_id == user_id,
            CreditTransaction.transaction_type == TXN_TYPE_BOOKING,
        )
        .order_by(CreditTransaction.id.desc())
        .first()
    )
    return txn.grant_id if txn else None


def _append_transaction(
    *,
    user_id: str,
    amount: int,
    transaction_type: str,
    grant_id: int | None = None,
    booking_id: int | None = None,
    description: str | None = None,
) -> CreditTransaction:
    """Append-only: no updates or deletes of existing transactions."""
    txn = CreditTransaction(
        user_id=user_id,
        amount=amount,
        transaction_type=transaction_type,
        grant_id=grant_id,
        booking_id=booking_id,
        description=description,
        created_at=utcnow(),
    )
    db.session.add(txn)
    db.session.flush()
    return txn
