# Overview: Service-layer consistency checks across bookings, suites and the credit ledger.

"""
Reconciliation

WHY: The commit and cancel paths are built so that a failure leaves a
stuck suite or a pending refund rather than a double booking or a double
charge. Those leftovers need to be found by someone. This job reports
them; it never repairs anything on its own.

CHECKS:
- orphan_bookings: active credit bookings with no booking debit
- stuck_suites: suites marked unavailable with no active booking
- missing_refunds: cancelled credit bookings whose refund is pending or
  whose refund transactions do not cover credits_used
- ledger_drift: users whose transactions do not sum to their grant amounts
"""

from __future__ import annotations

from sqlalchemy import func

from flask import current_app

from ..extensions import db
from ..models import Booking, CreditGrant, CreditTransaction, Suite
from .booking_service import (
    ACTIVE_STATUSES,
    REFUND_STATUS_PENDING,
    STATUS_CANCELLED,
)
from .booking_wizard import PAYMENT_CREDITS
from .credit_ledger_service import TXN_TYPE_BOOKING, TXN_TYPE_REFUND


def _txn_totals(transaction_type: str) -> dict[int, int]:
    """Absolute credit movement per booking for one transaction type."""
    rows = (
        db.session.query(CreditTransaction.booking_id, func.sum(CreditTransaction.amount))
        .filter(
            CreditTransaction.transaction_type == transaction_type,
            CreditTransaction.booking_id.is_not(None),
        )
        .group_by(CreditTransaction.booking_id)
        .all()
    )
    return {booking_id: abs(int(total or 0)) for booking_id, total in rows}


def find_orphan_bookings() -> list[dict]:
    debited = _txn_totals(TXN_TYPE_BOOKING)
    bookings = (
        db.session.query(Booking)
        .filter(
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.payment_method == PAYMENT_CREDITS,
            Booking.credits_used > 0,
        )
        .all()
    )
    return [
        {"booking_id": b.id, "user_id": b.user_id, "credits_used": b.credits_used, "debited": debited.get(b.id, 0)}
        for b in bookings
        if debited.get(b.id, 0) < b.credits_used
    ]


def find_stuck_suites() -> list[dict]:
    held = {
        suite_id
        for (suite_id,) in db.session.query(Booking.suite_id)
        .filter(Booking.status.in_(ACTIVE_STATUSES))
        .distinct()
    }
    suites = db.session.query(Suite).filter(Suite.is_available.is_(False)).all()
    return [
        {"suite_id": s.id, "location_id": s.location_id, "suite_number": s.suite_number}
        for s in suites
        if s.id not in held
    ]


def find_missing_refunds() -> list[dict]:
    refunded = _txn_totals(TXN_TYPE_REFUND)
    bookings = (
        db.session.query(Booking)
        .filter(Booking.status == STATUS_CANCELLED, Booking.credits_used > 0)
        .all()
    )
    return [
        {
            "booking_id": b.id,
            "user_id": b.user_id,
            "credits_used": b.credits_used,
            "refunded": refunded.get(b.id, 0),
            "refund_status": b.refund_status,
        }
        for b in bookings
        if b.refund_status == REFUND_STATUS_PENDING or refunded.get(b.id, 0) < b.credits_used
    ]


def find_ledger_drift() -> list[dict]:
    """
    Every change to a grant amount appends a transaction of the same size,
    so per user sum(transactions) == sum(grant amounts). Expiry only changes
    the status, so expired grants count on both sides.
    """
    grant_totals = dict(
        db.session.query(CreditGrant.user_id, func.sum(CreditGrant.amount))
        .group_by(CreditGrant.user_id)
        .all()
    )
    txn_totals = dict(
        db.session.query(CreditTransaction.user_id, func.sum(CreditTransaction.amount))
        .group_by(CreditTransaction.user_id)
        .all()
    )

    drift = []
    for user_id in sorted(set(grant_totals) | set(txn_totals)):
        granted = int(grant_totals.get(user_id) or 0)
        logged = int(txn_totals.get(user_id) or 0)
        if granted != logged:
            drift.append({"user_id": user_id, "grant_total": granted, "transaction_total": logged})
    return drift


def run_reconciliation() -> dict:
    """
    Run every check and log each discrepancy at ERROR.

    Returns a report dict with one list per check and an overall ok flag.
    """
    report = {
        "orphan_bookings": find_orphan_bookings(),
        "stuck_suites": find_stuck_suites(),
        "missing_refunds": find_missing_refunds(),
        "ledger_drift": find_ledger_drift(),
    }

    for check, findings in report.items():
        for finding in findings:
            current_app.logger.error("Reconciliation %s: %s", check, finding)

    report["ok"] = not any(report.values())
    return report
