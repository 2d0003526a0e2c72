# Overview: Service-layer operations for bookings; the commit and cancellation sequences.

"""
Booking Transaction Coordinator

WHY: A booking touches three things that must agree: the suite's
availability flag, the booking row, and the member's credit ledger.
This module is the only place that changes them together.

COMMIT (one unit of work, all-or-nothing from the caller's view):
1. Re-validate preconditions (suite at this location, operational,
   balance covers the cost)
2. availability_service.reserve(suite) - the lock; a loser gets
   SuiteUnavailableError before the ledger is touched
3. Insert the booking as confirmed
4. credit_ledger_service.debit_one per credit, each appending the
   booking transaction linked to the booking id
Any failure rolls the whole unit back: the suite is available again and
no booking row persists. A confirmed booking never exists without its debit.

CANCEL (booking status first, then the money):
1. confirmed -> cancelled, committed on its own. Authoritative: from here
   on the booking is immutable and never un-cancelled.
2. refund the snapshotted credits_used (one refund_one per credit)
3. release the suite
4. refund transactions are appended by refund_one
If 2-4 fail the booking stays cancelled with refund_status 'pending' and
the caller is told "refund pending / contact support". Nothing is retried
automatically; support settles it with settle_pending_refund.

Failure bias: a stuck suite or a pending refund is preferable to a
double-booked suite or a double charge.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Booking, Location, Suite
from maslow.time_utils import utcnow
from maslow.validation import ValidationError
from . import availability_service, credit_ledger_service
from .availability_service import AlreadyReservedError
from .booking_wizard import PAYMENT_CASH, BookingDraft, validate_draft
from .concurrency import conditional_update
from .credit_ledger_service import InsufficientCreditError
from .session_service import SessionContext


class BookingError(Exception):
    """Raised for booking operation errors."""
    pass


class SuiteUnavailableError(BookingError):
    def __init__(self, suite_id: int, reason: str = "no longer available"):
        self.suite_id = suite_id
        super().__init__(f"Suite {suite_id} is {reason}")


class CancelError(BookingError):
    pass


class BookingNotFoundError(BookingError):
    def __init__(self, booking_id: int):
        self.booking_id = booking_id
        super().__init__(f"Booking {booking_id} not found")


# =============================================================================
# STATUS (CONSTANTS)
# =============================================================================

STATUS_CONFIRMED = "confirmed"
STATUS_CHECKED_IN = "checked_in"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"

ACTIVE_STATUSES = (STATUS_CONFIRMED, STATUS_CHECKED_IN)

REFUND_STATUS_PENDING = "pending"
REFUND_STATUS_REFUNDED = "refunded"
REFUND_STATUS_NOT_APPLICABLE = "not_applicable"

CANCEL_OUTCOME_CANCELLED = "cancelled"
CANCEL_OUTCOME_REFUND_PENDING = "refund_pending"


@dataclass(frozen=True)
class CancellationResult:
    booking_id: int
    outcome: str
    refunded_credits: int
    message: str

    @property
    def refund_pending(self) -> bool:
        return self.outcome == CANCEL_OUTCOME_REFUND_PENDING

    def to_dict(self) -> dict:
        return {
            "booking_id": self.booking_id,
            "status": self.outcome,
            "refunded_credits": self.refunded_credits,
            "message": self.message,
        }


# =============================================================================
# COMMIT
# =============================================================================

def commit_booking(draft: BookingDraft, identity: SessionContext) -> Booking:
    """
    Turn a reviewed draft into a confirmed booking.

    Args:
        draft: the wizard's draft (location, suite, slot, duration, preferences)
        identity: the caller's session context

    Returns:
        The committed Booking

    Raises:
        ValidationError / wizard errors: malformed or incomplete draft
        BookingError: suite does not belong to the location
        SuiteUnavailableError: suite not operational or reserved by someone else
        InsufficientCreditError: balance does not cover the credit cost
    """
    user_id = identity.get_current_user_id()
    if not user_id:
        raise BookingError("Not authenticated")

    validate_draft(draft)
    start_time = draft.start_time
    if start_time < utcnow():
        raise ValidationError("Booking start time is in the past")

    # 1. Preconditions (reads only; the first write below is the reserve)
    suite = db.session.get(Suite, draft.suite_id)
    if not suite or suite.location_id != draft.location_id:
        raise BookingError(f"Suite {draft.suite_id} not found at location {draft.location_id}")
    location = db.session.get(Location, draft.location_id)
    if not location or not location.is_active:
        raise BookingError(f"Location {draft.location_id} is not open for bookings")
    if not suite.is_operational:
        raise SuiteUnavailableError(suite.id, "out of service")

    offered = set(suite.available_samples or [])
    unknown = [s for s in draft.preferences.samples if s not in offered]
    if unknown:
        raise ValidationError(f"Samples not stocked in this suite: {', '.join(unknown)}")

    credit_cost = 0 if draft.payment_method == PAYMENT_CASH else current_app.config["BOOKING_CREDIT_COST"]
    if credit_cost:
        balance = credit_ledger_service.available_balance(user_id)
        if balance < credit_cost:
            raise InsufficientCreditError(user_id, balance=balance, required=credit_cost)

    suite_id = suite.id
    location_name = location.name

    try:
        # 2. Lock the suite
        try:
            availability_service.reserve(suite_id)
        except AlreadyReservedError as exc:
            raise SuiteUnavailableError(suite_id) from exc

        # 3. Booking row
        booking = Booking(
            user_id=user_id,
            suite_id=suite_id,
            location_id=draft.location_id,
            start_time=start_time,
            end_time=draft.end_time,
            duration_minutes=draft.duration,
            status=STATUS_CONFIRMED,
            payment_method=draft.payment_method,
            credits_used=credit_cost,
            preferences=draft.preferences.to_dict(),
        )
        db.session.add(booking)
        db.session.flush()
        booking_id = booking.id

        # 4. Debit (each debit appends its booking transaction)
        for _ in range(credit_cost):
            credit_ledger_service.debit_one(
                user_id,
                booking_id=booking_id,
                description=f"Booking at {location_name}",
            )

        db.session.commit()
    except (SuiteUnavailableError, InsufficientCreditError) as exc:
        db.session.rollback()
        current_app.logger.info("Booking for suite %s by user %s rolled back: %s", suite_id, user_id, exc)
        raise
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Booking commit failed for suite %s by user %s", suite_id, user_id)
        raise

    current_app.logger.info(
        "Booking %s confirmed: suite %s, user %s, %s credit(s)", booking_id, suite_id, user_id, credit_cost
    )
    return db.session.get(Booking, booking_id)


# =============================================================================
# CANCELLATION
# =============================================================================

def cancel_booking(booking_id: int, identity: SessionContext) -> CancellationResult:
    """
    Cancel a confirmed booking and return its credits.

    Members may cancel their own bookings; staff may cancel any.

    Returns:
        CancellationResult with outcome 'cancelled' (refund and release done)
        or 'refund_pending' (booking cancelled, refund needs support)

    Raises:
        BookingNotFoundError: no such booking for this user
        CancelError: booking is not confirmed
    """
    booking = db.session.get(Booking, booking_id)
    if not booking or (booking.user_id != identity.get_current_user_id() and not identity.is_staff):
        raise BookingNotFoundError(booking_id)
    if booking.status != STATUS_CONFIRMED:
        raise CancelError(f"Only confirmed bookings can be cancelled (status: {booking.status})")

    credits_used = booking.credits_used

    # 1. Authoritative status change, committed before any money or suite moves
    matched = conditional_update(
        Booking,
        [Booking.id == booking_id, Booking.status == STATUS_CONFIRMED],
        {
            "status": STATUS_CANCELLED,
            "cancelled_at": utcnow(),
            "refund_status": REFUND_STATUS_PENDING if credits_used else REFUND_STATUS_NOT_APPLICABLE,
            "version_id": Booking.version_id + 1,
        },
    )
    if not matched:
        db.session.rollback()
        raise CancelError(f"Booking {booking_id} is no longer confirmed")
    db.session.commit()
    current_app.logger.info("Booking %s cancelled by %s", booking_id, identity.get_current_user_id())

    # 2-4. Refund, release, transactions
    try:
        refunded = _refund_and_release(booking_id)
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Refund pending for cancelled booking %s (%s credit(s)); support action required",
            booking_id, credits_used,
        )
        return CancellationResult(
            booking_id=booking_id,
            outcome=CANCEL_OUTCOME_REFUND_PENDING,
            refunded_credits=0,
            message="Booking cancelled. Your refund is pending; please contact support.",
        )

    return CancellationResult(
        booking_id=booking_id,
        outcome=CANCEL_OUTCOME_CANCELLED,
        refunded_credits=refunded,
        message=f"{refunded} credit(s) have been refunded to your account.",
    )


def settle_pending_refund(booking_id: int) -> CancellationResult:
    """
    Complete a refund left pending by a failed cancellation.

    Support action, never called automatically.

    Raises:
        CancelError: booking not cancelled or refund not pending
    """
    booking = db.session.get(Booking, booking_id)
    if not booking:
        raise BookingNotFoundError(booking_id)
    if booking.status != STATUS_CANCELLED or booking.refund_status != REFUND_STATUS_PENDING:
        raise CancelError(f"Booking {booking_id} has no pending refund")

    try:
        refunded = _refund_and_release(booking_id)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Settling refund for booking %s failed", booking_id)
        raise

    current_app.logger.info("Pending refund for booking %s settled (%s credit(s))", booking_id, refunded)
    return CancellationResult(
        booking_id=booking_id,
        outcome=CANCEL_OUTCOME_CANCELLED,
        refunded_credits=refunded,
        message=f"{refunded} credit(s) have been refunded to your account.",
    )


def _refund_and_release(booking_id: int) -> int:
    """
    Refund the booking's snapshotted credits and free its suite, in one commit.

    Returns the number of credits refunded.
    """
    booking = db.session.get(Booking, booking_id)
    owner = booking.user_id
    suite_id = booking.suite_id
    credits_used = booking.credits_used

    if credits_used:
        # Claim the pending refund first so two settlers cannot both refund
        claimed = conditional_update(
            Booking,
            [Booking.id == booking_id, Booking.refund_status == REFUND_STATUS_PENDING],
            {"refund_status": REFUND_STATUS_REFUNDED, "version_id": Booking.version_id + 1},
        )
        if not claimed:
            raise CancelError(f"Refund for booking {booking_id} already settled")

        debits = credit_ledger_service.get_booking_transactions(
            booking_id, credit_ledger_service.TXN_TYPE_BOOKING
        )
        for i in range(credits_used):
            hint = debits[i].grant_id if i < len(debits) else None
            credit_ledger_service.refund_one(
                owner,
                hint,
                booking_id=booking_id,
                description=f"Refund for cancelled booking {booking_id}",
            )

    availability_service.release(suite_id)
    db.session.commit()
    return credits_used


# =============================================================================
# CHECK-IN / COMPLETION (staff)
# =============================================================================

def check_in_booking(booking_id: int) -> Booking:
    """confirmed -> checked_in."""
    booking = db.session.get(Booking, booking_id)
    if not booking:
        raise BookingNotFoundError(booking_id)
    if booking.status != STATUS_CONFIRMED:
        raise BookingError(f"Cannot check in booking with status {booking.status}")

    booking.status = STATUS_CHECKED_IN
    booking.checked_in_at = utcnow()
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return booking


def complete_booking(booking_id: int) -> Booking:
    """checked_in -> completed; the suite is released for the next member."""
    booking = db.session.get(Booking, booking_id)
    if not booking:
        raise BookingNotFoundError(booking_id)
    if booking.status != STATUS_CHECKED_IN:
        raise BookingError(f"Cannot complete booking with status {booking.status}")

    booking.status = STATUS_COMPLETED
    booking.completed_at = utcnow()
    suite_id = booking.suite_id
    try:
        availability_service.release(suite_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return db.session.get(Booking, booking_id)


# =============================================================================
# QUERIES
# =============================================================================

def get_booking(booking_id: int, user_id: str | None = None) -> Booking | None:
    """Fetch a booking; with user_id, only if it belongs to that user."""
    booking = db.session.get(Booking, booking_id)
    if booking and user_id is not None and booking.user_id != user_id:
        return None
    return booking


def list_upcoming_bookings(user_id: str, now: datetime | None = None) -> list[Booking]:
    now = now or utcnow()
    return (
        db.session.query(Booking)
        .filter(
            Booking.user_id == user_id,
            Booking.start_time >= now,
            Booking.status != STATUS_CANCELLED,
        )
        .order_by(Booking.start_time.asc())
        .all()
    )


def list_past_bookings(user_id: str, now: datetime | None = None, limit: int = 10) -> list[Booking]:
    now = now or utcnow()
    return (
        db.session.query(Booking)
        .filter(Booking.user_id == user_id, Booking.start_time < now)
        .order_by(Booking.start_time.desc())
        .limit(limit)
        .all()
    )
