# Overview: Pytest coverage for the credit ledger: balances, FIFO debits, refunds, expiry and voids.

"""
Credit Ledger Tests

Covers:
- Balance counts only active, unexpired grants
- Debits spend the oldest eligible grant first and never go below zero
- Every debit/refund appends exactly one transaction
- Refunds return to the originating grant when it can still be spent,
  otherwise a new grant carries the origin's expiry forward
- Expiry and void maintenance keep grants and transactions in balance
"""

from datetime import timedelta

import pytest
from sqlalchemy import func

from maslow.extensions import db
from maslow.models import CreditGrant, CreditTransaction
from maslow.services import credit_ledger_service as ledger
from maslow.services.credit_ledger_service import InsufficientCreditError, LedgerError
from maslow.time_utils import utcnow


USER = "member-1"


def _txn_total(user_id):
    return db.session.query(func.coalesce(func.sum(CreditTransaction.amount), 0)).filter(
        CreditTransaction.user_id == user_id
    ).scalar()


def _grant_total(user_id):
    return db.session.query(func.coalesce(func.sum(CreditGrant.amount), 0)).filter(
        CreditGrant.user_id == user_id
    ).scalar()


class TestBalance:

    def test_empty_ledger_has_zero_balance(self, db_session):
        assert ledger.available_balance(USER) == 0

    def test_balance_excludes_expired_and_other_users(self, db_session, grant_credits):
        now = utcnow()
        grant_credits(USER, 3)
        grant_credits(USER, 2, expires_at=now - timedelta(days=1))
        grant_credits(USER, 4, expires_at=now + timedelta(days=30))
        grant_credits("someone-else", 10)

        assert ledger.available_balance(USER) == 7

    def test_balance_as_of_future_drops_grants_expiring_before_then(self, db_session, grant_credits):
        now = utcnow()
        grant_credits(USER, 2, expires_at=now + timedelta(days=1))
        grant_credits(USER, 1)

        assert ledger.available_balance(USER, as_of=now + timedelta(days=2)) == 1

    def test_issue_grant_appends_purchase_transaction(self, db_session, grant_credits):
        grant = grant_credits(USER, 5, description="5-pack")

        txns = ledger.list_transactions(USER)
        assert len(txns) == 1
        assert txns[0].transaction_type == ledger.TXN_TYPE_PURCHASE
        assert txns[0].amount == 5
        assert txns[0].grant_id == grant.id

    def test_issue_grant_rejects_non_positive_amount(self, db_session):
        with pytest.raises(LedgerError):
            ledger.issue_grant(USER, 0)


class TestDebit:

    def test_debit_spends_oldest_grant_first(self, db_session, grant_credits):
        now = utcnow()
        newer = grant_credits(USER, 2, issued_at=now - timedelta(days=1))
        older = grant_credits(USER, 1, issued_at=now - timedelta(days=10))
        older_id, newer_id = older.id, newer.id

        first = ledger.debit_one(USER)
        second = ledger.debit_one(USER)
        db_session.commit()

        assert first.grant_id == older_id
        assert first.new_grant_amount == 0
        assert second.grant_id == newer_id
        assert db.session.get(CreditGrant, older_id).status == ledger.GRANT_STATUS_USED
        assert db.session.get(CreditGrant, newer_id).status == ledger.GRANT_STATUS_ACTIVE
        assert ledger.available_balance(USER) == 1

    def test_debit_skips_expired_grants(self, db_session, grant_credits):
        now = utcnow()
        grant_credits(USER, 1, issued_at=now - timedelta(days=60), expires_at=now - timedelta(days=1))
        live = grant_credits(USER, 1, issued_at=now - timedelta(days=5))
        live_id = live.id

        result = ledger.debit_one(USER)
        assert result.grant_id == live_id

    def test_debit_appends_booking_transaction(self, db_session, grant_credits):
        grant = grant_credits(USER, 2)
        grant_id = grant.id

        result = ledger.debit_one(USER, booking_id=None, description="Booking at Union Square")
        db_session.commit()

        txn = db.session.get(CreditTransaction, result.transaction_id)
        assert txn.amount == -1
        assert txn.transaction_type == ledger.TXN_TYPE_BOOKING
        assert txn.grant_id == grant_id

    def test_debit_with_no_credits_raises_and_logs_nothing(self, db_session):
        with pytest.raises(InsufficientCreditError) as exc_info:
            ledger.debit_one(USER)

        assert exc_info.value.required == 1
        assert db.session.query(CreditTransaction).count() == 0

    def test_amount_never_goes_negative(self, db_session, grant_credits):
        grant = grant_credits(USER, 1)
        grant_id = grant.id

        ledger.debit_one(USER)
        with pytest.raises(InsufficientCreditError):
            ledger.debit_one(USER)
        db_session.commit()

        assert db.session.get(CreditGrant, grant_id).amount == 0

    def test_insufficient_credit_error_offers_alternatives(self):
        err = InsufficientCreditError(USER, balance=0, required=1)
        body = err.to_dict()

        assert body["code"] == "insufficient_credits"
        assert body["alternatives"] == ["pay_with_cash", "buy_credits"]
        assert body["balance"] == 0
        assert body["required"] == 1


class TestRefund:

    def test_refund_returns_to_originating_grant_when_spendable(self, db_session, grant_credits):
        grant = grant_credits(USER, 2)
        grant_id = grant.id
        debit = ledger.debit_one(USER)

        refund = ledger.refund_one(USER, debit.grant_id)
        db_session.commit()

        assert refund.grant_id == grant_id
        assert db.session.get(CreditGrant, grant_id).amount == 2
        assert db.session.query(CreditGrant).count() == 1

    def test_refund_without_hint_uses_most_recently_debited_grant(self, db_session, grant_credits):
        now = utcnow()
        grant_credits(USER, 1, issued_at=now - timedelta(days=3))
        second = grant_credits(USER, 3, issued_at=now - timedelta(days=1))
        second_id = second.id
        ledger.debit_one(USER)
        ledger.debit_one(USER)

        refund = ledger.refund_one(USER)
        assert refund.grant_id == second_id

    def test_refund_into_used_grant_issues_new_grant_with_origin_expiry(self, db_session, grant_credits):
        now = utcnow()
        expires_at = now + timedelta(days=30)
        issued_at = now - timedelta(days=2)
        origin = grant_credits(USER, 1, issued_at=issued_at, expires_at=expires_at)
        origin_id = origin.id
        debit = ledger.debit_one(USER)

        refund = ledger.refund_one(USER, debit.grant_id)
        db_session.commit()

        assert refund.grant_id != origin_id
        new_grant = db.session.get(CreditGrant, refund.grant_id)
        assert new_grant.amount == 1
        assert new_grant.status == ledger.GRANT_STATUS_ACTIVE
        assert new_grant.expires_at == expires_at
        assert new_grant.issued_at == issued_at
        assert ledger.available_balance(USER) == 1

    def test_refund_after_origin_expired_never_expires(self, db_session, grant_credits):
        now = utcnow()
        grant_credits(USER, 1, expires_at=now + timedelta(hours=1))
        debit = ledger.debit_one(USER)

        later = now + timedelta(hours=2)
        refund = ledger.refund_one(USER, debit.grant_id, as_of=later)
        db_session.commit()

        new_grant = db.session.get(CreditGrant, refund.grant_id)
        assert new_grant.expires_at is None
        assert ledger.available_balance(USER, as_of=later) == 1

    def test_refund_appends_refund_transaction(self, db_session, grant_credits):
        grant_credits(USER, 1)
        debit = ledger.debit_one(USER)

        refund = ledger.refund_one(USER, debit.grant_id, description="Refund for cancelled booking")
        db_session.commit()

        txn = db.session.get(CreditTransaction, refund.transaction_id)
        assert txn.amount == 1
        assert txn.transaction_type == ledger.TXN_TYPE_REFUND


class TestMaintenance:

    def test_expire_grants_marks_only_past_expiry(self, db_session, grant_credits):
        now = utcnow()
        stale = grant_credits(USER, 2, expires_at=now - timedelta(minutes=1))
        fresh = grant_credits(USER, 2, expires_at=now + timedelta(days=1))
        forever = grant_credits(USER, 2)
        stale_id, fresh_id, forever_id = stale.id, fresh.id, forever.id

        assert ledger.expire_grants(now) == 1
        assert db.session.get(CreditGrant, stale_id).status == ledger.GRANT_STATUS_EXPIRED
        assert db.session.get(CreditGrant, fresh_id).status == ledger.GRANT_STATUS_ACTIVE
        assert db.session.get(CreditGrant, forever_id).status == ledger.GRANT_STATUS_ACTIVE
        assert ledger.expire_grants(now) == 0

    def test_void_grant_writes_off_remaining_amount(self, db_session, grant_credits):
        grant = grant_credits(USER, 3)
        grant_id = grant.id
        ledger.debit_one(USER)
        db_session.commit()

        voided = ledger.void_grant(grant_id, "Chargeback")

        assert voided.status == ledger.GRANT_STATUS_VOID
        assert voided.amount == 0
        void_txns = [t for t in ledger.list_transactions(USER) if t.transaction_type == ledger.TXN_TYPE_VOID]
        assert [t.amount for t in void_txns] == [-2]
        assert ledger.available_balance(USER) == 0

    def test_void_twice_is_rejected(self, db_session, grant_credits):
        grant = grant_credits(USER, 1)
        grant_id = grant.id
        ledger.void_grant(grant_id, "Chargeback")

        with pytest.raises(LedgerError):
            ledger.void_grant(grant_id, "Chargeback again")

    def test_list_grants_active_only(self, db_session, grant_credits):
        grant_credits(USER, 1)
        spent = grant_credits(USER, 1, issued_at=utcnow() - timedelta(days=1))
        spent_id = spent.id
        ledger.debit_one(USER)
        db_session.commit()

        active = ledger.list_grants(USER, include_inactive=False)
        everything = ledger.list_grants(USER)

        assert spent_id not in [g.id for g in active]
        assert len(everything) == 2

    def test_transactions_and_grants_stay_in_balance(self, db_session, grant_credits):
        now = utcnow()
        grant_credits(USER, 2, expires_at=now + timedelta(hours=1))
        other = grant_credits(USER, 3)
        other_id = other.id

        d1 = ledger.debit_one(USER)
        ledger.debit_one(USER)
        ledger.refund_one(USER, d1.grant_id)
        ledger.debit_one(USER)
        db_session.commit()
        ledger.expire_grants(now + timedelta(hours=2))
        ledger.void_grant(other_id, "Reversed")

        assert _txn_total(USER) == _grant_total(USER)
