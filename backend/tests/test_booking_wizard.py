# Overview: Pytest coverage for the booking wizard's step gates, sample cap and two-phase submission.

"""
Booking Wizard Tests

The wizard is pure state: no database is needed. Commit is injected as a
callable so success and failure of the booking service can be simulated.
"""

from datetime import date

import pytest

from maslow.services.booking_wizard import (
    PAYMENT_CASH,
    STEP_ENVIRONMENT,
    STEP_REVIEW,
    STEP_SAMPLES,
    STEP_SUCCESS,
    STEP_TIME,
    SUBMISSION_FAILED,
    SUBMISSION_IDLE,
    SUBMISSION_SUCCEEDED,
    BookingDraft,
    BookingWizard,
    IncompleteSelectionError,
    InvalidTransitionError,
    SampleLimitExceededError,
    WizardError,
    validate_draft,
)
from maslow.services.credit_ledger_service import InsufficientCreditError
from maslow.validation import ValidationError


DAY = date(2030, 6, 1)


def make_wizard(balance=5, **draft_fields):
    draft = BookingDraft(location_id=1, suite_id=1, **draft_fields)
    return BookingWizard(draft, user_id="member-1", credit_balance=balance, credit_cost=1)


def wizard_at_review(balance=5):
    wizard = make_wizard(balance=balance)
    wizard.select_date(DAY)
    wizard.select_time("12:30")
    wizard.next()
    wizard.next()
    wizard.next()
    assert wizard.step == STEP_REVIEW
    return wizard


class FakeBooking:
    id = 42


class TestStepGates:

    def test_starts_at_time_step_idle(self):
        wizard = make_wizard()
        assert wizard.step == STEP_TIME
        assert wizard.submission_state == SUBMISSION_IDLE

    def test_time_step_requires_date_and_time(self):
        wizard = make_wizard()
        with pytest.raises(IncompleteSelectionError) as exc_info:
            wizard.next()

        assert exc_info.value.missing == ["date", "time"]
        assert wizard.step == STEP_TIME

    def test_time_step_blocks_unaffordable_credit_booking(self):
        wizard = make_wizard(balance=0)
        wizard.select_date(DAY)
        wizard.select_time("09:10")

        with pytest.raises(InsufficientCreditError) as exc_info:
            wizard.next()
        assert "pay_with_cash" in exc_info.value.alternatives
        assert wizard.step == STEP_TIME

    def test_cash_payment_passes_without_credits(self):
        wizard = make_wizard(balance=0)
        wizard.select_date(DAY)
        wizard.select_time("09:10")
        wizard.set_payment_method(PAYMENT_CASH)

        assert wizard.next() == STEP_ENVIRONMENT

    def test_steps_advance_in_order_and_back_keeps_selections(self):
        wizard = make_wizard()
        wizard.select_date(DAY)
        wizard.select_time("17:40")

        assert wizard.next() == STEP_ENVIRONMENT
        wizard.update_preferences(lighting=30, music="spa")
        assert wizard.next() == STEP_SAMPLES
        assert wizard.back() == STEP_ENVIRONMENT
        assert wizard.back() == STEP_TIME

        assert wizard.draft.time == "17:40"
        assert wizard.draft.preferences.lighting == 30
        assert wizard.draft.preferences.music == "spa"

    def test_cannot_go_back_from_first_step(self):
        with pytest.raises(InvalidTransitionError):
            make_wizard().back()

    def test_cannot_advance_past_review(self):
        wizard = wizard_at_review()
        with pytest.raises(InvalidTransitionError):
            wizard.next()

    def test_unbookable_time_is_rejected(self):
        wizard = make_wizard()
        with pytest.raises(ValidationError):
            wizard.select_time("03:00")
        assert wizard.draft.time is None


    def test_top_up_unblocks_time_step(self):
        wizard = make_wizard(balance=0)
        wizard.select_date(DAY)
        wizard.select_time("09:10")
        with pytest.raises(InsufficientCreditError):
            wizard.next()

        wizard.refresh_balance(3)
        assert wizard.credit_balance == 3
        assert wizard.next() == STEP_ENVIRONMENT


class TestEditableSteps:

    @pytest.mark.parametrize("edit", [
        lambda w: w.select_duration(60),
        lambda w: w.select_date(DAY),
        lambda w: w.select_time("09:00"),
        lambda w: w.select_suite(2),
        lambda w: w.set_payment_method(PAYMENT_CASH),
        lambda w: w.update_preferences(lighting=10),
        lambda w: w.select_sample("x"),
        lambda w: w.deselect_sample("x"),
    ])
    def test_review_is_read_only(self, edit):
        wizard = wizard_at_review()
        before = wizard.draft.to_dict()

        with pytest.raises(InvalidTransitionError):
            edit(wizard)
        assert wizard.draft.to_dict() == before

    def test_payment_change_after_time_step_is_refused(self):
        wizard = make_wizard(balance=0)
        wizard.select_date(DAY)
        wizard.select_time("09:10")
        wizard.set_payment_method(PAYMENT_CASH)
        wizard.next()

        with pytest.raises(InvalidTransitionError):
            wizard.set_payment_method("credits")
        with pytest.raises(InvalidTransitionError):
            wizard.select_duration(60)
        assert wizard.draft.payment_method == PAYMENT_CASH

    def test_going_back_to_time_reruns_affordability_gate(self):
        wizard = make_wizard(balance=0)
        wizard.select_date(DAY)
        wizard.select_time("09:10")
        wizard.set_payment_method(PAYMENT_CASH)
        wizard.next()
        wizard.back()

        wizard.set_payment_method("credits")
        with pytest.raises(InsufficientCreditError):
            wizard.next()
        assert wizard.step == STEP_TIME

    def test_preferences_and_samples_editable_before_review(self):
        wizard = make_wizard()
        wizard.select_date(DAY)
        wizard.select_time("12:30")
        wizard.next()
        wizard.update_preferences(music="classical")
        wizard.next()
        wizard.select_sample("lavender-soap")

        assert wizard.step == STEP_SAMPLES
        assert wizard.draft.preferences.music == "classical"
        assert wizard.draft.preferences.samples == ["lavender-soap"]

    def test_back_from_review_allows_edits_again(self):
        wizard = wizard_at_review()
        wizard.back()
        wizard.select_sample("mint-lotion")
        assert wizard.draft.preferences.samples == ["mint-lotion"]

class TestSamples:

    def test_ten_minute_booking_caps_samples_at_two(self):
        wizard = make_wizard(duration=10)
        wizard.select_sample("lavender-soap")
        wizard.select_sample("mint-lotion")

        with pytest.raises(SampleLimitExceededError) as exc_info:
            wizard.select_sample("rose-mist")
        assert exc_info.value.limit == 2
        assert wizard.draft.preferences.samples == ["lavender-soap", "mint-lotion"]

    def test_longer_bookings_allow_five(self):
        wizard = make_wizard(duration=30)
        for sample in ["a", "b", "c", "d", "e"]:
            wizard.select_sample(sample)
        with pytest.raises(SampleLimitExceededError):
            wizard.select_sample("f")

    def test_reselecting_a_sample_is_a_no_op(self):
        wizard = make_wizard(duration=10)
        wizard.select_sample("a")
        wizard.select_sample("a")
        assert wizard.draft.preferences.samples == ["a"]

    def test_downgrade_over_cap_is_blocked(self):
        wizard = make_wizard(duration=15)
        for sample in ["a", "b", "c"]:
            wizard.select_sample(sample)

        with pytest.raises(SampleLimitExceededError):
            wizard.select_duration(10)
        assert wizard.draft.duration == 15
        assert len(wizard.draft.preferences.samples) == 3

    def test_downgrade_allowed_after_deselecting(self):
        wizard = make_wizard(duration=15)
        for sample in ["a", "b", "c"]:
            wizard.select_sample(sample)
        wizard.deselect_sample("c")

        wizard.select_duration(10)
        assert wizard.draft.duration == 10

    def test_samples_cannot_be_set_through_preferences(self):
        with pytest.raises(WizardError):
            make_wizard().update_preferences(samples=["a", "b", "c"])


class TestPreferences:

    @pytest.mark.parametrize("changes", [
        {"lighting": 150},
        {"temperature": 80},
        {"music": "polka"},
        {"bidet_temp": "lukewarm"},
        {"heated_seat": "yes"},
        {"scent": "pine"},
    ])
    def test_invalid_preferences_rejected(self, changes):
        wizard = make_wizard()
        with pytest.raises(ValidationError):
            wizard.update_preferences(**changes)
        assert wizard.draft.preferences.lighting == 75

    def test_valid_preferences_applied(self):
        wizard = make_wizard()
        wizard.update_preferences(temperature=70, bidet_temp="hot", heated_seat=True)
        prefs = wizard.draft.preferences
        assert (prefs.temperature, prefs.bidet_temp, prefs.heated_seat) == (70, "hot", True)


class TestSubmission:

    def test_confirm_only_from_review(self):
        with pytest.raises(InvalidTransitionError):
            make_wizard().confirm(lambda draft: FakeBooking())

    def test_failed_confirm_stays_in_review_with_draft_intact(self):
        wizard = wizard_at_review()

        def commit(draft):
            raise RuntimeError("suite taken")

        with pytest.raises(RuntimeError):
            wizard.confirm(commit)

        assert wizard.step == STEP_REVIEW
        assert wizard.submission_state == SUBMISSION_FAILED
        assert str(wizard.last_error) == "suite taken"
        assert wizard.draft.time == "12:30"
        assert wizard.booking_id is None

    def test_retry_after_failure_succeeds(self):
        wizard = wizard_at_review()
        with pytest.raises(RuntimeError):
            wizard.confirm(lambda draft: (_ for _ in ()).throw(RuntimeError("busy")))

        wizard.confirm(lambda draft: FakeBooking())
        assert wizard.step == STEP_SUCCESS
        assert wizard.submission_state == SUBMISSION_SUCCEEDED
        assert wizard.last_error is None
        assert wizard.booking_id == 42

    def test_success_is_terminal(self):
        wizard = wizard_at_review()
        wizard.confirm(lambda draft: FakeBooking())

        with pytest.raises(InvalidTransitionError):
            wizard.back()
        with pytest.raises(InvalidTransitionError):
            wizard.select_time("09:00")

    def test_commit_receives_the_draft(self):
        wizard = wizard_at_review()
        seen = []
        wizard.confirm(lambda draft: seen.append(draft) or FakeBooking())
        assert seen == [wizard.draft]


class TestDraft:

    def test_from_dict_parses_request_body(self):
        draft = BookingDraft.from_dict({
            "location_id": 1,
            "suite_id": 2,
            "date": "2030-06-01",
            "time": "09:20",
            "duration": 10,
            "payment_method": "cash",
            "preferences": {"music": "classical", "samples": ["a"]},
        })

        assert draft.date == DAY
        assert draft.start_time.hour == 9 and draft.start_time.minute == 20
        assert (draft.end_time - draft.start_time).total_seconds() == 600
        assert draft.preferences.music == "classical"
        assert draft.to_dict()["date"] == "2030-06-01"

    @pytest.mark.parametrize("body", [
        None,
        {"suite_id": 1},
        {"location_id": "one"},
        {"location_id": 1, "date": "06/01/2030"},
        {"location_id": 1, "preferences": {"scent": "pine"}},
        {"location_id": 1, "preferences": {"samples": "a"}},
        {"location_id": 1, "preferences": "spa"},
        {"location_id": 1, "preferences": {"samples": [{"a": 1}]}},
    ])
    def test_from_dict_rejects_malformed_body(self, body):
        with pytest.raises(ValidationError):
            BookingDraft.from_dict(body)

    def test_validate_draft_reports_missing_suite(self):
        draft = BookingDraft(location_id=1, date=DAY, time="09:00")
        with pytest.raises(IncompleteSelectionError) as exc_info:
            validate_draft(draft)
        assert exc_info.value.missing == ["suite"]

    def test_validate_draft_enforces_duration_options(self):
        draft = BookingDraft(location_id=1, suite_id=1, date=DAY, time="09:00", duration=45)
        with pytest.raises(ValidationError):
            validate_draft(draft)
