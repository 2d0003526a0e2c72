# Overview: Multi-step reservation flow; collects a BookingDraft and gates each step transition.

"""
Booking Wizard

Steps, in order: time -> environment -> samples -> review, then success
once the booking is committed. Only adjacent moves are allowed; going back
keeps everything already entered.

Gates:
- time: duration, date and slot must be set, and the booking must be
  affordable with the chosen payment method (otherwise the user is offered
  cash or a credit top-up)
- environment: always passable
- samples: the sample cap (2 for 10-minute bookings, 5 otherwise) is
  enforced on selection, not merely warned about
- review: read-only; the only step that may confirm

Duration, date, time, suite and payment method can only be changed on the
time step.
Preferences and samples can be changed on any step before review.

Submission is two-phase: the wizard marks itself pending while the
booking service runs, then either moves to success or reverts to review
with the error recorded.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable

from maslow.time_utils import combine_slot
from maslow.validation import ValidationError
from .availability_service import is_bookable_slot
from .credit_ledger_service import InsufficientCreditError


STEP_TIME = "time"
STEP_ENVIRONMENT = "environment"
STEP_SAMPLES = "samples"
STEP_REVIEW = "review"
STEP_SUCCESS = "success"

WIZARD_STEPS = (STEP_TIME, STEP_ENVIRONMENT, STEP_SAMPLES, STEP_REVIEW)

SUBMISSION_IDLE = "idle"
SUBMISSION_PENDING = "pending"
SUBMISSION_SUCCEEDED = "succeeded"
SUBMISSION_FAILED = "failed"

PAYMENT_CREDITS = "credits"
PAYMENT_CASH = "cash"
VALID_PAYMENT_METHODS = (PAYMENT_CREDITS, PAYMENT_CASH)

MUSIC_OPTIONS = ("silence", "your-music", "white-noise", "flushing", "spa", "classical")
BIDET_TEMPERATURES = ("cold", "warm", "hot")
LIGHTING_RANGE = (0, 100)
TEMPERATURE_RANGE_F = (68, 76)


@dataclass(frozen=True)
class DurationOption:
    minutes: int
    credits: int  # display price
    cash_dollars: int
    samples: int


DURATION_OPTIONS = {
    10: DurationOption(minutes=10, credits=1, cash_dollars=5, samples=2),
    15: DurationOption(minutes=15, credits=2, cash_dollars=10, samples=5),
    30: DurationOption(minutes=30, credits=4, cash_dollars=20, samples=5),
    60: DurationOption(minutes=60, credits=8, cash_dollars=40, samples=5),
}


class WizardError(Exception):
    """Raised for booking wizard errors."""
    pass


class IncompleteSelectionError(WizardError):
    """Duration, date or time missing when leaving the time step."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Please select {', '.join(missing)}")


class SampleLimitExceededError(WizardError):
    def __init__(self, limit: int, duration: int):
        self.limit = limit
        self.duration = duration
        super().__init__(f"{duration}-minute bookings include at most {limit} samples")


class InvalidTransitionError(WizardError):
    pass


def sample_limit(duration: int) -> int:
    return 2 if duration == 10 else 5


# =============================================================================
# DRAFT
# =============================================================================

@dataclass
class BookingPreferences:
    lighting: int = 75
    music: str = "silence"
    temperature: int = 72
    bidet_temp: str = "warm"
    heated_seat: bool = False
    samples: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict | None) -> "BookingPreferences":
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValidationError("preferences must be an object")
        known = {k: data[k] for k in cls.__dataclass_fields__ if k in data}
        unknown = set(data) - set(known)
        if unknown:
            raise ValidationError(f"Unknown preference(s): {', '.join(sorted(map(str, unknown)))}")
        if "samples" in known:
            known["samples"] = _as_sample_list(known["samples"])
        return cls(**known)


def _as_sample_list(value) -> list[str]:
    if not isinstance(value, list):
        raise ValidationError("samples must be a list")
    for sample in value:
        if not isinstance(sample, str) or not sample.strip():
            raise ValidationError("samples must be non-empty strings")
    return list(value)


@dataclass
class BookingDraft:
    location_id: int
    suite_id: int | None = None
    date: date | None = None
    time: str | None = None
    duration: int = 15
    payment_method: str = PAYMENT_CREDITS
    preferences: BookingPreferences = field(default_factory=BookingPreferences)

    @property
    def start_time(self) -> datetime | None:
        if self.date is None or self.time is None:
            return None
        return combine_slot(self.date, self.time)

    @property
    def end_time(self) -> datetime | None:
        start = self.start_time
        return start + timedelta(minutes=self.duration) if start else None

    @classmethod
    def from_dict(cls, data: dict) -> "BookingDraft":
        """Build a draft from a JSON body. Raises ValidationError on malformed fields."""
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")

        location_id = _as_int(data.get("location_id"), "location_id", required=True)
        suite_id = _as_int(data.get("suite_id"), "suite_id")
        duration = _as_int(data.get("duration", 15), "duration", required=True)

        day = None
        if data.get("date"):
            try:
                day = date.fromisoformat(str(data["date"]))
            except ValueError:
                raise ValidationError("date must be YYYY-MM-DD")

        return cls(
            location_id=location_id,
            suite_id=suite_id,
            date=day,
            time=data.get("time") or None,
            duration=duration,
            payment_method=data.get("payment_method", PAYMENT_CREDITS),
            preferences=BookingPreferences.from_dict(data.get("preferences")),
        )

    def to_dict(self) -> dict:
        return {
            "location_id": self.location_id,
            "suite_id": self.suite_id,
            "date": self.date.isoformat() if self.date else None,
            "time": self.time,
            "duration": self.duration,
            "payment_method": self.payment_method,
            "preferences": self.preferences.to_dict(),
        }


def _as_int(value, name: str, required: bool = False) -> int | None:
    if value is None:
        if required:
            raise ValidationError(f"{name} is required")
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer")
    return value


# =============================================================================
# VALIDATION (shared with the HTTP boundary)
# =============================================================================

def validate_duration(duration: int) -> None:
    if duration not in DURATION_OPTIONS:
        raise ValidationError(f"duration must be one of {sorted(DURATION_OPTIONS)}")


def validate_preferences(prefs: BookingPreferences) -> None:
    lo, hi = LIGHTING_RANGE
    if isinstance(prefs.lighting, bool) or not isinstance(prefs.lighting, int) or not lo <= prefs.lighting <= hi:
        raise ValidationError(f"lighting must be an integer between {lo} and {hi}")
    lo, hi = TEMPERATURE_RANGE_F
    if isinstance(prefs.temperature, bool) or not isinstance(prefs.temperature, int) or not lo <= prefs.temperature <= hi:
        raise ValidationError(f"temperature must be an integer between {lo} and {hi}")
    if prefs.music not in MUSIC_OPTIONS:
        raise ValidationError(f"music must be one of {list(MUSIC_OPTIONS)}")
    if prefs.bidet_temp not in BIDET_TEMPERATURES:
        raise ValidationError(f"bidet_temp must be one of {list(BIDET_TEMPERATURES)}")
    if not isinstance(prefs.heated_seat, bool):
        raise ValidationError("heated_seat must be a boolean")
    _as_sample_list(prefs.samples)
    if len(set(prefs.samples)) != len(prefs.samples):
        raise ValidationError("samples must not contain duplicates")


def validate_draft(draft: BookingDraft) -> None:
    """
    Full check of a draft about to be committed.

    Raises:
        ValidationError: malformed field
        IncompleteSelectionError: duration/date/time missing
        SampleLimitExceededError: more samples than the duration allows
    """
    missing = [name for name in ("duration", "date", "time") if not getattr(draft, name)]
    if draft.suite_id is None:
        missing.append("suite")
    if missing:
        raise IncompleteSelectionError(missing)

    validate_duration(draft.duration)
    if draft.payment_method not in VALID_PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of {list(VALID_PAYMENT_METHODS)}")
    if not is_bookable_slot(draft.time):
        raise ValidationError(f"{draft.time} is not a bookable time slot")

    validate_preferences(draft.preferences)
    limit = sample_limit(draft.duration)
    if len(draft.preferences.samples) > limit:
        raise SampleLimitExceededError(limit, draft.duration)


# =============================================================================
# STATE MACHINE
# =============================================================================

class BookingWizard:
    """
    Drives one member through the reservation steps.

    credit_balance is the member's available balance when the wizard was
    opened (see refresh_balance for top-ups); credit_cost is what a credit
    booking will debit.
    """

    def __init__(
        self,
        draft: BookingDraft,
        *,
        user_id: str | None = None,
        credit_balance: int = 0,
        credit_cost: int = 1,
    ):
        self.draft = draft
        self.user_id = user_id
        self.credit_balance = credit_balance
        self.credit_cost = credit_cost
        self.step = STEP_TIME
        self.submission_state = SUBMISSION_IDLE
        self.last_error: Exception | None = None
        self.booking_id: int | None = None

    # ----- selections --------------------------------------------------

    def can_afford(self) -> bool:
        if self.draft.payment_method == PAYMENT_CASH:
            return True
        return self.credit_balance >= self.credit_cost

    def refresh_balance(self, balance: int) -> None:
        """Record the member's balance after a credit top-up."""
        self._require_editable()
        self.credit_balance = balance

    def select_duration(self, minutes: int) -> None:
        """
        Change duration. A downgrade that would leave more samples selected
        than the new cap allows is refused; the member deselects first.
        """
        self._require_step(STEP_TIME)
        validate_duration(minutes)
        limit = sample_limit(minutes)
        if len(self.draft.preferences.samples) > limit:
            raise SampleLimitExceededError(limit, minutes)
        self.draft.duration = minutes

    def select_date(self, day: date) -> None:
        self._require_step(STEP_TIME)
        self.draft.date = day

    def select_time(self, slot: str) -> None:
        self._require_step(STEP_TIME)
        if not is_bookable_slot(slot):
            raise ValidationError(f"{slot} is not a bookable time slot")
        self.draft.time = slot

    def select_suite(self, suite_id: int) -> None:
        self._require_step(STEP_TIME)
        self.draft.suite_id = suite_id

    def set_payment_method(self, method: str) -> None:
        self._require_step(STEP_TIME)
        if method not in VALID_PAYMENT_METHODS:
            raise ValidationError(f"payment_method must be one of {list(VALID_PAYMENT_METHODS)}")
        self.draft.payment_method = method

    def update_preferences(self, **changes) -> None:
        self._require_draft_step()
        if "samples" in changes:
            raise WizardError("Use select_sample/deselect_sample to change samples")
        updated = BookingPreferences.from_dict({**self.draft.preferences.to_dict(), **changes})
        validate_preferences(updated)
        self.draft.preferences = updated

    def select_sample(self, sample_id: str) -> None:
        self._require_draft_step()
        if not isinstance(sample_id, str) or not sample_id.strip():
            raise ValidationError("samples must be non-empty strings")
        samples = self.draft.preferences.samples
        if sample_id in samples:
            return
        limit = sample_limit(self.draft.duration)
        if len(samples) >= limit:
            raise SampleLimitExceededError(limit, self.draft.duration)
        samples.append(sample_id)

    def deselect_sample(self, sample_id: str) -> None:
        self._require_draft_step()
        samples = self.draft.preferences.samples
        if sample_id in samples:
            samples.remove(sample_id)

    # ----- navigation --------------------------------------------------

    def next(self) -> str:
        if self.step == STEP_TIME:
            missing = [name for name in ("duration", "date", "time") if not getattr(self.draft, name)]
            if missing:
                raise IncompleteSelectionError(missing)
            if not self.can_afford():
                raise InsufficientCreditError(
                    self.user_id or "",
                    balance=self.credit_balance,
                    required=self.credit_cost,
                )
        elif self.step == STEP_SAMPLES:
            limit = sample_limit(self.draft.duration)
            if len(self.draft.preferences.samples) > limit:
                raise SampleLimitExceededError(limit, self.draft.duration)
        elif self.step in (STEP_REVIEW, STEP_SUCCESS):
            raise InvalidTransitionError(f"Cannot advance from {self.step}")

        self.step = WIZARD_STEPS[WIZARD_STEPS.index(self.step) + 1]
        return self.step

    def back(self) -> str:
        if self.step in (STEP_TIME, STEP_SUCCESS):
            raise InvalidTransitionError(f"Cannot go back from {self.step}")
        self.step = WIZARD_STEPS[WIZARD_STEPS.index(self.step) - 1]
        return self.step

    def confirm(self, commit: Callable[[BookingDraft], object]):
        """
        Hand the draft to the booking service.

        On success the wizard is terminal. On failure it stays in review,
        keeps the draft, records the error and re-raises it.
        """
        if self.step != STEP_REVIEW:
            raise InvalidTransitionError("Bookings can only be confirmed from review")
        if self.submission_state == SUBMISSION_PENDING:
            raise InvalidTransitionError("Booking submission already in progress")

        self.submission_state = SUBMISSION_PENDING
        self.last_error = None
        try:
            result = commit(self.draft)
        except Exception as exc:
            self.submission_state = SUBMISSION_FAILED
            self.last_error = exc
            raise

        self.submission_state = SUBMISSION_SUCCEEDED
        self.booking_id = getattr(result, "id", result)
        self.step = STEP_SUCCESS
        return result

    def _require_editable(self) -> None:
        if self.step == STEP_SUCCESS or self.submission_state == SUBMISSION_PENDING:
            raise InvalidTransitionError("Booking can no longer be edited")

    def _require_step(self, step: str) -> None:
        self._require_editable()
        if self.step != step:
            raise InvalidTransitionError(f"Go back to the {step} step to change this")

    def _require_draft_step(self) -> None:
        # review is a read-only recap
        self._require_editable()
        if self.step == STEP_REVIEW:
            raise InvalidTransitionError("Go back from review to change this")
