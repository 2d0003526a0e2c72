# Overview: Service-layer operations for suite availability; inventory snapshots and the reserve/release lock.

"""
Suite Availability Service

WHY: Members pick a location and a time; a suite at that location must be
held for them without ever being handed to two bookers at once.

DESIGN PRINCIPLES:
- reserve() is the de facto lock: one compare-and-set UPDATE flipping
  is_available true -> false. Of N concurrent callers exactly one wins.
- release() is idempotent: releasing an available suite is a no-op
- list_available_suites() is a point-in-time snapshot, not a hold
- Queue estimates are advisory labels for the slot picker. They have no
  occupancy data behind them and never gate a booking.
- reserve()/release() never commit; the booking service owns the unit of work
"""

from __future__ import annotations

import random

from ..extensions import db
from ..models import Location, Suite
from .concurrency import conditional_update


class AvailabilityError(Exception):
    """Raised for suite inventory errors."""
    pass


class AlreadyReservedError(AvailabilityError):
    """The suite was not available at the moment of the reserve attempt."""

    def __init__(self, suite_id: int):
        self.suite_id = suite_id
        super().__init__(f"Suite {suite_id} is already reserved")


# =============================================================================
# TIME WINDOWS
# =============================================================================

TIME_WINDOWS = {
    "morning": ["09:00", "09:30", "10:00", "10:30", "11:00", "11:30"],
    "afternoon": [
        "12:00", "12:30", "13:00", "13:30", "14:00",
        "14:30", "15:00", "15:30", "16:00", "16:30",
    ],
    "evening": ["17:00", "17:30", "18:00", "18:30", "19:00", "19:30"],
    "lateNight": ["20:00", "20:30", "21:00", "21:30", "22:00"],
}


def time_window_slots(window: str) -> list[str]:
    """Half-hour base slots for a window; unknown windows have none."""
    return list(TIME_WINDOWS.get(window, []))


def exact_time_slots(window: str) -> list[str]:
    """Base slots expanded with the 10-minute starts between them, sorted."""
    slots = []
    for slot in time_window_slots(window):
        hour, minute = slot.split(":")
        slots.append(slot)
        if minute == "00":
            slots.extend([f"{hour}:10", f"{hour}:20"])
        elif minute == "30":
            slots.extend([f"{hour}:40", f"{hour}:50"])
    return sorted(slots)


def is_bookable_slot(slot: str) -> bool:
    return any(slot in exact_time_slots(window) for window in TIME_WINDOWS)


# =============================================================================
# ADVISORY QUEUE ESTIMATE
# =============================================================================

def estimate_queue(slot: str, rng: random.Random | None = None) -> int:
    """
    Synthetic "people ahead of you" estimate for a time slot.

    ADVISORY ONLY: drawn from time-of-day bands (lunch and evening rush are
    busier, early morning and late night quieter). Used to label slots in
    the picker; nothing in the booking path reads it.
    """
    rng = rng or random
    hour = int(slot.split(":")[0])

    if 12 <= hour <= 14:
        return rng.randint(2, 6)
    if 17 <= hour <= 19:
        return rng.randint(3, 8)
    if hour < 11 or hour >= 21:
        return rng.randint(0, 1)
    return rng.randint(0, 3)


def availability_label(queue_count: int) -> dict:
    """Display label and level for an advisory queue count."""
    if queue_count == 0:
        return {"label": "Available", "level": "open"}
    if queue_count <= 2:
        return {"label": f"{queue_count} ahead", "level": "moderate"}
    if queue_count <= 5:
        return {"label": f"{queue_count} ahead", "level": "busy"}
    return {"label": "Full", "level": "full"}


def list_slots(window: str, rng: random.Random | None = None) -> list[dict]:
    slots = []
    for slot in exact_time_slots(window):
        queue = estimate_queue(slot, rng=rng)
        slots.append({"time": slot, "queue_estimate": queue, "advisory": True, **availability_label(queue)})
    return slots


# =============================================================================
# INVENTORY
# =============================================================================

def get_location(location_id: int) -> Location | None:
    return db.session.get(Location, location_id)


def create_location(name: str, address: str | None = None) -> Location:
    if not name or not name.strip():
        raise AvailabilityError("Location name is required")
    location = Location(name=name.strip(), address=address)
    db.session.add(location)
    db.session.commit()
    return location


def create_suite(location_id: int, suite_number: str, **capabilities) -> Suite:
    """Add a suite to a location's inventory. Capabilities map to Suite columns."""
    location = get_location(location_id)
    if not location:
        raise AvailabilityError(f"Location {location_id} not found")

    samples = capabilities.pop("available_samples", None) or []
    suite = Suite(location_id=location_id, suite_number=suite_number, available_samples=list(samples), **capabilities)
    db.session.add(suite)
    db.session.commit()
    return suite


def list_available_suites(location_id: int) -> list[Suite]:
    """
    Snapshot of suites at a location that are available and operational.

    Nothing is held: a suite listed here may be reserved by someone else
    before the caller commits.
    """
    return (
        db.session.query(Suite)
        .filter(
            Suite.location_id == location_id,
            Suite.is_available.is_(True),
            Suite.is_operational.is_(True),
        )
        .order_by(Suite.suite_number.asc())
        .all()
    )


def reserve(suite_id: int) -> None:
    """
    Atomically flip is_available true -> false.

    Raises:
        AlreadyReservedError: suite was not available (or does not exist)
    """
    matched = conditional_update(
        Suite,
        [Suite.id == suite_id, Suite.is_available.is_(True)],
        {"is_available": False},
    )
    if not matched:
        raise AlreadyReservedError(suite_id)


def release(suite_id: int) -> None:
    """Set is_available = true. Releasing an already-available suite is a no-op."""
    conditional_update(
        Suite,
        [Suite.id == suite_id, Suite.is_available.is_(False)],
        {"is_available": True},
    )
