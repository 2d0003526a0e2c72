"""
Pytest fixtures for Maslow backend tests.

Provides test database setup, inventory and credit factories, session
headers, and a test client.
"""

import itertools
from datetime import timedelta

import pytest

from maslow import create_app
from maslow.extensions import db
from maslow.services import availability_service, credit_ledger_service, session_service
from maslow.services.booking_wizard import PAYMENT_CREDITS, BookingDraft, BookingPreferences
from maslow.services.session_service import SessionContext
from maslow.time_utils import utcnow


SAMPLES = ["lavender-soap", "mint-lotion", "rose-mist", "cedar-oil", "citrus-wash", "aloe-gel"]


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def location(db_session):
    return availability_service.create_location("Union Square", "1 Union Sq")


@pytest.fixture(scope='function')
def make_suite(db_session, location):
    """Factory: suites at the default location, numbered S-01, S-02, ..."""
    numbers = itertools.count(1)

    def _make(**kwargs):
        location_id = kwargs.pop("location_id", location.id)
        suite_number = kwargs.pop("suite_number", f"S-{next(numbers):02d}")
        kwargs.setdefault("available_samples", list(SAMPLES))
        return availability_service.create_suite(location_id, suite_number, **kwargs)

    return _make


@pytest.fixture(scope='function')
def suite(make_suite):
    return make_suite(has_bidet=True, has_heated_seat=True)


@pytest.fixture(scope='function')
def grant_credits(db_session):
    """Factory: issue a grant to a user."""
    def _grant(user_id, amount, **kwargs):
        return credit_ledger_service.issue_grant(user_id, amount, **kwargs)
    return _grant


@pytest.fixture(scope='function')
def member():
    return SessionContext(user_id="member-1")


@pytest.fixture(scope='function')
def staff():
    return SessionContext(user_id="staff-1", is_staff=True)


@pytest.fixture(scope='function')
def auth_headers(db_session):
    """Factory: Authorization header for a fresh session."""
    def _headers(user_id="member-1", is_staff=False):
        _, token = session_service.create_session(user_id, is_staff=is_staff)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture(scope='function')
def booking_day():
    """A day safely in the future regardless of the local timezone."""
    return utcnow().date() + timedelta(days=2)


@pytest.fixture(scope='function')
def make_draft(location, suite, booking_day):
    """Factory: a complete draft for the default suite, overridable per field."""
    def _draft(**overrides):
        preferences = overrides.pop("preferences", None) or BookingPreferences()
        fields = {
            "location_id": location.id,
            "suite_id": suite.id,
            "date": booking_day,
            "time": "12:30",
            "duration": 15,
            "payment_method": PAYMENT_CREDITS,
        }
        fields.update(overrides)
        return BookingDraft(preferences=preferences, **fields)
    return _draft


@pytest.fixture(scope='function')
def booking_payload(location, suite, booking_day):
    """JSON body for POST /api/bookings."""
    return {
        "location_id": location.id,
        "suite_id": suite.id,
        "date": booking_day.isoformat(),
        "time": "12:30",
        "duration": 15,
        "payment_method": "credits",
        "preferences": {"lighting": 60, "music": "spa", "samples": ["lavender-soap"]},
    }
