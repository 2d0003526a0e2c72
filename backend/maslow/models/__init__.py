from .locations import Location, Suite
from .bookings import Booking
from .credits import CreditGrant, CreditTransaction
from .auth import SessionToken

__all__ = [
    'Location', 'Suite',
    'Booking',
    'CreditGrant', 'CreditTransaction',
    'SessionToken',
]
