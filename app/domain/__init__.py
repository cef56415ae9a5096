"""
Domain layer of the booking core.

Pure business rules with no framework dependencies.

Layout:
- entities/: bookings, experiences, payments, disputes, participants
- value_objects/: immutable values (Money)
- booking_state_machine.py: the transition table and the only code that changes booking status
- schedule.py: effective start/end times and the attendance, dispute and chat windows
- payout.py: payout eligibility and wallet buckets
- errors.py: domain errors
- constants.py: windows, limits and defaults
"""

from app.domain.entities import Booking, BookingStatus, Experience, Payment, PaymentStatus
from app.domain.errors import DomainError
from app.domain.value_objects import Money

__all__ = [
    "Booking",
    "BookingStatus",
    "Experience",
    "Payment",
    "PaymentStatus",
    "Money",
    "DomainError",
]
