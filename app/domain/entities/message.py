"""Chat message exchanged between the explorer and the host of a booking."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class BookingMessage:
    id: int | None = None
    booking_id: int = 0
    sender_id: int = 0
    text: str = ""
    created_at: datetime | None = None
