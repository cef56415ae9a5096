"""Booking entity - the aggregate root of the booking lifecycle."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class BookingStatus(str, Enum):
    """Lifecycle states of a booking."""

    PENDING = "PENDING"
    DEPOSIT_PAID = "DEPOSIT_PAID"
    PAID = "PAID"
    PENDING_ATTENDANCE = "PENDING_ATTENDANCE"
    COMPLETED = "COMPLETED"
    AUTO_COMPLETED = "AUTO_COMPLETED"
    NO_SHOW = "NO_SHOW"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"
    REFUND_FAILED = "REFUND_FAILED"
    DISPUTED = "DISPUTED"
    DISPUTE_WON = "DISPUTE_WON"
    DISPUTE_LOST = "DISPUTE_LOST"


class AttendanceStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    NO_SHOW = "NO_SHOW"


class DisputeReason(str, Enum):
    NO_SHOW = "NO_SHOW"
    LOW_QUALITY = "LOW_QUALITY"
    SAFETY = "SAFETY"
    OTHER = "OTHER"


PAID_STATUSES = frozenset({BookingStatus.DEPOSIT_PAID, BookingStatus.PAID})

ATTENDANCE_PENDING_STATUSES = frozenset(
    {BookingStatus.PAID, BookingStatus.DEPOSIT_PAID, BookingStatus.PENDING_ATTENDANCE}
)

DISPUTE_LOCKED_STATUSES = frozenset(
    {BookingStatus.DISPUTED, BookingStatus.DISPUTE_WON, BookingStatus.DISPUTE_LOST}
)

PAYOUT_STATUSES = frozenset(
    {BookingStatus.COMPLETED, BookingStatus.AUTO_COMPLETED, BookingStatus.DISPUTE_WON}
)

# Bookings in these states no longer occupy seats.
RELEASED_SEAT_STATUSES = frozenset(
    {BookingStatus.CANCELLED, BookingStatus.REFUNDED, BookingStatus.REFUND_FAILED}
)

CHAT_ACTIVE_STATUSES = frozenset(
    {
        BookingStatus.PAID,
        BookingStatus.DEPOSIT_PAID,
        BookingStatus.PENDING_ATTENDANCE,
        BookingStatus.COMPLETED,
        BookingStatus.AUTO_COMPLETED,
        BookingStatus.NO_SHOW,
        BookingStatus.DISPUTED,
        BookingStatus.DISPUTE_WON,
        BookingStatus.DISPUTE_LOST,
    }
)

# Statuses from which a payment is worth refunding.
REFUNDABLE_STATUSES = frozenset(
    {
        BookingStatus.PAID,
        BookingStatus.DEPOSIT_PAID,
        BookingStatus.PENDING_ATTENDANCE,
        BookingStatus.COMPLETED,
        BookingStatus.AUTO_COMPLETED,
        BookingStatus.NO_SHOW,
        BookingStatus.DISPUTED,
        BookingStatus.DISPUTE_WON,
        BookingStatus.DISPUTE_LOST,
    }
)


@dataclass
class Booking:
    """
    A reservation of one or more seats in an experience by an explorer.

    Status changes go through ``BookingStateMachine``; this class only
    carries state and read-only helpers.
    """

    # Identifiers
    id: int | None = None
    experience_id: int = 0
    explorer_id: int = 0
    host_id: int = 0

    # Seats and money (minor units)
    quantity: int = 1
    amount: int = 0
    deposit_amount: int = 0
    currency: str = "ron"
    is_deposit: bool = False

    # State
    status: BookingStatus = BookingStatus.PENDING
    attendance_status: AttendanceStatus = AttendanceStatus.PENDING
    attendance_confirmed: bool = False

    # Lifecycle timestamps
    created_at: datetime | None = None
    updated_at: datetime | None = None
    paid_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    refunded_at: datetime | None = None
    payout_eligible_at: datetime | None = None

    # Cancellation
    cancelled_by: str | None = None
    cancel_reason: str | None = None

    # Dispute
    disputed_at: datetime | None = None
    dispute_resolved_at: datetime | None = None
    dispute_reason: str | None = None
    dispute_comment: str | None = None
    status_before_dispute: BookingStatus | None = None

    # Refund retries
    refund_attempts: int = 0
    last_refund_attempt_at: datetime | None = None

    # Chat
    chat_archive_at: datetime | None = None
    chat_archived_at: datetime | None = None

    # Notification de-duplication
    attendance_reminder_sent_at: datetime | None = None
    attendance_email_sent: bool = False
    refund_success_email_sent: bool = False

    # Optimistic concurrency
    lock_version: int = 0

    # === Properties ===

    @property
    def is_paid(self) -> bool:
        return self.status in PAID_STATUSES

    @property
    def is_dispute_locked(self) -> bool:
        return self.status in DISPUTE_LOCKED_STATUSES

    @property
    def has_open_dispute(self) -> bool:
        """A dispute was raised and no admin has resolved it yet."""
        return self.disputed_at is not None and self.dispute_resolved_at is None

    @property
    def holds_seats(self) -> bool:
        return self.status not in RELEASED_SEAT_STATUSES

    @property
    def payable_amount(self) -> int:
        """Amount that moved through the processor, in minor units."""
        return self.amount if self.amount > 0 else self.deposit_amount

    def is_participant(self, user_id: int | None) -> bool:
        return user_id is not None and user_id in (self.explorer_id, self.host_id)
