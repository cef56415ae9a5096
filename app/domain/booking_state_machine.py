"""Booking state machine.

``TRANSITIONS`` is the single table of allowed status changes. Every status
write in the code base goes through ``BookingStateMachine.transition``, so
an invalid move is rejected in one place instead of by scattered guards.
"""

import logging
from datetime import datetime
from enum import Enum

from app.domain import constants
from app.domain.entities.booking import (
    PAID_STATUSES,
    PAYOUT_STATUSES,
    AttendanceStatus,
    Booking,
    BookingStatus,
    DisputeReason,
)
from app.domain.errors import (
    AttendanceWindowError,
    BookingFinalizedError,
    DisputeLockedError,
    DisputeWindowError,
    InvalidDisputeReasonError,
    InvalidTransitionError,
    ValidationError,
)
from app.domain.schedule import TimeWindow, as_utc

logger = logging.getLogger(__name__)

S = BookingStatus

_ATTENDANCE_OUTCOMES = {S.COMPLETED, S.AUTO_COMPLETED, S.NO_SHOW}
_REFUND_OUTCOMES = {S.REFUNDED, S.REFUND_FAILED}
# Statuses a dismissed dispute may hand the booking back to.
_DISPUTE_RESTORABLE = frozenset(
    {S.DEPOSIT_PAID, S.PAID, S.PENDING_ATTENDANCE, S.COMPLETED, S.AUTO_COMPLETED, S.NO_SHOW}
)

TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    S.PENDING: frozenset({S.DEPOSIT_PAID, S.PAID, S.CANCELLED}),
    S.DEPOSIT_PAID: frozenset(
        {S.PENDING_ATTENDANCE, S.CANCELLED, S.DISPUTED, *_ATTENDANCE_OUTCOMES, *_REFUND_OUTCOMES}
    ),
    S.PAID: frozenset(
        {S.PENDING_ATTENDANCE, S.CANCELLED, S.DISPUTED, *_ATTENDANCE_OUTCOMES, *_REFUND_OUTCOMES}
    ),
    S.PENDING_ATTENDANCE: frozenset(
        {S.CANCELLED, S.DISPUTED, *_ATTENDANCE_OUTCOMES, *_REFUND_OUTCOMES}
    ),
    S.COMPLETED: frozenset({S.DISPUTED, *_REFUND_OUTCOMES}),
    S.AUTO_COMPLETED: frozenset({S.DISPUTED, *_REFUND_OUTCOMES}),
    S.NO_SHOW: frozenset({S.DISPUTED, *_REFUND_OUTCOMES}),
    # Going back to a restorable status is only done by ``ignore_dispute``.
    S.DISPUTED: frozenset(
        {S.DISPUTE_WON, S.DISPUTE_LOST, *_DISPUTE_RESTORABLE, *_REFUND_OUTCOMES}
    ),
    S.DISPUTE_WON: frozenset({S.COMPLETED, *_REFUND_OUTCOMES}),
    S.DISPUTE_LOST: frozenset(_REFUND_OUTCOMES),
    # Late capture on a cancelled booking queues a refund.
    S.CANCELLED: frozenset({S.REFUND_FAILED}),
    S.REFUND_FAILED: frozenset({S.REFUNDED}),
    S.REFUNDED: frozenset(),
}

# Cancellation is refused from these with "already finalized".
_FINALIZED_STATUSES = frozenset(
    {
        S.CANCELLED,
        S.REFUNDED,
        S.REFUND_FAILED,
        S.COMPLETED,
        S.AUTO_COMPLETED,
        S.NO_SHOW,
    }
)


class PaymentApplication(str, Enum):
    """Outcome of applying a payment success to a booking."""

    APPLIED = "APPLIED"
    ALREADY_APPLIED = "ALREADY_APPLIED"
    LATE_CAPTURE = "LATE_CAPTURE"


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


class BookingStateMachine:
    """The only authority allowed to change ``Booking.status``."""

    def transition(self, booking: Booking, target: BookingStatus, now: datetime) -> None:
        if not can_transition(booking.status, target):
            raise InvalidTransitionError(booking.id, booking.status.value, target.value)
        logger.info(
            "Booking status changed",
            extra={
                "booking_id": booking.id,
                "from_status": booking.status.value,
                "to_status": target.value,
            },
        )
        booking.status = target
        booking.updated_at = now

    # === Payment ===

    def apply_payment_success(
        self, booking: Booking, is_deposit: bool, now: datetime
    ) -> PaymentApplication:
        """
        Move a PENDING booking to DEPOSIT_PAID or PAID.

        Any non-PENDING booking is left as it is and reported as already
        applied, except a CANCELLED one, which is queued for refund since
        the money arrived after the seats were given back.
        """
        if booking.status == S.PENDING:
            self.transition(booking, S.DEPOSIT_PAID if is_deposit else S.PAID, now)
            booking.paid_at = now
            return PaymentApplication.APPLIED

        if booking.status == S.CANCELLED and booking.refunded_at is None:
            self.queue_refund(booking, now)
            return PaymentApplication.LATE_CAPTURE

        return PaymentApplication.ALREADY_APPLIED

    def queue_refund(self, booking: Booking, now: datetime) -> None:
        """Hand the booking to the refund retry sweep with a fresh attempt counter."""
        self.transition(booking, S.REFUND_FAILED, now)
        booking.refund_attempts = 0
        booking.last_refund_attempt_at = None
        booking.payout_eligible_at = None

    def cancel(
        self,
        booking: Booking,
        now: datetime,
        cancelled_by: str,
        reason: str | None = None,
    ) -> None:
        if booking.is_dispute_locked:
            raise DisputeLockedError(booking.id, booking.status.value)
        if booking.status in _FINALIZED_STATUSES:
            raise BookingFinalizedError(booking.id, booking.status.value)
        self.transition(booking, S.CANCELLED, now)
        booking.cancelled_at = now
        booking.cancelled_by = cancelled_by
        booking.cancel_reason = reason
        booking.payout_eligible_at = None

    # === Attendance ===

    def move_to_pending_attendance(self, booking: Booking, now: datetime) -> bool:
        if booking.status not in PAID_STATUSES:
            return False
        self.transition(booking, S.PENDING_ATTENDANCE, now)
        return True

    def confirm_attendance(self, booking: Booking, window: TimeWindow, now: datetime) -> bool:
        """Host confirms the explorer showed up. Returns False on a repeated confirmation."""
        self._check_attendance_action(booking, window, now)
        if booking.status == S.COMPLETED:
            return False
        self.transition(booking, S.COMPLETED, now)
        booking.attendance_status = AttendanceStatus.CONFIRMED
        booking.attendance_confirmed = True
        booking.completed_at = now
        booking.payout_eligible_at = now + constants.PAYOUT_HOLDBACK
        return True

    def mark_no_show(self, booking: Booking, window: TimeWindow, now: datetime) -> bool:
        """Host reports the explorer did not attend. Payout is blocked for good."""
        self._check_attendance_action(booking, window, now)
        if booking.status == S.NO_SHOW:
            return False
        self.transition(booking, S.NO_SHOW, now)
        booking.attendance_status = AttendanceStatus.NO_SHOW
        booking.attendance_confirmed = True
        booking.completed_at = now
        booking.payout_eligible_at = None
        return True

    def auto_complete(self, booking: Booking, end: datetime, now: datetime) -> None:
        """Close a booking whose host never answered within the attendance window."""
        self.transition(booking, S.AUTO_COMPLETED, now)
        booking.attendance_status = AttendanceStatus.CONFIRMED
        booking.attendance_confirmed = True
        booking.completed_at = end
        booking.payout_eligible_at = end + constants.PAYOUT_HOLDBACK

    def _check_attendance_action(self, booking: Booking, window: TimeWindow, now: datetime) -> None:
        if booking.is_dispute_locked:
            raise DisputeLockedError(booking.id, booking.status.value)
        if not window.contains(now):
            raise AttendanceWindowError(window.opens_at, window.closes_at, now)

    # === Disputes ===

    def open_dispute(
        self,
        booking: Booking,
        reason: str,
        comment: str | None,
        window: TimeWindow,
        now: datetime,
    ) -> None:
        try:
            reason = DisputeReason(reason).value
        except ValueError as exc:
            raise InvalidDisputeReasonError(reason) from exc
        if comment and len(comment) > constants.DISPUTE_COMMENT_MAX_LENGTH:
            raise ValidationError(
                "comment", f"must be at most {constants.DISPUTE_COMMENT_MAX_LENGTH} characters"
            )
        if booking.is_dispute_locked:
            raise DisputeLockedError(booking.id, booking.status.value)
        if booking.status == S.CANCELLED:
            raise InvalidTransitionError(booking.id, booking.status.value, S.DISPUTED.value)
        if not window.contains(now):
            raise DisputeWindowError(window.opens_at, window.closes_at, now)

        previous = booking.status
        self.transition(booking, S.DISPUTED, now)
        booking.status_before_dispute = previous
        booking.disputed_at = now
        booking.dispute_reason = reason
        booking.dispute_comment = comment or None
        booking.dispute_resolved_at = None

    def open_processor_dispute(self, booking: Booking, now: datetime) -> bool:
        """A chargeback was opened at the processor. Idempotent."""
        if booking.status == S.DISPUTED:
            return False
        if not can_transition(booking.status, S.DISPUTED):
            logger.warning(
                "Processor dispute on a booking that cannot be disputed",
                extra={"booking_id": booking.id, "status": booking.status.value},
            )
            return False
        previous = booking.status
        self.transition(booking, S.DISPUTED, now)
        booking.status_before_dispute = previous
        booking.disputed_at = now
        booking.dispute_resolved_at = None
        return True

    def close_processor_dispute(self, booking: Booking, won: bool, now: datetime) -> bool:
        target = S.DISPUTE_WON if won else S.DISPUTE_LOST
        if booking.status == target:
            return False
        self.transition(booking, target, now)
        booking.dispute_resolved_at = now
        if won:
            completed_at = as_utc(booking.completed_at)
            if booking.payout_eligible_at is None and completed_at is not None:
                booking.payout_eligible_at = completed_at + constants.PAYOUT_HOLDBACK
        else:
            booking.payout_eligible_at = None
        return True

    def resolve_dispute(self, booking: Booking, now: datetime) -> bool:
        """Admin sides with the host: the booking completes and payout is rescheduled."""
        if booking.status != S.DISPUTED and not booking.has_open_dispute:
            return False
        self.transition(booking, S.COMPLETED, now)
        completed_at = as_utc(booking.completed_at) or now
        booking.completed_at = completed_at
        booking.payout_eligible_at = completed_at + constants.PAYOUT_HOLDBACK
        self._clear_dispute(booking, now)
        return True

    def ignore_dispute(self, booking: Booking, now: datetime) -> bool:
        """Admin dismisses the dispute and the booking resumes from where it was."""
        if booking.status != S.DISPUTED:
            return False
        previous = booking.status_before_dispute or S.COMPLETED
        if previous not in _DISPUTE_RESTORABLE:
            raise InvalidTransitionError(booking.id, booking.status.value, previous.value)
        self.transition(booking, previous, now)
        completed_at = as_utc(booking.completed_at)
        if previous in PAYOUT_STATUSES and completed_at is not None:
            booking.payout_eligible_at = completed_at + constants.PAYOUT_HOLDBACK
        self._clear_dispute(booking, now)
        return True

    def _clear_dispute(self, booking: Booking, now: datetime) -> None:
        booking.dispute_reason = None
        booking.dispute_comment = None
        booking.status_before_dispute = None
        booking.dispute_resolved_at = now

    # === Refunds ===

    def mark_refunded(self, booking: Booking, now: datetime) -> None:
        """Money went back to the explorer. A cancelled booking keeps its status."""
        if booking.status not in (S.CANCELLED, S.REFUNDED):
            self.transition(booking, S.REFUNDED, now)
        booking.refunded_at = booking.refunded_at or now
        booking.payout_eligible_at = None

    def mark_refund_failed(self, booking: Booking, now: datetime) -> None:
        if booking.status != S.REFUND_FAILED:
            self.transition(booking, S.REFUND_FAILED, now)
        booking.refund_attempts += 1
        booking.last_refund_attempt_at = now
        booking.payout_eligible_at = None
