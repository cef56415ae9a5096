"""
Unit tests for the booking state machine.

Covers the transition table, payment application (including late
captures), cancellation guards, attendance outcomes, disputes and
refund bookkeeping.
"""

from datetime import datetime, timedelta, timezone

import pytest

from app.domain import constants
from app.domain.booking_state_machine import (
    TRANSITIONS,
    BookingStateMachine,
    PaymentApplication,
    can_transition,
)
from app.domain.entities.booking import AttendanceStatus, Booking, BookingStatus
from app.domain.errors import (
    AttendanceWindowError,
    BookingFinalizedError,
    DisputeLockedError,
    DisputeWindowError,
    InvalidDisputeReasonError,
    InvalidTransitionError,
    ValidationError,
)
from app.domain.schedule import TimeWindow

NOW = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
OPEN_WINDOW = TimeWindow(NOW - timedelta(hours=1), NOW + timedelta(hours=1))
CLOSED_WINDOW = TimeWindow(NOW + timedelta(hours=1), NOW + timedelta(hours=2))


def make_booking(status: BookingStatus = BookingStatus.PENDING, **fields) -> Booking:
    return Booking(id=1, experience_id=7, explorer_id=2, host_id=3, status=status, **fields)


@pytest.fixture
def machine() -> BookingStateMachine:
    return BookingStateMachine()


class TestTransitionTable:
    """Allowed status changes."""

    def test_every_status_has_an_entry(self):
        assert set(TRANSITIONS) == set(BookingStatus)

    def test_refunded_is_terminal(self):
        assert TRANSITIONS[BookingStatus.REFUNDED] == frozenset()

    @pytest.mark.parametrize(
        "current,target",
        [
            (BookingStatus.PENDING, BookingStatus.PAID),
            (BookingStatus.PENDING, BookingStatus.DEPOSIT_PAID),
            (BookingStatus.PAID, BookingStatus.PENDING_ATTENDANCE),
            (BookingStatus.PENDING_ATTENDANCE, BookingStatus.AUTO_COMPLETED),
            (BookingStatus.COMPLETED, BookingStatus.DISPUTED),
            (BookingStatus.DISPUTED, BookingStatus.DISPUTE_WON),
            (BookingStatus.DISPUTED, BookingStatus.PAID),
            (BookingStatus.CANCELLED, BookingStatus.REFUND_FAILED),
            (BookingStatus.REFUND_FAILED, BookingStatus.REFUNDED),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (BookingStatus.PENDING, BookingStatus.COMPLETED),
            (BookingStatus.CANCELLED, BookingStatus.PAID),
            (BookingStatus.REFUNDED, BookingStatus.PAID),
            (BookingStatus.DISPUTE_LOST, BookingStatus.COMPLETED),
            (BookingStatus.NO_SHOW, BookingStatus.COMPLETED),
        ],
    )
    def test_rejected(self, machine, current, target):
        booking = make_booking(current)
        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.transition(booking, target, NOW)
        assert exc_info.value.code == "INVALID_TRANSITION"
        assert booking.status == current

    def test_transition_stamps_updated_at(self, machine):
        booking = make_booking()
        machine.transition(booking, BookingStatus.PAID, NOW)
        assert booking.status == BookingStatus.PAID
        assert booking.updated_at == NOW


class TestPaymentApplication:
    """Applying a processor success to a booking."""

    def test_pending_becomes_paid(self, machine):
        booking = make_booking()
        outcome = machine.apply_payment_success(booking, is_deposit=False, now=NOW)
        assert outcome == PaymentApplication.APPLIED
        assert booking.status == BookingStatus.PAID
        assert booking.paid_at == NOW

    def test_pending_deposit_becomes_deposit_paid(self, machine):
        booking = make_booking()
        machine.apply_payment_success(booking, is_deposit=True, now=NOW)
        assert booking.status == BookingStatus.DEPOSIT_PAID

    def test_second_application_is_a_no_op(self, machine):
        booking = make_booking()
        machine.apply_payment_success(booking, is_deposit=False, now=NOW)
        later = NOW + timedelta(minutes=5)
        outcome = machine.apply_payment_success(booking, is_deposit=False, now=later)
        assert outcome == PaymentApplication.ALREADY_APPLIED
        assert booking.paid_at == NOW

    def test_late_capture_on_cancelled_booking_queues_refund(self, machine):
        booking = make_booking(
            BookingStatus.CANCELLED, refund_attempts=3, last_refund_attempt_at=NOW
        )
        outcome = machine.apply_payment_success(booking, is_deposit=False, now=NOW)
        assert outcome == PaymentApplication.LATE_CAPTURE
        assert booking.status == BookingStatus.REFUND_FAILED
        assert booking.refund_attempts == 0
        assert booking.last_refund_attempt_at is None

    def test_cancelled_and_refunded_is_left_alone(self, machine):
        booking = make_booking(BookingStatus.CANCELLED, refunded_at=NOW)
        outcome = machine.apply_payment_success(booking, is_deposit=False, now=NOW)
        assert outcome == PaymentApplication.ALREADY_APPLIED
        assert booking.status == BookingStatus.CANCELLED


class TestCancellation:
    def test_paid_booking_is_cancelled(self, machine):
        booking = make_booking(BookingStatus.PAID, payout_eligible_at=NOW)
        machine.cancel(booking, NOW, cancelled_by="host", reason="weather")
        assert booking.status == BookingStatus.CANCELLED
        assert booking.cancelled_by == "host"
        assert booking.cancel_reason == "weather"
        assert booking.payout_eligible_at is None

    @pytest.mark.parametrize(
        "status",
        [BookingStatus.DISPUTED, BookingStatus.DISPUTE_WON, BookingStatus.DISPUTE_LOST],
    )
    def test_dispute_locked_booking_cannot_be_cancelled(self, machine, status):
        with pytest.raises(DisputeLockedError):
            machine.cancel(make_booking(status), NOW, cancelled_by="host")

    @pytest.mark.parametrize(
        "status",
        [
            BookingStatus.CANCELLED,
            BookingStatus.REFUNDED,
            BookingStatus.REFUND_FAILED,
            BookingStatus.COMPLETED,
            BookingStatus.AUTO_COMPLETED,
            BookingStatus.NO_SHOW,
        ],
    )
    def test_finalized_booking_cannot_be_cancelled(self, machine, status):
        with pytest.raises(BookingFinalizedError) as exc_info:
            machine.cancel(make_booking(status), NOW, cancelled_by="host")
        assert exc_info.value.code == "BOOKING_FINALIZED"


class TestAttendance:
    def test_confirm_schedules_payout_after_holdback(self, machine):
        booking = make_booking(BookingStatus.PENDING_ATTENDANCE)
        assert machine.confirm_attendance(booking, OPEN_WINDOW, NOW) is True
        assert booking.status == BookingStatus.COMPLETED
        assert booking.attendance_status == AttendanceStatus.CONFIRMED
        assert booking.payout_eligible_at == NOW + constants.PAYOUT_HOLDBACK

    def test_repeated_confirmation_changes_nothing(self, machine):
        booking = make_booking(BookingStatus.PAID)
        machine.confirm_attendance(booking, OPEN_WINDOW, NOW)
        assert machine.confirm_attendance(booking, OPEN_WINDOW, NOW + timedelta(minutes=1)) is False
        assert booking.completed_at == NOW

    def test_no_show_blocks_payout(self, machine):
        booking = make_booking(BookingStatus.PAID, payout_eligible_at=NOW)
        assert machine.mark_no_show(booking, OPEN_WINDOW, NOW) is True
        assert booking.status == BookingStatus.NO_SHOW
        assert booking.payout_eligible_at is None

    def test_outside_window_is_rejected_with_boundaries(self, machine):
        booking = make_booking(BookingStatus.PAID)
        with pytest.raises(AttendanceWindowError) as exc_info:
            machine.confirm_attendance(booking, CLOSED_WINDOW, NOW)
        assert exc_info.value.opens_at == CLOSED_WINDOW.opens_at
        assert exc_info.value.closes_at == CLOSED_WINDOW.closes_at
        assert booking.status == BookingStatus.PAID

    def test_attendance_on_disputed_booking_is_locked(self, machine):
        with pytest.raises(DisputeLockedError):
            machine.mark_no_show(make_booking(BookingStatus.DISPUTED), OPEN_WINDOW, NOW)

    def test_auto_complete_uses_end_time(self, machine):
        end = NOW - timedelta(hours=50)
        booking = make_booking(BookingStatus.PENDING_ATTENDANCE)
        machine.auto_complete(booking, end, NOW)
        assert booking.status == BookingStatus.AUTO_COMPLETED
        assert booking.completed_at == end
        assert booking.payout_eligible_at == end + constants.PAYOUT_HOLDBACK


class TestDisputes:
    def test_open_dispute_remembers_previous_status(self, machine):
        booking = make_booking(BookingStatus.COMPLETED, completed_at=NOW)
        machine.open_dispute(booking, "NO_SHOW", "host never came", OPEN_WINDOW, NOW)
        assert booking.status == BookingStatus.DISPUTED
        assert booking.status_before_dispute == BookingStatus.COMPLETED
        assert booking.has_open_dispute

    def test_unknown_reason_is_rejected(self, machine):
        with pytest.raises(InvalidDisputeReasonError):
            machine.open_dispute(make_booking(BookingStatus.COMPLETED), "BORING", None, OPEN_WINDOW, NOW)

    def test_comment_length_is_limited(self, machine):
        comment = "x" * (constants.DISPUTE_COMMENT_MAX_LENGTH + 1)
        with pytest.raises(ValidationError):
            machine.open_dispute(make_booking(BookingStatus.COMPLETED), "OTHER", comment, OPEN_WINDOW, NOW)

    def test_comment_at_limit_is_accepted(self, machine):
        booking = make_booking(BookingStatus.COMPLETED)
        comment = "x" * constants.DISPUTE_COMMENT_MAX_LENGTH
        machine.open_dispute(booking, "OTHER", comment, OPEN_WINDOW, NOW)
        assert booking.dispute_comment == comment

    def test_second_dispute_is_locked(self, machine):
        booking = make_booking(BookingStatus.COMPLETED)
        machine.open_dispute(booking, "SAFETY", None, OPEN_WINDOW, NOW)
        with pytest.raises(DisputeLockedError):
            machine.open_dispute(booking, "SAFETY", None, OPEN_WINDOW, NOW)

    def test_cancelled_booking_cannot_be_disputed(self, machine):
        with pytest.raises(InvalidTransitionError):
            machine.open_dispute(make_booking(BookingStatus.CANCELLED), "OTHER", None, OPEN_WINDOW, NOW)

    def test_outside_window(self, machine):
        with pytest.raises(DisputeWindowError):
            machine.open_dispute(make_booking(BookingStatus.COMPLETED), "OTHER", None, CLOSED_WINDOW, NOW)

    def test_resolve_completes_and_reschedules_payout(self, machine):
        completed_at = NOW - timedelta(days=1)
        booking = make_booking(BookingStatus.COMPLETED, completed_at=completed_at)
        machine.open_dispute(booking, "LOW_QUALITY", None, OPEN_WINDOW, NOW)
        assert machine.resolve_dispute(booking, NOW) is True
        assert booking.status == BookingStatus.COMPLETED
        assert booking.payout_eligible_at == completed_at + constants.PAYOUT_HOLDBACK
        assert not booking.has_open_dispute
        assert machine.resolve_dispute(booking, NOW) is False

    def test_ignore_restores_previous_status(self, machine):
        booking = make_booking(BookingStatus.AUTO_COMPLETED, completed_at=NOW)
        machine.open_dispute(booking, "OTHER", None, OPEN_WINDOW, NOW)
        assert machine.ignore_dispute(booking, NOW) is True
        assert booking.status == BookingStatus.AUTO_COMPLETED
        assert booking.dispute_resolved_at == NOW
        assert booking.payout_eligible_at == NOW + constants.PAYOUT_HOLDBACK

    @pytest.mark.parametrize(
        "previous",
        [BookingStatus.PAID, BookingStatus.DEPOSIT_PAID, BookingStatus.PENDING_ATTENDANCE],
    )
    def test_ignore_restores_a_booking_before_attendance(self, machine, previous):
        booking = make_booking(previous)
        machine.open_dispute(booking, "SAFETY", None, OPEN_WINDOW, NOW)
        assert machine.ignore_dispute(booking, NOW) is True
        assert booking.status == previous
        assert booking.status_before_dispute is None
        assert booking.payout_eligible_at is None

    def test_ignore_refuses_a_status_it_cannot_restore(self, machine):
        booking = make_booking(
            BookingStatus.DISPUTED,
            status_before_dispute=BookingStatus.REFUNDED,
            disputed_at=NOW,
        )
        with pytest.raises(InvalidTransitionError):
            machine.ignore_dispute(booking, NOW)
        assert booking.status == BookingStatus.DISPUTED

    def test_resolve_after_ignore_changes_nothing(self, machine):
        booking = make_booking(BookingStatus.PAID)
        machine.open_dispute(booking, "OTHER", None, OPEN_WINDOW, NOW)
        machine.ignore_dispute(booking, NOW)

        assert machine.resolve_dispute(booking, NOW + timedelta(minutes=5)) is False
        assert booking.status == BookingStatus.PAID
        assert booking.completed_at is None
        assert booking.payout_eligible_at is None

    def test_processor_dispute_lost_blocks_payout(self, machine):
        booking = make_booking(BookingStatus.COMPLETED, completed_at=NOW, payout_eligible_at=NOW)
        assert machine.open_processor_dispute(booking, NOW) is True
        assert machine.open_processor_dispute(booking, NOW) is False
        assert machine.close_processor_dispute(booking, won=False, now=NOW) is True
        assert booking.status == BookingStatus.DISPUTE_LOST
        assert booking.payout_eligible_at is None

    def test_processor_dispute_won_restores_payout(self, machine):
        booking = make_booking(BookingStatus.COMPLETED, completed_at=NOW)
        machine.open_processor_dispute(booking, NOW)
        machine.close_processor_dispute(booking, won=True, now=NOW)
        assert booking.status == BookingStatus.DISPUTE_WON
        assert booking.payout_eligible_at == NOW + constants.PAYOUT_HOLDBACK


class TestRefundBookkeeping:
    def test_cancelled_booking_keeps_status_when_refunded(self, machine):
        booking = make_booking(BookingStatus.CANCELLED)
        machine.mark_refunded(booking, NOW)
        assert booking.status == BookingStatus.CANCELLED
        assert booking.refunded_at == NOW

    def test_refund_failed_counts_attempts(self, machine):
        booking = make_booking(BookingStatus.PAID)
        machine.mark_refund_failed(booking, NOW)
        machine.mark_refund_failed(booking, NOW + timedelta(hours=6))
        assert booking.status == BookingStatus.REFUND_FAILED
        assert booking.refund_attempts == 2
        assert booking.last_refund_attempt_at == NOW + timedelta(hours=6)

    def test_refund_failed_then_refunded(self, machine):
        booking = make_booking(BookingStatus.REFUND_FAILED, refund_attempts=2)
        machine.mark_refunded(booking, NOW)
        assert booking.status == BookingStatus.REFUNDED
