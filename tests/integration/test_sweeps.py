"""
Integration tests for the time-driven sweeps and host attendance reports.

The default experience starts two days after the fixed test clock and
lasts two hours, so every scenario moves the clock relative to that end.
"""

from datetime import timedelta

import pytest

from app.application.use_cases.record_attendance import AttendanceOutcome
from app.domain.entities.booking import AttendanceStatus, BookingStatus
from app.domain.errors import (
    AttendanceWindowError,
    ChatUnavailableError,
    NotBookingHostError,
    PaymentGatewayError,
)
from tests.conftest import NOW

START = NOW + timedelta(days=2)
END = START + timedelta(minutes=120)


async def paid_booking(harness, **experience_overrides):
    host = await harness.add_host()
    explorer = await harness.add_explorer()
    experience = await harness.add_experience(host, **experience_overrides)
    booking = await harness.book_paid(explorer, experience)
    return host, explorer, booking


def attendance_emails(harness):
    return [e for e in harness.notifier.emails if e.template == "attendance_reminder"]


# ============================================================================
# ATTENDANCE SCHEDULER
# ============================================================================


class TestAttendanceSweep:
    @pytest.mark.asyncio
    async def test_nothing_happens_before_the_end(self, harness):
        _, _, booking = await paid_booking(harness)

        report = await harness.sweep("attendance")(END - timedelta(minutes=1))

        assert report.examined == 1
        assert report.changed == 0
        assert (await harness.booking(booking.id)).status == BookingStatus.PAID

    @pytest.mark.asyncio
    async def test_reminders_follow_the_cadence(self, harness):
        host, _, booking = await paid_booking(harness)
        sweep = harness.sweep("attendance")

        first = await sweep(END + timedelta(minutes=1))
        assert first.changed == 1
        assert (await harness.booking(booking.id)).status == BookingStatus.PENDING_ATTENDANCE
        assert len(harness.notifier.notifications_for(host.id, "ATTENDANCE_REMINDER")) == 1
        assert len(attendance_emails(harness)) == 1

        quiet = await sweep(END + timedelta(hours=6))
        assert quiet.changed == 0
        assert len(harness.notifier.notifications_for(host.id, "ATTENDANCE_REMINDER")) == 1

        await sweep(END + timedelta(hours=12, minutes=1))
        assert len(harness.notifier.notifications_for(host.id, "ATTENDANCE_REMINDER")) == 2
        assert len(attendance_emails(harness)) == 1
        assert attendance_emails(harness)[0].to == host.email

    @pytest.mark.asyncio
    async def test_auto_completes_after_the_window(self, harness):
        host, _, booking = await paid_booking(harness)
        sweep = harness.sweep("attendance")
        await sweep(END + timedelta(minutes=1))

        report = await sweep(END + timedelta(hours=48))

        assert report.changed == 1
        completed = await harness.booking(booking.id)
        assert completed.status == BookingStatus.AUTO_COMPLETED
        assert completed.attendance_status == AttendanceStatus.CONFIRMED
        assert completed.completed_at == END
        assert completed.payout_eligible_at == END + timedelta(hours=72)
        assert len(harness.notifier.notifications_for(host.id, "BOOKING_AUTO_COMPLETED")) == 1

        again = await sweep(END + timedelta(hours=49))
        assert again.examined == 0

    @pytest.mark.asyncio
    async def test_hard_cap_when_the_experience_has_no_times(self, harness):
        _, _, booking = await paid_booking(harness, starts_at=None, duration_minutes=None)
        hard_cap_end = NOW + timedelta(days=7)
        sweep = harness.sweep("attendance")

        before = await sweep(hard_cap_end - timedelta(seconds=1))
        assert before.changed == 0

        await sweep(hard_cap_end + timedelta(hours=48))
        completed = await harness.booking(booking.id)
        assert completed.status == BookingStatus.AUTO_COMPLETED
        assert completed.completed_at == hard_cap_end

    @pytest.mark.asyncio
    async def test_confirmed_bookings_are_skipped(self, harness):
        host, _, booking = await paid_booking(harness)
        harness.clock.set_time(END)
        await harness.use_cases["record_attendance"].execute(
            booking.id, host_id=host.id, outcome=AttendanceOutcome.CONFIRMED
        )

        report = await harness.sweep("attendance")(END + timedelta(hours=48))

        assert report.examined == 0
        assert (await harness.booking(booking.id)).status == BookingStatus.COMPLETED


class TestRecordAttendance:
    @pytest.mark.asyncio
    async def test_too_early(self, harness):
        host, _, booking = await paid_booking(harness)
        harness.clock.set_time(START + timedelta(minutes=14))

        with pytest.raises(AttendanceWindowError) as exc_info:
            await harness.use_cases["record_attendance"].execute(
                booking.id, host_id=host.id, outcome=AttendanceOutcome.CONFIRMED
            )

        assert exc_info.value.opens_at == START + timedelta(minutes=15)
        assert exc_info.value.closes_at == END + timedelta(hours=48)
        assert exc_info.value.code == "ATTENDANCE_WINDOW"

    @pytest.mark.asyncio
    async def test_confirm_at_the_opening_boundary(self, harness):
        host, explorer, booking = await paid_booking(harness)
        opens_at = START + timedelta(minutes=15)
        harness.clock.set_time(opens_at)
        record = harness.use_cases["record_attendance"]

        confirmed = await record.execute(booking.id, host_id=host.id, outcome=AttendanceOutcome.CONFIRMED)
        repeated = await record.execute(booking.id, host_id=host.id, outcome=AttendanceOutcome.CONFIRMED)

        assert confirmed.status == BookingStatus.COMPLETED
        assert confirmed.completed_at == opens_at
        assert confirmed.payout_eligible_at == opens_at + timedelta(hours=72)
        assert repeated.lock_version == confirmed.lock_version
        assert len(harness.notifier.notifications_for(explorer.id, "ATTENDANCE_CONFIRMED")) == 1

    @pytest.mark.asyncio
    async def test_no_show_at_the_closing_boundary(self, harness):
        host, _, booking = await paid_booking(harness)
        harness.clock.set_time(END + timedelta(hours=48))

        no_show = await harness.use_cases["record_attendance"].execute(
            booking.id, host_id=host.id, outcome=AttendanceOutcome.NO_SHOW
        )

        assert no_show.status == BookingStatus.NO_SHOW
        assert no_show.attendance_status == AttendanceStatus.NO_SHOW
        assert no_show.payout_eligible_at is None

    @pytest.mark.asyncio
    async def test_too_late(self, harness):
        host, _, booking = await paid_booking(harness)
        harness.clock.set_time(END + timedelta(hours=48, seconds=1))

        with pytest.raises(AttendanceWindowError):
            await harness.use_cases["record_attendance"].execute(
                booking.id, host_id=host.id, outcome=AttendanceOutcome.NO_SHOW
            )

    @pytest.mark.asyncio
    async def test_only_the_host(self, harness):
        _, explorer, booking = await paid_booking(harness)
        harness.clock.set_time(END)

        with pytest.raises(NotBookingHostError):
            await harness.use_cases["record_attendance"].execute(
                booking.id, host_id=explorer.id, outcome=AttendanceOutcome.CONFIRMED
            )


# ============================================================================
# REFUND RETRY SCHEDULER
# ============================================================================


def park_refund_failed(harness, booking_id: int, attempts: int, hours_ago: float) -> None:
    stored = harness.bookings.bookings[booking_id]
    stored.status = BookingStatus.REFUND_FAILED
    stored.refund_attempts = attempts
    stored.last_refund_attempt_at = harness.clock.now() - timedelta(hours=hours_ago)


class TestRefundRetrySweep:
    @pytest.mark.asyncio
    async def test_due_booking_is_retried_once(self, harness):
        _, _, booking = await paid_booking(harness)
        park_refund_failed(harness, booking.id, attempts=2, hours_ago=7)

        report = await harness.sweep("refund_retry")(harness.clock.now())

        assert report.examined == 1
        assert report.changed == 1
        assert harness.gateway.refund_calls == [f"refund_{booking.id}_3"]
        refunded = await harness.booking(booking.id)
        assert refunded.status == BookingStatus.REFUNDED
        assert refunded.refund_attempts == 3

        second = await harness.sweep("refund_retry")(harness.clock.now())
        assert second.examined == 0

    @pytest.mark.asyncio
    async def test_backoff_is_respected(self, harness):
        _, _, booking = await paid_booking(harness)
        park_refund_failed(harness, booking.id, attempts=1, hours_ago=5)

        report = await harness.sweep("refund_retry")(harness.clock.now())

        assert report.examined == 0
        assert harness.gateway.refund_calls == []

    @pytest.mark.asyncio
    async def test_exhausted_bookings_are_left_alone(self, harness):
        _, _, booking = await paid_booking(harness)
        park_refund_failed(harness, booking.id, attempts=5, hours_ago=24)

        report = await harness.sweep("refund_retry")(harness.clock.now())

        assert report.examined == 0
        assert (await harness.booking(booking.id)).status == BookingStatus.REFUND_FAILED

    @pytest.mark.asyncio
    async def test_failed_retry_counts_the_attempt(self, harness):
        _, _, booking = await paid_booking(harness)
        park_refund_failed(harness, booking.id, attempts=4, hours_ago=7)
        harness.gateway.refund_error = PaymentGatewayError("card_declined")

        report = await harness.sweep("refund_retry")(harness.clock.now())

        assert report.failed == 1
        assert report.failed_ids == [booking.id]
        failed = await harness.booking(booking.id)
        assert failed.status == BookingStatus.REFUND_FAILED
        assert failed.refund_attempts == 5
        assert failed.last_refund_attempt_at == harness.clock.now()

        harness.clock.advance(hours=7)
        later = await harness.sweep("refund_retry")(harness.clock.now())
        assert later.examined == 0
        assert harness.gateway.refund_calls == [f"refund_{booking.id}_5"]


# ============================================================================
# CHAT ARCHIVE
# ============================================================================


class TestChatArchiveSweep:
    @pytest.mark.asyncio
    async def test_archive_time_is_recorded_first(self, harness):
        _, _, booking = await paid_booking(harness)
        sweep = harness.sweep("chat_archive")

        first = await sweep(harness.clock.now())
        second = await sweep(harness.clock.now())

        assert first.changed == 1
        assert second.changed == 0
        stored = await harness.booking(booking.id)
        assert stored.chat_archive_at == END + timedelta(hours=48)
        assert stored.chat_archived_at is None

    @pytest.mark.asyncio
    async def test_archived_chat_is_read_only_for_admins(self, harness):
        host, explorer, booking = await paid_booking(harness)
        await harness.use_cases["send_message"].execute(booking.id, explorer.id, "See you there!")

        archive_at = END + timedelta(hours=48)
        harness.clock.set_time(archive_at)
        report = await harness.sweep("chat_archive")(archive_at)

        assert report.changed == 1
        assert (await harness.booking(booking.id)).chat_archived_at == archive_at

        with pytest.raises(ChatUnavailableError) as exc_info:
            await harness.use_cases["send_message"].execute(booking.id, host.id, "Thanks!")
        assert exc_info.value.code == "CHAT_ARCHIVED"

        with pytest.raises(ChatUnavailableError):
            await harness.use_cases["list_messages"].execute(booking.id, explorer.id)

        messages = await harness.use_cases["list_messages"].execute(booking.id, 999, is_admin=True)
        assert [m.text for m in messages] == ["See you there!"]

    @pytest.mark.asyncio
    async def test_late_sweep_stamps_the_scheduled_archive_time(self, harness):
        _, _, booking = await paid_booking(harness)
        archive_at = END + timedelta(hours=48)
        late = archive_at + timedelta(hours=5)
        harness.clock.set_time(late)

        report = await harness.sweep("chat_archive")(late)

        assert report.changed == 1
        stored = await harness.booking(booking.id)
        assert stored.chat_archive_at == archive_at
        assert stored.chat_archived_at == archive_at

    @pytest.mark.asyncio
    async def test_disputed_booking_keeps_its_chat(self, harness):
        _, _, booking = await paid_booking(harness)
        harness.bookings.bookings[booking.id].status = BookingStatus.DISPUTED

        report = await harness.sweep("chat_archive")(END + timedelta(hours=72))

        assert report.examined == 0
        assert (await harness.booking(booking.id)).chat_archived_at is None
