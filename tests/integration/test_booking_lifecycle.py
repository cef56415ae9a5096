"""
Integration tests for booking creation, payment success and host cancellation.

Runs every use case against the in-memory adapters with a frozen clock.
"""

import asyncio
from datetime import timedelta

import pytest

from app.domain.entities.booking import Booking, BookingStatus
from app.domain.entities.experience import ActivityType, ExperienceStatus
from app.domain.entities.payment import PaymentStatus
from app.domain.errors import (
    BookingNotFoundError,
    ConflictError,
    DisputeLockedError,
    ExperienceAlreadyStartedError,
    ExperienceUnavailableError,
    InsufficientCapacityError,
    NotBookingHostError,
    ParticipantBannedError,
    PaymentGatewayError,
    RepeatedNoShowError,
    SoldOutError,
    ValidationError,
)


class TestCreateBooking:
    """Seat hold, booking row and checkout session."""

    @pytest.mark.asyncio
    async def test_paid_experience_holds_seats_and_opens_checkout(self, harness):
        host = await harness.add_host()
        explorer = await harness.add_explorer()
        experience = await harness.add_experience(host, price=12500)

        result = await harness.book(explorer, experience, quantity=2)

        booking = await harness.booking(result.booking.id)
        assert booking.status == BookingStatus.PENDING
        assert booking.amount == 25000
        assert booking.host_id == host.id
        assert not booking.is_deposit
        assert result.amount == 25000
        assert result.checkout_url.endswith(result.checkout_session_id)

        assert (await harness.experience(experience.id)).remaining_spots == 8

        payment = await harness.payments.get_by_booking(booking.id)
        assert payment.status == PaymentStatus.INITIATED
        assert payment.stripe_session_id == result.checkout_session_id
        assert payment.amount == 25000

        request = harness.gateway.checkout_requests[0]
        assert request.amount == 12500
        assert request.quantity == 2
        assert request.metadata["bookingId"] == str(booking.id)
        assert request.metadata["isDeposit"] == "false"
        assert request.customer_email == explorer.email

    @pytest.mark.asyncio
    async def test_free_experience_charges_a_deposit(self, harness):
        host = await harness.add_host()
        explorer = await harness.add_explorer()
        experience = await harness.add_experience(host, price=0)

        result = await harness.book(explorer, experience, quantity=3)

        assert result.is_deposit
        assert result.amount == 3 * harness.settings.free_booking_deposit_minor
        assert result.booking.deposit_amount == result.amount
        assert result.booking.amount == 0
        assert harness.gateway.checkout_requests[0].product_name.startswith("Deposit: ")

    @pytest.mark.asyncio
    async def test_sold_out(self, harness):
        host = await harness.add_host()
        explorer = await harness.add_explorer()
        experience = await harness.add_experience(host, remaining_spots=0, sold_out=True)

        with pytest.raises(SoldOutError):
            await harness.book(explorer, experience)

    @pytest.mark.asyncio
    async def test_more_seats_than_remaining(self, harness):
        host = await harness.add_host()
        explorer = await harness.add_explorer()
        experience = await harness.add_experience(host, remaining_spots=2)

        with pytest.raises(InsufficientCapacityError):
            await harness.book(explorer, experience, quantity=3)
        assert (await harness.experience(experience.id)).remaining_spots == 2

    @pytest.mark.asyncio
    async def test_already_started(self, harness, clock):
        host = await harness.add_host()
        explorer = await harness.add_explorer()
        experience = await harness.add_experience(host, starts_at=clock.now())

        with pytest.raises(ExperienceAlreadyStartedError):
            await harness.book(explorer, experience)

    @pytest.mark.asyncio
    async def test_individual_activity_takes_one_seat(self, harness):
        host = await harness.add_host()
        explorer = await harness.add_explorer()
        experience = await harness.add_experience(host, activity_type=ActivityType.INDIVIDUAL)

        with pytest.raises(ValidationError):
            await harness.book(explorer, experience, quantity=2)

    @pytest.mark.asyncio
    async def test_disabled_experience(self, harness):
        host = await harness.add_host()
        explorer = await harness.add_explorer()
        experience = await harness.add_experience(
            host, status=ExperienceStatus.DISABLED, is_active=False
        )

        with pytest.raises(ExperienceUnavailableError):
            await harness.book(explorer, experience)

    @pytest.mark.asyncio
    async def test_banned_explorer_and_banned_host(self, harness):
        host = await harness.add_host()
        banned_host = await harness.add_host(is_banned=True, stripe_account_id="acct_banned")
        explorer = await harness.add_explorer()
        banned_explorer = await harness.add_explorer(is_banned=True)
        experience = await harness.add_experience(host)
        other_experience = await harness.add_experience(banned_host)

        with pytest.raises(ParticipantBannedError):
            await harness.book(banned_explorer, experience)
        with pytest.raises(ParticipantBannedError):
            await harness.book(explorer, other_experience)

    @pytest.mark.asyncio
    async def test_repeated_no_shows_block_free_bookings(self, harness, clock):
        host = await harness.add_host()
        explorer = await harness.add_explorer()
        free = await harness.add_experience(host, price=0)
        paid = await harness.add_experience(host)
        for days_ago in (3, 20):
            await harness.bookings.add(
                Booking(
                    experience_id=paid.id,
                    explorer_id=explorer.id,
                    host_id=host.id,
                    status=BookingStatus.NO_SHOW,
                    completed_at=clock.now() - timedelta(days=days_ago),
                )
            )

        with pytest.raises(RepeatedNoShowError):
            await harness.book(explorer, free)
        # Paid experiences are not guarded
        await harness.book(explorer, paid)

    @pytest.mark.asyncio
    async def test_old_no_shows_are_forgiven(self, harness, clock):
        host = await harness.add_host()
        explorer = await harness.add_explorer()
        free = await harness.add_experience(host, price=0)
        for days_ago in (31, 45):
            await harness.bookings.add(
                Booking(
                    experience_id=free.id,
                    explorer_id=explorer.id,
                    host_id=host.id,
                    status=BookingStatus.NO_SHOW,
                    completed_at=clock.now() - timedelta(days=days_ago),
                )
            )

        result = await harness.book(explorer, free)
        assert result.booking.status == BookingStatus.PENDING

    @pytest.mark.asyncio
    async def test_checkout_failure_releases_the_hold(self, harness):
        host = await harness.add_host()
        explorer = await harness.add_explorer()
        experience = await harness.add_experience(host, remaining_spots=4, max_participants=4)
        harness.gateway.checkout_error = PaymentGatewayError("card network down")

        with pytest.raises(PaymentGatewayError):
            await harness.book(explorer, experience, quantity=2)

        assert (await harness.experience(experience.id)).remaining_spots == 4
        booking = await harness.booking(1)
        assert booking.status == BookingStatus.CANCELLED
        assert booking.cancelled_by == "system"
        assert await harness.payments.get_by_booking(1) is None

    @pytest.mark.asyncio
    async def test_concurrent_bookings_never_oversell(self, harness):
        host = await harness.add_host()
        explorers = [
            await harness.add_explorer(email=f"explorer{i}@example.com") for i in range(5)
        ]
        experience = await harness.add_experience(host, max_participants=3, remaining_spots=3)

        results = await asyncio.gather(
            *(harness.book(explorer, experience) for explorer in explorers),
            return_exceptions=True,
        )

        created = [r for r in results if not isinstance(r, Exception)]
        rejected = [r for r in results if isinstance(r, Exception)]
        assert len(created) == 3
        assert len(rejected) == 2
        assert all(isinstance(r, ConflictError) for r in rejected)

        latest = await harness.experience(experience.id)
        assert latest.remaining_spots == 0
        assert latest.sold_out


class TestApplyPaymentSuccess:
    """Payment success is applied once, whichever path reports it first."""

    @pytest.mark.asyncio
    async def test_pending_booking_becomes_paid_and_parties_are_told(self, harness):
        host = await harness.add_host()
        explorer = await harness.add_explorer()
        experience = await harness.add_experience(host)

        booking = await harness.book_paid(explorer, experience, quantity=2)

        assert booking.status == BookingStatus.PAID
        assert booking.paid_at == harness.clock.now()
        payment = await harness.payments.get_by_booking(booking.id)
        assert payment.status == PaymentStatus.CONFIRMED
        assert payment.stripe_payment_intent_id is not None
        assert len(harness.notifier.notifications_for(explorer.id, "BOOKING_CONFIRMED")) == 1
        assert len(harness.notifier.notifications_for(host.id, "BOOKING_RECEIVED")) == 1
        assert (await harness.experience(experience.id)).remaining_spots == 8

    @pytest.mark.asyncio
    async def test_second_application_is_a_no_op(self, harness):
        host = await harness.add_host()
        explorer = await harness.add_explorer()
        experience = await harness.add_experience(host)
        booking = await harness.book_paid(explorer, experience)

        again = await harness.use_cases["apply_payment_success"].execute(
            booking.id, source="reconciliation"
        )

        assert not again.applied
        assert again.status == BookingStatus.PAID.value
        assert len(harness.notifier.notifications_for(explorer.id, "BOOKING_CONFIRMED")) == 1
        assert (await harness.experience(experience.id)).remaining_spots == 9

    @pytest.mark.asyncio
    async def test_recount_repairs_drifted_capacity(self, harness):
        host = await harness.add_host()
        explorer = await harness.add_explorer()
        experience = await harness.add_experience(host)
        checkout = await harness.book(explorer, experience, quantity=2)
        harness.experiences.experiences[experience.id].remaining_spots = 3

        await harness.use_cases["apply_payment_success"].execute(checkout.booking.id)

        assert (await harness.experience(experience.id)).remaining_spots == 8

    @pytest.mark.asyncio
    async def test_late_capture_on_cancelled_booking_is_refunded(self, harness):
        host = await harness.add_host()
        explorer = await harness.add_explorer()
        experience = await harness.add_experience(host)
        checkout = await harness.book(explorer, experience)
        await harness.use_cases["cancel_booking"].execute(checkout.booking.id, host_id=host.id)

        result = await harness.use_cases["apply_payment_success"].execute(
            checkout.booking.id, payment_intent_id="pi_late_capture"
        )

        assert result.late_capture
        assert not result.applied
        booking = await harness.booking(checkout.booking.id)
        assert booking.status == BookingStatus.REFUND_FAILED
        assert booking.refund_attempts == 0
        assert harness.notifier.notifications_for(explorer.id, "BOOKING_CONFIRMED") == []

        report = await harness.sweep("refund_retry")(harness.clock.now())

        assert report.changed == 1
        assert (await harness.booking(booking.id)).status == BookingStatus.REFUNDED
        assert harness.gateway.refund_calls == [f"refund_{booking.id}_1"]

    @pytest.mark.asyncio
    async def test_unknown_booking(self, harness):
        with pytest.raises(BookingNotFoundError):
            await harness.use_cases["apply_payment_success"].execute(404)


class TestCancelBooking:
    @pytest.mark.asyncio
    async def test_host_cancels_paid_booking(self, harness):
        host = await harness.add_host()
        explorer = await harness.add_explorer()
        experience = await harness.add_experience(host)
        booking = await harness.book_paid(explorer, experience, quantity=3)

        cancelled = await harness.use_cases["cancel_booking"].execute(
            booking.id, host_id=host.id, reason="storm warning"
        )

        assert cancelled.status == BookingStatus.CANCELLED
        assert cancelled.refunded_at is not None
        assert cancelled.cancel_reason == "storm warning"
        assert harness.gateway.refund_calls == [f"refund_{booking.id}_1"]
        assert (await harness.payments.get_by_booking(booking.id)).status == PaymentStatus.REFUNDED
        assert (await harness.experience(experience.id)).remaining_spots == 10
        assert len(harness.notifier.notifications_for(explorer.id, "BOOKING_CANCELLED")) == 1
        refund_emails = [e for e in harness.notifier.emails if e.template == "refund_success"]
        assert len(refund_emails) == 1
        assert refund_emails[0].subject == "Refund processed"

    @pytest.mark.asyncio
    async def test_pending_booking_is_cancelled_without_refund(self, harness):
        host = await harness.add_host()
        explorer = await harness.add_explorer()
        experience = await harness.add_experience(host)
        checkout = await harness.book(explorer, experience)

        cancelled = await harness.use_cases["cancel_booking"].execute(
            checkout.booking.id, host_id=host.id
        )

        assert cancelled.status == BookingStatus.CANCELLED
        assert harness.gateway.refund_calls == []

    @pytest.mark.asyncio
    async def test_refund_failure_is_left_for_the_retry_sweep(self, harness):
        host = await harness.add_host()
        explorer = await harness.add_explorer()
        experience = await harness.add_experience(host)
        booking = await harness.book_paid(explorer, experience)
        harness.gateway.refund_error = PaymentGatewayError("processor timeout")

        cancelled = await harness.use_cases["cancel_booking"].execute(booking.id, host_id=host.id)

        assert cancelled.status == BookingStatus.REFUND_FAILED
        assert cancelled.refund_attempts == 1
        assert cancelled.last_refund_attempt_at == harness.clock.now()

    @pytest.mark.asyncio
    async def test_only_the_host_may_cancel(self, harness):
        host = await harness.add_host()
        explorer = await harness.add_explorer()
        experience = await harness.add_experience(host)
        booking = await harness.book_paid(explorer, experience)

        with pytest.raises(NotBookingHostError):
            await harness.use_cases["cancel_booking"].execute(booking.id, host_id=explorer.id)

    @pytest.mark.asyncio
    async def test_disputed_booking_cannot_be_cancelled(self, harness):
        host = await harness.add_host()
        explorer = await harness.add_explorer()
        experience = await harness.add_experience(host)
        booking = await harness.book_paid(explorer, experience)
        stored = harness.bookings.bookings[booking.id]
        stored.status = BookingStatus.DISPUTED

        with pytest.raises(DisputeLockedError):
            await harness.use_cases["cancel_booking"].execute(booking.id, host_id=host.id)
