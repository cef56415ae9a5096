"""
Integration tests for the payment webhook ingestor.

Events are fed as raw JSON through the stub gateway, which skips the
signature check the real processor client performs.
"""

import pytest

from app.domain.entities.booking import BookingStatus
from app.domain.entities.payment import PaymentStatus
from app.domain.errors import BookingNotFoundError, InvalidWebhookSignatureError
from tests.conftest import webhook_body


async def paid_booking(harness):
    host = await harness.add_host()
    explorer = await harness.add_explorer()
    experience = await harness.add_experience(host)
    booking = await harness.book_paid(explorer, experience)
    payment = await harness.payments.get_by_booking(booking.id)
    return host, explorer, booking, payment


def checkout_completed(checkout, event_id: str = "evt_checkout_1") -> bytes:
    return webhook_body(
        event_id,
        "checkout.session.completed",
        {
            "id": checkout.checkout_session_id,
            "object": "checkout.session",
            "payment_status": "paid",
            "payment_intent": "pi_from_webhook",
            "metadata": {
                "bookingId": str(checkout.booking.id),
                "isDeposit": "true" if checkout.is_deposit else "false",
            },
        },
    )


class TestWebhookDeduplication:
    """The ledger makes every event id count once."""

    @pytest.mark.asyncio
    async def test_free_experience_checkout_delivered_twice(self, harness):
        host = await harness.add_host()
        explorer = await harness.add_explorer()
        experience = await harness.add_experience(host, price=0, max_participants=6, remaining_spots=6)
        checkout = await harness.book(explorer, experience, quantity=2)
        handle = harness.use_cases["handle_webhook"]

        first = await handle.execute(checkout_completed(checkout), signature="t=1,v1=sig")
        second = await handle.execute(checkout_completed(checkout), signature="t=1,v1=sig")

        assert first.to_response() == {"received": True}
        assert second.to_response() == {"received": True, "duplicate": True}

        booking = await harness.booking(checkout.booking.id)
        assert booking.status == BookingStatus.DEPOSIT_PAID
        assert (await harness.experience(experience.id)).remaining_spots == 4
        assert len(harness.notifier.notifications_for(explorer.id, "BOOKING_CONFIRMED")) == 1
        assert len(harness.notifier.notifications_for(host.id, "BOOKING_RECEIVED")) == 1

        payment = await harness.payments.get_by_booking(booking.id)
        assert payment.status == PaymentStatus.CONFIRMED
        assert payment.stripe_payment_intent_id == "pi_from_webhook"

    @pytest.mark.asyncio
    async def test_same_payment_under_a_new_event_id(self, harness):
        host = await harness.add_host()
        explorer = await harness.add_explorer()
        experience = await harness.add_experience(host)
        checkout = await harness.book(explorer, experience)
        handle = harness.use_cases["handle_webhook"]

        await handle.execute(checkout_completed(checkout, "evt_a"), signature=None)
        result = await handle.execute(
            webhook_body(
                "evt_b",
                "payment_intent.succeeded",
                {
                    "id": "pi_from_webhook",
                    "object": "payment_intent",
                    "latest_charge": "ch_123",
                    "metadata": {"bookingId": str(checkout.booking.id)},
                },
            ),
            signature=None,
        )

        assert not result.duplicate
        assert (await harness.booking(checkout.booking.id)).status == BookingStatus.PAID
        assert len(harness.notifier.notifications_for(explorer.id, "BOOKING_CONFIRMED")) == 1
        payment = await harness.payments.get_by_booking(checkout.booking.id)
        assert payment.stripe_charge_id == "ch_123"

    @pytest.mark.asyncio
    async def test_unhandled_type_is_acknowledged_and_not_recorded(self, harness):
        result = await harness.use_cases["handle_webhook"].execute(
            webhook_body("evt_customer", "customer.created", {"id": "cus_1"}), signature=None
        )

        assert result.to_response() == {"received": True, "ignored": True}
        assert "evt_customer" not in harness.webhook_events.events

    @pytest.mark.asyncio
    async def test_failed_handler_forgets_the_event(self, harness):
        body = webhook_body(
            "evt_orphan",
            "checkout.session.completed",
            {"id": "cs_orphan", "object": "checkout.session", "metadata": {"bookingId": "999"}},
        )

        with pytest.raises(BookingNotFoundError):
            await harness.use_cases["handle_webhook"].execute(body, signature=None)

        assert "evt_orphan" not in harness.webhook_events.events

    @pytest.mark.asyncio
    async def test_unmatched_event_is_recorded(self, harness):
        result = await harness.use_cases["handle_webhook"].execute(
            webhook_body(
                "evt_unknown_intent",
                "payment_intent.succeeded",
                {"id": "pi_nobody", "object": "payment_intent"},
            ),
            signature=None,
        )

        assert not result.duplicate
        assert "evt_unknown_intent" in harness.webhook_events.events


class TestWebhookRejections:
    @pytest.mark.asyncio
    async def test_empty_body(self, harness):
        with pytest.raises(InvalidWebhookSignatureError):
            await harness.use_cases["handle_webhook"].execute(b"", signature=None)

    @pytest.mark.asyncio
    async def test_garbage_body(self, harness):
        with pytest.raises(InvalidWebhookSignatureError):
            await harness.use_cases["handle_webhook"].execute(b"not json", signature=None)

    @pytest.mark.asyncio
    async def test_event_without_id(self, harness):
        with pytest.raises(InvalidWebhookSignatureError):
            await harness.use_cases["handle_webhook"].execute(
                b'{"type": "checkout.session.completed"}', signature=None
            )


class TestWebhookPaymentEvents:
    @pytest.mark.asyncio
    async def test_unpaid_checkout_waits_for_the_intent(self, harness):
        host = await harness.add_host()
        explorer = await harness.add_explorer()
        experience = await harness.add_experience(host)
        checkout = await harness.book(explorer, experience)

        await harness.use_cases["handle_webhook"].execute(
            webhook_body(
                "evt_unpaid",
                "checkout.session.completed",
                {
                    "id": checkout.checkout_session_id,
                    "object": "checkout.session",
                    "payment_status": "unpaid",
                    "metadata": {"bookingId": str(checkout.booking.id)},
                },
            ),
            signature=None,
        )

        assert (await harness.booking(checkout.booking.id)).status == BookingStatus.PENDING

    @pytest.mark.asyncio
    async def test_declined_payment_releases_seats_once_the_session_expires(self, harness):
        host = await harness.add_host()
        explorer = await harness.add_explorer()
        experience = await harness.add_experience(host)
        checkout = await harness.book(explorer, experience)

        await harness.use_cases["handle_webhook"].execute(
            webhook_body(
                "evt_failed",
                "payment_intent.payment_failed",
                {
                    "id": "pi_declined",
                    "object": "payment_intent",
                    "metadata": {"bookingId": str(checkout.booking.id)},
                },
            ),
            signature=None,
        )

        payment = await harness.payments.get_by_booking(checkout.booking.id)
        assert payment.status == PaymentStatus.FAILED
        assert (await harness.booking(checkout.booking.id)).status == BookingStatus.PENDING

        harness.gateway.expire(checkout.checkout_session_id)
        report = await harness.sweep("reconciliation")(harness.clock.now())

        assert report.changed == 1
        cancelled = await harness.booking(checkout.booking.id)
        assert cancelled.status == BookingStatus.CANCELLED
        assert cancelled.cancel_reason == "checkout_session_expired"
        assert (await harness.experience(experience.id)).remaining_spots == 10

    @pytest.mark.asyncio
    async def test_charge_refunded_settles_booking_once(self, harness):
        _, explorer, booking, payment = await paid_booking(harness)
        handle = harness.use_cases["handle_webhook"]
        charge = {
            "id": "ch_refunded",
            "object": "charge",
            "payment_intent": payment.stripe_payment_intent_id,
        }

        await handle.execute(webhook_body("evt_refund_1", "charge.refunded", charge), signature=None)
        await handle.execute(webhook_body("evt_refund_2", "charge.refunded", charge), signature=None)

        refunded = await harness.booking(booking.id)
        assert refunded.status == BookingStatus.REFUNDED
        assert refunded.refund_success_email_sent
        assert (await harness.payments.get_by_booking(booking.id)).status == PaymentStatus.REFUNDED
        emails = [e for e in harness.notifier.emails if e.template == "refund_success"]
        assert len(emails) == 1
        assert emails[0].to == explorer.email
        assert harness.gateway.refund_calls == []

    @pytest.mark.asyncio
    async def test_refund_updated_only_counts_when_succeeded(self, harness):
        _, _, booking, payment = await paid_booking(harness)
        handle = harness.use_cases["handle_webhook"]
        refund = {
            "id": "re_1",
            "object": "refund",
            "payment_intent": payment.stripe_payment_intent_id,
            "status": "pending",
        }

        await handle.execute(webhook_body("evt_re_pending", "refund.updated", refund), signature=None)
        assert (await harness.booking(booking.id)).status == BookingStatus.PAID

        refund["status"] = "succeeded"
        await handle.execute(webhook_body("evt_re_done", "refund.updated", refund), signature=None)
        assert (await harness.booking(booking.id)).status == BookingStatus.REFUNDED


class TestWebhookProcessorDisputes:
    @pytest.mark.asyncio
    async def test_chargeback_lost(self, harness):
        _, _, booking, payment = await paid_booking(harness)
        handle = harness.use_cases["handle_webhook"]
        dispute = {
            "id": "dp_1",
            "object": "dispute",
            "payment_intent": payment.stripe_payment_intent_id,
            "status": "needs_response",
        }

        await handle.execute(webhook_body("evt_dp_open", "charge.dispute.created", dispute), signature=None)
        disputed = await harness.booking(booking.id)
        assert disputed.status == BookingStatus.DISPUTED
        assert disputed.status_before_dispute == BookingStatus.PAID
        assert (await harness.payments.get_by_booking(booking.id)).status == PaymentStatus.DISPUTED

        dispute["status"] = "lost"
        await handle.execute(webhook_body("evt_dp_close", "charge.dispute.closed", dispute), signature=None)
        lost = await harness.booking(booking.id)
        assert lost.status == BookingStatus.DISPUTE_LOST
        assert lost.payout_eligible_at is None
        assert (await harness.payments.get_by_booking(booking.id)).status == PaymentStatus.DISPUTE_LOST

    @pytest.mark.asyncio
    async def test_chargeback_won(self, harness):
        _, _, booking, payment = await paid_booking(harness)
        handle = harness.use_cases["handle_webhook"]
        dispute = {
            "id": "dp_2",
            "object": "dispute",
            "payment_intent": payment.stripe_payment_intent_id,
            "status": "warning_closed",
        }

        await handle.execute(webhook_body("evt_dp2_open", "charge.dispute.created", dispute), signature=None)
        await handle.execute(webhook_body("evt_dp2_close", "charge.dispute.closed", dispute), signature=None)

        assert (await harness.booking(booking.id)).status == BookingStatus.DISPUTE_WON
        assert (await harness.payments.get_by_booking(booking.id)).status == PaymentStatus.DISPUTE_WON


class TestWebhookConnectedAccounts:
    @pytest.mark.asyncio
    async def test_account_updated_syncs_host_flags(self, harness):
        host = await harness.add_host(stripe_account_id="acct_sync")

        await harness.use_cases["handle_webhook"].execute(
            webhook_body(
                "evt_acct",
                "account.updated",
                {
                    "id": "acct_sync",
                    "object": "account",
                    "charges_enabled": True,
                    "payouts_enabled": True,
                    "details_submitted": True,
                },
            ),
            signature=None,
        )

        synced = await harness.participants.get(host.id)
        assert synced.stripe_charges_enabled
        assert synced.stripe_payouts_enabled
        assert synced.stripe_details_submitted
