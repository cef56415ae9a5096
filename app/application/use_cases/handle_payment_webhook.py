import logging

from pydantic import ValidationError as PydanticValidationError

from app.application.dtos.booking_dto import WebhookResultDTO
from app.application.interfaces.booking_repo import BookingRepo
from app.application.interfaces.clock import Clock
from app.application.interfaces.participant_repo import ParticipantRepo
from app.application.interfaces.payment_gateway import PaymentGateway
from app.application.interfaces.payment_repo import PaymentRepo
from app.application.interfaces.transaction_manager import TransactionManager
from app.application.interfaces.webhook_event_repo import WebhookEventRepo
from app.application.schemas import HANDLED_EVENT_TYPES, EventObject, PaymentEventEnvelope
from app.application.use_cases.apply_payment_success import ApplyPaymentSuccessUseCase
from app.application.use_cases.refund_booking import RefundBookingUseCase
from app.domain.booking_state_machine import BookingStateMachine, can_transition
from app.domain.entities.booking import BookingStatus
from app.domain.entities.payment import Payment, PaymentStatus
from app.domain.errors import InvalidWebhookSignatureError

_DISPUTE_WON_STATUSES = ("won", "warning_closed")


class HandlePaymentWebhookUseCase:
    """
    Webhook ingestor for payment processor events.

    Signature first, then the allow-list, then the de-duplication ledger:
    an event id already in the ledger is acknowledged without doing
    anything. When a handler fails the ledger entry is dropped again so
    the processor's redelivery gets a second chance.
    """

    def __init__(
        self,
        booking_repo: BookingRepo,
        payment_repo: PaymentRepo,
        participant_repo: ParticipantRepo,
        webhook_event_repo: WebhookEventRepo,
        payment_gateway: PaymentGateway,
        apply_payment_success: ApplyPaymentSuccessUseCase,
        refund_booking: RefundBookingUseCase,
        transaction_manager: TransactionManager,
        clock: Clock,
        webhook_secret: str | None,
        state_machine: BookingStateMachine | None = None,
    ) -> None:
        self._booking_repo = booking_repo
        self._payment_repo = payment_repo
        self._participant_repo = participant_repo
        self._webhook_event_repo = webhook_event_repo
        self._payment_gateway = payment_gateway
        self._apply_payment_success = apply_payment_success
        self._refund_booking = refund_booking
        self._transaction_manager = transaction_manager
        self._clock = clock
        self._webhook_secret = webhook_secret
        self._state_machine = state_machine or BookingStateMachine()
        self._logger = logging.getLogger(__name__)

    async def execute(self, raw_body: bytes, signature: str | None) -> WebhookResultDTO:
        if not raw_body:
            raise InvalidWebhookSignatureError("Empty webhook body")
        event_dict = await self._payment_gateway.parse_webhook_event(
            payload=raw_body,
            signature_header=signature,
            webhook_secret=self._webhook_secret,
        )
        try:
            event = PaymentEventEnvelope.model_validate(event_dict)
        except PydanticValidationError as exc:
            raise InvalidWebhookSignatureError("Invalid event payload") from exc

        if event.type not in HANDLED_EVENT_TYPES:
            self._logger.info(
                "Webhook event type not handled, acknowledged",
                extra={"event_id": event.id, "event_type": event.type},
            )
            return WebhookResultDTO(ignored=True, event_type=event.type)

        async with self._transaction_manager.start():
            is_new = await self._webhook_event_repo.record_if_new(
                event.id, event.type, self._clock.now()
            )
        if not is_new:
            self._logger.info(
                "Duplicate webhook event skipped",
                extra={"event_id": event.id, "event_type": event.type},
            )
            return WebhookResultDTO(duplicate=True, event_type=event.type)

        try:
            await self._dispatch(event)
        except Exception:
            self._logger.exception(
                "Webhook event processing failed, ledger entry removed",
                extra={"event_id": event.id, "event_type": event.type},
            )
            async with self._transaction_manager.start():
                await self._webhook_event_repo.forget(event.id)
            raise

        return WebhookResultDTO(event_type=event.type)

    async def _dispatch(self, event: PaymentEventEnvelope) -> None:
        obj = EventObject.model_validate(event.object)
        if event.type == "checkout.session.completed":
            await self._on_checkout_completed(event, obj)
        elif event.type == "payment_intent.succeeded":
            await self._on_payment_succeeded(event, obj)
        elif event.type == "payment_intent.payment_failed":
            await self._on_payment_failed(event, obj)
        elif event.type == "charge.refunded":
            await self._on_refunded(event, obj)
        elif event.type == "refund.updated":
            if obj.status == "succeeded":
                await self._on_refunded(event, obj)
        elif event.type == "charge.dispute.created":
            await self._on_dispute_created(event, obj)
        elif event.type == "charge.dispute.closed":
            await self._on_dispute_closed(event, obj)
        elif event.type == "account.updated":
            await self._on_account_updated(event, obj)

    # === Payment success ===

    async def _on_checkout_completed(self, event: PaymentEventEnvelope, obj: EventObject) -> None:
        if obj.payment_status not in (None, "paid", "no_payment_required"):
            self._logger.info(
                "Checkout completed without payment yet, waiting for the intent",
                extra={"event_id": event.id, "session_id": obj.id},
            )
            return
        booking_id, _ = await self._locate(obj)
        if booking_id is None:
            self._log_unmatched(event, obj)
            return
        await self._apply_payment_success.execute(
            booking_id,
            session_id=obj.id,
            payment_intent_id=obj.payment_intent,
            is_deposit=obj.is_deposit,
            source="webhook",
        )

    async def _on_payment_succeeded(self, event: PaymentEventEnvelope, obj: EventObject) -> None:
        booking_id, _ = await self._locate(obj)
        if booking_id is None:
            self._log_unmatched(event, obj)
            return
        await self._apply_payment_success.execute(
            booking_id,
            payment_intent_id=obj.id,
            charge_id=obj.latest_charge,
            is_deposit=obj.is_deposit,
            source="webhook",
        )

    async def _on_payment_failed(self, event: PaymentEventEnvelope, obj: EventObject) -> None:
        async with self._transaction_manager.start():
            _, payment = await self._locate(obj)
            if payment is None:
                self._log_unmatched(event, obj)
                return
            if payment.status != PaymentStatus.INITIATED:
                return
            payment.attach_identifiers(payment_intent_id=obj.id)
            payment.status = PaymentStatus.FAILED
            payment.updated_at = self._clock.now()
            await self._payment_repo.save(payment)
        self._logger.warning(
            "Payment failed at the processor",
            extra={"event_id": event.id, "booking_id": payment.booking_id},
        )

    # === Refunds ===

    async def _on_refunded(self, event: PaymentEventEnvelope, obj: EventObject) -> None:
        async with self._transaction_manager.start():
            booking_id, payment = await self._locate(obj)
            if payment is None:
                self._log_unmatched(event, obj)
                return
            booking = await self._booking_repo.get(booking_id)
            if payment.status != PaymentStatus.REFUNDED:
                payment.status = PaymentStatus.REFUNDED
                payment.updated_at = self._clock.now()
                await self._payment_repo.save(payment)

        if booking is None:
            return
        if booking.status != BookingStatus.CANCELLED and not can_transition(
            booking.status, BookingStatus.REFUNDED
        ):
            if booking.status != BookingStatus.REFUNDED:
                self._logger.warning(
                    "Refund reported for a booking that cannot be refunded",
                    extra={"booking_id": booking.id, "status": booking.status.value},
                )
            return
        # Payment is already REFUNDED: this only settles the booking and sends the email once.
        await self._refund_booking.execute(booking.id)

    # === Disputes ===

    async def _on_dispute_created(self, event: PaymentEventEnvelope, obj: EventObject) -> None:
        now = self._clock.now()
        async with self._transaction_manager.start():
            booking_id, payment = await self._locate(obj)
            if payment is None:
                self._log_unmatched(event, obj)
                return
            payment.status = PaymentStatus.DISPUTED
            payment.updated_at = now
            await self._payment_repo.save(payment)
            booking = await self._booking_repo.get(booking_id)
            if booking is not None and self._state_machine.open_processor_dispute(booking, now):
                await self._booking_repo.save(booking)
        self._logger.warning(
            "Processor dispute opened",
            extra={"event_id": event.id, "booking_id": booking_id},
        )

    async def _on_dispute_closed(self, event: PaymentEventEnvelope, obj: EventObject) -> None:
        if obj.status == "lost":
            won = False
        elif obj.status in _DISPUTE_WON_STATUSES:
            won = True
        else:
            self._logger.info(
                "Dispute closed with unexpected status, ignored",
                extra={"event_id": event.id, "dispute_status": obj.status},
            )
            return

        now = self._clock.now()
        async with self._transaction_manager.start():
            booking_id, payment = await self._locate(obj)
            if payment is None:
                self._log_unmatched(event, obj)
                return
            payment.status = PaymentStatus.DISPUTE_WON if won else PaymentStatus.DISPUTE_LOST
            payment.updated_at = now
            await self._payment_repo.save(payment)
            booking = await self._booking_repo.get(booking_id)
            if booking is not None and self._state_machine.close_processor_dispute(booking, won, now):
                await self._booking_repo.save(booking)
        self._logger.info(
            "Processor dispute closed",
            extra={"event_id": event.id, "booking_id": booking_id, "won": won},
        )

    # === Connected accounts ===

    async def _on_account_updated(self, event: PaymentEventEnvelope, obj: EventObject) -> None:
        if not obj.id:
            return
        async with self._transaction_manager.start():
            host = await self._participant_repo.get_by_stripe_account(obj.id)
            if host is None:
                self._logger.info(
                    "Account update for unknown connected account",
                    extra={"event_id": event.id, "account_id": obj.id},
                )
                return
            host.stripe_charges_enabled = bool(obj.charges_enabled)
            host.stripe_payouts_enabled = bool(obj.payouts_enabled)
            host.stripe_details_submitted = bool(obj.details_submitted)
            await self._participant_repo.save(host)

    # === Helpers ===

    async def _locate(self, obj: EventObject) -> tuple[int | None, Payment | None]:
        """Find the payment an event refers to: metadata first, then processor ids."""
        payment = None
        if obj.booking_id is not None:
            payment = await self._payment_repo.get_by_booking(obj.booking_id)
            if payment is None:
                return obj.booking_id, None

        if payment is None and obj.object == "checkout.session" and obj.id:
            payment = await self._payment_repo.get_by_session(obj.id)
        intent_id = obj.id if obj.object == "payment_intent" else obj.payment_intent
        if payment is None and intent_id:
            payment = await self._payment_repo.get_by_payment_intent(intent_id)
        charge_id = obj.id if obj.object == "charge" else obj.charge
        if payment is None and charge_id:
            payment = await self._payment_repo.get_by_charge(charge_id)

        if payment is None:
            return None, None
        return payment.booking_id, payment

    def _log_unmatched(self, event: PaymentEventEnvelope, obj: EventObject) -> None:
        self._logger.warning(
            "Webhook event does not match any booking",
            extra={"event_id": event.id, "event_type": event.type, "object_id": obj.id},
        )
