import logging
from dataclasses import dataclass

from app.application.interfaces.booking_repo import BookingRepo
from app.application.interfaces.clock import Clock
from app.application.interfaces.participant_repo import ParticipantRepo
from app.application.interfaces.payment_gateway import PaymentGateway
from app.application.interfaces.payment_repo import PaymentRepo
from app.application.interfaces.transaction_manager import TransactionManager
from app.application.use_cases.notify import NotificationDispatcher
from app.domain.booking_state_machine import BookingStateMachine
from app.domain.entities.booking import Booking, BookingStatus
from app.domain.entities.payment import Payment, PaymentStatus
from app.domain.errors import AlreadyRefundedError, BookingNotFoundError, PaymentGatewayError

_REFUND_EMAIL_SUBJECTS = {
    "ro": "Rambursare procesată",
    "en": "Refund processed",
}


def refund_idempotency_key(booking_id: int, attempt: int) -> str:
    """Same booking and attempt always map to the same processor request."""
    return f"refund_{booking_id}_{attempt}"


@dataclass
class RefundOutcome:
    booking_id: int
    attempt: int
    refunded: bool
    status: str


class RefundBookingUseCase:
    """
    Return a booking's money to the explorer.

    Every attempt carries ``refund_{booking_id}_{attempt}`` as idempotency
    key, so a retried call cannot refund twice when an earlier response was
    lost. A failed first attempt parks the booking in REFUND_FAILED for the
    retry sweep. Retries persist the attempt counter before calling the
    processor, so a crash mid-call still counts against the ceiling.
    """

    def __init__(
        self,
        booking_repo: BookingRepo,
        payment_repo: PaymentRepo,
        participant_repo: ParticipantRepo,
        payment_gateway: PaymentGateway,
        transaction_manager: TransactionManager,
        notifications: NotificationDispatcher,
        clock: Clock,
        state_machine: BookingStateMachine | None = None,
    ) -> None:
        self._booking_repo = booking_repo
        self._payment_repo = payment_repo
        self._participant_repo = participant_repo
        self._payment_gateway = payment_gateway
        self._transaction_manager = transaction_manager
        self._notifications = notifications
        self._clock = clock
        self._state_machine = state_machine or BookingStateMachine()
        self._logger = logging.getLogger(__name__)

    async def execute(self, booking_id: int, retry: bool = False) -> RefundOutcome:
        now = self._clock.now()
        async with self._transaction_manager.start():
            booking = await self._load(booking_id)
            payment = await self._payment_repo.get_by_booking(booking_id)
            attempt = booking.refund_attempts + 1

            already_refunded = payment is not None and payment.is_refunded
            if already_refunded:
                # Money already went back through another path (webhook, earlier attempt).
                await self._complete(booking, payment, now)
            elif retry:
                booking.refund_attempts = attempt
                booking.last_refund_attempt_at = now
                booking = await self._booking_repo.save(booking)

        if already_refunded:
            await self._send_success_email(booking_id)
            return RefundOutcome(booking_id, attempt, True, booking.status.value)

        if payment is None or payment.refund_reference is None:
            self._logger.error(
                "Refund impossible: no processor reference for booking",
                extra={"booking_id": booking_id, "attempt": attempt},
            )
            return await self._fail(booking_id, attempt, retry)

        key = refund_idempotency_key(booking_id, attempt)
        try:
            result = await self._payment_gateway.create_refund(
                payment_intent_id=payment.stripe_payment_intent_id,
                charge_id=payment.stripe_charge_id,
                idempotency_key=key,
            )
            self._logger.info(
                "Refund created",
                extra={"booking_id": booking_id, "attempt": attempt, "refund_id": result.id},
            )
        except AlreadyRefundedError:
            self._logger.info(
                "Charge was already refunded, treating as success",
                extra={"booking_id": booking_id, "attempt": attempt},
            )
        except PaymentGatewayError as exc:
            self._logger.warning(
                "Refund attempt failed",
                extra={
                    "booking_id": booking_id,
                    "attempt": attempt,
                    "error_code": exc.code,
                    "error": exc.message,
                },
            )
            return await self._fail(booking_id, attempt, retry)

        async with self._transaction_manager.start():
            booking = await self._load(booking_id)
            payment = await self._payment_repo.get_by_booking(booking_id)
            await self._complete(booking, payment, now)
            status = booking.status.value

        await self._send_success_email(booking_id)
        return RefundOutcome(booking_id, attempt, True, status)

    async def _load(self, booking_id: int) -> Booking:
        booking = await self._booking_repo.get(booking_id)
        if not booking:
            raise BookingNotFoundError(booking_id)
        return booking

    async def _complete(self, booking: Booking, payment: Payment | None, now) -> None:
        if payment is not None and payment.status != PaymentStatus.REFUNDED:
            payment.status = PaymentStatus.REFUNDED
            payment.updated_at = now
            await self._payment_repo.save(payment)
        if booking.status == BookingStatus.REFUNDED and booking.refunded_at is not None:
            return
        self._state_machine.mark_refunded(booking, now)
        await self._booking_repo.save(booking)

    async def _fail(self, booking_id: int, attempt: int, retry: bool) -> RefundOutcome:
        async with self._transaction_manager.start():
            booking = await self._load(booking_id)
            if not retry:
                self._state_machine.mark_refund_failed(booking, self._clock.now())
                booking = await self._booking_repo.save(booking)
        return RefundOutcome(booking_id, attempt, False, booking.status.value)

    async def _send_success_email(self, booking_id: int) -> None:
        """One confirmation per booking, guarded by ``refund_success_email_sent``."""
        async with self._transaction_manager.start():
            booking = await self._load(booking_id)
            if booking.refund_success_email_sent:
                return
            booking.refund_success_email_sent = True
            await self._booking_repo.save(booking)

        explorer = await self._participant_repo.get(booking.explorer_id)
        if explorer is None:
            return
        language = explorer.preferred_language
        await self._notifications.email(
            to=explorer.email,
            subject=_REFUND_EMAIL_SUBJECTS[language],
            template="refund_success",
            data={
                "bookingId": booking.id,
                "firstName": explorer.first_name,
                "amount": booking.payable_amount,
                "currency": booking.currency,
                "language": language,
            },
            user_id=explorer.id,
        )
