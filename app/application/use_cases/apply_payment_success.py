import logging

from app.application.dtos.booking_dto import PaymentSuccessDTO
from app.application.interfaces.booking_repo import BookingRepo
from app.application.interfaces.clock import Clock
from app.application.interfaces.experience_repo import ExperienceRepo
from app.application.interfaces.payment_repo import PaymentRepo
from app.application.interfaces.seat_inventory import SeatInventory
from app.application.interfaces.transaction_manager import TransactionManager
from app.application.use_cases.notify import NotificationDispatcher
from app.domain.booking_state_machine import BookingStateMachine, PaymentApplication
from app.domain.entities.booking import Booking
from app.domain.entities.payment import PaymentStatus
from app.domain.errors import BookingNotFoundError, ConcurrentModificationError

_CONFIRMABLE_PAYMENT_STATUSES = (PaymentStatus.INITIATED, PaymentStatus.FAILED)


class ApplyPaymentSuccessUseCase:
    """
    Apply "payment succeeded" to a booking, however many times it arrives.

    Webhook deliveries and the reconciliation poller both end here. Only
    the first application moves the booking, recounts capacity and sends
    notifications; every later call only refreshes the payment record's
    processor identifiers. Racing callers are serialized by the booking's
    ``lock_version``: the loser reloads and takes the already-applied path.
    """

    def __init__(
        self,
        booking_repo: BookingRepo,
        payment_repo: PaymentRepo,
        experience_repo: ExperienceRepo,
        seat_inventory: SeatInventory,
        transaction_manager: TransactionManager,
        notifications: NotificationDispatcher,
        clock: Clock,
        state_machine: BookingStateMachine | None = None,
        max_conflict_retries: int = 3,
    ) -> None:
        self._booking_repo = booking_repo
        self._payment_repo = payment_repo
        self._experience_repo = experience_repo
        self._seat_inventory = seat_inventory
        self._transaction_manager = transaction_manager
        self._notifications = notifications
        self._clock = clock
        self._state_machine = state_machine or BookingStateMachine()
        self._max_conflict_retries = max_conflict_retries
        self._logger = logging.getLogger(__name__)

    async def execute(
        self,
        booking_id: int,
        session_id: str | None = None,
        payment_intent_id: str | None = None,
        charge_id: str | None = None,
        is_deposit: bool | None = None,
        source: str = "webhook",
    ) -> PaymentSuccessDTO:
        for attempt in range(1, self._max_conflict_retries + 1):
            try:
                async with self._transaction_manager.start():
                    outcome, booking = await self._apply_once(
                        booking_id, session_id, payment_intent_id, charge_id, is_deposit
                    )
                break
            except ConcurrentModificationError:
                if attempt == self._max_conflict_retries:
                    raise
                self._logger.info(
                    "Payment success lost a race, reloading booking",
                    extra={"booking_id": booking_id, "attempt": attempt, "source": source},
                )

        self._logger.info(
            "Payment success processed",
            extra={
                "booking_id": booking_id,
                "outcome": outcome.value,
                "status": booking.status.value,
                "source": source,
            },
        )
        if outcome == PaymentApplication.APPLIED:
            await self._notify_parties(booking)

        return PaymentSuccessDTO(
            booking_id=booking_id,
            status=booking.status.value,
            applied=outcome == PaymentApplication.APPLIED,
            late_capture=outcome == PaymentApplication.LATE_CAPTURE,
        )

    async def _apply_once(
        self,
        booking_id: int,
        session_id: str | None,
        payment_intent_id: str | None,
        charge_id: str | None,
        is_deposit: bool | None,
    ) -> tuple[PaymentApplication, Booking]:
        now = self._clock.now()
        booking = await self._booking_repo.get(booking_id)
        if not booking:
            raise BookingNotFoundError(booking_id)

        payment = await self._payment_repo.get_by_booking(booking_id)
        if payment is None:
            payment = await self._payment_repo.upsert_initiated(
                booking_id=booking_id,
                amount=booking.payable_amount,
                currency=booking.currency,
                is_deposit=booking.is_deposit,
                stripe_session_id=session_id,
                stripe_payment_intent_id=payment_intent_id,
            )

        deposit = is_deposit if is_deposit is not None else (payment.is_deposit or booking.is_deposit)
        outcome = self._state_machine.apply_payment_success(booking, deposit, now)

        # Booking first: a lost compare-and-set aborts before the payment row changes.
        if outcome != PaymentApplication.ALREADY_APPLIED:
            booking = await self._booking_repo.save(booking)

        if outcome == PaymentApplication.APPLIED:
            held = await self._booking_repo.count_held_seats(booking.experience_id)
            remaining = await self._seat_inventory.recount(booking.experience_id, held)
            self._logger.info(
                "Capacity recounted after payment",
                extra={
                    "experience_id": booking.experience_id,
                    "held_seats": held,
                    "remaining_spots": remaining,
                },
            )

        payment.attach_identifiers(session_id, payment_intent_id, charge_id)
        if payment.status in _CONFIRMABLE_PAYMENT_STATUSES:
            payment.status = PaymentStatus.CONFIRMED
        payment.updated_at = now
        await self._payment_repo.save(payment)

        return outcome, booking

    async def _notify_parties(self, booking: Booking) -> None:
        experience = await self._experience_repo.get(booking.experience_id)
        title = experience.title if experience else "experience"
        data = {
            "bookingId": booking.id,
            "activityId": booking.experience_id,
            "activityTitle": title,
            "quantity": booking.quantity,
        }
        await self._notifications.notify(
            user_id=booking.explorer_id,
            type="BOOKING_CONFIRMED",
            title="Booking confirmed",
            message=f'Your booking for "{title}" is confirmed.',
            data=data,
            push=True,
        )
        await self._notifications.notify(
            user_id=booking.host_id,
            type="BOOKING_RECEIVED",
            title="New booking",
            message=f'You have a new booking for "{title}".',
            data=data,
            push=True,
        )
