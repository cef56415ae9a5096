import logging

from app.application.dtos.booking_dto import CheckoutResultDTO
from app.application.interfaces.booking_repo import BookingRepo
from app.application.interfaces.clock import Clock
from app.application.interfaces.experience_repo import ExperienceRepo
from app.application.interfaces.participant_repo import ParticipantRepo
from app.application.interfaces.payment_gateway import CheckoutRequest, PaymentGateway
from app.application.interfaces.payment_repo import PaymentRepo
from app.application.interfaces.seat_inventory import SeatInventory
from app.application.interfaces.transaction_manager import TransactionManager
from app.domain import constants
from app.domain.booking_state_machine import BookingStateMachine
from app.domain.entities.booking import Booking, BookingStatus
from app.domain.entities.experience import ActivityType, Experience
from app.domain.errors import (
    BookingNotFoundError,
    ExperienceAlreadyStartedError,
    ExperienceNotFoundError,
    ExperienceUnavailableError,
    InsufficientCapacityError,
    ParticipantBannedError,
    ParticipantNotFoundError,
    PaymentGatewayError,
    RepeatedNoShowError,
    SoldOutError,
    ValidationError,
)
from app.domain.schedule import effective_start
from app.domain.value_objects.money import Money


class CreateBookingUseCase:
    """
    Create a PENDING booking and the checkout session that pays for it.

    Seats are held immediately through an atomic reserve. Free experiences
    charge a refundable deposit per seat. When the processor cannot open a
    checkout session the hold is released and the booking cancelled.
    """

    def __init__(
        self,
        booking_repo: BookingRepo,
        experience_repo: ExperienceRepo,
        participant_repo: ParticipantRepo,
        payment_repo: PaymentRepo,
        seat_inventory: SeatInventory,
        payment_gateway: PaymentGateway,
        transaction_manager: TransactionManager,
        clock: Clock,
        deposit_per_seat: int = 500,
        default_currency: str = "ron",
        success_url: str = "http://localhost:3000/payment-success",
        cancel_url: str = "http://localhost:3000/payment-cancel",
        state_machine: BookingStateMachine | None = None,
    ) -> None:
        self._booking_repo = booking_repo
        self._experience_repo = experience_repo
        self._participant_repo = participant_repo
        self._payment_repo = payment_repo
        self._seat_inventory = seat_inventory
        self._payment_gateway = payment_gateway
        self._transaction_manager = transaction_manager
        self._clock = clock
        self._deposit_per_seat = deposit_per_seat
        self._default_currency = default_currency
        self._success_url = success_url
        self._cancel_url = cancel_url
        self._state_machine = state_machine or BookingStateMachine()
        self._logger = logging.getLogger(__name__)

    async def execute(
        self, explorer_id: int, experience_id: int, quantity: int | None = 1
    ) -> CheckoutResultDTO:
        now = self._clock.now()
        quantity = max(1, quantity or 1)

        async with self._transaction_manager.start():
            experience = await self._experience_repo.get(experience_id)
            if not experience:
                raise ExperienceNotFoundError(experience_id)
            explorer = await self._participant_repo.get(explorer_id)
            if not explorer:
                raise ParticipantNotFoundError(explorer_id)
            await self._check_bookable(experience, explorer.is_banned, quantity, now)
            if experience.is_free:
                await self._check_no_show_history(explorer_id, now)

            if not await self._seat_inventory.reserve(experience_id, quantity):
                latest = await self._experience_repo.get(experience_id)
                raise InsufficientCapacityError(
                    experience_id, quantity, latest.remaining_spots if latest else 0
                )

            currency = (experience.currency or self._default_currency).lower()
            if experience.is_free:
                unit = Money(self._deposit_per_seat, currency)
            else:
                unit = Money(experience.price, currency)
            total = unit.times(quantity)

            booking = await self._booking_repo.add(
                Booking(
                    experience_id=experience_id,
                    explorer_id=explorer_id,
                    host_id=experience.host_id,
                    quantity=quantity,
                    amount=0 if experience.is_free else total.amount_minor,
                    deposit_amount=total.amount_minor if experience.is_free else 0,
                    currency=currency,
                    is_deposit=experience.is_free,
                    status=BookingStatus.PENDING,
                    created_at=now,
                    updated_at=now,
                )
            )

        self._logger.info(
            "Booking created, seats held",
            extra={
                "booking_id": booking.id,
                "experience_id": experience_id,
                "quantity": quantity,
                "is_deposit": booking.is_deposit,
            },
        )

        request = CheckoutRequest(
            amount=unit.amount_minor,
            currency=currency,
            quantity=quantity,
            product_name=(
                f"Deposit: {experience.title}" if experience.is_free else experience.title
            ),
            metadata={
                "bookingId": str(booking.id),
                "experienceId": str(experience_id),
                "explorerId": str(explorer_id),
                "quantity": str(quantity),
                "isDeposit": "true" if booking.is_deposit else "false",
            },
            success_url=self._success_url,
            cancel_url=self._cancel_url,
            customer_email=explorer.email,
        )
        try:
            session = await self._payment_gateway.create_checkout_session(
                request, idempotency_key=f"checkout_{booking.id}"
            )
        except PaymentGatewayError:
            self._logger.exception(
                "Checkout session creation failed, releasing hold",
                extra={"booking_id": booking.id, "experience_id": experience_id},
            )
            await self._abandon(booking.id, experience_id, quantity)
            raise

        async with self._transaction_manager.start():
            await self._payment_repo.upsert_initiated(
                booking_id=booking.id,
                amount=total.amount_minor,
                currency=currency,
                is_deposit=booking.is_deposit,
                stripe_session_id=session.id,
                stripe_payment_intent_id=session.payment_intent_id,
            )

        return CheckoutResultDTO(
            booking=booking,
            checkout_session_id=session.id,
            checkout_url=session.url,
            amount=total.amount_minor,
            currency=currency,
            is_deposit=booking.is_deposit,
        )

    async def _check_bookable(
        self, experience: Experience, explorer_banned: bool, quantity: int, now
    ) -> None:
        if not experience.is_bookable:
            raise ExperienceUnavailableError(experience.id, "disabled or inactive")
        if explorer_banned:
            raise ParticipantBannedError("explorer")
        host = await self._participant_repo.get(experience.host_id)
        if host is not None and host.is_banned:
            raise ParticipantBannedError("host")
        start = effective_start(experience)
        if start is not None and start <= now:
            raise ExperienceAlreadyStartedError(experience.id)
        if experience.activity_type == ActivityType.INDIVIDUAL and quantity != 1:
            raise ValidationError("quantity", "individual activities take exactly one seat")
        if experience.sold_out or experience.remaining_spots <= 0:
            raise SoldOutError(experience.id)
        if experience.remaining_spots < quantity:
            raise InsufficientCapacityError(experience.id, quantity, experience.remaining_spots)

    async def _check_no_show_history(self, explorer_id: int, now) -> None:
        since = now - constants.NO_SHOW_LOOKBACK
        no_shows = await self._booking_repo.count_no_shows_since(explorer_id, since)
        if no_shows >= constants.NO_SHOW_LIMIT:
            raise RepeatedNoShowError(explorer_id, no_shows)

    async def _abandon(self, booking_id: int, experience_id: int, quantity: int) -> None:
        async with self._transaction_manager.start():
            booking = await self._booking_repo.get(booking_id)
            if not booking:
                raise BookingNotFoundError(booking_id)
            self._state_machine.cancel(
                booking, self._clock.now(), cancelled_by="system", reason="checkout_failed"
            )
            await self._booking_repo.save(booking)
            await self._seat_inventory.release(experience_id, quantity)
