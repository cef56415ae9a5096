import logging

from app.application.interfaces.booking_repo import BookingRepo
from app.application.interfaces.clock import Clock
from app.application.interfaces.experience_repo import ExperienceRepo
from app.application.interfaces.participant_repo import ParticipantRepo
from app.application.interfaces.seat_inventory import SeatInventory
from app.application.interfaces.transaction_manager import TransactionManager
from app.application.use_cases.notify import NotificationDispatcher
from app.application.use_cases.refund_booking import RefundBookingUseCase
from app.domain.booking_state_machine import BookingStateMachine
from app.domain.entities.booking import PAID_STATUSES, Booking, BookingStatus
from app.domain.errors import BookingNotFoundError, NotBookingHostError

_REFUND_ON_CANCEL = PAID_STATUSES | {BookingStatus.PENDING_ATTENDANCE}


class CancelBookingUseCase:
    """Host cancels a booking: seats go back, paid money is refunded, the explorer is told."""

    def __init__(
        self,
        booking_repo: BookingRepo,
        experience_repo: ExperienceRepo,
        participant_repo: ParticipantRepo,
        seat_inventory: SeatInventory,
        refund_booking: RefundBookingUseCase,
        transaction_manager: TransactionManager,
        notifications: NotificationDispatcher,
        clock: Clock,
        state_machine: BookingStateMachine | None = None,
    ) -> None:
        self._booking_repo = booking_repo
        self._experience_repo = experience_repo
        self._participant_repo = participant_repo
        self._seat_inventory = seat_inventory
        self._refund_booking = refund_booking
        self._transaction_manager = transaction_manager
        self._notifications = notifications
        self._clock = clock
        self._state_machine = state_machine or BookingStateMachine()
        self._logger = logging.getLogger(__name__)

    async def execute(self, booking_id: int, host_id: int, reason: str | None = None) -> Booking:
        now = self._clock.now()
        async with self._transaction_manager.start():
            booking = await self._booking_repo.get(booking_id)
            if not booking:
                raise BookingNotFoundError(booking_id)
            if booking.host_id != host_id:
                raise NotBookingHostError(booking_id)

            needs_refund = booking.status in _REFUND_ON_CANCEL
            self._state_machine.cancel(booking, now, cancelled_by="host", reason=reason)
            booking = await self._booking_repo.save(booking)
            await self._seat_inventory.release(booking.experience_id, booking.quantity)

        self._logger.info(
            "Booking cancelled by host",
            extra={"booking_id": booking_id, "refund": needs_refund},
        )

        if needs_refund:
            outcome = await self._refund_booking.execute(booking_id)
            if not outcome.refunded:
                self._logger.warning(
                    "Refund after cancellation failed, left for the retry sweep",
                    extra={"booking_id": booking_id},
                )
            booking = await self._booking_repo.get(booking_id)

        await self._notify_explorer(booking)
        return booking

    async def _notify_explorer(self, booking: Booking) -> None:
        experience = await self._experience_repo.get(booking.experience_id)
        title = experience.title if experience else "experience"
        await self._notifications.notify(
            user_id=booking.explorer_id,
            type="BOOKING_CANCELLED",
            title="Booking cancelled",
            message=f'Your booking for "{title}" was cancelled by the host.',
            data={"bookingId": booking.id, "activityId": booking.experience_id, "activityTitle": title},
            push=True,
        )
        explorer = await self._participant_repo.get(booking.explorer_id)
        if explorer is not None:
            await self._notifications.email(
                to=explorer.email,
                subject="Booking cancelled",
                template="booking_cancelled",
                data={"bookingId": booking.id, "activityTitle": title, "role": "explorer"},
                user_id=explorer.id,
            )
