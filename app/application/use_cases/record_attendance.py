import logging
from enum import Enum

from app.application.interfaces.booking_repo import BookingRepo
from app.application.interfaces.clock import Clock
from app.application.interfaces.experience_repo import ExperienceRepo
from app.application.interfaces.transaction_manager import TransactionManager
from app.application.use_cases.notify import NotificationDispatcher
from app.domain.booking_state_machine import BookingStateMachine
from app.domain.entities.booking import Booking
from app.domain.errors import BookingNotFoundError, NotBookingHostError
from app.domain.schedule import attendance_window


class AttendanceOutcome(str, Enum):
    CONFIRMED = "CONFIRMED"
    NO_SHOW = "NO_SHOW"


class RecordAttendanceUseCase:
    """
    Host confirms attendance or reports a no-show.

    Allowed only inside ``[start + 15min, end + 48h]``; outside it the call is
    rejected with the window boundaries. Repeating the same outcome is a no-op.
    """

    def __init__(
        self,
        booking_repo: BookingRepo,
        experience_repo: ExperienceRepo,
        transaction_manager: TransactionManager,
        notifications: NotificationDispatcher,
        clock: Clock,
        state_machine: BookingStateMachine | None = None,
    ) -> None:
        self._booking_repo = booking_repo
        self._experience_repo = experience_repo
        self._transaction_manager = transaction_manager
        self._notifications = notifications
        self._clock = clock
        self._state_machine = state_machine or BookingStateMachine()
        self._logger = logging.getLogger(__name__)

    async def execute(
        self, booking_id: int, host_id: int, outcome: AttendanceOutcome
    ) -> Booking:
        now = self._clock.now()
        async with self._transaction_manager.start():
            booking = await self._booking_repo.get(booking_id)
            if not booking:
                raise BookingNotFoundError(booking_id)
            if booking.host_id != host_id:
                raise NotBookingHostError(booking_id)

            experience = await self._experience_repo.get(booking.experience_id)
            window = attendance_window(experience, booking)
            if outcome == AttendanceOutcome.CONFIRMED:
                changed = self._state_machine.confirm_attendance(booking, window, now)
            else:
                changed = self._state_machine.mark_no_show(booking, window, now)
            if changed:
                booking = await self._booking_repo.save(booking)

        self._logger.info(
            "Attendance recorded",
            extra={"booking_id": booking_id, "outcome": outcome.value, "changed": changed},
        )
        if changed and outcome == AttendanceOutcome.CONFIRMED:
            title = experience.title if experience else "experience"
            await self._notifications.notify(
                user_id=booking.explorer_id,
                type="ATTENDANCE_CONFIRMED",
                title="Attendance confirmed",
                message=f'The host confirmed your attendance at "{title}".',
                data={"bookingId": booking.id, "activityId": booking.experience_id},
            )
        return booking
