import logging
from datetime import datetime

from app.application.dtos.sweep_dto import SweepReport
from app.application.interfaces.booking_repo import BookingRepo
from app.application.interfaces.clock import Clock
from app.application.interfaces.experience_repo import ExperienceRepo
from app.application.interfaces.participant_repo import ParticipantRepo
from app.application.interfaces.transaction_manager import TransactionManager
from app.application.use_cases.notify import NotificationDispatcher
from app.domain import constants
from app.domain.booking_state_machine import BookingStateMachine
from app.domain.entities.booking import ATTENDANCE_PENDING_STATUSES, Booking
from app.domain.entities.experience import Experience
from app.domain.schedule import EndTimeConfidence, as_utc, effective_end


class SweepAttendanceUseCase:
    """
    Attendance scheduler.

    For every paid booking the host has not answered for, compute the
    effective end time. Past ``end + 48h`` the booking auto-completes and
    the host is told; between ``end`` and ``end + 48h`` the booking waits
    in PENDING_ATTENDANCE and the host is reminded at most once per
    cadence, with a single email.
    """

    name = "attendance"

    def __init__(
        self,
        booking_repo: BookingRepo,
        experience_repo: ExperienceRepo,
        participant_repo: ParticipantRepo,
        transaction_manager: TransactionManager,
        notifications: NotificationDispatcher,
        clock: Clock,
        state_machine: BookingStateMachine | None = None,
    ) -> None:
        self._booking_repo = booking_repo
        self._experience_repo = experience_repo
        self._participant_repo = participant_repo
        self._transaction_manager = transaction_manager
        self._notifications = notifications
        self._clock = clock
        self._state_machine = state_machine or BookingStateMachine()
        self._logger = logging.getLogger(__name__)

    async def run_once(self, now: datetime | None = None) -> SweepReport:
        now = now or self._clock.now()
        report = SweepReport(self.name)
        async with self._transaction_manager.start():
            bookings = await self._booking_repo.list_by_status(ATTENDANCE_PENDING_STATUSES)

        experiences: dict[int, Experience | None] = {}
        for booking in bookings:
            if booking.attendance_confirmed:
                continue
            report.examined += 1
            try:
                if booking.experience_id not in experiences:
                    experiences[booking.experience_id] = await self._experience_repo.get(
                        booking.experience_id
                    )
                if await self._process(booking.id, experiences[booking.experience_id], now):
                    report.changed += 1
            except Exception:
                self._logger.exception(
                    "Attendance sweep failed for booking", extra={"booking_id": booking.id}
                )
                report.record_failure(booking.id)

        if report.examined:
            self._logger.info("Attendance sweep finished", extra=report.as_dict())
        return report

    async def _process(self, booking_id: int, experience: Experience | None, now: datetime) -> bool:
        auto_completed = remind = send_email = False
        async with self._transaction_manager.start():
            booking = await self._booking_repo.get(booking_id)
            if booking is None or booking.status not in ATTENDANCE_PENDING_STATUSES:
                return False
            end = effective_end(experience, booking)
            if end.confidence != EndTimeConfidence.EXPLICIT:
                self._logger.debug(
                    "Using estimated end time",
                    extra={"booking_id": booking_id, "confidence": end.confidence.value},
                )

            if now - end.at >= constants.ATTENDANCE_CLOSES_AFTER_END:
                self._state_machine.auto_complete(booking, end.at, now)
                auto_completed = True
            elif end.at <= now:
                moved = self._state_machine.move_to_pending_attendance(booking, now)
                remind = self._reminder_due(booking, now)
                if remind:
                    booking.attendance_reminder_sent_at = now
                    send_email = not booking.attendance_email_sent
                    booking.attendance_email_sent = True
                if not (moved or remind):
                    return False
            else:
                return False
            booking = await self._booking_repo.save(booking)

        title = experience.title if experience else "experience"
        if auto_completed:
            await self._notify_auto_completed(booking, title)
        elif remind:
            await self._remind_host(booking, title, send_email)
        return True

    def _reminder_due(self, booking: Booking, now: datetime) -> bool:
        last_sent = as_utc(booking.attendance_reminder_sent_at)
        return last_sent is None or now - last_sent >= constants.ATTENDANCE_REMINDER_CADENCE

    async def _notify_auto_completed(self, booking: Booking, title: str) -> None:
        self._logger.info("Booking auto-completed", extra={"booking_id": booking.id})
        await self._notifications.notify(
            user_id=booking.host_id,
            type="BOOKING_AUTO_COMPLETED",
            title="Booking completed",
            message=f'The booking for "{title}" was completed automatically.',
            data={"bookingId": booking.id, "activityId": booking.experience_id},
        )

    async def _remind_host(self, booking: Booking, title: str, send_email: bool) -> None:
        await self._notifications.notify(
            user_id=booking.host_id,
            type="ATTENDANCE_REMINDER",
            title="Confirm attendance",
            message=f'Please confirm whether the explorer attended "{title}".',
            data={"bookingId": booking.id, "activityId": booking.experience_id},
            push=True,
        )
        if not send_email:
            return
        host = await self._participant_repo.get(booking.host_id)
        if host is not None:
            await self._notifications.email(
                to=host.email,
                subject="Confirm attendance",
                template="attendance_reminder",
                data={"bookingId": booking.id, "activityTitle": title, "firstName": host.first_name},
                user_id=host.id,
            )
