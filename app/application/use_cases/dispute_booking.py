import logging
from urllib.parse import urlencode

from app.application.interfaces.action_tokens import ActionClaims, ActionTokenSigner
from app.application.interfaces.booking_repo import BookingRepo
from app.application.interfaces.clock import Clock
from app.application.interfaces.dispute_report_repo import DisputeReportRepo
from app.application.interfaces.experience_repo import ExperienceRepo
from app.application.interfaces.participant_repo import ParticipantRepo
from app.application.interfaces.payment_repo import PaymentRepo
from app.application.interfaces.transaction_manager import TransactionManager
from app.application.use_cases.notify import NotificationDispatcher
from app.domain import constants
from app.domain.booking_state_machine import BookingStateMachine
from app.domain.entities.booking import Booking
from app.domain.entities.dispute_report import DisputeReport
from app.domain.entities.payment import PaymentStatus
from app.domain.errors import BookingNotFoundError, NotBookingExplorerError
from app.domain.schedule import dispute_window


class DisputeBookingUseCase:
    """
    Explorer disputes a finished booking.

    The booking is frozen in DISPUTED, its payment is flagged, a report is
    opened with a 48h deadline, moderators receive signed action links and
    the host is told payout is paused.
    """

    def __init__(
        self,
        booking_repo: BookingRepo,
        experience_repo: ExperienceRepo,
        payment_repo: PaymentRepo,
        report_repo: DisputeReportRepo,
        participant_repo: ParticipantRepo,
        token_signer: ActionTokenSigner,
        transaction_manager: TransactionManager,
        notifications: NotificationDispatcher,
        clock: Clock,
        reports_email: str | None = None,
        public_base_url: str = "http://localhost:8000",
        state_machine: BookingStateMachine | None = None,
    ) -> None:
        self._booking_repo = booking_repo
        self._experience_repo = experience_repo
        self._payment_repo = payment_repo
        self._report_repo = report_repo
        self._participant_repo = participant_repo
        self._token_signer = token_signer
        self._transaction_manager = transaction_manager
        self._notifications = notifications
        self._clock = clock
        self._reports_email = reports_email
        self._public_base_url = public_base_url.rstrip("/")
        self._state_machine = state_machine or BookingStateMachine()
        self._logger = logging.getLogger(__name__)

    async def execute(
        self, booking_id: int, explorer_id: int, reason: str, comment: str | None = None
    ) -> tuple[Booking, DisputeReport]:
        now = self._clock.now()
        async with self._transaction_manager.start():
            booking = await self._booking_repo.get(booking_id)
            if not booking:
                raise BookingNotFoundError(booking_id)
            if booking.explorer_id != explorer_id:
                raise NotBookingExplorerError(booking_id)

            experience = await self._experience_repo.get(booking.experience_id)
            window = dispute_window(experience, booking)
            self._state_machine.open_dispute(booking, reason, comment, window, now)
            booking = await self._booking_repo.save(booking)

            payment = await self._payment_repo.get_by_booking(booking_id)
            if payment is not None:
                payment.status = PaymentStatus.DISPUTED
                payment.updated_at = now
                await self._payment_repo.save(payment)

            report = await self._report_repo.add(
                DisputeReport(
                    booking_id=booking_id,
                    experience_id=booking.experience_id,
                    host_id=booking.host_id,
                    reporter_id=explorer_id,
                    reason=booking.dispute_reason or reason,
                    comment=booking.dispute_comment,
                    deadline_at=now + constants.DISPUTE_REPORT_DEADLINE,
                    created_at=now,
                )
            )

        self._logger.info(
            "Booking disputed",
            extra={"booking_id": booking_id, "report_id": report.id, "reason": report.reason},
        )
        title = experience.title if experience else "experience"
        await self._email_moderators(booking, report, title)
        await self._notify_host(booking, title)
        return booking, report

    def action_links(self, booking: Booking, report: DisputeReport) -> dict[str, str]:
        claims = [
            ActionClaims(
                action="REFUND_EXPLORER",
                report_id=report.id,
                booking_id=booking.id,
                experience_id=booking.experience_id,
                host_id=booking.host_id,
                explorer_id=booking.explorer_id,
            ),
            ActionClaims(action="BAN_HOST", report_id=report.id, host_id=booking.host_id),
            ActionClaims(action="BAN_EXPLORER", report_id=report.id, explorer_id=booking.explorer_id),
            ActionClaims(
                action="RESOLVE_PAYOUT",
                report_id=report.id,
                booking_id=booking.id,
                experience_id=booking.experience_id,
            ),
            ActionClaims(action="IGNORE_REPORT", report_id=report.id, booking_id=booking.id),
        ]
        links = {}
        for claim in claims:
            token = self._token_signer.issue(claim)
            query = urlencode({"action": claim.action, "token": token})
            links[claim.action] = f"{self._public_base_url}/api/v1/admin/actions?{query}"
        return links

    async def _email_moderators(self, booking: Booking, report: DisputeReport, title: str) -> None:
        if not self._reports_email:
            self._logger.warning(
                "Reports email not configured, dispute email skipped",
                extra={"report_id": report.id},
            )
            return
        await self._notifications.email(
            to=self._reports_email,
            subject=f"Booking dispute #{booking.id}",
            template="dispute_report",
            data={
                "reportId": report.id,
                "bookingId": booking.id,
                "activityTitle": title,
                "reason": report.reason,
                "comment": report.comment,
                "deadlineAt": report.deadline_at.isoformat() if report.deadline_at else None,
                "links": self.action_links(booking, report),
            },
        )

    async def _notify_host(self, booking: Booking, title: str) -> None:
        await self._notifications.notify(
            user_id=booking.host_id,
            type="BOOKING_DISPUTED",
            title="Booking disputed",
            message=f'Booking for "{title}" was disputed. Payout is paused.',
            data={"bookingId": booking.id, "activityId": booking.experience_id},
        )
        host = await self._participant_repo.get(booking.host_id)
        if host is not None:
            await self._notifications.email(
                to=host.email,
                subject="Dispute opened",
                template="dispute_opened",
                data={"bookingId": booking.id, "activityTitle": title},
                user_id=host.id,
            )
