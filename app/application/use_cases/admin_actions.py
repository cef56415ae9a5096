import logging
from enum import Enum

from app.application.dtos.booking_dto import AdminActionResultDTO
from app.application.interfaces.action_tokens import ActionClaims, ActionTokenSigner
from app.application.interfaces.booking_repo import BookingRepo
from app.application.interfaces.clock import Clock
from app.application.interfaces.dispute_report_repo import DisputeReportRepo
from app.application.interfaces.experience_repo import ExperienceRepo
from app.application.interfaces.participant_repo import ParticipantRepo
from app.application.interfaces.payment_repo import PaymentRepo
from app.application.interfaces.seat_inventory import SeatInventory
from app.application.interfaces.transaction_manager import TransactionManager
from app.application.use_cases.notify import NotificationDispatcher
from app.application.use_cases.refund_booking import RefundBookingUseCase
from app.domain.booking_state_machine import BookingStateMachine
from app.domain.entities.booking import (
    ATTENDANCE_PENDING_STATUSES,
    Booking,
    BookingStatus,
)
from app.domain.entities.dispute_report import ReportStatus
from app.domain.entities.experience import ExperienceStatus
from app.domain.entities.payment import PaymentStatus
from app.domain.errors import (
    ActionTokenMismatchError,
    BookingNotFoundError,
    ConfirmationRequiredError,
    ExperienceNotFoundError,
    ParticipantNotFoundError,
    ReportNotFoundError,
    UnknownAdminActionError,
    ValidationError,
)


class AdminAction(str, Enum):
    RESOLVE = "RESOLVE"
    RESOLVE_PAYOUT = "RESOLVE_PAYOUT"
    IGNORE = "IGNORE"
    IGNORE_REPORT = "IGNORE_REPORT"
    REFUND_EXPLORER = "REFUND_EXPLORER"
    BAN_HOST = "BAN_HOST"
    BAN_EXPLORER = "BAN_EXPLORER"
    DISABLE_EXPERIENCE = "DISABLE_EXPERIENCE"


# Irreversible actions need the admin to type a phrase as well as tick the box.
CONFIRMATION_PHRASES = {
    AdminAction.BAN_HOST: "BAN",
    AdminAction.BAN_EXPLORER: "BAN",
    AdminAction.DISABLE_EXPERIENCE: "DISABLE",
}

_IGNORE_ACTIONS = (AdminAction.IGNORE, AdminAction.IGNORE_REPORT)
_TARGET_FIELDS = ("report_id", "booking_id", "host_id", "explorer_id", "experience_id")


class HandleAdminActionUseCase:
    """
    Execute a moderator action carried by a signed link.

    The token decides what is acted on: ids passed alongside it must agree
    with the token or the call is rejected. Every action is idempotent, so
    clicking the same link twice changes nothing the second time.
    """

    def __init__(
        self,
        booking_repo: BookingRepo,
        experience_repo: ExperienceRepo,
        participant_repo: ParticipantRepo,
        payment_repo: PaymentRepo,
        report_repo: DisputeReportRepo,
        seat_inventory: SeatInventory,
        refund_booking: RefundBookingUseCase,
        token_signer: ActionTokenSigner,
        transaction_manager: TransactionManager,
        notifications: NotificationDispatcher,
        clock: Clock,
        state_machine: BookingStateMachine | None = None,
    ) -> None:
        self._booking_repo = booking_repo
        self._experience_repo = experience_repo
        self._participant_repo = participant_repo
        self._payment_repo = payment_repo
        self._report_repo = report_repo
        self._seat_inventory = seat_inventory
        self._refund_booking = refund_booking
        self._token_signer = token_signer
        self._transaction_manager = transaction_manager
        self._notifications = notifications
        self._clock = clock
        self._state_machine = state_machine or BookingStateMachine()
        self._logger = logging.getLogger(__name__)

    async def execute(
        self,
        action: str,
        token: str,
        confirm: bool,
        confirm_text: str | None = None,
        **targets: int | None,
    ) -> AdminActionResultDTO:
        claims = self._token_signer.verify(token)
        try:
            admin_action = AdminAction(action)
        except ValueError as exc:
            raise UnknownAdminActionError(action) from exc
        if claims.action != admin_action.value:
            raise ActionTokenMismatchError("action")
        resolved = self._resolve_targets(claims, targets)
        self._check_confirmation(admin_action, confirm, confirm_text)

        if admin_action in (AdminAction.RESOLVE, AdminAction.RESOLVE_PAYOUT):
            result = await self._resolve(admin_action, self._require(resolved, "booking_id"))
        elif admin_action in _IGNORE_ACTIONS:
            result = await self._ignore(admin_action, resolved.get("booking_id"))
        elif admin_action == AdminAction.REFUND_EXPLORER:
            result = await self._refund_explorer(self._require(resolved, "booking_id"))
        elif admin_action == AdminAction.BAN_HOST:
            result = await self._ban_host(self._require(resolved, "host_id"))
        elif admin_action == AdminAction.BAN_EXPLORER:
            result = await self._ban_explorer(self._require(resolved, "explorer_id"))
        else:
            result = await self._disable_experience(self._require(resolved, "experience_id"))

        report_id = resolved.get("report_id")
        if report_id is not None:
            result.report_status = await self._close_report(report_id, admin_action)

        self._logger.info(
            "[ADMIN_ACTION] executed",
            extra={"action": admin_action.value, "changed": result.changed, **resolved},
        )
        return result

    def preview(self, action: str, token: str) -> dict:
        """What a link would do, without doing it. Used to render the confirmation step."""
        claims = self._token_signer.verify(token)
        try:
            admin_action = AdminAction(action)
        except ValueError as exc:
            raise UnknownAdminActionError(action) from exc
        if claims.action != admin_action.value:
            raise ActionTokenMismatchError("action")
        return {
            "action": admin_action.value,
            "targets": self._resolve_targets(claims, {}),
            "confirmation_phrase": CONFIRMATION_PHRASES.get(admin_action),
        }

    # === Guards ===

    def _resolve_targets(self, claims: ActionClaims, targets: dict) -> dict[str, int]:
        resolved: dict[str, int] = {}
        for field in _TARGET_FIELDS:
            from_token = getattr(claims, field)
            provided = targets.get(field)
            if from_token is not None and provided is not None and from_token != provided:
                raise ActionTokenMismatchError(field)
            value = from_token if from_token is not None else provided
            if value is not None:
                resolved[field] = value
        return resolved

    def _check_confirmation(
        self, action: AdminAction, confirm: bool, confirm_text: str | None
    ) -> None:
        if not confirm:
            raise ConfirmationRequiredError()
        phrase = CONFIRMATION_PHRASES.get(action)
        if phrase and (confirm_text or "").strip().upper() != phrase:
            raise ConfirmationRequiredError(phrase)

    def _require(self, resolved: dict[str, int], field: str) -> int:
        if field not in resolved:
            raise ValidationError(field, "missing from action token and request")
        return resolved[field]

    # === Actions ===

    async def _resolve(self, action: AdminAction, booking_id: int) -> AdminActionResultDTO:
        now = self._clock.now()
        async with self._transaction_manager.start():
            booking = await self._load_booking(booking_id)
            changed = self._state_machine.resolve_dispute(booking, now)
            if changed:
                booking = await self._booking_repo.save(booking)
                await self._settle_disputed_payment(booking_id, now)
        return AdminActionResultDTO(action.value, changed, booking_status=booking.status.value)

    async def _ignore(self, action: AdminAction, booking_id: int | None) -> AdminActionResultDTO:
        if booking_id is None:
            return AdminActionResultDTO(action.value, changed=False)
        now = self._clock.now()
        async with self._transaction_manager.start():
            booking = await self._load_booking(booking_id)
            changed = self._state_machine.ignore_dispute(booking, now)
            if changed:
                booking = await self._booking_repo.save(booking)
                await self._settle_disputed_payment(booking_id, now)
        return AdminActionResultDTO(action.value, changed, booking_status=booking.status.value)

    async def _refund_explorer(self, booking_id: int) -> AdminActionResultDTO:
        now = self._clock.now()
        async with self._transaction_manager.start():
            booking = await self._load_booking(booking_id)
            if booking.status == BookingStatus.REFUNDED:
                return AdminActionResultDTO(
                    AdminAction.REFUND_EXPLORER.value, False, booking_status=booking.status.value
                )
            if booking.status == BookingStatus.PENDING:
                # Nothing was charged yet: cancelling releases the hold.
                self._state_machine.cancel(booking, now, cancelled_by="admin", reason="refund_explorer")
                booking = await self._booking_repo.save(booking)
                await self._seat_inventory.release(booking.experience_id, booking.quantity)
                return AdminActionResultDTO(
                    AdminAction.REFUND_EXPLORER.value, True, booking_status=booking.status.value
                )
            if booking.has_open_dispute:
                booking.dispute_resolved_at = now
                booking = await self._booking_repo.save(booking)

        outcome = await self._refund_booking.execute(booking_id)
        await self._notify_refunded(booking, "Refund issued by the moderation team")
        return AdminActionResultDTO(
            AdminAction.REFUND_EXPLORER.value,
            True,
            booking_status=outcome.status,
            refunded_booking_ids=[booking_id] if outcome.refunded else [],
        )

    async def _ban_host(self, host_id: int) -> AdminActionResultDTO:
        async with self._transaction_manager.start():
            host = await self._participant_repo.get(host_id)
            if not host:
                raise ParticipantNotFoundError(host_id)
            changed = not host.is_banned
            host.is_banned = True
            await self._participant_repo.save(host)
            for experience in await self._experience_repo.list_by_host(host_id):
                if experience.status != ExperienceStatus.DISABLED or experience.is_active:
                    await self._experience_repo.set_status(
                        experience.id, ExperienceStatus.DISABLED, is_active=False
                    )
                    changed = True
            bookings = await self._booking_repo.list_by_host(host_id)

        refunded = await self._refund_active(bookings, "Host banned by the moderation team")
        await self._block_payouts(bookings)
        return AdminActionResultDTO(
            AdminAction.BAN_HOST.value, changed or bool(refunded), refunded_booking_ids=refunded
        )

    async def _ban_explorer(self, explorer_id: int) -> AdminActionResultDTO:
        async with self._transaction_manager.start():
            explorer = await self._participant_repo.get(explorer_id)
            if not explorer:
                raise ParticipantNotFoundError(explorer_id)
            if explorer.is_banned:
                return AdminActionResultDTO(AdminAction.BAN_EXPLORER.value, False)
            explorer.is_banned = True
            await self._participant_repo.save(explorer)
        return AdminActionResultDTO(AdminAction.BAN_EXPLORER.value, True)

    async def _disable_experience(self, experience_id: int) -> AdminActionResultDTO:
        async with self._transaction_manager.start():
            experience = await self._experience_repo.get(experience_id)
            if not experience:
                raise ExperienceNotFoundError(experience_id)
            changed = experience.status != ExperienceStatus.DISABLED or experience.is_active
            if changed:
                await self._experience_repo.set_status(
                    experience_id, ExperienceStatus.DISABLED, is_active=False
                )
            bookings = await self._booking_repo.list_by_experience(experience_id)

        refunded = await self._refund_active(bookings, "Experience disabled by the moderation team")
        return AdminActionResultDTO(
            AdminAction.DISABLE_EXPERIENCE.value,
            changed or bool(refunded),
            refunded_booking_ids=refunded,
        )

    # === Helpers ===

    async def _refund_active(self, bookings: list[Booking], reason: str) -> list[int]:
        refunded = []
        for booking in bookings:
            if booking.status not in ATTENDANCE_PENDING_STATUSES:
                continue
            outcome = await self._refund_booking.execute(booking.id)
            await self._notify_refunded(booking, reason)
            if outcome.refunded:
                refunded.append(booking.id)
        return refunded

    async def _block_payouts(self, bookings: list[Booking]) -> None:
        for stale in bookings:
            async with self._transaction_manager.start():
                booking = await self._booking_repo.get(stale.id)
                if booking is None or booking.payout_eligible_at is None:
                    continue
                if booking.status in (BookingStatus.REFUNDED, BookingStatus.CANCELLED):
                    continue
                booking.payout_eligible_at = None
                await self._booking_repo.save(booking)

    async def _settle_disputed_payment(self, booking_id: int, now) -> None:
        payment = await self._payment_repo.get_by_booking(booking_id)
        if payment is not None and payment.status == PaymentStatus.DISPUTED:
            payment.status = PaymentStatus.CONFIRMED
            payment.updated_at = now
            await self._payment_repo.save(payment)

    async def _close_report(self, report_id: int, action: AdminAction) -> str:
        async with self._transaction_manager.start():
            report = await self._report_repo.get(report_id)
            if not report:
                raise ReportNotFoundError(report_id)
            if report.is_open:
                status = ReportStatus.IGNORED if action in _IGNORE_ACTIONS else ReportStatus.HANDLED
                report.close(status, action.value, self._clock.now(), "admin-email-action")
                await self._report_repo.save(report)
            return report.status.value

    async def _load_booking(self, booking_id: int) -> Booking:
        booking = await self._booking_repo.get(booking_id)
        if not booking:
            raise BookingNotFoundError(booking_id)
        return booking

    async def _notify_refunded(self, booking: Booking, reason: str) -> None:
        await self._notifications.notify(
            user_id=booking.explorer_id,
            type="BOOKING_REFUNDED",
            title="Booking refunded",
            message=f"Booking was refunded: {reason}.",
            data={"bookingId": booking.id, "activityId": booking.experience_id},
        )
