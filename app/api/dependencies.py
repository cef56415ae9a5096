import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Awaitable, Callable

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import AsyncSessionLocal
from app.application.dtos.sweep_dto import SweepReport
from app.application.interfaces.clock import Clock, SystemClock
from app.application.use_cases.admin_actions import HandleAdminActionUseCase
from app.application.use_cases.apply_payment_success import ApplyPaymentSuccessUseCase
from app.application.use_cases.archive_chats import ArchiveChatsUseCase
from app.application.use_cases.booking_chat import ListMessagesUseCase, SendMessageUseCase
from app.application.use_cases.cancel_booking import CancelBookingUseCase
from app.application.use_cases.create_booking import CreateBookingUseCase
from app.application.use_cases.dispute_booking import DisputeBookingUseCase
from app.application.use_cases.get_wallet import GetHostWalletUseCase
from app.application.use_cases.handle_payment_webhook import HandlePaymentWebhookUseCase
from app.application.use_cases.notify import NotificationDispatcher
from app.application.use_cases.reconcile_payments import ReconcilePaymentsUseCase
from app.application.use_cases.record_attendance import RecordAttendanceUseCase
from app.application.use_cases.refund_booking import RefundBookingUseCase
from app.application.use_cases.retry_refunds import RetryRefundsUseCase
from app.application.use_cases.sweep_attendance import SweepAttendanceUseCase
from app.config import Settings, get_settings
from app.domain.constants import MAX_REFUND_ATTEMPTS
from app.domain.entities.participant import ParticipantRole
from app.domain.errors import ValidationError
from app.infrastructure.db.engine import session_scope
from app.infrastructure.db.repositories import (
    BookingRepoSQL,
    DisputeReportRepoSQL,
    ExperienceRepoSQL,
    MessageRepoSQL,
    ParticipantRepoSQL,
    PaymentRepoSQL,
    SeatInventorySQL,
    WebhookEventRepoSQL,
)
from app.infrastructure.db.transaction_manager import SQLAlchemyTransactionManager
from app.infrastructure.gateways.notifier_http import HttpNotifier
from app.infrastructure.gateways.stripe_gateway import StripePaymentGateway
from app.infrastructure.in_memory import (
    InMemoryBookingRepo,
    InMemoryDisputeReportRepo,
    InMemoryExperienceRepo,
    InMemoryMessageRepo,
    InMemoryParticipantRepo,
    InMemoryPaymentRepo,
    InMemorySeatInventory,
    InMemoryTransactionManager,
    InMemoryWebhookEventRepo,
    RecordingNotifier,
    StubPaymentGateway,
)
from app.infrastructure.services.action_token_signer import JwtActionTokenSigner

logger = logging.getLogger(__name__)

SweepCycle = Callable[[datetime], Awaitable[SweepReport]]
SWEEP_NAMES = ("attendance", "reconciliation", "refund_retry", "chat_archive")


@dataclass(frozen=True)
class Actor:
    """Caller identity forwarded by the profile service."""

    user_id: int
    role: str | None = None

    @property
    def is_admin(self) -> bool:
        return (self.role or "").upper() == ParticipantRole.ADMIN.value


def get_actor(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    x_user_role: str | None = Header(default=None, alias="X-User-Role"),
) -> Actor:
    if not x_user_id:
        raise ValidationError("X-User-Id", "header is required")
    try:
        user_id = int(x_user_id)
    except ValueError as exc:
        raise ValidationError("X-User-Id", "must be an integer") from exc
    return Actor(user_id=user_id, role=x_user_role)


async def get_session(settings: Settings = Depends(get_settings)) -> AsyncSession | None:
    if settings.use_in_memory:
        yield None
        return
    async with AsyncSessionLocal() as session:
        yield session


@lru_cache(maxsize=1)
def get_clock() -> Clock:
    return SystemClock()


@lru_cache(maxsize=1)
def _payment_gateway():
    settings = get_settings()
    if settings.stripe_api_key:
        return StripePaymentGateway(
            api_key=settings.stripe_api_key, live_mode=settings.stripe_live_mode
        )
    logger.warning("STRIPE_SECRET_KEY not set, using the stub payment gateway")
    return StubPaymentGateway()


@lru_cache(maxsize=1)
def _notifier():
    settings = get_settings()
    if settings.notifications_base_url:
        return HttpNotifier(
            base_url=settings.notifications_base_url,
            timeout_seconds=settings.notifications_timeout_seconds,
        )
    return RecordingNotifier()


@lru_cache(maxsize=1)
def _in_memory_bundle():
    settings = get_settings()
    clock = get_clock()
    experience_repo = InMemoryExperienceRepo()
    booking_repo = InMemoryBookingRepo()
    return {
        "booking_repo": booking_repo,
        "experience_repo": experience_repo,
        "seat_inventory": InMemorySeatInventory(experience_repo),
        "payment_repo": InMemoryPaymentRepo(booking_repo),
        "webhook_event_repo": InMemoryWebhookEventRepo(),
        "participant_repo": InMemoryParticipantRepo(),
        "report_repo": InMemoryDisputeReportRepo(),
        "message_repo": InMemoryMessageRepo(),
        "payment_gateway": StubPaymentGateway(),
        "notifier": RecordingNotifier(),
        "tx_manager": InMemoryTransactionManager(),
        "clock": clock,
        "token_signer": _token_signer(settings, clock),
    }


def _token_signer(settings: Settings, clock: Clock) -> JwtActionTokenSigner:
    return JwtActionTokenSigner(
        secret=settings.admin_action_secret,
        ttl=timedelta(hours=settings.admin_action_ttl_hours),
        clock=clock,
    )


def _sql_bundle(settings: Settings, session: AsyncSession) -> dict:
    clock = get_clock()
    return {
        "booking_repo": BookingRepoSQL(session),
        "experience_repo": ExperienceRepoSQL(session),
        "seat_inventory": SeatInventorySQL(session),
        "payment_repo": PaymentRepoSQL(session),
        "webhook_event_repo": WebhookEventRepoSQL(session),
        "participant_repo": ParticipantRepoSQL(session),
        "report_repo": DisputeReportRepoSQL(session),
        "message_repo": MessageRepoSQL(session),
        "payment_gateway": _payment_gateway(),
        "notifier": _notifier(),
        "tx_manager": SQLAlchemyTransactionManager(session),
        "clock": clock,
        "token_signer": _token_signer(settings, clock),
    }


def build_use_cases(settings: Settings, bundle: dict) -> dict:
    """Wire every use case against one bundle of repositories and gateways."""
    clock = bundle["clock"]
    tx_manager = bundle["tx_manager"]
    notifications = NotificationDispatcher(bundle["notifier"])

    apply_payment_success = ApplyPaymentSuccessUseCase(
        booking_repo=bundle["booking_repo"],
        payment_repo=bundle["payment_repo"],
        experience_repo=bundle["experience_repo"],
        seat_inventory=bundle["seat_inventory"],
        transaction_manager=tx_manager,
        notifications=notifications,
        clock=clock,
    )
    refund_booking = RefundBookingUseCase(
        booking_repo=bundle["booking_repo"],
        payment_repo=bundle["payment_repo"],
        participant_repo=bundle["participant_repo"],
        payment_gateway=bundle["payment_gateway"],
        transaction_manager=tx_manager,
        notifications=notifications,
        clock=clock,
    )
    attendance = SweepAttendanceUseCase(
        booking_repo=bundle["booking_repo"],
        experience_repo=bundle["experience_repo"],
        participant_repo=bundle["participant_repo"],
        transaction_manager=tx_manager,
        notifications=notifications,
        clock=clock,
    )
    reconciliation = ReconcilePaymentsUseCase(
        booking_repo=bundle["booking_repo"],
        payment_repo=bundle["payment_repo"],
        seat_inventory=bundle["seat_inventory"],
        payment_gateway=bundle["payment_gateway"],
        apply_payment_success=apply_payment_success,
        transaction_manager=tx_manager,
        clock=clock,
        batch_size=settings.reconcile_batch_size,
    )
    refund_retry = RetryRefundsUseCase(
        booking_repo=bundle["booking_repo"],
        refund_booking=refund_booking,
        transaction_manager=tx_manager,
        clock=clock,
        max_attempts=MAX_REFUND_ATTEMPTS,
    )
    chat_archive = ArchiveChatsUseCase(
        booking_repo=bundle["booking_repo"],
        experience_repo=bundle["experience_repo"],
        transaction_manager=tx_manager,
        clock=clock,
    )

    return {
        "create_booking": CreateBookingUseCase(
            booking_repo=bundle["booking_repo"],
            experience_repo=bundle["experience_repo"],
            participant_repo=bundle["participant_repo"],
            payment_repo=bundle["payment_repo"],
            seat_inventory=bundle["seat_inventory"],
            payment_gateway=bundle["payment_gateway"],
            transaction_manager=tx_manager,
            clock=clock,
            deposit_per_seat=settings.free_booking_deposit_minor,
            default_currency=settings.default_currency,
            success_url=settings.checkout_success_url,
            cancel_url=settings.checkout_cancel_url,
        ),
        "cancel_booking": CancelBookingUseCase(
            booking_repo=bundle["booking_repo"],
            experience_repo=bundle["experience_repo"],
            participant_repo=bundle["participant_repo"],
            seat_inventory=bundle["seat_inventory"],
            refund_booking=refund_booking,
            transaction_manager=tx_manager,
            notifications=notifications,
            clock=clock,
        ),
        "record_attendance": RecordAttendanceUseCase(
            booking_repo=bundle["booking_repo"],
            experience_repo=bundle["experience_repo"],
            transaction_manager=tx_manager,
            notifications=notifications,
            clock=clock,
        ),
        "dispute_booking": DisputeBookingUseCase(
            booking_repo=bundle["booking_repo"],
            experience_repo=bundle["experience_repo"],
            payment_repo=bundle["payment_repo"],
            report_repo=bundle["report_repo"],
            participant_repo=bundle["participant_repo"],
            token_signer=bundle["token_signer"],
            transaction_manager=tx_manager,
            notifications=notifications,
            clock=clock,
            reports_email=settings.reports_email,
            public_base_url=settings.public_base_url,
        ),
        "admin_action": HandleAdminActionUseCase(
            booking_repo=bundle["booking_repo"],
            experience_repo=bundle["experience_repo"],
            participant_repo=bundle["participant_repo"],
            payment_repo=bundle["payment_repo"],
            report_repo=bundle["report_repo"],
            seat_inventory=bundle["seat_inventory"],
            refund_booking=refund_booking,
            token_signer=bundle["token_signer"],
            transaction_manager=tx_manager,
            notifications=notifications,
            clock=clock,
        ),
        "handle_webhook": HandlePaymentWebhookUseCase(
            booking_repo=bundle["booking_repo"],
            payment_repo=bundle["payment_repo"],
            participant_repo=bundle["participant_repo"],
            webhook_event_repo=bundle["webhook_event_repo"],
            payment_gateway=bundle["payment_gateway"],
            apply_payment_success=apply_payment_success,
            refund_booking=refund_booking,
            transaction_manager=tx_manager,
            clock=clock,
            webhook_secret=settings.stripe_webhook_secret,
        ),
        "get_wallet": GetHostWalletUseCase(
            booking_repo=bundle["booking_repo"],
            participant_repo=bundle["participant_repo"],
            clock=clock,
            default_currency=settings.default_currency,
        ),
        "list_messages": ListMessagesUseCase(
            booking_repo=bundle["booking_repo"],
            message_repo=bundle["message_repo"],
        ),
        "send_message": SendMessageUseCase(
            booking_repo=bundle["booking_repo"],
            message_repo=bundle["message_repo"],
            transaction_manager=tx_manager,
            notifications=notifications,
            clock=clock,
        ),
        "apply_payment_success": apply_payment_success,
        "refund_booking": refund_booking,
        "sweeps": {
            "attendance": attendance.run_once,
            "reconciliation": reconciliation.run_once,
            "refund_retry": refund_retry.run_once,
            "chat_archive": chat_archive.run_once,
        },
        "clock": clock,
    }


def get_use_cases(
    settings: Settings = Depends(get_settings),
    session: AsyncSession | None = Depends(get_session),
):
    if settings.use_in_memory:
        return build_use_cases(settings, _in_memory_bundle())

    if not session:
        raise RuntimeError("DB session not available")
    return build_use_cases(settings, _sql_bundle(settings, session))


def make_sweep_cycle(name: str, settings: Settings) -> SweepCycle:
    """
    Cycle callable for a background sweeper.

    In SQL mode each cycle gets its own session, so a long-lived worker
    never holds a connection between runs.
    """

    async def run_cycle(now: datetime) -> SweepReport:
        if settings.use_in_memory:
            use_cases = build_use_cases(settings, _in_memory_bundle())
            return await use_cases["sweeps"][name](now)
        async with session_scope(AsyncSessionLocal) as session:
            use_cases = build_use_cases(settings, _sql_bundle(settings, session))
            return await use_cases["sweeps"][name](now)

    return run_cycle


def sweep_intervals(settings: Settings) -> dict[str, float]:
    return {
        "attendance": settings.attendance_sweep_interval_seconds,
        "reconciliation": settings.reconciliation_interval_seconds,
        "refund_retry": settings.refund_retry_interval_seconds,
        "chat_archive": settings.chat_archive_interval_seconds,
    }
