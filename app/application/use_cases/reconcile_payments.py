import logging
from datetime import datetime

from app.application.dtos.sweep_dto import SweepReport
from app.application.interfaces.booking_repo import BookingRepo
from app.application.interfaces.clock import Clock
from app.application.interfaces.payment_gateway import PaymentGateway
from app.application.interfaces.payment_repo import PaymentRepo
from app.application.interfaces.seat_inventory import SeatInventory
from app.application.interfaces.transaction_manager import TransactionManager
from app.application.use_cases.apply_payment_success import ApplyPaymentSuccessUseCase
from app.domain import constants
from app.domain.booking_state_machine import BookingStateMachine
from app.domain.entities.booking import BookingStatus
from app.domain.entities.payment import Payment, PaymentStatus
from app.domain.errors import (
    CheckoutSessionNotFoundError,
    GatewayEnvironmentMismatchError,
    PaymentGatewayError,
)

_UNSETTLED_PAYMENT_STATUSES = (PaymentStatus.INITIATED, PaymentStatus.FAILED)


class ReconcilePaymentsUseCase:
    """
    Pull-based fallback for missed webhooks.

    Re-queries the checkout session of every INITIATED payment, and of
    FAILED payments whose booking still holds seats. Paid sessions go
    through the same apply-success path as the webhook.
    Missing, expired and wrong-environment sessions are terminal: the
    payment is marked FAILED and a still-PENDING booking gives its seats
    back. Any other processor error is left for the next cycle.
    """

    name = "reconciliation"

    def __init__(
        self,
        booking_repo: BookingRepo,
        payment_repo: PaymentRepo,
        seat_inventory: SeatInventory,
        payment_gateway: PaymentGateway,
        apply_payment_success: ApplyPaymentSuccessUseCase,
        transaction_manager: TransactionManager,
        clock: Clock,
        batch_size: int = constants.RECONCILE_BATCH_SIZE,
        state_machine: BookingStateMachine | None = None,
    ) -> None:
        self._booking_repo = booking_repo
        self._payment_repo = payment_repo
        self._seat_inventory = seat_inventory
        self._payment_gateway = payment_gateway
        self._apply_payment_success = apply_payment_success
        self._transaction_manager = transaction_manager
        self._clock = clock
        self._batch_size = batch_size
        self._state_machine = state_machine or BookingStateMachine()
        self._logger = logging.getLogger(__name__)

    async def run_once(self, now: datetime | None = None) -> SweepReport:
        now = now or self._clock.now()
        report = SweepReport(self.name)
        async with self._transaction_manager.start():
            payments = await self._payment_repo.list_unsettled_with_session(self._batch_size)

        for payment in payments:
            report.examined += 1
            try:
                if await self._reconcile(payment, now):
                    report.changed += 1
            except PaymentGatewayError as exc:
                self._logger.warning(
                    "Checkout session lookup failed, retrying next cycle",
                    extra={"booking_id": payment.booking_id, "error_code": exc.code},
                )
                report.record_failure(payment.booking_id)
            except Exception:
                self._logger.exception(
                    "Reconciliation failed for payment",
                    extra={"booking_id": payment.booking_id, "payment_id": payment.id},
                )
                report.record_failure(payment.booking_id)

        if report.examined:
            self._logger.info("Reconciliation sweep finished", extra=report.as_dict())
        return report

    async def _reconcile(self, payment: Payment, now: datetime) -> bool:
        try:
            session = await self._payment_gateway.retrieve_checkout_session(
                payment.stripe_session_id
            )
        except (CheckoutSessionNotFoundError, GatewayEnvironmentMismatchError) as exc:
            return await self._terminalize(payment.booking_id, exc.code, now)

        if session.is_paid:
            result = await self._apply_payment_success.execute(
                payment.booking_id,
                session_id=session.id,
                payment_intent_id=session.payment_intent_id,
                source="reconciliation",
            )
            return result.applied or result.late_capture
        if session.is_expired:
            return await self._terminalize(payment.booking_id, "CHECKOUT_SESSION_EXPIRED", now)
        return False

    async def _terminalize(self, booking_id: int, reason: str, now: datetime) -> bool:
        async with self._transaction_manager.start():
            payment = await self._payment_repo.get_by_booking(booking_id)
            if payment is None or payment.status not in _UNSETTLED_PAYMENT_STATUSES:
                return False
            payment.status = PaymentStatus.FAILED
            payment.updated_at = now
            await self._payment_repo.save(payment)

            booking = await self._booking_repo.get(booking_id)
            released = False
            if booking is not None and booking.status == BookingStatus.PENDING:
                self._state_machine.cancel(booking, now, cancelled_by="system", reason=reason.lower())
                await self._booking_repo.save(booking)
                await self._seat_inventory.release(booking.experience_id, booking.quantity)
                released = True

        self._logger.warning(
            "Payment terminalized by reconciliation",
            extra={"booking_id": booking_id, "reason": reason, "seats_released": released},
        )
        return True
