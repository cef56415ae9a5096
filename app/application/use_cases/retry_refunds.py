import logging
from datetime import datetime

from app.application.dtos.sweep_dto import SweepReport
from app.application.interfaces.booking_repo import BookingRepo
from app.application.interfaces.clock import Clock
from app.application.interfaces.transaction_manager import TransactionManager
from app.application.use_cases.refund_booking import RefundBookingUseCase
from app.domain import constants


class RetryRefundsUseCase:
    """Refund retry scheduler: REFUND_FAILED bookings under 5 attempts, at most once per 6h."""

    name = "refund_retry"

    def __init__(
        self,
        booking_repo: BookingRepo,
        refund_booking: RefundBookingUseCase,
        transaction_manager: TransactionManager,
        clock: Clock,
        max_attempts: int = constants.MAX_REFUND_ATTEMPTS,
    ) -> None:
        self._booking_repo = booking_repo
        self._refund_booking = refund_booking
        self._transaction_manager = transaction_manager
        self._clock = clock
        self._max_attempts = max_attempts
        self._logger = logging.getLogger(__name__)

    async def run_once(self, now: datetime | None = None) -> SweepReport:
        now = now or self._clock.now()
        report = SweepReport(self.name)
        async with self._transaction_manager.start():
            candidates = await self._booking_repo.list_refund_retry_candidates(
                max_attempts=self._max_attempts,
                last_attempt_before=now - constants.REFUND_RETRY_BACKOFF,
            )

        for booking in candidates:
            report.examined += 1
            try:
                outcome = await self._refund_booking.execute(booking.id, retry=True)
            except Exception:
                self._logger.exception(
                    "Refund retry crashed", extra={"booking_id": booking.id}
                )
                report.record_failure(booking.id)
                continue
            if outcome.refunded:
                report.changed += 1
            else:
                report.record_failure(booking.id)
                if outcome.attempt >= self._max_attempts:
                    self._logger.error(
                        "Refund attempts exhausted, manual follow-up needed",
                        extra={"booking_id": booking.id, "attempt": outcome.attempt},
                    )

        if report.examined:
            self._logger.info("Refund retry sweep finished", extra=report.as_dict())
        return report
