from copy import deepcopy
from datetime import datetime, timezone
from typing import Sequence

from app.application.interfaces.payment_repo import PaymentRepo
from app.domain.entities.booking import BookingStatus
from app.domain.entities.payment import Payment, PaymentStatus
from app.domain.errors import PaymentNotFoundError
from app.infrastructure.in_memory.booking_repo import InMemoryBookingRepo


class InMemoryPaymentRepo(PaymentRepo):
    """One payment per booking, same as the unique ``booking_id`` column in SQL."""

    def __init__(self, booking_repo: InMemoryBookingRepo | None = None) -> None:
        # Stands in for the bookings join of the SQL query
        self._booking_repo = booking_repo
        self._by_id: dict[int, Payment] = {}
        self._by_booking: dict[int, int] = {}
        self._next_id = 1

    async def upsert_initiated(
        self,
        booking_id: int,
        amount: int,
        currency: str,
        is_deposit: bool,
        stripe_session_id: str | None,
        stripe_payment_intent_id: str | None = None,
    ) -> Payment:
        now = datetime.now(timezone.utc)
        payment_id = self._by_booking.get(booking_id)
        if payment_id is None:
            payment = Payment(
                id=self._next_id,
                booking_id=booking_id,
                amount=amount,
                currency=currency,
                is_deposit=is_deposit,
                status=PaymentStatus.INITIATED,
                created_at=now,
            )
            self._next_id += 1
            self._by_id[payment.id] = payment
            self._by_booking[booking_id] = payment.id
        else:
            payment = self._by_id[payment_id]
            payment.amount = amount
            payment.currency = currency
            payment.is_deposit = is_deposit
            if payment.status == PaymentStatus.FAILED:
                payment.status = PaymentStatus.INITIATED
        payment.attach_identifiers(stripe_session_id, stripe_payment_intent_id)
        payment.updated_at = now
        return deepcopy(payment)

    async def get_by_booking(self, booking_id: int) -> Payment | None:
        payment_id = self._by_booking.get(booking_id)
        return deepcopy(self._by_id[payment_id]) if payment_id else None

    async def get_by_session(self, stripe_session_id: str) -> Payment | None:
        return self._find(lambda p: p.stripe_session_id == stripe_session_id)

    async def get_by_payment_intent(self, stripe_payment_intent_id: str) -> Payment | None:
        return self._find(lambda p: p.stripe_payment_intent_id == stripe_payment_intent_id)

    async def get_by_charge(self, stripe_charge_id: str) -> Payment | None:
        return self._find(lambda p: p.stripe_charge_id == stripe_charge_id)

    async def save(self, payment: Payment) -> Payment:
        if payment.id not in self._by_id:
            raise PaymentNotFoundError(payment.booking_id)
        self._by_id[payment.id] = deepcopy(payment)
        return deepcopy(payment)

    async def list_unsettled_with_session(self, limit: int) -> Sequence[Payment]:
        pending = [
            p
            for p in self._by_id.values()
            if p.stripe_session_id
            and (
                p.status == PaymentStatus.INITIATED
                or (p.status == PaymentStatus.FAILED and self._booking_pending(p.booking_id))
            )
        ]
        pending.sort(key=lambda p: p.id, reverse=True)
        return [deepcopy(p) for p in pending[:limit]]

    def _find(self, predicate) -> Payment | None:
        for payment in self._by_id.values():
            if predicate(payment):
                return deepcopy(payment)
        return None

    def _booking_pending(self, booking_id: int) -> bool:
        if self._booking_repo is None:
            return False
        booking = self._booking_repo.bookings.get(booking_id)
        return booking is not None and booking.status == BookingStatus.PENDING
