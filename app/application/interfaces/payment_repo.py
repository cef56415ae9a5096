from typing import Sequence

from app.domain.entities.payment import Payment


class PaymentRepo:
    """Payment records, one per booking."""

    async def upsert_initiated(
        self,
        booking_id: int,
        amount: int,
        currency: str,
        is_deposit: bool,
        stripe_session_id: str | None,
        stripe_payment_intent_id: str | None = None,
    ) -> Payment:
        raise NotImplementedError

    async def get_by_booking(self, booking_id: int) -> Payment | None:
        raise NotImplementedError

    async def get_by_session(self, stripe_session_id: str) -> Payment | None:
        raise NotImplementedError

    async def get_by_payment_intent(self, stripe_payment_intent_id: str) -> Payment | None:
        raise NotImplementedError

    async def get_by_charge(self, stripe_charge_id: str) -> Payment | None:
        raise NotImplementedError

    async def save(self, payment: Payment) -> Payment:
        raise NotImplementedError

    async def list_unsettled_with_session(self, limit: int) -> Sequence[Payment]:
        """
        Payments with a checkout session that may still settle, newest first.

        That is INITIATED payments, plus FAILED ones whose booking is still
        PENDING: a declined card leaves the session open for another try,
        and the seats stay held until the session is paid or expires.
        """
        raise NotImplementedError
