from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy import and_, insert, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.application.interfaces.payment_repo import PaymentRepo
from app.domain.entities.payment import Payment, PaymentStatus
from app.domain.errors import PaymentNotFoundError
from app.domain.schedule import as_utc
from app.domain.entities.booking import BookingStatus
from app.infrastructure.db.tables import bookings, payments


class PaymentRepoSQL(PaymentRepo):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

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
        existing = await self.get_by_booking(booking_id)
        if existing is None:
            stmt = insert(payments).values(
                booking_id=booking_id,
                stripe_session_id=stripe_session_id,
                stripe_payment_intent_id=stripe_payment_intent_id,
                amount=amount,
                currency=currency,
                is_deposit=is_deposit,
                status=PaymentStatus.INITIATED.value,
                created_at=now,
                updated_at=now,
            )
            result = await self._session.execute(stmt)
            return await self._fetch_payment(result.inserted_primary_key[0])

        existing.amount = amount
        existing.currency = currency
        existing.is_deposit = is_deposit
        if existing.status == PaymentStatus.FAILED:
            existing.status = PaymentStatus.INITIATED
        existing.attach_identifiers(stripe_session_id, stripe_payment_intent_id)
        return await self.save(existing)

    async def get_by_booking(self, booking_id: int) -> Payment | None:
        return await self._first(select(payments).where(payments.c.booking_id == booking_id))

    async def get_by_session(self, stripe_session_id: str) -> Payment | None:
        return await self._first(
            select(payments).where(payments.c.stripe_session_id == stripe_session_id)
        )

    async def get_by_payment_intent(self, stripe_payment_intent_id: str) -> Payment | None:
        return await self._first(
            select(payments).where(
                payments.c.stripe_payment_intent_id == stripe_payment_intent_id
            )
        )

    async def get_by_charge(self, stripe_charge_id: str) -> Payment | None:
        return await self._first(
            select(payments).where(payments.c.stripe_charge_id == stripe_charge_id)
        )

    async def save(self, payment: Payment) -> Payment:
        stmt = (
            update(payments)
            .where(payments.c.id == payment.id)
            .values(
                stripe_session_id=payment.stripe_session_id,
                stripe_payment_intent_id=payment.stripe_payment_intent_id,
                stripe_charge_id=payment.stripe_charge_id,
                amount=payment.amount,
                currency=payment.currency,
                is_deposit=payment.is_deposit,
                status=payment.status.value,
                updated_at=datetime.now(timezone.utc),
            )
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise PaymentNotFoundError(payment.booking_id)
        return await self._fetch_payment(payment.id)

    async def list_unsettled_with_session(self, limit: int) -> Sequence[Payment]:
        stmt = (
            select(payments)
            .join(bookings, bookings.c.id == payments.c.booking_id)
            .where(
                payments.c.stripe_session_id.is_not(None),
                or_(
                    payments.c.status == PaymentStatus.INITIATED.value,
                    and_(
                        payments.c.status == PaymentStatus.FAILED.value,
                        bookings.c.status == BookingStatus.PENDING.value,
                    ),
                ),
            )
            .order_by(payments.c.id.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [self._map_payment(row) for row in result.mappings().all()]

    async def _first(self, stmt) -> Payment | None:
        result = await self._session.execute(stmt)
        row = result.mappings().first()
        return self._map_payment(row) if row else None

    async def _fetch_payment(self, payment_id: int) -> Payment:
        payment = await self._first(select(payments).where(payments.c.id == payment_id))
        if payment is None:
            raise PaymentNotFoundError(payment_id)
        return payment

    def _map_payment(self, row) -> Payment:
        return Payment(
            id=row["id"],
            booking_id=row["booking_id"],
            stripe_session_id=row.get("stripe_session_id"),
            stripe_payment_intent_id=row.get("stripe_payment_intent_id"),
            stripe_charge_id=row.get("stripe_charge_id"),
            amount=row["amount"],
            currency=row["currency"],
            is_deposit=bool(row["is_deposit"]),
            status=PaymentStatus(row["status"]),
            created_at=as_utc(row.get("created_at")),
            updated_at=as_utc(row.get("updated_at")),
        )
