from datetime import datetime
from typing import Iterable, Sequence

from sqlalchemy import func, insert, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.application.interfaces.booking_repo import BookingRepo
from app.domain.entities.booking import (
    RELEASED_SEAT_STATUSES,
    AttendanceStatus,
    Booking,
    BookingStatus,
)
from app.domain.errors import BookingNotFoundError, ConcurrentModificationError
from app.domain.schedule import as_utc
from app.infrastructure.db.tables import bookings

_DATETIME_FIELDS = (
    "created_at",
    "updated_at",
    "paid_at",
    "completed_at",
    "cancelled_at",
    "refunded_at",
    "payout_eligible_at",
    "disputed_at",
    "dispute_resolved_at",
    "last_refund_attempt_at",
    "chat_archive_at",
    "chat_archived_at",
    "attendance_reminder_sent_at",
)

_PLAIN_FIELDS = (
    "experience_id",
    "explorer_id",
    "host_id",
    "quantity",
    "amount",
    "deposit_amount",
    "currency",
    "is_deposit",
    "attendance_confirmed",
    "cancelled_by",
    "cancel_reason",
    "dispute_reason",
    "dispute_comment",
    "refund_attempts",
    "attendance_email_sent",
    "refund_success_email_sent",
)


class BookingRepoSQL(BookingRepo):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, booking: Booking) -> Booking:
        values = self._values(booking)
        values["lock_version"] = 0
        result = await self._session.execute(insert(bookings).values(**values))
        booking.id = result.inserted_primary_key[0]
        booking.lock_version = 0
        return booking

    async def get(self, booking_id: int) -> Booking | None:
        stmt = select(bookings).where(bookings.c.id == booking_id)
        result = await self._session.execute(stmt)
        row = result.mappings().first()
        return self._map_booking(row) if row else None

    async def save(self, booking: Booking) -> Booking:
        values = self._values(booking)
        values["lock_version"] = booking.lock_version + 1
        stmt = (
            update(bookings)
            .where(bookings.c.id == booking.id, bookings.c.lock_version == booking.lock_version)
            .values(**values)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            exists = await self._session.execute(
                select(bookings.c.id).where(bookings.c.id == booking.id)
            )
            if exists.scalar() is None:
                raise BookingNotFoundError(booking.id)
            raise ConcurrentModificationError(booking.id, booking.lock_version)
        booking.lock_version += 1
        return booking

    async def list_by_status(
        self,
        statuses: Iterable[BookingStatus],
        limit: int | None = None,
    ) -> Sequence[Booking]:
        stmt = (
            select(bookings)
            .where(bookings.c.status.in_([s.value for s in statuses]))
            .order_by(bookings.c.id)
        )
        if limit:
            stmt = stmt.limit(limit)
        return await self._fetch(stmt)

    async def list_chat_open(self, statuses: Iterable[BookingStatus]) -> Sequence[Booking]:
        stmt = (
            select(bookings)
            .where(
                bookings.c.status.in_([s.value for s in statuses]),
                bookings.c.chat_archived_at.is_(None),
            )
            .order_by(bookings.c.id)
        )
        return await self._fetch(stmt)

    async def list_refund_retry_candidates(
        self,
        max_attempts: int,
        last_attempt_before: datetime,
    ) -> Sequence[Booking]:
        stmt = (
            select(bookings)
            .where(
                bookings.c.status == BookingStatus.REFUND_FAILED.value,
                bookings.c.refund_attempts < max_attempts,
                or_(
                    bookings.c.last_refund_attempt_at.is_(None),
                    bookings.c.last_refund_attempt_at <= last_attempt_before,
                ),
            )
            .order_by(bookings.c.id)
        )
        return await self._fetch(stmt)

    async def list_by_host(self, host_id: int) -> Sequence[Booking]:
        stmt = select(bookings).where(bookings.c.host_id == host_id).order_by(bookings.c.id)
        return await self._fetch(stmt)

    async def list_by_experience(
        self,
        experience_id: int,
        statuses: Iterable[BookingStatus] | None = None,
    ) -> Sequence[Booking]:
        stmt = select(bookings).where(bookings.c.experience_id == experience_id)
        if statuses is not None:
            stmt = stmt.where(bookings.c.status.in_([s.value for s in statuses]))
        return await self._fetch(stmt.order_by(bookings.c.id))

    async def list_by_explorer(
        self,
        explorer_id: int,
        statuses: Iterable[BookingStatus] | None = None,
    ) -> Sequence[Booking]:
        stmt = select(bookings).where(bookings.c.explorer_id == explorer_id)
        if statuses is not None:
            stmt = stmt.where(bookings.c.status.in_([s.value for s in statuses]))
        return await self._fetch(stmt.order_by(bookings.c.id))

    async def count_no_shows_since(self, explorer_id: int, since: datetime) -> int:
        stmt = select(func.count()).where(
            bookings.c.explorer_id == explorer_id,
            bookings.c.status == BookingStatus.NO_SHOW.value,
            func.coalesce(bookings.c.completed_at, bookings.c.updated_at) >= since,
        )
        result = await self._session.execute(stmt)
        return int(result.scalar() or 0)

    async def count_held_seats(self, experience_id: int) -> int:
        stmt = select(func.coalesce(func.sum(bookings.c.quantity), 0)).where(
            bookings.c.experience_id == experience_id,
            bookings.c.status.not_in([s.value for s in RELEASED_SEAT_STATUSES]),
        )
        result = await self._session.execute(stmt)
        return int(result.scalar() or 0)

    async def _fetch(self, stmt) -> list[Booking]:
        result = await self._session.execute(stmt)
        return [self._map_booking(row) for row in result.mappings().all()]

    def _values(self, booking: Booking) -> dict:
        values = {field: getattr(booking, field) for field in _PLAIN_FIELDS}
        values.update({field: as_utc(getattr(booking, field)) for field in _DATETIME_FIELDS})
        values["status"] = booking.status.value
        values["attendance_status"] = booking.attendance_status.value
        values["status_before_dispute"] = (
            booking.status_before_dispute.value if booking.status_before_dispute else None
        )
        return values

    def _map_booking(self, row) -> Booking:
        booking = Booking(
            id=row["id"],
            status=BookingStatus(row["status"]),
            attendance_status=AttendanceStatus(row["attendance_status"]),
            status_before_dispute=(
                BookingStatus(row["status_before_dispute"]) if row["status_before_dispute"] else None
            ),
            lock_version=row["lock_version"],
        )
        for field in _PLAIN_FIELDS:
            setattr(booking, field, row[field])
        for field in _DATETIME_FIELDS:
            setattr(booking, field, as_utc(row[field]))
        booking.is_deposit = bool(row["is_deposit"])
        booking.attendance_confirmed = bool(row["attendance_confirmed"])
        booking.attendance_email_sent = bool(row["attendance_email_sent"])
        booking.refund_success_email_sent = bool(row["refund_success_email_sent"])
        return booking
