from datetime import datetime
from typing import Iterable, Sequence

from app.domain.entities.booking import Booking, BookingStatus


class BookingRepo:
    """
    Booking persistence.

    ``save`` is a compare-and-set on ``lock_version``: it raises
    ``ConcurrentModificationError`` when another writer got there first and
    bumps the version on success.
    """

    async def add(self, booking: Booking) -> Booking:
        raise NotImplementedError

    async def get(self, booking_id: int) -> Booking | None:
        raise NotImplementedError

    async def save(self, booking: Booking) -> Booking:
        raise NotImplementedError

    async def list_by_status(
        self,
        statuses: Iterable[BookingStatus],
        limit: int | None = None,
    ) -> Sequence[Booking]:
        raise NotImplementedError

    async def list_chat_open(self, statuses: Iterable[BookingStatus]) -> Sequence[Booking]:
        """Bookings in ``statuses`` whose chat has not been archived yet."""
        raise NotImplementedError

    async def list_refund_retry_candidates(
        self,
        max_attempts: int,
        last_attempt_before: datetime,
    ) -> Sequence[Booking]:
        """REFUND_FAILED bookings under the attempt ceiling and past the backoff."""
        raise NotImplementedError

    async def list_by_host(self, host_id: int) -> Sequence[Booking]:
        raise NotImplementedError

    async def list_by_experience(
        self,
        experience_id: int,
        statuses: Iterable[BookingStatus] | None = None,
    ) -> Sequence[Booking]:
        raise NotImplementedError

    async def list_by_explorer(
        self,
        explorer_id: int,
        statuses: Iterable[BookingStatus] | None = None,
    ) -> Sequence[Booking]:
        raise NotImplementedError

    async def count_no_shows_since(self, explorer_id: int, since: datetime) -> int:
        raise NotImplementedError

    async def count_held_seats(self, experience_id: int) -> int:
        """Sum of quantities of bookings that still occupy seats."""
        raise NotImplementedError
