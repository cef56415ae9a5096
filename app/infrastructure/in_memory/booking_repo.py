"""In-memory booking repository."""

from copy import deepcopy
from datetime import datetime
from typing import Iterable, Sequence

from app.application.interfaces.booking_repo import BookingRepo
from app.domain.entities.booking import Booking, BookingStatus
from app.domain.errors import BookingNotFoundError, ConcurrentModificationError
from app.domain.schedule import as_utc


class InMemoryBookingRepo(BookingRepo):
    """
    Dict-backed booking store for tests and local runs.

    Stored objects are copies, so a caller mutating a loaded booking does
    not change the store until ``save`` succeeds the compare-and-set.
    """

    def __init__(self) -> None:
        self.bookings: dict[int, Booking] = {}
        self._next_id = 1

    async def add(self, booking: Booking) -> Booking:
        stored = deepcopy(booking)
        stored.id = self._next_id
        stored.lock_version = 0
        self._next_id += 1
        self.bookings[stored.id] = stored
        return deepcopy(stored)

    async def get(self, booking_id: int) -> Booking | None:
        booking = self.bookings.get(booking_id)
        return deepcopy(booking) if booking else None

    async def save(self, booking: Booking) -> Booking:
        current = self.bookings.get(booking.id)
        if current is None:
            raise BookingNotFoundError(booking.id)
        if current.lock_version != booking.lock_version:
            raise ConcurrentModificationError(booking.id, booking.lock_version)
        stored = deepcopy(booking)
        stored.lock_version += 1
        self.bookings[stored.id] = stored
        booking.lock_version = stored.lock_version
        return deepcopy(stored)

    async def list_by_status(
        self,
        statuses: Iterable[BookingStatus],
        limit: int | None = None,
    ) -> Sequence[Booking]:
        wanted = set(statuses)
        found = self._select(lambda b: b.status in wanted)
        return found[:limit] if limit else found

    async def list_chat_open(self, statuses: Iterable[BookingStatus]) -> Sequence[Booking]:
        wanted = set(statuses)
        return self._select(lambda b: b.status in wanted and b.chat_archived_at is None)

    async def list_refund_retry_candidates(
        self,
        max_attempts: int,
        last_attempt_before: datetime,
    ) -> Sequence[Booking]:
        def due(b: Booking) -> bool:
            if b.status != BookingStatus.REFUND_FAILED or b.refund_attempts >= max_attempts:
                return False
            last = as_utc(b.last_refund_attempt_at)
            return last is None or last <= last_attempt_before

        return self._select(due)

    async def list_by_host(self, host_id: int) -> Sequence[Booking]:
        return self._select(lambda b: b.host_id == host_id)

    async def list_by_experience(
        self,
        experience_id: int,
        statuses: Iterable[BookingStatus] | None = None,
    ) -> Sequence[Booking]:
        wanted = set(statuses) if statuses is not None else None
        return self._select(
            lambda b: b.experience_id == experience_id and (wanted is None or b.status in wanted)
        )

    async def list_by_explorer(
        self,
        explorer_id: int,
        statuses: Iterable[BookingStatus] | None = None,
    ) -> Sequence[Booking]:
        wanted = set(statuses) if statuses is not None else None
        return self._select(
            lambda b: b.explorer_id == explorer_id and (wanted is None or b.status in wanted)
        )

    async def count_no_shows_since(self, explorer_id: int, since: datetime) -> int:
        return len(
            self._select(
                lambda b: b.explorer_id == explorer_id
                and b.status == BookingStatus.NO_SHOW
                and (as_utc(b.completed_at or b.updated_at) or since) >= since
            )
        )

    async def count_held_seats(self, experience_id: int) -> int:
        return sum(
            b.quantity for b in self.bookings.values() if b.experience_id == experience_id and b.holds_seats
        )

    def _select(self, predicate) -> list[Booking]:
        return [deepcopy(b) for _, b in sorted(self.bookings.items()) if predicate(b)]

    def clear(self) -> None:
        self.bookings.clear()
        self._next_id = 1
