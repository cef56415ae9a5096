from typing import Sequence

from app.domain.entities.message import BookingMessage


class MessageRepo:
    async def add(self, message: BookingMessage) -> BookingMessage:
        raise NotImplementedError

    async def list_by_booking(self, booking_id: int) -> Sequence[BookingMessage]:
        raise NotImplementedError
