from typing import Sequence

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.application.interfaces.message_repo import MessageRepo
from app.domain.entities.message import BookingMessage
from app.domain.schedule import as_utc
from app.infrastructure.db.tables import booking_messages


class MessageRepoSQL(MessageRepo):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, message: BookingMessage) -> BookingMessage:
        result = await self._session.execute(
            insert(booking_messages).values(
                booking_id=message.booking_id,
                sender_id=message.sender_id,
                text=message.text,
                created_at=message.created_at,
            )
        )
        message.id = result.inserted_primary_key[0]
        return message

    async def list_by_booking(self, booking_id: int) -> Sequence[BookingMessage]:
        stmt = (
            select(booking_messages)
            .where(booking_messages.c.booking_id == booking_id)
            .order_by(booking_messages.c.created_at, booking_messages.c.id)
        )
        result = await self._session.execute(stmt)
        return [
            BookingMessage(
                id=row["id"],
                booking_id=row["booking_id"],
                sender_id=row["sender_id"],
                text=row["text"],
                created_at=as_utc(row["created_at"]),
            )
            for row in result.mappings().all()
        ]
