import logging
from typing import Sequence

from app.application.interfaces.booking_repo import BookingRepo
from app.application.interfaces.clock import Clock
from app.application.interfaces.message_repo import MessageRepo
from app.application.interfaces.transaction_manager import TransactionManager
from app.application.use_cases.notify import NotificationDispatcher
from app.domain.chat_visibility import ChatVisibilityGate, mask_contact_info
from app.domain.entities.booking import Booking
from app.domain.entities.message import BookingMessage
from app.domain.errors import BookingNotFoundError, ValidationError

MAX_MESSAGE_LENGTH = 2000


class ListMessagesUseCase:
    def __init__(
        self,
        booking_repo: BookingRepo,
        message_repo: MessageRepo,
        gate: ChatVisibilityGate | None = None,
    ) -> None:
        self._booking_repo = booking_repo
        self._message_repo = message_repo
        self._gate = gate or ChatVisibilityGate()

    async def execute(
        self, booking_id: int, actor_id: int | None, is_admin: bool = False
    ) -> Sequence[BookingMessage]:
        booking = await self._booking_repo.get(booking_id)
        if not booking:
            raise BookingNotFoundError(booking_id)
        self._gate.check_read(booking, actor_id, is_admin=is_admin)
        return await self._message_repo.list_by_booking(booking_id)


class SendMessageUseCase:
    """Post a message to a booking chat; contact details are masked before storage."""

    def __init__(
        self,
        booking_repo: BookingRepo,
        message_repo: MessageRepo,
        transaction_manager: TransactionManager,
        notifications: NotificationDispatcher,
        clock: Clock,
        gate: ChatVisibilityGate | None = None,
    ) -> None:
        self._booking_repo = booking_repo
        self._message_repo = message_repo
        self._transaction_manager = transaction_manager
        self._notifications = notifications
        self._clock = clock
        self._gate = gate or ChatVisibilityGate()
        self._logger = logging.getLogger(__name__)

    async def execute(self, booking_id: int, sender_id: int, text: str) -> BookingMessage:
        text = (text or "").strip()
        if not text:
            raise ValidationError("text", "message is empty")
        if len(text) > MAX_MESSAGE_LENGTH:
            raise ValidationError("text", f"must be at most {MAX_MESSAGE_LENGTH} characters")

        async with self._transaction_manager.start():
            booking = await self._booking_repo.get(booking_id)
            if not booking:
                raise BookingNotFoundError(booking_id)
            self._gate.check_write(booking, sender_id)
            message = await self._message_repo.add(
                BookingMessage(
                    booking_id=booking_id,
                    sender_id=sender_id,
                    text=mask_contact_info(text),
                    created_at=self._clock.now(),
                )
            )

        self._logger.debug(
            "Chat message stored",
            extra={"booking_id": booking_id, "message_id": message.id},
        )
        await self._notify_recipient(booking, sender_id)
        return message

    async def _notify_recipient(self, booking: Booking, sender_id: int) -> None:
        recipient = booking.host_id if sender_id == booking.explorer_id else booking.explorer_id
        await self._notifications.notify(
            user_id=recipient,
            type="BOOKING_MESSAGE",
            title="New message",
            message="You have a new message about your booking.",
            data={"bookingId": booking.id},
            push=True,
        )
