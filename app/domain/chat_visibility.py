"""Who may read or write a booking's chat, and when."""

import re

from app.domain.entities.booking import CHAT_ACTIVE_STATUSES, Booking
from app.domain.errors import ChatUnavailableError, NotBookingParticipantError

_EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
# 8+ digits, optionally led by + and split by spaces, dots, dashes or brackets
_PHONE_RE = re.compile(r"\+?\d(?:[\s().-]*\d){7,}")

EMAIL_MASK = "[email hidden]"
PHONE_MASK = "[phone hidden]"


def mask_contact_info(text: str) -> str:
    """Hide e-mail addresses and phone numbers so parties stay on the platform."""
    masked = _EMAIL_RE.sub(EMAIL_MASK, text)
    return _PHONE_RE.sub(PHONE_MASK, masked)


class ChatVisibilityGate:
    """
    Chat is open while the booking is in an active status and not archived.

    Participants read and write under that rule. Admins can always read,
    never write.
    """

    def is_open(self, booking: Booking) -> bool:
        return booking.status in CHAT_ACTIVE_STATUSES and booking.chat_archived_at is None

    def check_read(self, booking: Booking, actor_id: int | None, is_admin: bool = False) -> None:
        if is_admin:
            return
        self._check_participant(booking, actor_id)
        self._check_open(booking)

    def check_write(self, booking: Booking, actor_id: int | None) -> None:
        self._check_participant(booking, actor_id)
        self._check_open(booking)

    def _check_participant(self, booking: Booking, actor_id: int | None) -> None:
        if not booking.is_participant(actor_id):
            raise NotBookingParticipantError(booking.id, actor_id)

    def _check_open(self, booking: Booking) -> None:
        if booking.chat_archived_at is not None:
            raise ChatUnavailableError(booking.id, archived=True)
        if booking.status not in CHAT_ACTIVE_STATUSES:
            raise ChatUnavailableError(booking.id, archived=False)
