import logging
from datetime import datetime

from app.application.dtos.sweep_dto import SweepReport
from app.application.interfaces.booking_repo import BookingRepo
from app.application.interfaces.clock import Clock
from app.application.interfaces.experience_repo import ExperienceRepo
from app.application.interfaces.transaction_manager import TransactionManager
from app.domain.entities.booking import CHAT_ACTIVE_STATUSES, BookingStatus
from app.domain.entities.experience import Experience
from app.domain.schedule import as_utc, chat_archive_at

# An open dispute keeps the conversation available until it is resolved.
ARCHIVABLE_STATUSES = CHAT_ACTIVE_STATUSES - {BookingStatus.DISPUTED}


class ArchiveChatsUseCase:
    name = "chat_archive"

    def __init__(
        self,
        booking_repo: BookingRepo,
        experience_repo: ExperienceRepo,
        transaction_manager: TransactionManager,
        clock: Clock,
    ) -> None:
        self._booking_repo = booking_repo
        self._experience_repo = experience_repo
        self._transaction_manager = transaction_manager
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    async def run_once(self, now: datetime | None = None) -> SweepReport:
        now = now or self._clock.now()
        report = SweepReport(self.name)
        async with self._transaction_manager.start():
            bookings = await self._booking_repo.list_chat_open(ARCHIVABLE_STATUSES)

        experiences: dict[int, Experience | None] = {}
        for booking in bookings:
            report.examined += 1
            try:
                if booking.experience_id not in experiences:
                    experiences[booking.experience_id] = await self._experience_repo.get(
                        booking.experience_id
                    )
                if await self._process(booking.id, experiences[booking.experience_id], now):
                    report.changed += 1
            except Exception:
                self._logger.exception(
                    "Chat archive failed for booking", extra={"booking_id": booking.id}
                )
                report.record_failure(booking.id)

        if report.changed:
            self._logger.info("Chat archive sweep finished", extra=report.as_dict())
        return report

    async def _process(self, booking_id: int, experience: Experience | None, now: datetime) -> bool:
        async with self._transaction_manager.start():
            booking = await self._booking_repo.get(booking_id)
            if booking is None or booking.chat_archived_at is not None:
                return False
            if booking.status not in ARCHIVABLE_STATUSES:
                return False

            archive_at = chat_archive_at(experience, booking)
            changed = as_utc(booking.chat_archive_at) != archive_at
            booking.chat_archive_at = archive_at
            if now >= archive_at:
                booking.chat_archived_at = archive_at
                changed = True
            if changed:
                await self._booking_repo.save(booking)
        return changed
