from copy import deepcopy

from app.application.interfaces.dispute_report_repo import DisputeReportRepo
from app.application.interfaces.message_repo import MessageRepo
from app.application.interfaces.participant_repo import ParticipantRepo
from app.domain.entities.dispute_report import DisputeReport
from app.domain.entities.message import BookingMessage
from app.domain.entities.participant import Participant
from app.domain.errors import ParticipantNotFoundError, ReportNotFoundError


class InMemoryParticipantRepo(ParticipantRepo):
    def __init__(self) -> None:
        self.participants: dict[int, Participant] = {}
        self._next_id = 1

    async def add(self, participant: Participant) -> Participant:
        stored = deepcopy(participant)
        if stored.id is None:
            stored.id = self._next_id
        self._next_id = max(self._next_id, stored.id) + 1
        self.participants[stored.id] = stored
        return deepcopy(stored)

    async def get(self, participant_id: int) -> Participant | None:
        participant = self.participants.get(participant_id)
        return deepcopy(participant) if participant else None

    async def get_by_stripe_account(self, stripe_account_id: str) -> Participant | None:
        for participant in self.participants.values():
            if participant.stripe_account_id == stripe_account_id:
                return deepcopy(participant)
        return None

    async def save(self, participant: Participant) -> Participant:
        if participant.id not in self.participants:
            raise ParticipantNotFoundError(participant.id)
        self.participants[participant.id] = deepcopy(participant)
        return deepcopy(participant)


class InMemoryDisputeReportRepo(DisputeReportRepo):
    def __init__(self) -> None:
        self.reports: dict[int, DisputeReport] = {}
        self._next_id = 1

    async def add(self, report: DisputeReport) -> DisputeReport:
        stored = deepcopy(report)
        stored.id = self._next_id
        self._next_id += 1
        self.reports[stored.id] = stored
        return deepcopy(stored)

    async def get(self, report_id: int) -> DisputeReport | None:
        report = self.reports.get(report_id)
        return deepcopy(report) if report else None

    async def get_open_by_booking(self, booking_id: int) -> DisputeReport | None:
        for report in self.reports.values():
            if report.booking_id == booking_id and report.is_open:
                return deepcopy(report)
        return None

    async def save(self, report: DisputeReport) -> DisputeReport:
        if report.id not in self.reports:
            raise ReportNotFoundError(report.id)
        self.reports[report.id] = deepcopy(report)
        return deepcopy(report)


class InMemoryMessageRepo(MessageRepo):
    def __init__(self) -> None:
        self.messages: list[BookingMessage] = []

    async def add(self, message: BookingMessage) -> BookingMessage:
        stored = deepcopy(message)
        stored.id = len(self.messages) + 1
        self.messages.append(stored)
        return deepcopy(stored)

    async def list_by_booking(self, booking_id: int):
        return [deepcopy(m) for m in self.messages if m.booking_id == booking_id]
