"""Dispute report raised by an explorer against a booking."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ReportStatus(str, Enum):
    OPEN = "OPEN"
    HANDLED = "HANDLED"
    IGNORED = "IGNORED"


@dataclass
class DisputeReport:
    id: int | None = None
    booking_id: int = 0
    experience_id: int = 0
    host_id: int = 0
    reporter_id: int = 0

    reason: str = ""
    comment: str | None = None

    status: ReportStatus = ReportStatus.OPEN
    deadline_at: datetime | None = None
    handled_at: datetime | None = None
    handled_by: str | None = None
    action_taken: str | None = None

    created_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status == ReportStatus.OPEN

    def close(self, status: ReportStatus, action: str, handled_at: datetime, handled_by: str) -> None:
        self.status = status
        self.action_taken = action
        self.handled_at = handled_at
        self.handled_by = handled_by
