"""Effective start/end times of a booked experience and the windows derived from them.

Upstream experience records may lack any of ``starts_at``, ``ends_at`` and
``duration_minutes``. ``effective_end`` never gives up: it walks a
prioritized fallback chain and reports how confident the estimate is.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

from app.domain import constants
from app.domain.entities.booking import Booking
from app.domain.entities.experience import Experience


class EndTimeConfidence(str, Enum):
    """Which source produced an effective end time, most precise first."""

    EXPLICIT = "EXPLICIT"
    START_PLUS_DURATION = "START_PLUS_DURATION"
    START_PLUS_DEFAULT = "START_PLUS_DEFAULT"
    HARD_CAP = "HARD_CAP"


@dataclass(frozen=True)
class EffectiveEnd:
    at: datetime
    confidence: EndTimeConfidence


@dataclass(frozen=True)
class TimeWindow:
    """Closed interval; both boundaries are inside the window."""

    opens_at: datetime
    closes_at: datetime

    def contains(self, moment: datetime) -> bool:
        return self.opens_at <= moment <= self.closes_at


def as_utc(moment: datetime | None) -> datetime | None:
    """Naive datetimes are treated as UTC."""
    if moment is None:
        return None
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def effective_start(experience: Experience | None) -> datetime | None:
    if experience is None:
        return None
    return as_utc(experience.starts_at)


def effective_end(experience: Experience | None, booking: Booking) -> EffectiveEnd:
    """
    Resolve the end of the booked experience.

    Chain: explicit end -> start + duration -> start + 24h -> hard cap.
    The hard cap only applies without a start: booking creation + 7 days.

    Raises:
        ValueError: when neither the experience nor the booking carries any timestamp.
    """
    start = effective_start(experience)

    if experience is not None and experience.ends_at is not None:
        return EffectiveEnd(as_utc(experience.ends_at), EndTimeConfidence.EXPLICIT)

    if start is not None and experience.duration_minutes:
        return EffectiveEnd(
            start + timedelta(minutes=experience.duration_minutes),
            EndTimeConfidence.START_PLUS_DURATION,
        )

    if start is not None:
        return EffectiveEnd(
            start + constants.DEFAULT_EXPERIENCE_DURATION,
            EndTimeConfidence.START_PLUS_DEFAULT,
        )

    created_at = as_utc(booking.created_at)
    if created_at is None:
        raise ValueError(f"Booking {booking.id} has no timestamp to derive an end time from")
    return EffectiveEnd(created_at + constants.END_TIME_HARD_CAP, EndTimeConfidence.HARD_CAP)


def attendance_window(experience: Experience | None, booking: Booking) -> TimeWindow:
    """``[start + 15min, end + 48h]``; without a start the window opens at the end."""
    end = effective_end(experience, booking).at
    start = effective_start(experience)
    opens_at = (start or end) + constants.ATTENDANCE_OPENS_AFTER_START
    return TimeWindow(opens_at, end + constants.ATTENDANCE_CLOSES_AFTER_END)


def dispute_window(experience: Experience | None, booking: Booking) -> TimeWindow:
    """``[end + 15min, end + 72h]``"""
    end = effective_end(experience, booking).at
    return TimeWindow(
        end + constants.DISPUTE_OPENS_AFTER_END,
        end + constants.DISPUTE_CLOSES_AFTER_END,
    )


def chat_archive_at(experience: Experience | None, booking: Booking) -> datetime:
    """When the booking's chat closes: resolution + 72h after a dispute, end + 48h otherwise."""
    resolved_at = as_utc(booking.dispute_resolved_at)
    if resolved_at is not None:
        return resolved_at + constants.CHAT_ARCHIVE_AFTER_DISPUTE_RESOLUTION
    return effective_end(experience, booking).at + constants.CHAT_ARCHIVE_AFTER_END
