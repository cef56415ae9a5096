"""Entities of the booking domain."""

from app.domain.entities.booking import (
    ATTENDANCE_PENDING_STATUSES,
    CHAT_ACTIVE_STATUSES,
    DISPUTE_LOCKED_STATUSES,
    PAID_STATUSES,
    PAYOUT_STATUSES,
    REFUNDABLE_STATUSES,
    RELEASED_SEAT_STATUSES,
    AttendanceStatus,
    Booking,
    BookingStatus,
    DisputeReason,
)
from app.domain.entities.dispute_report import DisputeReport, ReportStatus
from app.domain.entities.experience import ActivityType, Experience, ExperienceStatus
from app.domain.entities.message import BookingMessage
from app.domain.entities.participant import Participant, ParticipantRole
from app.domain.entities.payment import Payment, PaymentStatus
from app.domain.entities.webhook_event import WebhookEventRecord

__all__ = [
    # Booking
    "Booking",
    "BookingStatus",
    "AttendanceStatus",
    "DisputeReason",
    "PAID_STATUSES",
    "ATTENDANCE_PENDING_STATUSES",
    "DISPUTE_LOCKED_STATUSES",
    "PAYOUT_STATUSES",
    "RELEASED_SEAT_STATUSES",
    "CHAT_ACTIVE_STATUSES",
    "REFUNDABLE_STATUSES",
    # Experience
    "Experience",
    "ExperienceStatus",
    "ActivityType",
    # Payment
    "Payment",
    "PaymentStatus",
    # Participants
    "Participant",
    "ParticipantRole",
    # Disputes
    "DisputeReport",
    "ReportStatus",
    # Ledger and chat
    "WebhookEventRecord",
    "BookingMessage",
]
