from app.infrastructure.db.repositories.booking_repo_sql import BookingRepoSQL
from app.infrastructure.db.repositories.dispute_report_repo_sql import DisputeReportRepoSQL
from app.infrastructure.db.repositories.experience_repo_sql import (
    ExperienceRepoSQL,
    SeatInventorySQL,
)
from app.infrastructure.db.repositories.message_repo_sql import MessageRepoSQL
from app.infrastructure.db.repositories.participant_repo_sql import ParticipantRepoSQL
from app.infrastructure.db.repositories.payment_repo_sql import PaymentRepoSQL
from app.infrastructure.db.repositories.webhook_event_repo_sql import WebhookEventRepoSQL

__all__ = [
    "BookingRepoSQL",
    "DisputeReportRepoSQL",
    "ExperienceRepoSQL",
    "MessageRepoSQL",
    "ParticipantRepoSQL",
    "PaymentRepoSQL",
    "SeatInventorySQL",
    "WebhookEventRepoSQL",
]
