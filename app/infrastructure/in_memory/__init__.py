"""In-memory implementations for development and tests."""

from app.infrastructure.in_memory.booking_repo import InMemoryBookingRepo
from app.infrastructure.in_memory.experience_repo import (
    InMemoryExperienceRepo,
    InMemorySeatInventory,
)
from app.infrastructure.in_memory.notifier import RecordingNotifier
from app.infrastructure.in_memory.participant_repo import (
    InMemoryDisputeReportRepo,
    InMemoryMessageRepo,
    InMemoryParticipantRepo,
)
from app.infrastructure.in_memory.payment_gateway import StubPaymentGateway
from app.infrastructure.in_memory.payment_repo import InMemoryPaymentRepo
from app.infrastructure.in_memory.transaction_manager import InMemoryTransactionManager
from app.infrastructure.in_memory.webhook_event_repo import InMemoryWebhookEventRepo

__all__ = [
    # Repositories
    "InMemoryBookingRepo",
    "InMemoryExperienceRepo",
    "InMemorySeatInventory",
    "InMemoryPaymentRepo",
    "InMemoryWebhookEventRepo",
    "InMemoryParticipantRepo",
    "InMemoryDisputeReportRepo",
    "InMemoryMessageRepo",
    # Gateways
    "StubPaymentGateway",
    "RecordingNotifier",
    # Infrastructure
    "InMemoryTransactionManager",
]
