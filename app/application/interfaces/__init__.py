"""Ports of the application layer."""

from app.application.interfaces.action_tokens import ActionClaims, ActionTokenSigner
from app.application.interfaces.booking_repo import BookingRepo
from app.application.interfaces.clock import Clock, FakeClock, SystemClock
from app.application.interfaces.dispute_report_repo import DisputeReportRepo
from app.application.interfaces.experience_repo import ExperienceRepo
from app.application.interfaces.message_repo import MessageRepo
from app.application.interfaces.notifier import EmailMessage, Notification, Notifier
from app.application.interfaces.participant_repo import ParticipantRepo
from app.application.interfaces.payment_gateway import (
    CheckoutRequest,
    CheckoutSession,
    CheckoutSessionStatus,
    PaymentGateway,
    RefundResult,
)
from app.application.interfaces.payment_repo import PaymentRepo
from app.application.interfaces.seat_inventory import SeatInventory
from app.application.interfaces.transaction_manager import TransactionManager
from app.application.interfaces.webhook_event_repo import WebhookEventRepo

__all__ = [
    # Repositories
    "BookingRepo",
    "ExperienceRepo",
    "SeatInventory",
    "PaymentRepo",
    "WebhookEventRepo",
    "DisputeReportRepo",
    "ParticipantRepo",
    "MessageRepo",
    # Gateways
    "PaymentGateway",
    "CheckoutRequest",
    "CheckoutSession",
    "CheckoutSessionStatus",
    "RefundResult",
    "Notifier",
    "Notification",
    "EmailMessage",
    "ActionTokenSigner",
    "ActionClaims",
    # Infrastructure
    "TransactionManager",
    "Clock",
    "SystemClock",
    "FakeClock",
]
