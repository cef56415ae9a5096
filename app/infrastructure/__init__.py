"""
Infrastructure layer of the booking core.

Concrete implementations of the application ports.

Layout:
- db/: SQLAlchemy tables, SQL repositories, engine and unit of work
- gateways/: Stripe payment gateway and HTTP notifier
- in_memory/: in-memory repositories and stubs for development and tests
- messaging/: periodic sweeper worker
- services/: admin action token signer
"""

# Database
from app.infrastructure.db.repositories import (
    BookingRepoSQL,
    DisputeReportRepoSQL,
    ExperienceRepoSQL,
    MessageRepoSQL,
    ParticipantRepoSQL,
    PaymentRepoSQL,
    SeatInventorySQL,
    WebhookEventRepoSQL,
)
from app.infrastructure.db.transaction_manager import SQLAlchemyTransactionManager

# Gateways
from app.infrastructure.gateways.notifier_http import HttpNotifier
from app.infrastructure.gateways.stripe_gateway import StripePaymentGateway

# Messaging
from app.infrastructure.messaging.sweeper_worker import PeriodicSweeper

# Services
from app.infrastructure.services.action_token_signer import JwtActionTokenSigner

__all__ = [
    # Database - Repositories SQL
    "BookingRepoSQL",
    "ExperienceRepoSQL",
    "SeatInventorySQL",
    "PaymentRepoSQL",
    "WebhookEventRepoSQL",
    "ParticipantRepoSQL",
    "DisputeReportRepoSQL",
    "MessageRepoSQL",
    "SQLAlchemyTransactionManager",
    # Gateways
    "StripePaymentGateway",
    "HttpNotifier",
    # Messaging
    "PeriodicSweeper",
    # Services
    "JwtActionTokenSigner",
]
