"""DTOs of the application layer."""

from app.application.dtos.booking_dto import (
    AdminActionResultDTO,
    CheckoutResultDTO,
    PaymentSuccessDTO,
    WebhookResultDTO,
)
from app.application.dtos.sweep_dto import SweepReport

__all__ = [
    "CheckoutResultDTO",
    "PaymentSuccessDTO",
    "WebhookResultDTO",
    "AdminActionResultDTO",
    "SweepReport",
]
