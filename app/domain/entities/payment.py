"""Payment record - one per booking, tracks the processor-side state."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class PaymentStatus(str, Enum):
    """Processor-side states of a booking payment."""

    INITIATED = "INITIATED"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    DISPUTED = "DISPUTED"
    DISPUTE_WON = "DISPUTE_WON"
    DISPUTE_LOST = "DISPUTE_LOST"


@dataclass
class Payment:
    """
    Payment attached to a booking.

    Created as INITIATED when checkout starts; only the webhook ingestor,
    the reconciliation poller and the refund paths move it afterwards.
    """

    id: int | None = None
    booking_id: int = 0

    # Processor identifiers
    stripe_session_id: str | None = None
    stripe_payment_intent_id: str | None = None
    stripe_charge_id: str | None = None

    # Amount in minor units
    amount: int = 0
    currency: str = "ron"
    is_deposit: bool = False

    status: PaymentStatus = PaymentStatus.INITIATED

    created_at: datetime | None = None
    updated_at: datetime | None = None

    # === Properties ===

    @property
    def refund_reference(self) -> str | None:
        """Identifier the processor accepts for a refund."""
        return self.stripe_payment_intent_id or self.stripe_charge_id

    @property
    def is_refunded(self) -> bool:
        return self.status == PaymentStatus.REFUNDED

    # === Business methods ===

    def attach_identifiers(
        self,
        session_id: str | None = None,
        payment_intent_id: str | None = None,
        charge_id: str | None = None,
    ) -> None:
        """Record processor identifiers without overwriting known ones with blanks."""
        if session_id:
            self.stripe_session_id = session_id
        if payment_intent_id:
            self.stripe_payment_intent_id = payment_intent_id
        if charge_id:
            self.stripe_charge_id = charge_id
