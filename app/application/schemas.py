"""Pydantic models for payment processor events.

Only the fields the core reads are declared; everything else in the
processor payload is ignored.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

HANDLED_EVENT_TYPES = frozenset(
    {
        "checkout.session.completed",
        "payment_intent.succeeded",
        "payment_intent.payment_failed",
        "charge.refunded",
        "refund.updated",
        "charge.dispute.created",
        "charge.dispute.closed",
        "account.updated",
    }
)


class PaymentEventEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    type: str = Field(min_length=1)
    livemode: bool | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def object(self) -> dict[str, Any]:
        obj = self.data.get("object") if isinstance(self.data, dict) else None
        return obj if isinstance(obj, dict) else {}


class EventObject(BaseModel):
    """Common shape of checkout sessions, payment intents, charges, refunds and disputes."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    object: str | None = None
    status: str | None = None
    payment_status: str | None = None
    payment_intent: str | None = None
    charge: str | None = None
    latest_charge: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    # account.updated
    charges_enabled: bool | None = None
    payouts_enabled: bool | None = None
    details_submitted: bool | None = None

    @property
    def booking_id(self) -> int | None:
        raw = self.metadata.get("bookingId") or self.metadata.get("booking_id")
        try:
            return int(raw) if raw is not None else None
        except (TypeError, ValueError):
            return None

    @property
    def is_deposit(self) -> bool | None:
        raw = self.metadata.get("isDeposit")
        if raw is None:
            return None
        return str(raw).lower() in ("true", "1", "yes")
