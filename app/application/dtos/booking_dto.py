"""Result objects returned by the booking use cases."""

from dataclasses import dataclass, field

from app.domain.entities.booking import Booking


@dataclass
class CheckoutResultDTO:
    """Booking created in PENDING plus the processor checkout to pay it."""

    booking: Booking
    checkout_session_id: str
    checkout_url: str | None
    amount: int
    currency: str
    is_deposit: bool


@dataclass
class PaymentSuccessDTO:
    """Outcome of one apply-payment-success call."""

    booking_id: int
    status: str
    applied: bool
    late_capture: bool = False


@dataclass
class WebhookResultDTO:
    received: bool = True
    duplicate: bool = False
    ignored: bool = False
    event_type: str | None = None

    def to_response(self) -> dict:
        body: dict = {"received": self.received}
        if self.duplicate:
            body["duplicate"] = True
        if self.ignored:
            body["ignored"] = True
        return body


@dataclass
class AdminActionResultDTO:
    action: str
    changed: bool
    booking_status: str | None = None
    report_status: str | None = None
    refunded_booking_ids: list[int] = field(default_factory=list)
