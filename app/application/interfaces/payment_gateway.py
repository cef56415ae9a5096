from dataclasses import dataclass, field
from typing import Any


@dataclass
class CheckoutRequest:
    """What the core asks the processor to charge for one booking."""

    amount: int
    currency: str
    quantity: int
    product_name: str
    metadata: dict[str, str]
    success_url: str
    cancel_url: str
    customer_email: str | None = None


@dataclass
class CheckoutSession:
    id: str
    url: str | None
    payment_intent_id: str | None = None


@dataclass
class CheckoutSessionStatus:
    id: str
    status: str | None
    payment_status: str | None
    payment_intent_id: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"

    @property
    def is_expired(self) -> bool:
        return self.status == "expired"


@dataclass
class RefundResult:
    id: str
    status: str


class PaymentGateway:
    """
    Capability the core needs from the payment processor.

    Raises ``PaymentGatewayError`` subclasses: ``CheckoutSessionNotFoundError``
    and ``GatewayEnvironmentMismatchError`` are permanent,
    ``AlreadyRefundedError`` means the money is already back, anything else
    is transient.
    """

    async def create_checkout_session(
        self, request: CheckoutRequest, idempotency_key: str
    ) -> CheckoutSession:
        raise NotImplementedError

    async def retrieve_checkout_session(self, session_id: str) -> CheckoutSessionStatus:
        raise NotImplementedError

    async def create_refund(
        self,
        payment_intent_id: str | None,
        charge_id: str | None,
        idempotency_key: str,
    ) -> RefundResult:
        raise NotImplementedError

    async def parse_webhook_event(
        self,
        payload: bytes,
        signature_header: str | None,
        webhook_secret: str | None,
    ) -> dict[str, Any]:
        raise NotImplementedError
