import json
from uuid import uuid4

from app.application.interfaces.payment_gateway import (
    CheckoutRequest,
    CheckoutSession,
    CheckoutSessionStatus,
    PaymentGateway,
    RefundResult,
)
from app.domain.errors import (
    CheckoutSessionNotFoundError,
    InvalidWebhookSignatureError,
    PaymentGatewayError,
)


class StubPaymentGateway(PaymentGateway):
    """
    Processor double for local runs and tests.

    Sessions start ``open``/``unpaid``; tests move them with ``mark_paid``
    and ``expire``. Requests sharing an idempotency key return the first
    result, the way Stripe does.
    """

    def __init__(self) -> None:
        self.sessions: dict[str, CheckoutSessionStatus] = {}
        self.checkout_requests: list[CheckoutRequest] = []
        self.refunds: dict[str, RefundResult] = {}
        self.refund_calls: list[str] = []
        self.checkout_error: PaymentGatewayError | None = None
        self.refund_error: PaymentGatewayError | None = None
        self.retrieve_error: PaymentGatewayError | None = None
        self._by_key: dict[str, CheckoutSession] = {}

    async def create_checkout_session(
        self, request: CheckoutRequest, idempotency_key: str
    ) -> CheckoutSession:
        if self.checkout_error is not None:
            raise self.checkout_error
        if idempotency_key in self._by_key:
            return self._by_key[idempotency_key]
        session_id = f"cs_test_{uuid4().hex[:24]}"
        intent_id = f"pi_{uuid4().hex[:14]}"
        self.checkout_requests.append(request)
        self.sessions[session_id] = CheckoutSessionStatus(
            id=session_id,
            status="open",
            payment_status="unpaid",
            payment_intent_id=intent_id,
            metadata=dict(request.metadata),
        )
        session = CheckoutSession(
            id=session_id,
            url=f"https://checkout.stripe.test/pay/{session_id}",
            payment_intent_id=intent_id,
        )
        self._by_key[idempotency_key] = session
        return session

    async def retrieve_checkout_session(self, session_id: str) -> CheckoutSessionStatus:
        if self.retrieve_error is not None:
            raise self.retrieve_error
        session = self.sessions.get(session_id)
        if session is None:
            raise CheckoutSessionNotFoundError(session_id)
        return session

    async def create_refund(
        self,
        payment_intent_id: str | None,
        charge_id: str | None,
        idempotency_key: str,
    ) -> RefundResult:
        self.refund_calls.append(idempotency_key)
        if self.refund_error is not None:
            raise self.refund_error
        if idempotency_key not in self.refunds:
            self.refunds[idempotency_key] = RefundResult(id=f"re_{uuid4().hex[:14]}", status="succeeded")
        return self.refunds[idempotency_key]

    async def parse_webhook_event(
        self,
        payload: bytes,
        signature_header: str | None,
        webhook_secret: str | None,
    ) -> dict:
        if not payload:
            raise InvalidWebhookSignatureError("Empty webhook payload")
        try:
            event = json.loads(payload.decode() or "{}")
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise InvalidWebhookSignatureError("Invalid webhook payload") from exc
        if not isinstance(event, dict):
            raise InvalidWebhookSignatureError("Invalid webhook payload")
        return event

    # === Test controls ===

    def mark_paid(self, session_id: str) -> None:
        session = self.sessions[session_id]
        session.status = "complete"
        session.payment_status = "paid"

    def expire(self, session_id: str) -> None:
        self.sessions[session_id].status = "expired"

    def forget(self, session_id: str) -> None:
        self.sessions.pop(session_id, None)
