import asyncio
import json
import logging
from typing import Any

import stripe

from app.application.interfaces.payment_gateway import (
    CheckoutRequest,
    CheckoutSession,
    CheckoutSessionStatus,
    PaymentGateway,
    RefundResult,
)
from app.domain.errors import (
    AlreadyRefundedError,
    CheckoutSessionNotFoundError,
    GatewayEnvironmentMismatchError,
    InvalidWebhookSignatureError,
    PaymentGatewayError,
    PaymentGatewayUnavailableError,
    WebhookNotConfiguredError,
)
from app.infrastructure.circuit_breaker import CircuitBreakerError, stripe_breaker

logger = logging.getLogger(__name__)

_ENVIRONMENT_MISMATCH_HINTS = ("similar object exists in test mode", "similar object exists in live mode")


def _expandable_id(value: Any) -> str | None:
    """Stripe returns either an id or the expanded object."""
    if value is None or isinstance(value, str):
        return value
    return getattr(value, "id", None) or (value.get("id") if isinstance(value, dict) else None)


class StripePaymentGateway(PaymentGateway):
    """
    Stripe implementation of the payment processor port.

    The SDK is synchronous: each call runs in a worker thread through the
    ``stripe_breaker`` circuit breaker. Stripe errors are translated to
    ``PaymentGatewayError`` subclasses before they leave this class.
    """

    def __init__(self, api_key: str | None, live_mode: bool | None = None) -> None:
        stripe.api_key = api_key
        stripe.max_network_retries = 2
        if live_mode is None and api_key:
            live_mode = api_key.startswith(("sk_live_", "rk_live_"))
        self._live_mode = live_mode

    async def create_checkout_session(
        self, request: CheckoutRequest, idempotency_key: str
    ) -> CheckoutSession:
        params: dict[str, Any] = {
            "mode": "payment",
            "line_items": [
                {
                    "price_data": {
                        "currency": request.currency,
                        "unit_amount": request.amount,
                        "product_data": {"name": request.product_name},
                    },
                    "quantity": request.quantity,
                }
            ],
            "metadata": request.metadata,
            "payment_intent_data": {"metadata": request.metadata},
            "success_url": request.success_url,
            "cancel_url": request.cancel_url,
        }
        if request.customer_email:
            params["customer_email"] = request.customer_email

        session = await self._call(
            stripe.checkout.Session.create, idempotency_key=idempotency_key, **params
        )
        logger.info(
            "Stripe checkout session created",
            extra={"session_id": session.id, "booking_id": request.metadata.get("bookingId")},
        )
        return CheckoutSession(
            id=session.id,
            url=getattr(session, "url", None),
            payment_intent_id=_expandable_id(getattr(session, "payment_intent", None)),
        )

    async def retrieve_checkout_session(self, session_id: str) -> CheckoutSessionStatus:
        if self._live_mode is not None and self._is_other_environment(session_id):
            raise GatewayEnvironmentMismatchError(session_id)
        try:
            session = await self._call(stripe.checkout.Session.retrieve, session_id)
        except CheckoutSessionNotFoundError:
            raise CheckoutSessionNotFoundError(session_id) from None
        except GatewayEnvironmentMismatchError:
            raise GatewayEnvironmentMismatchError(session_id) from None
        metadata = getattr(session, "metadata", None) or {}
        return CheckoutSessionStatus(
            id=session.id,
            status=getattr(session, "status", None),
            payment_status=getattr(session, "payment_status", None),
            payment_intent_id=_expandable_id(getattr(session, "payment_intent", None)),
            metadata={key: str(value) for key, value in dict(metadata).items()},
        )

    async def create_refund(
        self,
        payment_intent_id: str | None,
        charge_id: str | None,
        idempotency_key: str,
    ) -> RefundResult:
        if payment_intent_id:
            target = {"payment_intent": payment_intent_id}
        elif charge_id:
            target = {"charge": charge_id}
        else:
            raise PaymentGatewayError("Refund needs a payment intent or a charge", "NO_REFUND_TARGET")
        try:
            refund = await self._call(stripe.Refund.create, idempotency_key=idempotency_key, **target)
        except AlreadyRefundedError:
            raise AlreadyRefundedError(payment_intent_id or charge_id) from None
        return RefundResult(id=refund.id, status=getattr(refund, "status", None) or "pending")

    async def parse_webhook_event(
        self,
        payload: bytes,
        signature_header: str | None,
        webhook_secret: str | None,
    ) -> dict[str, Any]:
        if not webhook_secret:
            logger.error("Webhook secret not configured, rejecting event")
            raise WebhookNotConfiguredError()
        if not signature_header:
            raise InvalidWebhookSignatureError("Missing Stripe-Signature header")
        try:
            stripe.Webhook.construct_event(
                payload=payload.decode(),
                sig_header=signature_header,
                secret=webhook_secret,
            )
        except stripe.SignatureVerificationError as exc:
            raise InvalidWebhookSignatureError("Invalid Stripe signature") from exc
        except ValueError as exc:
            raise InvalidWebhookSignatureError("Invalid Stripe webhook payload") from exc
        try:
            event = json.loads(payload.decode() or "{}")
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise InvalidWebhookSignatureError("Invalid webhook payload") from exc
        if not isinstance(event, dict):
            raise InvalidWebhookSignatureError("Invalid webhook payload")
        return event

    # === Helpers ===

    async def _call(self, fn, *args, **kwargs):
        try:
            return await asyncio.to_thread(stripe_breaker.call, self._translated, fn, *args, **kwargs)
        except CircuitBreakerError as exc:
            logger.error(
                "Stripe circuit breaker is open - service unavailable",
                extra={"circuit_state": str(exc)},
            )
            raise PaymentGatewayUnavailableError() from exc

    @staticmethod
    def _translated(fn, *args, **kwargs):
        """Run a Stripe call, mapping SDK errors so the breaker can tell outages from answers."""
        try:
            return fn(*args, **kwargs)
        except stripe.InvalidRequestError as exc:
            message = (exc.user_message or str(exc) or "").lower()
            if any(hint in message for hint in _ENVIRONMENT_MISMATCH_HINTS):
                raise GatewayEnvironmentMismatchError(exc.param or "") from exc
            if exc.code == "resource_missing":
                raise CheckoutSessionNotFoundError(exc.param or "") from exc
            if exc.code == "charge_already_refunded":
                raise AlreadyRefundedError(exc.param or "") from exc
            raise PaymentGatewayError(str(exc), code=(exc.code or "STRIPE_INVALID_REQUEST").upper()) from exc
        except stripe.StripeError as exc:
            logger.error("Stripe API error", exc_info=exc)
            raise PaymentGatewayError(str(exc), code=(exc.code or "STRIPE_ERROR").upper()) from exc

    def _is_other_environment(self, session_id: str) -> bool:
        if session_id.startswith("cs_test_"):
            return bool(self._live_mode)
        if session_id.startswith("cs_live_"):
            return not self._live_mode
        return False
