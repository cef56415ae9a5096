"""
Circuit breaker for payment processor calls.

When Stripe keeps failing the breaker opens and calls fail fast with
``CircuitBreakerError`` instead of piling up blocked worker threads.

- CLOSED: requests pass through
- OPEN: too many consecutive failures, requests fail immediately
- HALF_OPEN: after ``reset_timeout`` one trial request is let through
"""

import logging

from pybreaker import CircuitBreaker, CircuitBreakerError, CircuitBreakerListener

from app.domain.errors import (
    AlreadyRefundedError,
    CheckoutSessionNotFoundError,
    GatewayEnvironmentMismatchError,
)

logger = logging.getLogger(__name__)


class StateChangeLogger(CircuitBreakerListener):
    """Logs every state change so an open circuit shows up in the logs."""

    def __init__(self, name: str):
        self.name = name

    def state_change(self, cb, old_state, new_state):
        logger.warning(
            "Circuit breaker state changed",
            extra={
                "breaker_name": self.name,
                "old_state": old_state.name if old_state else None,
                "new_state": new_state.name,
            },
        )


stripe_breaker = CircuitBreaker(
    fail_max=5,
    reset_timeout=60,
    # Business answers from Stripe are not outages.
    exclude=[AlreadyRefundedError, CheckoutSessionNotFoundError, GatewayEnvironmentMismatchError],
    name="stripe_circuit_breaker",
    listeners=[StateChangeLogger("stripe")],
)


__all__ = [
    "stripe_breaker",
    "CircuitBreakerError",
]
