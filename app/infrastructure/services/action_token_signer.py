import logging
from datetime import timedelta

import jwt
from jwt import ExpiredSignatureError, PyJWTError

from app.application.interfaces.action_tokens import ActionClaims, ActionTokenSigner
from app.application.interfaces.clock import Clock, SystemClock
from app.domain import constants
from app.domain.errors import InvalidActionTokenError

logger = logging.getLogger(__name__)

_ALGORITHM = "HS256"
_AUDIENCE = "admin-action"
_TARGET_CLAIMS = ("report_id", "booking_id", "host_id", "explorer_id", "experience_id")


class JwtActionTokenSigner(ActionTokenSigner):
    """HS256 action tokens: the action and target ids, an audience and an expiry."""

    def __init__(
        self,
        secret: str,
        ttl: timedelta = constants.ADMIN_ACTION_TOKEN_TTL,
        clock: Clock | None = None,
    ) -> None:
        if not secret:
            raise ValueError("Admin action secret is not configured")
        self._secret = secret
        self._ttl = ttl
        self._clock = clock or SystemClock()

    def issue(self, claims: ActionClaims) -> str:
        now = self._clock.now()
        payload = {
            "action": claims.action,
            "aud": _AUDIENCE,
            "iat": now,
            "exp": now + self._ttl,
        }
        for field in _TARGET_CLAIMS:
            value = getattr(claims, field)
            if value is not None:
                payload[field] = value
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def verify(self, token: str) -> ActionClaims:
        if not token:
            raise InvalidActionTokenError("missing")
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                audience=_AUDIENCE,
                options={"verify_exp": False, "verify_iat": False, "require": ["exp", "action"]},
            )
        except PyJWTError as exc:
            logger.warning("Rejected admin action token", extra={"reason": type(exc).__name__})
            raise InvalidActionTokenError("bad signature or payload") from exc

        # Expiry is checked against the injected clock, not the wall clock.
        if self._clock.now().timestamp() > float(payload["exp"]):
            logger.warning("Rejected admin action token", extra={"reason": ExpiredSignatureError.__name__})
            raise InvalidActionTokenError("expired")

        try:
            targets = {
                field: int(payload[field]) for field in _TARGET_CLAIMS if payload.get(field) is not None
            }
        except (TypeError, ValueError) as exc:
            raise InvalidActionTokenError("malformed target id") from exc
        return ActionClaims(action=str(payload["action"]), **targets)
