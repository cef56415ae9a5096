from dataclasses import dataclass


@dataclass(frozen=True)
class ActionClaims:
    """Target of an admin action link."""

    action: str
    report_id: int | None = None
    booking_id: int | None = None
    host_id: int | None = None
    explorer_id: int | None = None
    experience_id: int | None = None


class ActionTokenSigner:
    """Issues and verifies signed, time-boxed admin action tokens."""

    def issue(self, claims: ActionClaims) -> str:
        raise NotImplementedError

    def verify(self, token: str) -> ActionClaims:
        """Raises ``InvalidActionTokenError`` on a bad signature, payload or expiry."""
        raise NotImplementedError
