"""Participant - the slice of a user account the booking core needs."""

from dataclasses import dataclass, field
from enum import Enum


class ParticipantRole(str, Enum):
    EXPLORER = "EXPLORER"
    HOST = "HOST"
    ADMIN = "ADMIN"


@dataclass
class Participant:
    id: int | None = None
    name: str = ""
    email: str | None = None
    role: ParticipantRole = ParticipantRole.EXPLORER
    is_banned: bool = False
    languages: list[str] = field(default_factory=list)

    # Connected payout account
    stripe_account_id: str | None = None
    stripe_charges_enabled: bool = False
    stripe_payouts_enabled: bool = False
    stripe_details_submitted: bool = False

    @property
    def first_name(self) -> str:
        return self.name.split(" ")[0] if self.name else ""

    @property
    def preferred_language(self) -> str:
        """Email language: Romanian when listed, English otherwise."""
        for language in self.languages:
            if language.strip().lower() in ("ro", "romanian", "română", "romana"):
                return "ro"
        return "en"
