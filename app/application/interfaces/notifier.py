from dataclasses import dataclass, field
from typing import Any


@dataclass
class Notification:
    """In-app notification for one user."""

    user_id: int
    type: str
    title: str
    message: str
    data: dict[str, Any] = field(default_factory=dict)
    push: bool = False


@dataclass
class EmailMessage:
    """Transactional email; rendering and delivery belong to the transport."""

    to: str
    subject: str
    template: str
    data: dict[str, Any] = field(default_factory=dict)
    user_id: int | None = None


class Notifier:
    async def notify(self, notification: Notification) -> None:
        raise NotImplementedError

    async def send_email(self, email: EmailMessage) -> None:
        raise NotImplementedError
