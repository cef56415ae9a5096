import logging

from app.application.interfaces.notifier import EmailMessage, Notification, Notifier

logger = logging.getLogger(__name__)


class RecordingNotifier(Notifier):
    """Keeps every notification and email in memory and logs it; nothing leaves the process."""

    def __init__(self) -> None:
        self.notifications: list[Notification] = []
        self.emails: list[EmailMessage] = []

    async def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)
        logger.info(
            "Notification recorded",
            extra={"user_id": notification.user_id, "notification_type": notification.type},
        )

    async def send_email(self, email: EmailMessage) -> None:
        self.emails.append(email)
        logger.info(
            "Email recorded",
            extra={"template": email.template, "user_id": email.user_id},
        )

    def notifications_for(self, user_id: int, type: str | None = None) -> list[Notification]:
        return [
            n for n in self.notifications if n.user_id == user_id and (type is None or n.type == type)
        ]

    def clear(self) -> None:
        self.notifications.clear()
        self.emails.clear()
