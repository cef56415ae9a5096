import logging

from app.application.interfaces.notifier import EmailMessage, Notification, Notifier

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    Sends in-app notifications and emails on behalf of use cases.

    Delivery failures are logged and swallowed: a notification never
    aborts the state change that triggered it.
    """

    def __init__(self, notifier: Notifier) -> None:
        self._notifier = notifier

    async def notify(
        self,
        user_id: int,
        type: str,
        title: str,
        message: str,
        data: dict | None = None,
        push: bool = False,
    ) -> bool:
        try:
            await self._notifier.notify(
                Notification(
                    user_id=user_id,
                    type=type,
                    title=title,
                    message=message,
                    data=data or {},
                    push=push,
                )
            )
            return True
        except Exception:
            logger.exception(
                "Notification delivery failed",
                extra={"user_id": user_id, "notification_type": type},
            )
            return False

    async def email(
        self,
        to: str | None,
        subject: str,
        template: str,
        data: dict | None = None,
        user_id: int | None = None,
    ) -> bool:
        if not to:
            logger.warning(
                "Email skipped: recipient has no address",
                extra={"template": template, "user_id": user_id},
            )
            return False
        try:
            await self._notifier.send_email(
                EmailMessage(to=to, subject=subject, template=template, data=data or {}, user_id=user_id)
            )
            return True
        except Exception:
            logger.exception(
                "Email delivery failed",
                extra={"template": template, "user_id": user_id},
            )
            return False
