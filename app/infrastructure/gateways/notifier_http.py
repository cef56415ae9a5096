import logging
from dataclasses import asdict

import httpx

from app.application.interfaces.notifier import EmailMessage, Notification, Notifier

logger = logging.getLogger(__name__)


class HttpNotifier(Notifier):
    """
    Hands notifications to the notifications service over HTTP.

    Rendering, push delivery and transport retries are that service's job.
    Any non-2xx answer or network error is raised to the caller, which
    decides whether it matters.
    """

    def __init__(self, base_url: str, timeout_seconds: float = 5.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds

    async def notify(self, notification: Notification) -> None:
        await self._post("/notifications", asdict(notification))

    async def send_email(self, email: EmailMessage) -> None:
        await self._post("/emails", asdict(email))

    async def _post(self, path: str, payload: dict) -> None:
        url = f"{self._base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(url, json=payload)
            response.raise_for_status()
        except httpx.TimeoutException:
            logger.warning("Notifications service timeout", extra={"url": url, "timeout": self._timeout})
            raise
        except httpx.HTTPError as exc:
            logger.error("Notifications service error", exc_info=exc, extra={"url": url})
            raise
