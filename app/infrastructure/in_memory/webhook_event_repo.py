from datetime import datetime

from app.application.interfaces.webhook_event_repo import WebhookEventRepo
from app.domain.entities.webhook_event import WebhookEventRecord


class InMemoryWebhookEventRepo(WebhookEventRepo):
    def __init__(self) -> None:
        self.events: dict[str, WebhookEventRecord] = {}

    async def record_if_new(self, event_id: str, event_type: str, received_at: datetime) -> bool:
        if event_id in self.events:
            return False
        self.events[event_id] = WebhookEventRecord(event_id, event_type, received_at)
        return True

    async def forget(self, event_id: str) -> None:
        self.events.pop(event_id, None)
