from datetime import datetime


class WebhookEventRepo:
    """De-duplication ledger of processor events, keyed by event id."""

    async def record_if_new(self, event_id: str, event_type: str, received_at: datetime) -> bool:
        """Atomically insert the event id. Returns False if it was already recorded."""
        raise NotImplementedError

    async def forget(self, event_id: str) -> None:
        """Drop an entry so a redelivery of the event is processed again."""
        raise NotImplementedError
