import logging
from datetime import datetime

from sqlalchemy import delete, insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.application.interfaces.webhook_event_repo import WebhookEventRepo
from app.infrastructure.db.tables import webhook_events

logger = logging.getLogger(__name__)


class WebhookEventRepoSQL(WebhookEventRepo):
    """
    Ledger backed by the unique ``event_id`` column.

    ``record_if_new`` is expected to run in its own unit of work: a
    duplicate insert rolls the session back before reporting False.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record_if_new(self, event_id: str, event_type: str, received_at: datetime) -> bool:
        stmt = insert(webhook_events).values(
            event_id=event_id,
            event_type=event_type,
            received_at=received_at,
        )
        try:
            await self._session.execute(stmt)
        except IntegrityError:
            await self._session.rollback()
            logger.info("Duplicate webhook event", extra={"event_id": event_id})
            return False
        return True

    async def forget(self, event_id: str) -> None:
        await self._session.execute(
            delete(webhook_events).where(webhook_events.c.event_id == event_id)
        )
