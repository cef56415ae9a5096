"""Webhook event ledger entry."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class WebhookEventRecord:
    """Processor event id seen by the ingestor; the id is unique."""

    event_id: str
    event_type: str
    received_at: datetime
