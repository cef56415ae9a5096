"""Payout eligibility and host wallet buckets."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from app.domain.entities.booking import (
    ATTENDANCE_PENDING_STATUSES,
    PAYOUT_STATUSES,
    Booking,
    BookingStatus,
)
from app.domain.schedule import as_utc

logger = logging.getLogger(__name__)

BLOCKED_STATUSES = frozenset(
    {
        BookingStatus.DISPUTED,
        BookingStatus.DISPUTE_LOST,
        BookingStatus.NO_SHOW,
        BookingStatus.CANCELLED,
        BookingStatus.REFUNDED,
        BookingStatus.REFUND_FAILED,
    }
)


def is_payout_eligible(booking: Booking, now: datetime) -> bool:
    """
    True when the host may be paid for ``booking``.

    Requires a payout-bearing status, an elapsed ``payout_eligible_at`` and
    no unresolved dispute. An open dispute blocks payout whatever the status.
    """
    if booking.status not in PAYOUT_STATUSES:
        return False
    if booking.has_open_dispute:
        return False
    eligible_at = as_utc(booking.payout_eligible_at)
    if eligible_at is None:
        return False
    return now >= eligible_at


@dataclass(frozen=True)
class WalletBalance:
    """Host balances in minor units."""

    available: int = 0
    pending: int = 0
    blocked: int = 0
    currency: str = "ron"


def aggregate_host_balances(
    bookings: Iterable[Booking], now: datetime, currency: str = "ron"
) -> WalletBalance:
    available = pending = blocked = 0
    for booking in bookings:
        amount = booking.payable_amount
        if amount <= 0:
            continue

        if is_payout_eligible(booking, now):
            available += amount
        elif booking.status in ATTENDANCE_PENDING_STATUSES:
            pending += amount
        elif booking.status in PAYOUT_STATUSES and not booking.has_open_dispute:
            # Holdback window still running
            pending += amount
        elif booking.status in BLOCKED_STATUSES or booking.status in PAYOUT_STATUSES:
            blocked += amount

    logger.debug(
        "Wallet aggregated",
        extra={"available": available, "pending": pending, "blocked": blocked},
    )
    return WalletBalance(available=available, pending=pending, blocked=blocked, currency=currency)
