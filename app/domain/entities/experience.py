"""Experience entity, limited to the fields the booking core reads or writes."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ExperienceStatus(str, Enum):
    ACTIVE = "ACTIVE"
    DISABLED = "DISABLED"


class ActivityType(str, Enum):
    INDIVIDUAL = "INDIVIDUAL"
    GROUP = "GROUP"


@dataclass
class Experience:
    """
    A listing owned by a host.

    The catalog owns every field here; the booking core only mutates
    ``remaining_spots`` and ``sold_out`` through ``SeatInventory``.
    """

    id: int | None = None
    host_id: int = 0
    title: str = ""

    # Price per seat in minor units; 0 means free (deposit only)
    price: int = 0
    currency: str = "ron"
    activity_type: ActivityType = ActivityType.GROUP

    # Capacity
    max_participants: int = 1
    remaining_spots: int = 1
    sold_out: bool = False

    # Availability
    status: ExperienceStatus = ExperienceStatus.ACTIVE
    is_active: bool = True

    # Schedule (every field is optional upstream)
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    duration_minutes: int | None = None

    created_at: datetime | None = None

    # === Properties ===

    @property
    def is_free(self) -> bool:
        return self.price <= 0

    @property
    def is_bookable(self) -> bool:
        return self.is_active and self.status != ExperienceStatus.DISABLED
