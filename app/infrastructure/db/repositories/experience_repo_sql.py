from typing import Sequence

from sqlalchemy import case, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.application.interfaces.experience_repo import ExperienceRepo
from app.application.interfaces.seat_inventory import SeatInventory
from app.domain.entities.experience import ActivityType, Experience, ExperienceStatus
from app.domain.errors import ExperienceNotFoundError
from app.domain.schedule import as_utc
from app.infrastructure.db.tables import experiences


class ExperienceRepoSQL(ExperienceRepo):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, experience: Experience) -> Experience:
        values = {
            "host_id": experience.host_id,
            "title": experience.title,
            "price": experience.price,
            "currency": experience.currency,
            "activity_type": experience.activity_type.value,
            "max_participants": experience.max_participants,
            "remaining_spots": experience.remaining_spots,
            "sold_out": experience.sold_out,
            "status": experience.status.value,
            "is_active": experience.is_active,
            "starts_at": as_utc(experience.starts_at),
            "ends_at": as_utc(experience.ends_at),
            "duration_minutes": experience.duration_minutes,
            "created_at": as_utc(experience.created_at),
        }
        if experience.id is not None:
            values["id"] = experience.id
        result = await self._session.execute(insert(experiences).values(**values))
        experience.id = result.inserted_primary_key[0]
        return experience

    async def get(self, experience_id: int) -> Experience | None:
        stmt = select(experiences).where(experiences.c.id == experience_id)
        result = await self._session.execute(stmt)
        row = result.mappings().first()
        return self._map_experience(row) if row else None

    async def list_by_host(self, host_id: int) -> Sequence[Experience]:
        stmt = select(experiences).where(experiences.c.host_id == host_id).order_by(experiences.c.id)
        result = await self._session.execute(stmt)
        return [self._map_experience(row) for row in result.mappings().all()]

    async def set_status(
        self, experience_id: int, status: ExperienceStatus, is_active: bool
    ) -> None:
        stmt = (
            update(experiences)
            .where(experiences.c.id == experience_id)
            .values(status=status.value, is_active=is_active)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise ExperienceNotFoundError(experience_id)

    def _map_experience(self, row) -> Experience:
        return Experience(
            id=row["id"],
            host_id=row["host_id"],
            title=row["title"],
            price=row["price"],
            currency=row["currency"],
            activity_type=ActivityType(row["activity_type"]),
            max_participants=row["max_participants"],
            remaining_spots=row["remaining_spots"],
            sold_out=bool(row["sold_out"]),
            status=ExperienceStatus(row["status"]),
            is_active=bool(row["is_active"]),
            starts_at=as_utc(row["starts_at"]),
            ends_at=as_utc(row["ends_at"]),
            duration_minutes=row["duration_minutes"],
            created_at=as_utc(row["created_at"]),
        )


class SeatInventorySQL(SeatInventory):
    """
    Seat counters on the ``experiences`` row.

    ``reserve`` is a single conditional UPDATE, so two transactions racing
    for the last seat cannot both see enough capacity. ``sold_out`` is
    assigned before ``remaining_spots`` so it reads the pre-update value on
    every backend, including those that evaluate assignments left to right.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def reserve(self, experience_id: int, quantity: int) -> bool:
        remaining = experiences.c.remaining_spots
        stmt = (
            update(experiences)
            .where(
                experiences.c.id == experience_id,
                remaining >= quantity,
                experiences.c.sold_out.is_(False),
            )
            .ordered_values(
                (experiences.c.sold_out, case((remaining - quantity <= 0, True), else_=False)),
                (remaining, remaining - quantity),
            )
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def release(self, experience_id: int, quantity: int) -> None:
        remaining = experiences.c.remaining_spots
        maximum = experiences.c.max_participants
        restored = case((remaining + quantity > maximum, maximum), else_=remaining + quantity)
        stmt = (
            update(experiences)
            .where(experiences.c.id == experience_id)
            .ordered_values(
                (experiences.c.sold_out, case((restored <= 0, True), else_=False)),
                (remaining, restored),
            )
        )
        await self._session.execute(stmt)

    async def recount(self, experience_id: int, held_seats: int) -> int:
        result = await self._session.execute(
            select(experiences.c.max_participants).where(experiences.c.id == experience_id)
        )
        max_participants = result.scalar()
        if max_participants is None:
            raise ExperienceNotFoundError(experience_id)
        remaining = max(0, max_participants - held_seats)
        await self._session.execute(
            update(experiences)
            .where(experiences.c.id == experience_id)
            .values(remaining_spots=remaining, sold_out=remaining == 0)
        )
        return remaining
