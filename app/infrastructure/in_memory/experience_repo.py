from copy import deepcopy
from typing import Sequence

from app.application.interfaces.experience_repo import ExperienceRepo
from app.application.interfaces.seat_inventory import SeatInventory
from app.domain.entities.experience import Experience, ExperienceStatus
from app.domain.errors import ExperienceNotFoundError


class InMemoryExperienceRepo(ExperienceRepo):
    def __init__(self) -> None:
        self.experiences: dict[int, Experience] = {}
        self._next_id = 1

    async def add(self, experience: Experience) -> Experience:
        stored = deepcopy(experience)
        if stored.id is None:
            stored.id = self._next_id
        self._next_id = max(self._next_id, stored.id) + 1
        self.experiences[stored.id] = stored
        return deepcopy(stored)

    async def get(self, experience_id: int) -> Experience | None:
        experience = self.experiences.get(experience_id)
        return deepcopy(experience) if experience else None

    async def list_by_host(self, host_id: int) -> Sequence[Experience]:
        return [deepcopy(e) for _, e in sorted(self.experiences.items()) if e.host_id == host_id]

    async def set_status(
        self, experience_id: int, status: ExperienceStatus, is_active: bool
    ) -> None:
        experience = self.experiences.get(experience_id)
        if experience is None:
            raise ExperienceNotFoundError(experience_id)
        experience.status = status
        experience.is_active = is_active


class InMemorySeatInventory(SeatInventory):
    """
    Seat counters living on the in-memory experiences.

    Each method runs without awaiting between reading and writing the
    counter, which makes it atomic on a single event loop.
    """

    def __init__(self, experience_repo: InMemoryExperienceRepo) -> None:
        self._experiences = experience_repo.experiences

    async def reserve(self, experience_id: int, quantity: int) -> bool:
        experience = self._require(experience_id)
        if experience.sold_out or experience.remaining_spots < quantity:
            return False
        experience.remaining_spots -= quantity
        experience.sold_out = experience.remaining_spots == 0
        return True

    async def release(self, experience_id: int, quantity: int) -> None:
        experience = self._experiences.get(experience_id)
        if experience is None:
            return
        experience.remaining_spots = min(
            experience.max_participants, experience.remaining_spots + quantity
        )
        experience.sold_out = experience.remaining_spots == 0

    async def recount(self, experience_id: int, held_seats: int) -> int:
        experience = self._require(experience_id)
        remaining = max(0, experience.max_participants - held_seats)
        experience.remaining_spots = remaining
        experience.sold_out = remaining == 0
        return remaining

    def _require(self, experience_id: int) -> Experience:
        experience = self._experiences.get(experience_id)
        if experience is None:
            raise ExperienceNotFoundError(experience_id)
        return experience
