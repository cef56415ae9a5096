from typing import Sequence

from app.domain.entities.experience import Experience, ExperienceStatus


class ExperienceRepo:
    """Read access to the catalog, plus the availability switch used by admins."""

    async def add(self, experience: Experience) -> Experience:
        raise NotImplementedError

    async def get(self, experience_id: int) -> Experience | None:
        raise NotImplementedError

    async def list_by_host(self, host_id: int) -> Sequence[Experience]:
        raise NotImplementedError

    async def set_status(
        self, experience_id: int, status: ExperienceStatus, is_active: bool
    ) -> None:
        raise NotImplementedError
