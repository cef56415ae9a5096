from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.application.interfaces.participant_repo import ParticipantRepo
from app.domain.entities.participant import Participant, ParticipantRole
from app.domain.errors import ParticipantNotFoundError
from app.infrastructure.db.tables import participants


class ParticipantRepoSQL(ParticipantRepo):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, participant: Participant) -> Participant:
        values = self._values(participant)
        if participant.id is not None:
            values["id"] = participant.id
        result = await self._session.execute(insert(participants).values(**values))
        participant.id = result.inserted_primary_key[0]
        return participant

    async def get(self, participant_id: int) -> Participant | None:
        stmt = select(participants).where(participants.c.id == participant_id)
        result = await self._session.execute(stmt)
        row = result.mappings().first()
        return self._map_participant(row) if row else None

    async def get_by_stripe_account(self, stripe_account_id: str) -> Participant | None:
        stmt = select(participants).where(participants.c.stripe_account_id == stripe_account_id)
        result = await self._session.execute(stmt)
        row = result.mappings().first()
        return self._map_participant(row) if row else None

    async def save(self, participant: Participant) -> Participant:
        stmt = (
            update(participants)
            .where(participants.c.id == participant.id)
            .values(**self._values(participant))
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise ParticipantNotFoundError(participant.id)
        return participant

    def _values(self, participant: Participant) -> dict:
        return {
            "name": participant.name,
            "email": participant.email,
            "role": participant.role.value,
            "is_banned": participant.is_banned,
            "languages": list(participant.languages),
            "stripe_account_id": participant.stripe_account_id,
            "stripe_charges_enabled": participant.stripe_charges_enabled,
            "stripe_payouts_enabled": participant.stripe_payouts_enabled,
            "stripe_details_submitted": participant.stripe_details_submitted,
        }

    def _map_participant(self, row) -> Participant:
        return Participant(
            id=row["id"],
            name=row["name"] or "",
            email=row.get("email"),
            role=ParticipantRole(row["role"]),
            is_banned=bool(row["is_banned"]),
            languages=list(row["languages"] or []),
            stripe_account_id=row.get("stripe_account_id"),
            stripe_charges_enabled=bool(row["stripe_charges_enabled"]),
            stripe_payouts_enabled=bool(row["stripe_payouts_enabled"]),
            stripe_details_submitted=bool(row["stripe_details_submitted"]),
        )
