from app.domain.entities.participant import Participant


class ParticipantRepo:
    async def add(self, participant: Participant) -> Participant:
        raise NotImplementedError

    async def get(self, participant_id: int) -> Participant | None:
        raise NotImplementedError

    async def get_by_stripe_account(self, stripe_account_id: str) -> Participant | None:
        raise NotImplementedError

    async def save(self, participant: Participant) -> Participant:
        raise NotImplementedError
