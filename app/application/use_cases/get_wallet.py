from app.application.interfaces.booking_repo import BookingRepo
from app.application.interfaces.clock import Clock
from app.application.interfaces.participant_repo import ParticipantRepo
from app.domain.errors import ParticipantNotFoundError
from app.domain.payout import WalletBalance, aggregate_host_balances


class GetHostWalletUseCase:
    """Available / pending / blocked totals for a host, bucketed by the payout predicate."""

    def __init__(
        self,
        booking_repo: BookingRepo,
        participant_repo: ParticipantRepo,
        clock: Clock,
        default_currency: str = "ron",
    ) -> None:
        self._booking_repo = booking_repo
        self._participant_repo = participant_repo
        self._clock = clock
        self._default_currency = default_currency

    async def execute(self, host_id: int) -> WalletBalance:
        host = await self._participant_repo.get(host_id)
        if not host:
            raise ParticipantNotFoundError(host_id)
        bookings = await self._booking_repo.list_by_host(host_id)
        return aggregate_host_balances(bookings, self._clock.now(), self._default_currency)
