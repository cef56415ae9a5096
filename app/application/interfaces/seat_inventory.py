class SeatInventory:
    """
    Remaining capacity per experience.

    Invariant: ``0 <= remaining_spots <= max_participants`` and ``sold_out``
    is true exactly when nothing remains. Implementations must make
    ``reserve`` an atomic compare-and-decrement so two bookings racing for
    the last seat cannot both win.
    """

    async def reserve(self, experience_id: int, quantity: int) -> bool:
        """Take ``quantity`` seats. Returns False when not enough remain."""
        raise NotImplementedError

    async def release(self, experience_id: int, quantity: int) -> None:
        """Give seats back, capped at ``max_participants``."""
        raise NotImplementedError

    async def recount(self, experience_id: int, held_seats: int) -> int:
        """Set remaining capacity from an authoritative held-seat count and return it."""
        raise NotImplementedError
