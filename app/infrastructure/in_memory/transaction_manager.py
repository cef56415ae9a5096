from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from app.application.interfaces.transaction_manager import TransactionManager


class InMemoryTransactionManager(TransactionManager):
    """
    Unit of work for the in-memory repositories.

    Writes land immediately and nothing is rolled back; the repositories
    never await between a check and its write, so each call is already
    atomic on the event loop. ``depth`` mirrors the SQL manager's nesting
    so tests can assert a unit is open.
    """

    def __init__(self) -> None:
        self.depth = 0

    @asynccontextmanager
    async def start(self) -> AsyncIterator[None]:
        self.depth += 1
        try:
            yield
        finally:
            self.depth -= 1
