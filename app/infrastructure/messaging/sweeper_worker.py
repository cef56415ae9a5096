"""Background runner for the periodic sweeps."""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable
from uuid import uuid4

from app.application.dtos.sweep_dto import SweepReport
from app.application.interfaces.clock import Clock

logger = logging.getLogger(__name__)

SweepCycle = Callable[[datetime], Awaitable[SweepReport]]


class PeriodicSweeper:
    """
    Runs one sweep on a fixed interval until stopped.

    Sweepers share no lock: each cycle relies on the sweep being
    idempotent on persisted state. A failing cycle is logged and the loop
    carries on; ``stop()`` wakes the loop immediately instead of waiting
    out the interval.
    """

    def __init__(
        self,
        name: str,
        run_cycle: SweepCycle,
        clock: Clock,
        interval_seconds: float,
        run_on_start: bool = False,
        worker_id: str | None = None,
    ) -> None:
        self._name = name
        self._run_cycle = run_cycle
        self._clock = clock
        self._interval = interval_seconds
        self._run_on_start = run_on_start
        self._worker_id = worker_id or f"{name}-{uuid4().hex[:8]}"
        self._running = False
        self._wake = asyncio.Event()
        self.last_report: SweepReport | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        self._running = True
        self._wake.clear()
        logger.info(
            "Sweeper started",
            extra={"sweeper": self._name, "worker_id": self._worker_id, "interval": self._interval},
        )
        if not self._run_on_start:
            await self._sleep()
        while self._running:
            await self.run_once()
            await self._sleep()
        logger.info("Sweeper stopped", extra={"sweeper": self._name, "worker_id": self._worker_id})

    async def stop(self) -> None:
        self._running = False
        self._wake.set()

    async def run_once(self) -> SweepReport | None:
        """Run a single cycle now. Returns None when the cycle itself blew up."""
        try:
            report = await self._run_cycle(self._clock.now())
        except Exception:
            logger.exception("Sweeper cycle failed", extra={"sweeper": self._name})
            return None
        self.last_report = report
        if report.failed:
            logger.warning("Sweeper cycle had failures", extra=report.as_dict())
        return report

    async def _sleep(self) -> None:
        if not self._running:
            return
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=self._interval)
        except asyncio.TimeoutError:
            pass
