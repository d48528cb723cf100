"""
Fixed-interval polling scheduler.

On start() one cycle runs immediately, then one per interval until stop().
A tick that lands while the previous cycle is still awaiting the network is
skipped, so cycles never overlap. stop() cancels only the timer; a cycle
already in flight is left to finish and the session discards its result.
"""
import asyncio
from typing import Awaitable, Callable, Optional

import structlog

logger = structlog.get_logger()

DEFAULT_INTERVAL_S = 1.0


class PollingScheduler:
    """Drives an async cycle callable on a fixed timer."""

    def __init__(
        self,
        cycle: Callable[[], Awaitable[object]],
        interval_s: float = DEFAULT_INTERVAL_S,
    ):
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self.cycle = cycle
        self.interval_s = interval_s
        self.ticks = 0
        self.skipped = 0
        self._timer: Optional[asyncio.Task] = None
        self._in_flight: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def busy(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    def start(self) -> None:
        if self.running:
            return
        self._timer = asyncio.create_task(self._run())
        logger.info("Polling scheduler started", interval_s=self.interval_s)

    async def stop(self) -> None:
        """Cancel the timer. No tick fires after this returns."""
        if self._timer is None:
            return
        timer, self._timer = self._timer, None
        timer.cancel()
        try:
            await timer
        except asyncio.CancelledError:
            pass
        logger.info("Polling scheduler stopped", ticks=self.ticks, skipped=self.skipped)

    async def wait_idle(self, timeout_s: Optional[float] = None) -> None:
        """Wait for the in-flight cycle, if any, to finish."""
        if not self.busy:
            return
        await asyncio.wait({self._in_flight}, timeout=timeout_s)

    async def _run(self) -> None:
        while True:
            self._tick()
            await asyncio.sleep(self.interval_s)

    def _tick(self) -> None:
        self.ticks += 1
        if self.busy:
            self.skipped += 1
            logger.debug("Previous cycle still in flight, skipping tick")
            return
        self._in_flight = asyncio.create_task(self._guarded_cycle())

    async def _guarded_cycle(self) -> None:
        try:
            await self.cycle()
        except Exception:
            logger.exception("Polling cycle failed")
