"""Background task that triggers the midnight rollover."""

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Optional

import structlog

from steptracker.services.aggregator import StepAggregator
from steptracker.services.day_keys import utc_now

logger = structlog.get_logger(__name__)

# Wake slightly after midnight so the new day key is already in effect
MIDNIGHT_GRACE = timedelta(seconds=1)


class RolloverScheduler:
    """Wakes at the next local midnight and asks the aggregator to roll over.

    Sleeps are capped at ``max_sleep_seconds`` so a suspended process or a
    wall-clock change is noticed soon after it happens. Each wake-up also
    gives an unavailable sensor a chance to resume.
    """

    def __init__(
        self,
        aggregator: StepAggregator,
        max_sleep_seconds: float = 60.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the scheduler.

        Args:
            aggregator: The aggregator to drive.
            max_sleep_seconds: Upper bound on a single sleep (default: 60).
            clock: Source of the current time.
        """
        self.aggregator = aggregator
        self._max_sleep = max_sleep_seconds
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self._logger = logger.bind(component="rollover_scheduler")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def seconds_until_check(self) -> float:
        """Delay before the next rollover check."""
        now = self._clock()
        midnight = self.aggregator.resolver.next_midnight(now) + MIDNIGHT_GRACE
        remaining = (midnight - now).total_seconds()
        return max(0.0, min(remaining, self._max_sleep))

    async def start(self):
        """Start the scheduling loop."""
        if self.running:
            return

        self._task = asyncio.create_task(self._run())
        self._logger.info("rollover_scheduler_started", max_sleep=self._max_sleep)

    async def stop(self):
        """Stop the scheduling loop."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self._logger.info("rollover_scheduler_stopped")

    async def tick(self) -> bool:
        """Run one rollover and availability check.

        Returns:
            True if the day rolled over.
        """
        rolled = await self.aggregator.check_rollover()
        await self.aggregator.resume()
        return rolled

    async def _run(self):
        """Main scheduling loop."""
        while True:
            await asyncio.sleep(self.seconds_until_check())
            try:
                await self.tick()
            except Exception as e:
                self._logger.error("rollover_check_failed", error=str(e))
