import asyncio

from loguru import logger

from agenda.domain.models import ReminderDispatchResult
from agenda.reminders.dispatcher import ReminderDispatcher

DEFAULT_INTERVAL_SECONDS = 300


class ReminderJob:
    """Runs the reminder dispatcher on a fixed cadence until stopped."""

    def __init__(
        self, dispatcher: ReminderDispatcher, *, interval_seconds: float = DEFAULT_INTERVAL_SECONDS
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._dispatcher = dispatcher
        self._interval = interval_seconds
        self.runs: int = 0

    async def run_once(self) -> ReminderDispatchResult:
        result = await self._dispatcher.dispatch_due()
        self.runs += 1
        if not result.success:
            logger.warning("Reminder job run {} failed: {}", self.runs, result.errors)
        return result

    async def run_forever(self, stop: asyncio.Event | None = None) -> None:
        """Dispatch every ``interval_seconds`` until ``stop`` is set."""
        stop = stop or asyncio.Event()
        logger.info("Reminder job started (every {}s)", self._interval)
        while not stop.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(stop.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                continue
        logger.info("Reminder job stopped after {} runs", self.runs)
