import asyncio
import datetime as dt
from collections.abc import AsyncIterator, Hashable
from contextlib import AbstractAsyncContextManager, asynccontextmanager


class BookingLocks:
    """Keyed locks around the availability check and the write.

    ``hold(professional_id, date)`` serializes bookings for one professional
    and day, so two requests cannot both pass the check before either inserts.
    Bookings without a professional share the ``(None, date)`` key.

    ``hold_appointment(appointment_id)`` serializes read-modify-write cycles
    on one appointment (cancel, reschedule, status changes), whatever dates
    they target. Take it before any booking lock.

    Locks live in this process only; entries are dropped once no task holds or
    waits on them.
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._waiters: dict[Hashable, int] = {}

    def hold(
        self, professional_id: str | None, date: dt.date
    ) -> AbstractAsyncContextManager[None]:
        return self._hold(("booking", professional_id, date))

    def hold_appointment(self, appointment_id: str) -> AbstractAsyncContextManager[None]:
        return self._hold(("appointment", appointment_id))

    @asynccontextmanager
    async def _hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
