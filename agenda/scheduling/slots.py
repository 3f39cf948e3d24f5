import datetime as dt
from collections.abc import Iterator

from agenda.domain.exceptions import NotFoundError
from agenda.domain.models import SlotAvailability
from agenda.scheduling.availability import AvailabilityChecker
from agenda.scheduling.intervals import compute_end_time, from_minutes, to_minutes
from agenda.scheduling.ports import AppointmentStoreProtocol

DEFAULT_WORK_START = "08:00"
DEFAULT_WORK_END = "18:00"
DEFAULT_SLOT_MINUTES = 30


def iter_slot_starts(window_start: str, window_end: str, slot_minutes: int) -> Iterator[str]:
    """Yield start times ``slot_minutes`` apart from ``window_start`` until ``window_end``."""
    if slot_minutes <= 0:
        raise ValueError("slot_minutes must be positive")
    current = to_minutes(window_start)
    end = to_minutes(window_end)
    while current < end:
        yield from_minutes(current)
        current += slot_minutes


class SlotGenerator:
    """Enumerates fixed-width slots across a working day and classifies each one.

    The day's window is the professional's active schedule when there is one;
    otherwise the configured default window is used.
    """

    def __init__(
        self,
        store: AppointmentStoreProtocol,
        checker: AvailabilityChecker,
        *,
        work_start: str = DEFAULT_WORK_START,
        work_end: str = DEFAULT_WORK_END,
        slot_minutes: int = DEFAULT_SLOT_MINUTES,
    ) -> None:
        self._store = store
        self._checker = checker
        self._work_start = work_start
        self._work_end = work_end
        self._slot_minutes = slot_minutes

    async def get_available_slots(
        self,
        date: dt.date,
        professional_id: str | None = None,
        service_id: str | None = None,
    ) -> SlotAvailability:
        duration = self._slot_minutes
        if service_id is not None:
            service = await self._store.get_service(service_id)
            if service is None:
                raise NotFoundError("Service", service_id)
            duration = service.duration

        window = await self._checker.working_window(date, professional_id)
        window_start, window_end = window or (self._work_start, self._work_end)

        available: list[str] = []
        busy: list[str] = []
        for slot_start in iter_slot_starts(window_start, window_end, self._slot_minutes):
            slot_end = compute_end_time(slot_start, duration)
            if await self._checker.is_available(
                date, slot_start, slot_end, professional_id, service_id
            ):
                available.append(slot_start)
            else:
                busy.append(slot_start)

        return SlotAvailability(
            date=date,
            available_slots=available,
            busy_slots=busy,
            professional_id=professional_id,
            service_id=service_id,
        )
