import datetime as dt

from loguru import logger

from agenda.domain.models import NON_BLOCKING_STATUSES, DayOfWeek
from agenda.scheduling.intervals import (
    interval_within,
    intervals_overlap,
    is_forward,
    normalize_time,
)
from agenda.scheduling.ports import AppointmentStoreProtocol


class AvailabilityChecker:
    """Decides whether a candidate interval can be booked.

    A professional-scoped check requires the interval to sit inside the
    professional's active schedule for that weekday and to clear that
    professional's appointments. Without a professional only the overlap check
    against every appointment of the day applies.
    """

    def __init__(self, store: AppointmentStoreProtocol) -> None:
        self._store = store

    async def working_window(
        self, date: dt.date, professional_id: str | None
    ) -> tuple[str, str] | None:
        """Return the professional's ``(start, end)`` window on ``date``, if they work that day."""
        if professional_id is None:
            return None
        schedule = await self._store.get_active_schedule(
            professional_id, DayOfWeek.from_date(date)
        )
        if schedule is None:
            return None
        return schedule.start_time, schedule.end_time

    async def is_available(
        self,
        date: dt.date,
        start_time: str,
        end_time: str,
        professional_id: str | None = None,
        service_id: str | None = None,
        exclude_appointment_id: str | None = None,
    ) -> bool:
        start_time = normalize_time(start_time)
        end_time = normalize_time(end_time)
        if not is_forward(start_time, end_time):
            return False

        if professional_id is not None:
            window = await self.working_window(date, professional_id)
            if window is None:
                logger.debug(
                    "Professional {} has no active schedule on {}", professional_id, date
                )
                return False
            if not interval_within(start_time, end_time, *window):
                return False

        existing = await self._store.find_appointments_on(
            date,
            professional_id=professional_id,
            exclude_statuses=NON_BLOCKING_STATUSES,
            exclude_appointment_id=exclude_appointment_id,
        )
        for appointment in existing:
            if intervals_overlap(
                start_time, end_time, appointment.start_time, appointment.end_time
            ):
                logger.debug(
                    "Slot {}-{} on {} overlaps appointment {} (service={})",
                    start_time,
                    end_time,
                    date,
                    appointment.appointment_id,
                    service_id,
                )
                return False
        return True
