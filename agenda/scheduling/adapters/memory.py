import datetime as dt
from collections import Counter
from collections.abc import Collection, Sequence
from enum import Enum

from agenda.domain.exceptions import ConflictError
from agenda.domain.models import (
    RESCHEDULABLE_STATUSES,
    Appointment,
    AppointmentQuery,
    AppointmentReminder,
    AppointmentStatus,
    Client,
    DayOfWeek,
    Professional,
    ProfessionalSchedule,
    ReminderStatus,
    Service,
)
from agenda.scheduling.ports import GroupField


class InMemoryAppointmentStore:
    """Dict-backed implementation of the AppointmentStoreProtocol protocol.

    Pre-load ``clients``, ``services``, ``professionals`` and ``schedules``
    (or use the ``add_*`` helpers) to control what lookups return. Set
    ``write_error`` to make the next write raise.

    Every write replaces whole records, so a failed write leaves the store
    unchanged.
    """

    def __init__(self) -> None:
        self.clients: dict[str, Client] = {}
        self.professionals: dict[str, Professional] = {}
        self.services: dict[str, Service] = {}
        self.schedules: list[ProfessionalSchedule] = []
        self.appointments: dict[str, Appointment] = {}
        self.reminders: dict[str, AppointmentReminder] = {}
        self.closed: bool = False

        self.write_error: Exception | None = None

    def add_client(self, client: Client) -> None:
        self.clients[client.client_id] = client

    def add_professional(self, professional: Professional) -> None:
        self.professionals[professional.professional_id] = professional

    def add_service(self, service: Service) -> None:
        self.services[service.service_id] = service

    def add_schedule(self, schedule: ProfessionalSchedule) -> None:
        self.schedules.append(schedule)

    async def get_client(self, client_id: str) -> Client | None:
        return self.clients.get(client_id)

    async def get_professional(self, professional_id: str) -> Professional | None:
        return self.professionals.get(professional_id)

    async def get_service(self, service_id: str) -> Service | None:
        return self.services.get(service_id)

    async def get_active_schedule(
        self, professional_id: str, day_of_week: DayOfWeek
    ) -> ProfessionalSchedule | None:
        for schedule in self.schedules:
            if (
                schedule.professional_id == professional_id
                and schedule.day_of_week == day_of_week
                and schedule.is_active
            ):
                return schedule
        return None

    async def get_appointment(self, appointment_id: str) -> Appointment | None:
        return self.appointments.get(appointment_id)

    async def find_appointments_on(
        self,
        date: dt.date,
        *,
        professional_id: str | None = None,
        exclude_statuses: Collection[AppointmentStatus] = (),
        exclude_appointment_id: str | None = None,
    ) -> list[Appointment]:
        found = [
            a
            for a in self.appointments.values()
            if a.scheduled_date == date
            and a.status not in exclude_statuses
            and (professional_id is None or a.professional_id == professional_id)
            and a.appointment_id != exclude_appointment_id
        ]
        return sorted(found, key=lambda a: a.start_time)

    async def add_appointment(
        self, appointment: Appointment, reminders: Sequence[AppointmentReminder] = ()
    ) -> Appointment:
        self._raise_write_error()
        self.appointments[appointment.appointment_id] = appointment
        for reminder in reminders:
            self.reminders[reminder.reminder_id] = reminder
        return appointment

    async def save_appointment(self, appointment: Appointment) -> Appointment:
        self._raise_write_error()
        self.appointments[appointment.appointment_id] = appointment
        return appointment

    async def replace_appointment(
        self,
        original: Appointment,
        replacement: Appointment,
        reminders: Sequence[AppointmentReminder] = (),
    ) -> Appointment:
        self._raise_write_error()
        stored = self.appointments.get(original.appointment_id)
        if stored is None or stored.status not in RESCHEDULABLE_STATUSES:
            raise ConflictError(
                "Appointment changed before it could be rescheduled",
                appointment_id=original.appointment_id,
            )
        self.appointments[original.appointment_id] = original
        self.appointments[replacement.appointment_id] = replacement
        for reminder in reminders:
            self.reminders[reminder.reminder_id] = reminder
        return replacement

    async def delete_appointment(self, appointment_id: str) -> bool:
        self._raise_write_error()
        if self.appointments.pop(appointment_id, None) is None:
            return False
        self.reminders = {
            k: r for k, r in self.reminders.items() if r.appointment_id != appointment_id
        }
        return True

    async def list_appointments(self, query: AppointmentQuery) -> tuple[list[Appointment], int]:
        matches = [a for a in self.appointments.values() if _matches(a, query)]
        field = query.order_field
        # None sorts first, matching ascending NULLS FIRST.
        matches.sort(
            key=lambda a: (getattr(a, field) is not None, _sort_value(getattr(a, field))),
            reverse=query.sort_order == "desc",
        )
        return matches[query.offset : query.offset + query.limit], len(matches)

    async def count_appointments(self, *, scheduled_from: dt.date | None = None) -> int:
        return sum(
            1
            for a in self.appointments.values()
            if scheduled_from is None or a.scheduled_date >= scheduled_from
        )

    async def count_appointments_by(self, field: GroupField) -> dict[str, int]:
        return dict(Counter(getattr(a, field).value for a in self.appointments.values()))

    async def list_reminders(self, appointment_id: str) -> list[AppointmentReminder]:
        return sorted(
            (r for r in self.reminders.values() if r.appointment_id == appointment_id),
            key=lambda r: r.scheduled_for,
        )

    async def list_due_reminders(self, now: dt.datetime) -> list[AppointmentReminder]:
        return sorted(
            (
                r
                for r in self.reminders.values()
                if r.status == ReminderStatus.PENDING and r.scheduled_for <= now
            ),
            key=lambda r: r.scheduled_for,
        )

    async def save_reminder(self, reminder: AppointmentReminder) -> AppointmentReminder:
        self._raise_write_error()
        self.reminders[reminder.reminder_id] = reminder
        return reminder

    async def close(self) -> None:
        self.closed = True

    def _raise_write_error(self) -> None:
        if self.write_error:
            raise self.write_error


def _matches(appointment: Appointment, query: AppointmentQuery) -> bool:
    checks = (
        (query.client_id, appointment.client_id),
        (query.professional_id, appointment.professional_id),
        (query.appointment_type, appointment.appointment_type),
        (query.status, appointment.status),
        (query.priority, appointment.priority),
    )
    if any(wanted is not None and wanted != actual for wanted, actual in checks):
        return False
    if query.start_date and appointment.scheduled_date < query.start_date:
        return False
    if query.end_date and appointment.scheduled_date > query.end_date:
        return False
    return True


def _sort_value(value: object) -> object:
    if value is None:
        return ""
    if isinstance(value, Enum):
        return value.value
    return value
