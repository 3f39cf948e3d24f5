import datetime as dt
from abc import ABC, abstractmethod
from collections.abc import Collection, Sequence
from typing import Literal, Protocol

from agenda.domain.models import (
    Appointment,
    AppointmentCreate,
    AppointmentPage,
    AppointmentQuery,
    AppointmentReminder,
    AppointmentStats,
    AppointmentStatus,
    AppointmentUpdate,
    Client,
    DayOfWeek,
    Professional,
    ProfessionalSchedule,
    Service,
    SlotAvailability,
)

GroupField = Literal["status", "appointment_type", "priority"]


class AbstractSchedulingService(ABC):
    """Abstract base class for appointment scheduling operations."""

    @abstractmethod
    async def create(
        self, request: AppointmentCreate, acting_user_id: str | None = None
    ) -> Appointment:
        """Book a new appointment.

        Args:
            request: The appointment details.
            acting_user_id: The user performing the booking. Falls back to the
                configured default actor when omitted.

        Returns:
            The persisted appointment, in ``SCHEDULED`` state.

        Raises:
            NotFoundError: If the client, service or professional is unknown.
            ConflictError: If the requested slot is not available.
            BadRequestError: If no acting user can be resolved or the
                appointment would cross midnight.
        """

    @abstractmethod
    async def get(self, appointment_id: str) -> Appointment:
        """Fetch one appointment.

        Raises:
            NotFoundError: If the appointment does not exist.
        """

    @abstractmethod
    async def list_appointments(self, query: AppointmentQuery) -> AppointmentPage:
        """List appointments matching ``query``, one page at a time."""

    @abstractmethod
    async def update(self, appointment_id: str, changes: AppointmentUpdate) -> Appointment:
        """Apply a partial update.

        Date, time or service changes recompute ``end_time`` and ``duration``.
        Availability is not re-checked on update.

        Raises:
            NotFoundError: If the appointment, or a newly referenced
                professional or service, does not exist.
            BadRequestError: If a status change is not a valid transition.
        """

    @abstractmethod
    async def change_status(
        self, appointment_id: str, status: AppointmentStatus
    ) -> Appointment:
        """Move an appointment to ``status`` following the lifecycle rules.

        Raises:
            NotFoundError: If the appointment does not exist.
            BadRequestError: If the transition is not allowed.
        """

    @abstractmethod
    async def cancel(self, appointment_id: str, reason: str) -> Appointment:
        """Cancel an appointment, keeping the record.

        Raises:
            NotFoundError: If the appointment does not exist.
            BadRequestError: If the appointment is already cancelled or closed.
        """

    @abstractmethod
    async def reschedule(
        self, appointment_id: str, new_date: dt.date, new_time: str
    ) -> Appointment:
        """Move an appointment to a new slot.

        The original is closed as ``RESCHEDULED`` and a new appointment,
        linked through ``rescheduled_from``, takes the new slot.

        Returns:
            The new appointment.

        Raises:
            NotFoundError: If the appointment does not exist.
            BadRequestError: If the appointment is cancelled or closed.
            ConflictError: If the new slot is not available.
        """

    @abstractmethod
    async def remove(self, appointment_id: str) -> None:
        """Hard-delete an appointment (administrative correction).

        Raises:
            NotFoundError: If the appointment does not exist.
        """

    @abstractmethod
    async def is_available(
        self,
        date: dt.date,
        start_time: str,
        end_time: str,
        professional_id: str | None = None,
        service_id: str | None = None,
        exclude_appointment_id: str | None = None,
    ) -> bool:
        """Check whether ``[start_time, end_time)`` on ``date`` can be booked."""

    @abstractmethod
    async def get_available_slots(
        self,
        date: dt.date,
        professional_id: str | None = None,
        service_id: str | None = None,
    ) -> SlotAvailability:
        """Classify each candidate slot of the working day as available or busy."""

    @abstractmethod
    async def stats(self) -> AppointmentStats:
        """Aggregate appointment counts by status, type, priority and period."""

    @abstractmethod
    async def reminders(self, appointment_id: str) -> list[AppointmentReminder]:
        """Return the reminders of an appointment ordered by due time.

        Raises:
            NotFoundError: If the appointment does not exist.
        """

    @abstractmethod
    async def close(self) -> None:
        """Release resources held by this service."""


class AppointmentStoreProtocol(Protocol):
    """Persistence interface for the scheduling core."""

    async def get_client(self, client_id: str) -> Client | None:
        """Look up a client by id."""
        ...

    async def get_professional(self, professional_id: str) -> Professional | None:
        """Look up a professional by id."""
        ...

    async def get_service(self, service_id: str) -> Service | None:
        """Look up a catalog service by id."""
        ...

    async def get_active_schedule(
        self, professional_id: str, day_of_week: DayOfWeek
    ) -> ProfessionalSchedule | None:
        """Return the professional's active schedule for ``day_of_week``, if any."""
        ...

    async def get_appointment(self, appointment_id: str) -> Appointment | None:
        """Look up an appointment by id."""
        ...

    async def find_appointments_on(
        self,
        date: dt.date,
        *,
        professional_id: str | None = None,
        exclude_statuses: Collection[AppointmentStatus] = (),
        exclude_appointment_id: str | None = None,
    ) -> list[Appointment]:
        """Return appointments on ``date`` ordered by start time."""
        ...

    async def add_appointment(
        self, appointment: Appointment, reminders: Sequence[AppointmentReminder] = ()
    ) -> Appointment:
        """Insert an appointment together with its reminders."""
        ...

    async def save_appointment(self, appointment: Appointment) -> Appointment:
        """Overwrite an existing appointment."""
        ...

    async def replace_appointment(
        self,
        original: Appointment,
        replacement: Appointment,
        reminders: Sequence[AppointmentReminder] = (),
    ) -> Appointment:
        """Atomically save ``original`` and insert ``replacement`` with its reminders.

        Raises:
            ConflictError: If the stored original is no longer in a state that
                can be rescheduled (a concurrent cancel or reschedule won).
        """
        ...

    async def delete_appointment(self, appointment_id: str) -> bool:
        """Delete an appointment and its reminders. Returns False if absent."""
        ...

    async def list_appointments(self, query: AppointmentQuery) -> tuple[list[Appointment], int]:
        """Return one page of matching appointments and the total match count."""
        ...

    async def count_appointments(self, *, scheduled_from: dt.date | None = None) -> int:
        """Count appointments, optionally only those dated on/after ``scheduled_from``."""
        ...

    async def count_appointments_by(self, field: GroupField) -> dict[str, int]:
        """Count appointments grouped by an enum column, keyed by raw value."""
        ...

    async def list_reminders(self, appointment_id: str) -> list[AppointmentReminder]:
        """Return an appointment's reminders ordered by ``scheduled_for``."""
        ...

    async def list_due_reminders(self, now: dt.datetime) -> list[AppointmentReminder]:
        """Return pending reminders with ``scheduled_for <= now``."""
        ...

    async def save_reminder(self, reminder: AppointmentReminder) -> AppointmentReminder:
        """Overwrite an existing reminder."""
        ...

    async def close(self) -> None:
        """Release resources."""
        ...
