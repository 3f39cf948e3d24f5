import datetime as dt
import uuid
from collections.abc import Sequence

from loguru import logger

from agenda.clock import Clock, start_of_week
from agenda.domain.exceptions import BadRequestError, ConflictError, NotFoundError
from agenda.domain.models import (
    Appointment,
    AppointmentCreate,
    AppointmentPage,
    AppointmentPriority,
    AppointmentQuery,
    AppointmentReminder,
    AppointmentStats,
    AppointmentStatus,
    AppointmentType,
    AppointmentUpdate,
    NotificationChannel,
    Service,
    SlotAvailability,
)
from agenda.reminders.builder import DEFAULT_CHANNELS, build_automatic_reminders
from agenda.scheduling.availability import AvailabilityChecker
from agenda.scheduling.intervals import compute_end_time, is_forward, normalize_time
from agenda.scheduling.locks import BookingLocks
from agenda.scheduling.ports import AbstractSchedulingService, AppointmentStoreProtocol
from agenda.scheduling.slots import SlotGenerator

RESCHEDULED_REASON = "Rescheduled to a new time"

_NON_NULLABLE_FIELDS = (
    "service_id",
    "scheduled_date",
    "start_time",
    "appointment_type",
    "priority",
    "status",
)


class SchedulingService(AbstractSchedulingService):
    """Appointment lifecycle on top of an AppointmentStoreProtocol.

    Create and reschedule run the availability check and the write under a
    per-(professional, date) lock. Every read-modify-write of an existing
    appointment also holds a per-appointment lock and re-reads the record
    inside it. Update deliberately skips the availability check.
    """

    def __init__(
        self,
        store: AppointmentStoreProtocol,
        *,
        checker: AvailabilityChecker | None = None,
        slots: SlotGenerator | None = None,
        locks: BookingLocks | None = None,
        clock: Clock = dt.datetime.now,
        default_actor_id: str | None = None,
        default_channels: Sequence[NotificationChannel] = DEFAULT_CHANNELS,
    ) -> None:
        self._store = store
        self._checker = checker or AvailabilityChecker(store)
        self._slots = slots or SlotGenerator(store, self._checker)
        self._locks = locks or BookingLocks()
        self._clock = clock
        self._default_actor_id = default_actor_id
        self._default_channels = tuple(default_channels)

    async def create(
        self, request: AppointmentCreate, acting_user_id: str | None = None
    ) -> Appointment:
        """Book an appointment with its automatic reminders."""
        created_by = acting_user_id or self._default_actor_id
        if not created_by:
            raise BadRequestError("No acting user supplied for the booking")

        if await self._store.get_client(request.client_id) is None:
            raise NotFoundError("Client", request.client_id)
        service = await self._require_service(request.service_id)
        if request.professional_id is not None:
            await self._require_professional(request.professional_id)

        end_time = self._end_time(request.start_time, service)

        logger.info(
            "Booking request: date={}, start={}, end={}, professional={}",
            request.scheduled_date,
            request.start_time,
            end_time,
            request.professional_id,
        )

        async with self._locks.hold(request.professional_id, request.scheduled_date):
            available = await self._checker.is_available(
                request.scheduled_date,
                request.start_time,
                end_time,
                request.professional_id,
                request.service_id,
            )
            if not available:
                logger.warning(
                    "Slot unavailable: date={}, start={}",
                    request.scheduled_date,
                    request.start_time,
                )
                raise ConflictError("Requested time slot is not available")

            now = self._clock()
            appointment = Appointment(
                appointment_id=uuid.uuid4().hex,
                client_id=request.client_id,
                professional_id=request.professional_id,
                service_id=request.service_id,
                scheduled_date=request.scheduled_date,
                start_time=request.start_time,
                end_time=end_time,
                duration=service.duration,
                appointment_type=request.appointment_type,
                priority=request.priority,
                notes=request.notes,
                created_by=created_by,
                created_at=now,
                updated_at=now,
            )
            reminders = build_automatic_reminders(
                appointment,
                service,
                created_by=created_by,
                channels=request.notification_channels or self._default_channels,
            )
            appointment = await self._store.add_appointment(appointment, reminders)

        logger.info("Appointment created: id={}", appointment.appointment_id)
        return appointment

    async def get(self, appointment_id: str) -> Appointment:
        """Fetch one appointment or raise NotFoundError."""
        appointment = await self._store.get_appointment(appointment_id)
        if appointment is None:
            raise NotFoundError("Appointment", appointment_id)
        return appointment

    async def list_appointments(self, query: AppointmentQuery) -> AppointmentPage:
        """Return one page of appointments matching the query."""
        appointments, total = await self._store.list_appointments(query)
        return AppointmentPage(
            appointments=appointments, total=total, page=query.page, limit=query.limit
        )

    async def update(self, appointment_id: str, changes: AppointmentUpdate) -> Appointment:
        """Apply the fields set on ``changes``; availability is not re-checked."""
        async with self._locks.hold_appointment(appointment_id):
            existing = await self.get(appointment_id)
            fields = changes.model_fields_set

            if "professional_id" in fields and changes.professional_id is not None:
                await self._require_professional(changes.professional_id)
            new_service: Service | None = None
            if "service_id" in fields and changes.service_id is not None:
                new_service = await self._require_service(changes.service_id)

            if "status" in fields and changes.status is not None:
                self._check_transition(existing, changes.status, via_update=True)

            updates = {field: getattr(changes, field) for field in fields}
            for required in _NON_NULLABLE_FIELDS:
                if required in updates and updates[required] is None:
                    del updates[required]

            if updates.keys() & {"scheduled_date", "start_time", "service_id"}:
                service = new_service or await self._require_service(existing.service_id)
                start_time = updates.get("start_time", existing.start_time)
                updates["end_time"] = self._end_time(start_time, service)
                updates["duration"] = service.duration
                logger.debug("Availability is not re-checked on update: id={}", appointment_id)

            updated = existing.model_copy(update={**updates, "updated_at": self._clock()})
            # model_copy skips validation; round-trip so WallTime fields are normalized.
            updated = Appointment.model_validate(updated.model_dump())
            updated = await self._store.save_appointment(updated)
        logger.info("Appointment updated: id={}, fields={}", appointment_id, sorted(fields))
        return updated

    async def change_status(
        self, appointment_id: str, status: AppointmentStatus
    ) -> Appointment:
        """Move an appointment along the state machine."""
        async with self._locks.hold_appointment(appointment_id):
            existing = await self.get(appointment_id)
            if existing.status == status:
                return existing
            self._check_transition(existing, status, via_update=True)
            updated = await self._store.save_appointment(
                existing.model_copy(update={"status": status, "updated_at": self._clock()})
            )
        logger.info(
            "Appointment {} moved {} -> {}", appointment_id, existing.status.value, status.value
        )
        return updated

    async def cancel(self, appointment_id: str, reason: str) -> Appointment:
        """Cancel an appointment that has not reached a final state."""
        async with self._locks.hold_appointment(appointment_id):
            existing = await self.get(appointment_id)
            if existing.status == AppointmentStatus.CANCELLED:
                raise BadRequestError("Appointment is already cancelled")
            if existing.status.is_terminal:
                raise BadRequestError(
                    f"Cannot cancel an appointment that is {existing.status.value}"
                )

            cancelled = await self._store.save_appointment(
                existing.model_copy(
                    update={
                        "status": AppointmentStatus.CANCELLED,
                        "cancellation_reason": reason,
                        "updated_at": self._clock(),
                    }
                )
            )
        logger.info("Appointment cancelled: id={}", appointment_id)
        return cancelled

    async def reschedule(
        self, appointment_id: str, new_date: dt.date, new_time: str
    ) -> Appointment:
        """Move an appointment to a new slot, keeping the original as RESCHEDULED."""
        new_time = normalize_time(new_time)

        async with self._locks.hold_appointment(appointment_id):
            existing = await self.get(appointment_id)
            if existing.status == AppointmentStatus.CANCELLED:
                raise BadRequestError("Cannot reschedule a cancelled appointment")
            if not existing.status.can_transition_to(AppointmentStatus.RESCHEDULED):
                raise BadRequestError(
                    f"Cannot reschedule an appointment that is {existing.status.value}"
                )

            service = await self._require_service(existing.service_id)
            end_time = self._end_time(new_time, service)
            channels = await self._booked_channels(appointment_id)

            async with self._locks.hold(existing.professional_id, new_date):
                available = await self._checker.is_available(
                    new_date,
                    new_time,
                    end_time,
                    existing.professional_id,
                    existing.service_id,
                    exclude_appointment_id=appointment_id,
                )
                if not available:
                    logger.warning("New slot unavailable for appointment {}", appointment_id)
                    raise ConflictError(
                        "New time slot is not available", appointment_id=appointment_id
                    )

                now = self._clock()
                replacement = Appointment(
                    appointment_id=uuid.uuid4().hex,
                    client_id=existing.client_id,
                    professional_id=existing.professional_id,
                    service_id=existing.service_id,
                    scheduled_date=new_date,
                    start_time=new_time,
                    end_time=end_time,
                    duration=service.duration,
                    appointment_type=existing.appointment_type,
                    priority=existing.priority,
                    notes=existing.notes,
                    rescheduled_from=existing.appointment_id,
                    created_by=existing.created_by,
                    created_at=now,
                    updated_at=now,
                )
                original = existing.model_copy(
                    update={
                        "status": AppointmentStatus.RESCHEDULED,
                        "cancellation_reason": RESCHEDULED_REASON,
                        "updated_at": now,
                    }
                )
                reminders = build_automatic_reminders(
                    replacement, service, created_by=existing.created_by, channels=channels
                )
                replacement = await self._store.replace_appointment(
                    original, replacement, reminders
                )

        logger.info(
            "Appointment {} rescheduled as {}", appointment_id, replacement.appointment_id
        )
        return replacement

    async def remove(self, appointment_id: str) -> None:
        """Hard-delete an appointment and its reminders."""
        if not await self._store.delete_appointment(appointment_id):
            raise NotFoundError("Appointment", appointment_id)
        logger.info("Appointment deleted: id={}", appointment_id)

    async def is_available(
        self,
        date: dt.date,
        start_time: str,
        end_time: str,
        professional_id: str | None = None,
        service_id: str | None = None,
        exclude_appointment_id: str | None = None,
    ) -> bool:
        return await self._checker.is_available(
            date, start_time, end_time, professional_id, service_id, exclude_appointment_id
        )

    async def get_available_slots(
        self,
        date: dt.date,
        professional_id: str | None = None,
        service_id: str | None = None,
    ) -> SlotAvailability:
        return await self._slots.get_available_slots(date, professional_id, service_id)

    async def stats(self) -> AppointmentStats:
        """Count appointments by status, type, priority and recent period."""
        today = self._clock().date()
        return AppointmentStats(
            total=await self._store.count_appointments(),
            by_status={
                AppointmentStatus(k): v
                for k, v in (await self._store.count_appointments_by("status")).items()
            },
            by_type={
                AppointmentType(k): v
                for k, v in (await self._store.count_appointments_by("appointment_type")).items()
            },
            by_priority={
                AppointmentPriority(k): v
                for k, v in (await self._store.count_appointments_by("priority")).items()
            },
            today=await self._store.count_appointments(scheduled_from=today),
            this_week=await self._store.count_appointments(scheduled_from=start_of_week(today)),
            this_month=await self._store.count_appointments(scheduled_from=today.replace(day=1)),
        )

    async def reminders(self, appointment_id: str) -> list[AppointmentReminder]:
        """List the reminders of an existing appointment."""
        await self.get(appointment_id)
        return await self._store.list_reminders(appointment_id)

    async def close(self) -> None:
        await self._store.close()

    async def _require_service(self, service_id: str) -> Service:
        service = await self._store.get_service(service_id)
        if service is None:
            raise NotFoundError("Service", service_id)
        return service

    async def _booked_channels(self, appointment_id: str) -> tuple[NotificationChannel, ...]:
        previous = await self._store.list_reminders(appointment_id)
        return previous[0].channels if previous else self._default_channels

    async def _require_professional(self, professional_id: str) -> None:
        if await self._store.get_professional(professional_id) is None:
            raise NotFoundError("Professional", professional_id)

    @staticmethod
    def _end_time(start_time: str, service: Service) -> str:
        end_time = compute_end_time(start_time, service.duration)
        if not is_forward(start_time, end_time):
            raise BadRequestError(
                f"Appointment starting at {start_time} for {service.duration} minutes "
                "would cross midnight"
            )
        return end_time

    @staticmethod
    def _check_transition(
        appointment: Appointment, target: AppointmentStatus, *, via_update: bool = False
    ) -> None:
        if via_update and target == AppointmentStatus.RESCHEDULED:
            raise BadRequestError("Use reschedule to move an appointment to a new slot")
        if appointment.status == target:
            return
        if not appointment.status.can_transition_to(target):
            raise BadRequestError(
                f"Cannot move appointment from {appointment.status.value} to {target.value}"
            )
