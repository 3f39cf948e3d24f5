import datetime as dt
import uuid
from collections.abc import Sequence

from agenda.domain.models import (
    Appointment,
    AppointmentReminder,
    NotificationChannel,
    ReminderType,
    Service,
)

DEFAULT_CHANNELS: tuple[NotificationChannel, ...] = (
    NotificationChannel.EMAIL,
    NotificationChannel.SMS,
)

REMINDER_OFFSETS: dict[ReminderType, dt.timedelta] = {
    ReminderType.CONFIRMATION: dt.timedelta(hours=24),
    ReminderType.REMINDER_24H: dt.timedelta(hours=24),
    ReminderType.REMINDER_2H: dt.timedelta(hours=2),
}

_MESSAGES: dict[ReminderType, str] = {
    ReminderType.CONFIRMATION: (
        "Confirmation: you have an appointment tomorrow at {time} for {service}."
    ),
    ReminderType.REMINDER_24H: "Reminder: your {service} appointment is tomorrow at {time}.",
    ReminderType.REMINDER_2H: "Reminder: your {service} appointment is in 2 hours ({time}).",
}


def build_reminder_message(
    reminder_type: ReminderType, appointment: Appointment, service: Service
) -> str:
    return _MESSAGES[reminder_type].format(time=appointment.start_time, service=service.name)


def build_automatic_reminders(
    appointment: Appointment,
    service: Service,
    *,
    created_by: str,
    channels: Sequence[NotificationChannel] | None = None,
) -> list[AppointmentReminder]:
    """Build the three fixed reminders for a newly booked appointment.

    Reminders are due relative to the appointment start. One that would already
    be due at booking time is still created; the dispatcher decides whether it
    is still worth sending.
    """
    return [
        AppointmentReminder(
            reminder_id=uuid.uuid4().hex,
            appointment_id=appointment.appointment_id,
            reminder_type=reminder_type,
            scheduled_for=appointment.starts_at - offset,
            message=build_reminder_message(reminder_type, appointment, service),
            channels=tuple(channels) if channels else DEFAULT_CHANNELS,
            created_by=created_by,
        )
        for reminder_type, offset in REMINDER_OFFSETS.items()
    ]
