from loguru import logger

from agenda.domain.models import Appointment, AppointmentReminder


class LogReminderSender:
    """Writes reminders to the log instead of delivering them."""

    async def send(self, reminder: AppointmentReminder, appointment: Appointment) -> None:
        logger.info(
            "Reminder {} ({}) for appointment {} via {}: {}",
            reminder.reminder_id,
            reminder.reminder_type.value,
            appointment.appointment_id,
            ",".join(c.value for c in reminder.channels),
            reminder.message,
        )

    async def close(self) -> None:
        pass
