from typing import Protocol

from agenda.domain.models import Appointment, AppointmentReminder


class ReminderSenderProtocol(Protocol):
    """Delivers a reminder over its notification channels."""

    async def send(self, reminder: AppointmentReminder, appointment: Appointment) -> None:
        """Deliver ``reminder``; raise ReminderDeliveryError on failure."""
        ...

    async def close(self) -> None:
        """Release resources."""
        ...
