from agenda.domain.models import Appointment, AppointmentReminder


class FakeReminderSender:
    """In-memory test double for the ReminderSenderProtocol protocol.

    Set ``send_error`` to make every send raise. Inspect ``sent`` to see which
    reminders were delivered, in order.
    """

    def __init__(self) -> None:
        self.sent: list[tuple[AppointmentReminder, Appointment]] = []
        self.closed: bool = False

        self.send_error: Exception | None = None

    async def send(self, reminder: AppointmentReminder, appointment: Appointment) -> None:
        if self.send_error:
            raise self.send_error
        self.sent.append((reminder, appointment))

    async def close(self) -> None:
        self.closed = True
