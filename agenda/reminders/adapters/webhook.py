from typing import Any

import httpx
from loguru import logger

from agenda.domain.exceptions import ReminderDeliveryError
from agenda.domain.models import Appointment, AppointmentReminder


class WebhookReminderSender:
    """Posts each reminder as JSON to a notification webhook.

    The receiving service owns fan-out to the reminder's channels (email, SMS,
    WhatsApp); any non-2xx response counts as a failed delivery.
    """

    def __init__(self, url: str, *, token: str = "", timeout: float = 10.0) -> None:
        self._url = url
        self._token = token or None
        self._client = httpx.AsyncClient(timeout=timeout)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    @staticmethod
    def _payload(reminder: AppointmentReminder, appointment: Appointment) -> dict[str, Any]:
        return {
            "reminder_id": reminder.reminder_id,
            "reminder_type": reminder.reminder_type.value,
            "channels": [c.value for c in reminder.channels],
            "message": reminder.message,
            "scheduled_for": reminder.scheduled_for.isoformat(),
            "appointment": {
                "appointment_id": appointment.appointment_id,
                "client_id": appointment.client_id,
                "professional_id": appointment.professional_id,
                "service_id": appointment.service_id,
                "scheduled_date": appointment.scheduled_date.isoformat(),
                "start_time": appointment.start_time,
                "end_time": appointment.end_time,
            },
        }

    async def send(self, reminder: AppointmentReminder, appointment: Appointment) -> None:
        try:
            resp = await self._client.post(
                self._url,
                headers=self._headers(),
                json=self._payload(reminder, appointment),
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ReminderDeliveryError(
                f"webhook responded {exc.response.status_code}",
                reminder_id=reminder.reminder_id,
            ) from exc
        except httpx.HTTPError as exc:
            raise ReminderDeliveryError(
                f"webhook request failed: {exc}", reminder_id=reminder.reminder_id
            ) from exc
        logger.debug("Reminder {} delivered to webhook", reminder.reminder_id)

    async def close(self) -> None:
        await self._client.aclose()
        logger.info("Reminder webhook client closed")
