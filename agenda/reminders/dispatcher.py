import datetime as dt

from loguru import logger

from agenda.clock import Clock
from agenda.domain.exceptions import ReminderDeliveryError
from agenda.domain.models import (
    Appointment,
    AppointmentReminder,
    AppointmentStatus,
    DispatchFailure,
    ReminderDispatchResult,
    ReminderStatus,
)
from agenda.reminders.ports import ReminderSenderProtocol
from agenda.scheduling.ports import AppointmentStoreProtocol

# Appointments in these states no longer need reminding.
INACTIVE_STATUSES = frozenset(
    {
        AppointmentStatus.CANCELLED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.NO_SHOW,
        AppointmentStatus.RESCHEDULED,
    }
)


class ReminderDispatcher:
    """Sends every due, pending reminder and records the outcome on each one.

    A reminder is skipped (not sent) when its appointment is gone, no longer
    active, or has already started. ``dispatch_due`` never raises; failures are
    reported in the returned ReminderDispatchResult.
    """

    def __init__(
        self,
        store: AppointmentStoreProtocol,
        sender: ReminderSenderProtocol,
        *,
        clock: Clock = dt.datetime.now,
    ) -> None:
        self._store = store
        self._sender = sender
        self._clock = clock

    async def dispatch_due(self, now: dt.datetime | None = None) -> ReminderDispatchResult:
        now = now or self._clock()
        try:
            due = await self._store.list_due_reminders(now)
        except Exception as exc:
            logger.exception("Could not load due reminders")
            return ReminderDispatchResult(
                success=False,
                errors=[DispatchFailure(appointment_id="system", error=str(exc))],
            )

        sent = failed = skipped = 0
        errors: list[DispatchFailure] = []
        for reminder in due:
            try:
                outcome = await self._dispatch_one(reminder, now)
            except Exception as exc:
                logger.exception("Reminder {} could not be processed", reminder.reminder_id)
                failed += 1
                errors.append(
                    DispatchFailure(appointment_id=reminder.appointment_id, error=str(exc))
                )
                continue

            if outcome.status == ReminderStatus.SENT:
                sent += 1
            elif outcome.status == ReminderStatus.SKIPPED:
                skipped += 1
            else:
                failed += 1
                errors.append(
                    DispatchFailure(
                        appointment_id=reminder.appointment_id, error=outcome.error or ""
                    )
                )

        if due:
            logger.info(
                "Reminder dispatch: {} due, {} sent, {} failed, {} skipped",
                len(due),
                sent,
                failed,
                skipped,
            )
        return ReminderDispatchResult(
            success=True,
            total_found=len(due),
            sent=sent,
            failed=failed,
            skipped=skipped,
            errors=errors,
        )

    async def _dispatch_one(
        self, reminder: AppointmentReminder, now: dt.datetime
    ) -> AppointmentReminder:
        appointment = await self._store.get_appointment(reminder.appointment_id)
        reason = _skip_reason(appointment, now)
        if reason:
            logger.debug("Skipping reminder {}: {}", reminder.reminder_id, reason)
            return await self._store.save_reminder(
                reminder.model_copy(update={"status": ReminderStatus.SKIPPED, "error": reason})
            )

        try:
            await self._sender.send(reminder, appointment)
        except ReminderDeliveryError as exc:
            logger.warning("Reminder {} failed: {}", reminder.reminder_id, exc)
            return await self._store.save_reminder(
                reminder.model_copy(update={"status": ReminderStatus.FAILED, "error": str(exc)})
            )

        return await self._store.save_reminder(
            reminder.model_copy(update={"status": ReminderStatus.SENT, "sent_at": now})
        )


def _skip_reason(appointment: Appointment | None, now: dt.datetime) -> str | None:
    if appointment is None:
        return "appointment no longer exists"
    if appointment.status in INACTIVE_STATUSES:
        return f"appointment is {appointment.status.value}"
    if appointment.starts_at <= now:
        return "appointment already started"
    return None
