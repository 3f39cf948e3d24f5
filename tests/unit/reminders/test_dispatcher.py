import datetime as dt

import pytest

from agenda.domain.exceptions import ReminderDeliveryError, StoreUnavailableError
from agenda.domain.models import ReminderStatus
from agenda.reminders.adapters.fake import FakeReminderSender
from agenda.reminders.dispatcher import ReminderDispatcher
from agenda.scheduling.adapters.memory import InMemoryAppointmentStore
from agenda.scheduling.service import SchedulingService

# The 09:00 Monday booking has reminders due Sunday 09:00 (x2) and Monday 07:00.
SUNDAY_NOON = dt.datetime(2024, 1, 7, 12, 0)
MONDAY_EIGHT = dt.datetime(2024, 1, 8, 8, 0)


@pytest.fixture
def dispatcher(store: InMemoryAppointmentStore, sender: FakeReminderSender) -> ReminderDispatcher:
    return ReminderDispatcher(store, sender, clock=lambda: MONDAY_EIGHT)


class TestDispatchDue:
    @pytest.mark.asyncio
    async def test_sends_only_due_reminders(
        self,
        service: SchedulingService,
        dispatcher: ReminderDispatcher,
        sender: FakeReminderSender,
        make_request,
    ) -> None:
        appointment = await service.create(make_request(start_time="09:00"))

        result = await dispatcher.dispatch_due(SUNDAY_NOON)

        assert result.success
        assert (result.total_found, result.sent, result.failed, result.skipped) == (2, 2, 0, 0)
        assert {r.reminder_id for r, _ in sender.sent} == {
            r.reminder_id
            for r in await service.reminders(appointment.appointment_id)
            if r.scheduled_for <= SUNDAY_NOON
        }

    @pytest.mark.asyncio
    async def test_marks_sent_and_never_resends(
        self,
        service: SchedulingService,
        dispatcher: ReminderDispatcher,
        sender: FakeReminderSender,
        make_request,
    ) -> None:
        appointment = await service.create(make_request(start_time="09:00"))

        first = await dispatcher.dispatch_due()
        second = await dispatcher.dispatch_due()

        assert first.sent == 3
        assert second.total_found == 0
        assert len(sender.sent) == 3
        reminders = await service.reminders(appointment.appointment_id)
        assert all(r.status == ReminderStatus.SENT for r in reminders)
        assert all(r.sent_at == MONDAY_EIGHT for r in reminders)

    @pytest.mark.asyncio
    async def test_skips_cancelled_appointment(
        self,
        service: SchedulingService,
        dispatcher: ReminderDispatcher,
        sender: FakeReminderSender,
        make_request,
    ) -> None:
        appointment = await service.create(make_request(start_time="09:00"))
        await service.cancel(appointment.appointment_id, "client asked")

        result = await dispatcher.dispatch_due()

        assert result.skipped == 3
        assert sender.sent == []
        reminders = await service.reminders(appointment.appointment_id)
        assert all(r.status == ReminderStatus.SKIPPED for r in reminders)
        assert reminders[0].error == "appointment is cancelled"

    @pytest.mark.asyncio
    async def test_skips_appointment_that_already_started(
        self,
        service: SchedulingService,
        dispatcher: ReminderDispatcher,
        sender: FakeReminderSender,
        make_request,
    ) -> None:
        await service.create(make_request(start_time="09:00"))

        result = await dispatcher.dispatch_due(dt.datetime(2024, 1, 8, 9, 30))

        assert result.skipped == 3
        assert sender.sent == []

    @pytest.mark.asyncio
    async def test_skips_orphaned_reminders(
        self,
        service: SchedulingService,
        store: InMemoryAppointmentStore,
        dispatcher: ReminderDispatcher,
        make_request,
    ) -> None:
        appointment = await service.create(make_request(start_time="09:00"))
        del store.appointments[appointment.appointment_id]

        result = await dispatcher.dispatch_due()

        assert result.skipped == 3

    @pytest.mark.asyncio
    async def test_delivery_failure_is_recorded(
        self,
        service: SchedulingService,
        dispatcher: ReminderDispatcher,
        sender: FakeReminderSender,
        make_request,
    ) -> None:
        appointment = await service.create(make_request(start_time="09:00"))
        sender.send_error = ReminderDeliveryError("webhook responded 503")

        result = await dispatcher.dispatch_due()

        assert result.success
        assert result.failed == 3
        assert result.errors[0].appointment_id == appointment.appointment_id
        assert "503" in result.errors[0].error
        reminders = await service.reminders(appointment.appointment_id)
        assert all(r.status == ReminderStatus.FAILED for r in reminders)

    @pytest.mark.asyncio
    async def test_unexpected_error_leaves_reminder_pending(
        self,
        service: SchedulingService,
        dispatcher: ReminderDispatcher,
        sender: FakeReminderSender,
        make_request,
    ) -> None:
        appointment = await service.create(make_request(start_time="09:00"))
        sender.send_error = RuntimeError("socket closed")

        result = await dispatcher.dispatch_due()

        assert result.failed == 3
        assert result.errors[0].error == "socket closed"
        reminders = await service.reminders(appointment.appointment_id)
        assert all(r.status == ReminderStatus.PENDING for r in reminders)

    @pytest.mark.asyncio
    async def test_store_failure_is_reported_not_raised(self, sender: FakeReminderSender) -> None:
        class BrokenStore(InMemoryAppointmentStore):
            async def list_due_reminders(self, now: dt.datetime) -> list:
                raise StoreUnavailableError("database is down")

        dispatcher = ReminderDispatcher(BrokenStore(), sender, clock=lambda: MONDAY_EIGHT)

        result = await dispatcher.dispatch_due()

        assert not result.success
        assert result.errors[0].appointment_id == "system"
        assert result.errors[0].error == "database is down"

    @pytest.mark.asyncio
    async def test_nothing_due(self, dispatcher: ReminderDispatcher) -> None:
        result = await dispatcher.dispatch_due()

        assert result.success
        assert result.total_found == 0
