"""Behaviour every AppointmentStoreProtocol implementation must share.

Each test runs against the in-memory store and the SQL store (SQLite file
database through aiosqlite).
"""

import datetime as dt
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio

from agenda.domain.exceptions import ConflictError
from agenda.domain.models import (
    Appointment,
    AppointmentPriority,
    AppointmentQuery,
    AppointmentReminder,
    AppointmentStatus,
    AppointmentType,
    DayOfWeek,
    NotificationChannel,
    ReminderStatus,
    ReminderType,
)
from agenda.scheduling.adapters.memory import InMemoryAppointmentStore
from agenda.scheduling.adapters.sql import SqlAppointmentStore
from agenda.scheduling.ports import AppointmentStoreProtocol

from conftest import CLIENT, CONSULTATION, MONDAY, MONDAY_SHIFT, PROFESSIONAL


@pytest_asyncio.fixture(params=["memory", "sql"])
async def any_store(
    request: pytest.FixtureRequest, tmp_path: Path
) -> AsyncGenerator[AppointmentStoreProtocol, None]:
    if request.param == "memory":
        memory = InMemoryAppointmentStore()
        memory.add_client(CLIENT)
        memory.add_professional(PROFESSIONAL)
        memory.add_service(CONSULTATION)
        memory.add_schedule(MONDAY_SHIFT)
        yield memory
        return

    sql = SqlAppointmentStore(f"sqlite+aiosqlite:///{tmp_path / 'agenda.db'}")
    await sql.create_schema()
    await sql.add_client(CLIENT)
    await sql.add_professional(PROFESSIONAL)
    await sql.add_service(CONSULTATION)
    await sql.add_schedule(MONDAY_SHIFT)
    yield sql
    await sql.close()


def _appointment(appointment_id: str, start: str, **overrides: object) -> Appointment:
    fields: dict[str, object] = {
        "appointment_id": appointment_id,
        "client_id": "c1",
        "professional_id": "p1",
        "service_id": "s1",
        "scheduled_date": MONDAY,
        "start_time": start,
        "end_time": f"{int(start[:2]):02d}:30",
        "duration": 30,
        "appointment_type": AppointmentType.CONSULTATION,
        "created_by": "front-desk",
        "created_at": dt.datetime(2024, 1, 3, 10, 0),
        "updated_at": dt.datetime(2024, 1, 3, 10, 0),
    }
    fields.update(overrides)
    return Appointment.model_validate(fields)


def _reminder(reminder_id: str, appointment_id: str, due: dt.datetime) -> AppointmentReminder:
    return AppointmentReminder(
        reminder_id=reminder_id,
        appointment_id=appointment_id,
        reminder_type=ReminderType.REMINDER_2H,
        scheduled_for=due,
        message="see you soon",
        channels=(NotificationChannel.SMS,),
        created_by="front-desk",
    )


class TestReferenceLookups:
    @pytest.mark.asyncio
    async def test_lookups(self, any_store: AppointmentStoreProtocol) -> None:
        assert await any_store.get_client("c1") == CLIENT
        assert await any_store.get_professional("p1") == PROFESSIONAL
        assert await any_store.get_service("s1") == CONSULTATION
        assert await any_store.get_client("ghost") is None

    @pytest.mark.asyncio
    async def test_active_schedule(self, any_store: AppointmentStoreProtocol) -> None:
        assert await any_store.get_active_schedule("p1", DayOfWeek.MONDAY) == MONDAY_SHIFT
        assert await any_store.get_active_schedule("p1", DayOfWeek.TUESDAY) is None


class TestAppointments:
    @pytest.mark.asyncio
    async def test_add_and_get_round_trip(self, any_store: AppointmentStoreProtocol) -> None:
        appointment = _appointment("a1", "09:00", notes="first visit")

        await any_store.add_appointment(appointment)

        assert await any_store.get_appointment("a1") == appointment
        assert await any_store.get_appointment("ghost") is None

    @pytest.mark.asyncio
    async def test_find_on_date_excludes(self, any_store: AppointmentStoreProtocol) -> None:
        await any_store.add_appointment(_appointment("a1", "10:00"))
        await any_store.add_appointment(_appointment("a2", "09:00"))
        await any_store.add_appointment(
            _appointment("a3", "11:00", status=AppointmentStatus.CANCELLED)
        )
        await any_store.add_appointment(_appointment("a4", "08:00", professional_id="p2"))

        found = await any_store.find_appointments_on(
            MONDAY,
            professional_id="p1",
            exclude_statuses={AppointmentStatus.CANCELLED},
            exclude_appointment_id="a1",
        )

        assert [a.appointment_id for a in found] == ["a2"]
        assert len(await any_store.find_appointments_on(MONDAY)) == 4

    @pytest.mark.asyncio
    async def test_save_overwrites(self, any_store: AppointmentStoreProtocol) -> None:
        appointment = _appointment("a1", "09:00")
        await any_store.add_appointment(appointment)

        await any_store.save_appointment(
            appointment.model_copy(update={"status": AppointmentStatus.CONFIRMED})
        )

        saved = await any_store.get_appointment("a1")
        assert saved is not None
        assert saved.status == AppointmentStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_replace_writes_both_rows(self, any_store: AppointmentStoreProtocol) -> None:
        original = _appointment("a1", "09:00")
        await any_store.add_appointment(original)
        replacement = _appointment("a2", "10:00", rescheduled_from="a1")

        await any_store.replace_appointment(
            original.model_copy(update={"status": AppointmentStatus.RESCHEDULED}),
            replacement,
            [_reminder("r1", "a2", dt.datetime(2024, 1, 8, 8, 0))],
        )

        flipped = await any_store.get_appointment("a1")
        assert flipped is not None and flipped.status == AppointmentStatus.RESCHEDULED
        assert await any_store.get_appointment("a2") == replacement
        assert [r.reminder_id for r in await any_store.list_reminders("a2")] == ["r1"]

    @pytest.mark.asyncio
    async def test_replace_refuses_a_settled_original(
        self, any_store: AppointmentStoreProtocol
    ) -> None:
        original = _appointment("a1", "09:00", status=AppointmentStatus.CANCELLED)
        await any_store.add_appointment(original)

        with pytest.raises(ConflictError, match="changed before it could be rescheduled"):
            await any_store.replace_appointment(
                original.model_copy(update={"status": AppointmentStatus.RESCHEDULED}),
                _appointment("a2", "10:00", rescheduled_from="a1"),
                [_reminder("r1", "a2", dt.datetime(2024, 1, 8, 8, 0))],
            )

        assert await any_store.get_appointment("a1") == original
        assert await any_store.get_appointment("a2") is None
        assert await any_store.list_reminders("a2") == []

    @pytest.mark.asyncio
    async def test_delete_removes_reminders(self, any_store: AppointmentStoreProtocol) -> None:
        await any_store.add_appointment(
            _appointment("a1", "09:00"), [_reminder("r1", "a1", dt.datetime(2024, 1, 8, 7, 0))]
        )

        assert await any_store.delete_appointment("a1") is True
        assert await any_store.get_appointment("a1") is None
        assert await any_store.list_reminders("a1") == []
        assert await any_store.delete_appointment("a1") is False


class TestListing:
    @pytest.mark.asyncio
    async def test_filters_sorts_and_pages(self, any_store: AppointmentStoreProtocol) -> None:
        for i, start in enumerate(("11:00", "08:00", "10:00", "09:00")):
            await any_store.add_appointment(_appointment(f"a{i}", start))
        await any_store.add_appointment(
            _appointment("other-day", "08:00", scheduled_date=MONDAY + dt.timedelta(days=7))
        )

        page, total = await any_store.list_appointments(
            AppointmentQuery(
                start_date=MONDAY,
                end_date=MONDAY,
                sort_by="start_time",
                sort_order="desc",
                limit=2,
                page=1,
            )
        )

        assert total == 4
        assert [a.start_time for a in page] == ["11:00", "10:00"]

    @pytest.mark.asyncio
    async def test_enum_filters(self, any_store: AppointmentStoreProtocol) -> None:
        await any_store.add_appointment(
            _appointment("a1", "09:00", priority=AppointmentPriority.URGENT)
        )
        await any_store.add_appointment(_appointment("a2", "10:00"))

        page, total = await any_store.list_appointments(
            AppointmentQuery(priority=AppointmentPriority.URGENT, client_id="c1")
        )

        assert total == 1
        assert page[0].appointment_id == "a1"

    @pytest.mark.asyncio
    async def test_counts(self, any_store: AppointmentStoreProtocol) -> None:
        await any_store.add_appointment(_appointment("a1", "09:00"))
        await any_store.add_appointment(
            _appointment("a2", "10:00", status=AppointmentStatus.CANCELLED)
        )
        await any_store.add_appointment(
            _appointment("a3", "08:00", scheduled_date=MONDAY - dt.timedelta(days=7))
        )

        assert await any_store.count_appointments() == 3
        assert await any_store.count_appointments(scheduled_from=MONDAY) == 2
        assert await any_store.count_appointments_by("status") == {"scheduled": 2, "cancelled": 1}
        assert await any_store.count_appointments_by("appointment_type") == {"consultation": 3}


class TestReminders:
    @pytest.mark.asyncio
    async def test_due_reminders_are_pending_and_past(
        self, any_store: AppointmentStoreProtocol
    ) -> None:
        now = dt.datetime(2024, 1, 8, 7, 0)
        await any_store.add_appointment(
            _appointment("a1", "09:00"),
            [
                _reminder("late", "a1", now - dt.timedelta(hours=1)),
                _reminder("due", "a1", now),
                _reminder("future", "a1", now + dt.timedelta(minutes=1)),
            ],
        )
        sent = _reminder("sent", "a1", now - dt.timedelta(hours=2)).model_copy(
            update={"status": ReminderStatus.SENT}
        )
        await any_store.save_reminder(sent)

        due = await any_store.list_due_reminders(now)

        assert [r.reminder_id for r in due] == ["late", "due"]
        assert due[0].channels == (NotificationChannel.SMS,)

    @pytest.mark.asyncio
    async def test_save_reminder_updates_status(
        self, any_store: AppointmentStoreProtocol
    ) -> None:
        reminder = _reminder("r1", "a1", dt.datetime(2024, 1, 8, 7, 0))
        await any_store.add_appointment(_appointment("a1", "09:00"), [reminder])
        sent_at = dt.datetime(2024, 1, 8, 7, 5)

        await any_store.save_reminder(
            reminder.model_copy(update={"status": ReminderStatus.SENT, "sent_at": sent_at})
        )

        (stored,) = await any_store.list_reminders("a1")
        assert stored.status == ReminderStatus.SENT
        assert stored.sent_at == sent_at
