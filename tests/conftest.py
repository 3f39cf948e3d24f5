import datetime as dt
from collections.abc import Callable
from typing import Any

import pytest

from agenda.domain.models import (
    AppointmentCreate,
    AppointmentType,
    Client,
    DayOfWeek,
    Professional,
    ProfessionalSchedule,
    Service,
)
from agenda.reminders.adapters.fake import FakeReminderSender
from agenda.scheduling.adapters.memory import InMemoryAppointmentStore
from agenda.scheduling.service import SchedulingService

# Monday 2024-01-08; the fixed clock reads the Wednesday before.
MONDAY = dt.date(2024, 1, 8)
NOW = dt.datetime(2024, 1, 3, 10, 0)

CLIENT = Client(client_id="c1", name="Ana Souza", phone="+5511999990000")
PROFESSIONAL = Professional(professional_id="p1", name="Dr. Lima")
CONSULTATION = Service(service_id="s1", name="Consultation", duration=30)
LONG_TREATMENT = Service(service_id="s2", name="Long treatment", duration=90)
MONDAY_SHIFT = ProfessionalSchedule(
    professional_id="p1", day_of_week=DayOfWeek.MONDAY, start_time="08:00", end_time="12:00"
)


@pytest.fixture
def store() -> InMemoryAppointmentStore:
    store = InMemoryAppointmentStore()
    store.add_client(CLIENT)
    store.add_professional(PROFESSIONAL)
    store.add_service(CONSULTATION)
    store.add_service(LONG_TREATMENT)
    store.add_schedule(MONDAY_SHIFT)
    return store


@pytest.fixture
def service(store: InMemoryAppointmentStore) -> SchedulingService:
    return SchedulingService(store, clock=lambda: NOW, default_actor_id="front-desk")


@pytest.fixture
def sender() -> FakeReminderSender:
    return FakeReminderSender()


@pytest.fixture
def make_request() -> Callable[..., AppointmentCreate]:
    """Build a booking for c1 with p1 on MONDAY at 09:00; override any field."""

    def _make(**overrides: Any) -> AppointmentCreate:
        fields: dict[str, Any] = {
            "client_id": "c1",
            "service_id": "s1",
            "professional_id": "p1",
            "scheduled_date": MONDAY,
            "start_time": "09:00",
            "appointment_type": AppointmentType.CONSULTATION,
        }
        fields.update(overrides)
        return AppointmentCreate(**fields)

    return _make
