import datetime as dt
import math
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from agenda.scheduling.intervals import normalize_time

WallTime = Annotated[str, BeforeValidator(normalize_time)]
"""A wall-clock ``HH:MM`` string, normalized on construction."""


class AppointmentStatus(str, Enum):
    """Lifecycle states of an appointment."""

    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    WAITING = "waiting"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    RESCHEDULED = "rescheduled"

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self]

    def can_transition_to(self, target: "AppointmentStatus") -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: frozenset(
        {
            AppointmentStatus.CONFIRMED,
            AppointmentStatus.WAITING,
            AppointmentStatus.IN_PROGRESS,
            AppointmentStatus.COMPLETED,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.NO_SHOW,
            AppointmentStatus.RESCHEDULED,
        }
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {
            AppointmentStatus.WAITING,
            AppointmentStatus.IN_PROGRESS,
            AppointmentStatus.COMPLETED,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.NO_SHOW,
            AppointmentStatus.RESCHEDULED,
        }
    ),
    AppointmentStatus.WAITING: frozenset(
        {
            AppointmentStatus.IN_PROGRESS,
            AppointmentStatus.COMPLETED,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.NO_SHOW,
            AppointmentStatus.RESCHEDULED,
        }
    ),
    AppointmentStatus.IN_PROGRESS: frozenset(
        {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
    AppointmentStatus.RESCHEDULED: frozenset(),
}

# States an appointment may be rescheduled from.
RESCHEDULABLE_STATUSES: frozenset[AppointmentStatus] = frozenset(
    status for status, targets in _TRANSITIONS.items() if AppointmentStatus.RESCHEDULED in targets
)

# Appointments in these states never block a slot.
NON_BLOCKING_STATUSES: frozenset[AppointmentStatus] = frozenset(
    {AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW}
)


class AppointmentType(str, Enum):
    CONSULTATION = "consultation"
    TREATMENT = "treatment"
    PROCEDURE = "procedure"
    FOLLOW_UP = "follow_up"
    EMERGENCY = "emergency"
    MAINTENANCE = "maintenance"
    EVALUATION = "evaluation"
    OTHER = "other"


class AppointmentPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class DayOfWeek(str, Enum):
    SUNDAY = "sunday"
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"

    @classmethod
    def from_date(cls, date: dt.date) -> "DayOfWeek":
        """Map a calendar date to its day of the week (``date.weekday()`` is Monday-based)."""
        return _WEEKDAYS[date.weekday()]


_WEEKDAYS: tuple[DayOfWeek, ...] = (
    DayOfWeek.MONDAY,
    DayOfWeek.TUESDAY,
    DayOfWeek.WEDNESDAY,
    DayOfWeek.THURSDAY,
    DayOfWeek.FRIDAY,
    DayOfWeek.SATURDAY,
    DayOfWeek.SUNDAY,
)


class ReminderType(str, Enum):
    CONFIRMATION = "confirmation"
    REMINDER_24H = "reminder_24h"
    REMINDER_2H = "reminder_2h"


class ReminderStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


class NotificationChannel(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    WHATSAPP = "whatsapp"


class Client(BaseModel):
    """A client record owned by the clients module."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    client_id: str
    name: str
    phone: str | None = None
    email: str | None = None


class Professional(BaseModel):
    """A professional who can be assigned to appointments."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    professional_id: str
    name: str


class Service(BaseModel):
    """A catalog service; ``duration`` is in minutes."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    service_id: str
    name: str
    duration: int = Field(gt=0)


class ProfessionalSchedule(BaseModel):
    """A professional's recurring weekly availability window."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    professional_id: str
    day_of_week: DayOfWeek
    start_time: WallTime
    end_time: WallTime
    is_active: bool = True


class Appointment(BaseModel):
    """A scheduled occurrence of a service for a client."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    appointment_id: str
    client_id: str
    professional_id: str | None = None
    service_id: str
    scheduled_date: dt.date
    start_time: WallTime
    end_time: WallTime
    duration: int
    appointment_type: AppointmentType
    priority: AppointmentPriority = AppointmentPriority.NORMAL
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    notes: str | None = None
    cancellation_reason: str | None = None
    rescheduled_from: str | None = None
    created_by: str
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None

    @property
    def starts_at(self) -> dt.datetime:
        """Naive clinic-local start of the appointment."""
        return dt.datetime.combine(self.scheduled_date, dt.time.fromisoformat(self.start_time))


class AppointmentReminder(BaseModel):
    """A notification scheduled ahead of an appointment."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    reminder_id: str
    appointment_id: str
    reminder_type: ReminderType
    scheduled_for: dt.datetime
    message: str
    channels: tuple[NotificationChannel, ...] = (
        NotificationChannel.EMAIL,
        NotificationChannel.SMS,
    )
    created_by: str
    status: ReminderStatus = ReminderStatus.PENDING
    sent_at: dt.datetime | None = None
    error: str | None = None


class AppointmentCreate(BaseModel):
    """A request to book an appointment."""

    model_config = ConfigDict(frozen=True)

    client_id: str
    service_id: str
    scheduled_date: dt.date
    start_time: WallTime
    appointment_type: AppointmentType
    professional_id: str | None = None
    priority: AppointmentPriority = AppointmentPriority.NORMAL
    notes: str | None = None
    notification_channels: tuple[NotificationChannel, ...] | None = None


class AppointmentUpdate(BaseModel):
    """A partial update; only fields explicitly set are applied."""

    model_config = ConfigDict(frozen=True)

    professional_id: str | None = None
    service_id: str | None = None
    scheduled_date: dt.date | None = None
    start_time: WallTime | None = None
    appointment_type: AppointmentType | None = None
    priority: AppointmentPriority | None = None
    status: AppointmentStatus | None = None
    notes: str | None = None
    cancellation_reason: str | None = None


SORTABLE_FIELDS: tuple[str, ...] = (
    "scheduled_date",
    "start_time",
    "status",
    "priority",
    "created_at",
    "updated_at",
)


class AppointmentQuery(BaseModel):
    """Filters, ordering and pagination for listing appointments."""

    model_config = ConfigDict(frozen=True)

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=500)
    client_id: str | None = None
    professional_id: str | None = None
    appointment_type: AppointmentType | None = None
    status: AppointmentStatus | None = None
    priority: AppointmentPriority | None = None
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    sort_by: str = "scheduled_date"
    sort_order: Literal["asc", "desc"] = "asc"

    @property
    def order_field(self) -> str:
        return self.sort_by if self.sort_by in SORTABLE_FIELDS else "scheduled_date"

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class AppointmentPage(BaseModel):
    model_config = ConfigDict(frozen=True)

    appointments: list[Appointment]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit)

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1


class SlotAvailability(BaseModel):
    """Bookable and busy slot start times for one day, ascending."""

    model_config = ConfigDict(frozen=True)

    date: dt.date
    available_slots: list[str]
    busy_slots: list[str]
    professional_id: str | None = None
    service_id: str | None = None


class AppointmentStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    by_status: dict[AppointmentStatus, int]
    by_type: dict[AppointmentType, int]
    by_priority: dict[AppointmentPriority, int]
    today: int
    this_week: int
    this_month: int

    def count(self, status: AppointmentStatus) -> int:
        return self.by_status.get(status, 0)


class DispatchFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    appointment_id: str
    error: str


class ReminderDispatchResult(BaseModel):
    """Outcome of one reminder dispatch run."""

    model_config = ConfigDict(frozen=True)

    success: bool
    total_found: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[DispatchFailure] = Field(default_factory=list)
