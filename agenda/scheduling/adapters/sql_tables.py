import datetime as dt
from typing import Any

import sqlalchemy as sa
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class ClientRow(Base):
    __tablename__ = "clients"

    client_id: Mapped[str] = mapped_column(sa.String(64), primary_key=True)
    name: Mapped[str] = mapped_column(sa.String(160), nullable=False)
    phone: Mapped[str | None] = mapped_column(sa.String(32))
    email: Mapped[str | None] = mapped_column(sa.String(254))


class ProfessionalRow(Base):
    __tablename__ = "professionals"

    professional_id: Mapped[str] = mapped_column(sa.String(64), primary_key=True)
    name: Mapped[str] = mapped_column(sa.String(160), nullable=False)


class ServiceRow(Base):
    __tablename__ = "services"

    service_id: Mapped[str] = mapped_column(sa.String(64), primary_key=True)
    name: Mapped[str] = mapped_column(sa.String(160), nullable=False)
    duration: Mapped[int] = mapped_column(sa.Integer, nullable=False)


class ProfessionalScheduleRow(Base):
    __tablename__ = "professional_schedules"
    __table_args__ = (
        sa.Index("ix_professional_schedules_lookup", "professional_id", "day_of_week"),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    professional_id: Mapped[str] = mapped_column(
        sa.String(64), sa.ForeignKey("professionals.professional_id", ondelete="CASCADE")
    )
    day_of_week: Mapped[str] = mapped_column(sa.String(16), nullable=False)
    start_time: Mapped[str] = mapped_column(sa.String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(sa.String(5), nullable=False)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)


class AppointmentRow(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        sa.Index("ix_appointments_date_professional", "scheduled_date", "professional_id"),
        sa.Index("ix_appointments_client_id", "client_id"),
    )

    appointment_id: Mapped[str] = mapped_column(sa.String(64), primary_key=True)
    client_id: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    professional_id: Mapped[str | None] = mapped_column(sa.String(64))
    service_id: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    scheduled_date: Mapped[dt.date] = mapped_column(sa.Date, nullable=False)
    start_time: Mapped[str] = mapped_column(sa.String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(sa.String(5), nullable=False)
    duration: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    appointment_type: Mapped[str] = mapped_column(sa.String(32), nullable=False)
    priority: Mapped[str] = mapped_column(sa.String(16), nullable=False, default="normal")
    status: Mapped[str] = mapped_column(sa.String(16), nullable=False, default="scheduled")
    notes: Mapped[str | None] = mapped_column(sa.Text)
    cancellation_reason: Mapped[str | None] = mapped_column(sa.Text)
    # Weak back-reference; the original row may be deleted independently.
    rescheduled_from: Mapped[str | None] = mapped_column(sa.String(64))
    created_by: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    created_at: Mapped[dt.datetime | None] = mapped_column(sa.DateTime)
    updated_at: Mapped[dt.datetime | None] = mapped_column(sa.DateTime)


class AppointmentReminderRow(Base):
    __tablename__ = "appointment_reminders"
    __table_args__ = (
        sa.Index("ix_appointment_reminders_due", "status", "scheduled_for"),
        sa.Index("ix_appointment_reminders_appointment_id", "appointment_id"),
    )

    reminder_id: Mapped[str] = mapped_column(sa.String(64), primary_key=True)
    appointment_id: Mapped[str] = mapped_column(
        sa.String(64), sa.ForeignKey("appointments.appointment_id", ondelete="CASCADE")
    )
    reminder_type: Mapped[str] = mapped_column(sa.String(32), nullable=False)
    scheduled_for: Mapped[dt.datetime] = mapped_column(sa.DateTime, nullable=False)
    message: Mapped[str] = mapped_column(sa.Text, nullable=False)
    channels: Mapped[list[str]] = mapped_column(sa.JSON, nullable=False, default=list)
    created_by: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    status: Mapped[str] = mapped_column(sa.String(16), nullable=False, default="pending")
    sent_at: Mapped[dt.datetime | None] = mapped_column(sa.DateTime)
    error: Mapped[str | None] = mapped_column(sa.Text)


def column_values(record: Any) -> dict[str, Any]:
    """Dump a domain model to plain column values (enums as their raw values)."""
    values: dict[str, Any] = record.model_dump(mode="json")
    # JSON mode stringifies dates; restore the native date/datetime objects.
    for name in ("scheduled_date", "created_at", "updated_at", "scheduled_for", "sent_at"):
        if name in values:
            values[name] = getattr(record, name)
    return values
