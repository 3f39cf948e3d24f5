import datetime as dt
from collections.abc import AsyncIterator, Collection, Sequence
from contextlib import asynccontextmanager
from typing import Any

import sqlalchemy as sa
from loguru import logger
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from agenda.domain.exceptions import ConflictError, StoreUnavailableError
from agenda.domain.models import (
    RESCHEDULABLE_STATUSES,
    Appointment,
    AppointmentQuery,
    AppointmentReminder,
    AppointmentStatus,
    Client,
    DayOfWeek,
    Professional,
    ProfessionalSchedule,
    ReminderStatus,
    Service,
)
from agenda.scheduling.adapters.sql_tables import (
    AppointmentReminderRow,
    AppointmentRow,
    Base,
    ClientRow,
    ProfessionalRow,
    ProfessionalScheduleRow,
    ServiceRow,
    column_values,
)
from agenda.scheduling.ports import GroupField


class SqlAppointmentStore:
    """SQLAlchemy-backed implementation of the AppointmentStoreProtocol protocol.

    Each call runs in its own short-lived session. Multi-row writes
    (booking with reminders, reschedule) commit in a single transaction.
    """

    def __init__(self, url: str = "", *, engine: AsyncEngine | None = None, echo: bool = False):
        if engine is None:
            if not url:
                raise ValueError("Either a database url or an engine is required")
            engine = create_async_engine(url, echo=echo, pool_pre_ping=True)
        self._engine = engine
        self._sessions = async_sessionmaker(
            engine, expire_on_commit=False, class_=AsyncSession
        )

    async def create_schema(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ready")

    @asynccontextmanager
    async def _session(self, *, write: bool = False) -> AsyncIterator[AsyncSession]:
        try:
            async with self._sessions() as session:
                if write:
                    async with session.begin():
                        yield session
                else:
                    yield session
        except IntegrityError as exc:
            raise ConflictError(f"Write rejected by the database: {exc.orig}") from exc
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"Database operation failed: {exc}") from exc

    async def _insert(self, row: Base) -> None:
        async with self._session(write=True) as session:
            session.add(row)

    async def add_client(self, client: Client) -> None:
        await self._insert(ClientRow(**column_values(client)))

    async def add_professional(self, professional: Professional) -> None:
        await self._insert(ProfessionalRow(**column_values(professional)))

    async def add_service(self, service: Service) -> None:
        await self._insert(ServiceRow(**column_values(service)))

    async def add_schedule(self, schedule: ProfessionalSchedule) -> None:
        await self._insert(ProfessionalScheduleRow(**column_values(schedule)))

    async def get_client(self, client_id: str) -> Client | None:
        async with self._session() as session:
            row = await session.get(ClientRow, client_id)
        return Client.model_validate(row) if row else None

    async def get_professional(self, professional_id: str) -> Professional | None:
        async with self._session() as session:
            row = await session.get(ProfessionalRow, professional_id)
        return Professional.model_validate(row) if row else None

    async def get_service(self, service_id: str) -> Service | None:
        async with self._session() as session:
            row = await session.get(ServiceRow, service_id)
        return Service.model_validate(row) if row else None

    async def get_active_schedule(
        self, professional_id: str, day_of_week: DayOfWeek
    ) -> ProfessionalSchedule | None:
        stmt = (
            sa.select(ProfessionalScheduleRow)
            .where(
                ProfessionalScheduleRow.professional_id == professional_id,
                ProfessionalScheduleRow.day_of_week == day_of_week.value,
                ProfessionalScheduleRow.is_active.is_(True),
            )
            .order_by(ProfessionalScheduleRow.id)
            .limit(1)
        )
        async with self._session() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
        return ProfessionalSchedule.model_validate(row) if row else None

    async def get_appointment(self, appointment_id: str) -> Appointment | None:
        async with self._session() as session:
            row = await session.get(AppointmentRow, appointment_id)
        return Appointment.model_validate(row) if row else None

    async def find_appointments_on(
        self,
        date: dt.date,
        *,
        professional_id: str | None = None,
        exclude_statuses: Collection[AppointmentStatus] = (),
        exclude_appointment_id: str | None = None,
    ) -> list[Appointment]:
        stmt = sa.select(AppointmentRow).where(AppointmentRow.scheduled_date == date)
        if professional_id is not None:
            stmt = stmt.where(AppointmentRow.professional_id == professional_id)
        if exclude_statuses:
            stmt = stmt.where(AppointmentRow.status.not_in([s.value for s in exclude_statuses]))
        if exclude_appointment_id is not None:
            stmt = stmt.where(AppointmentRow.appointment_id != exclude_appointment_id)
        stmt = stmt.order_by(AppointmentRow.start_time)
        async with self._session() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [Appointment.model_validate(row) for row in rows]

    async def add_appointment(
        self, appointment: Appointment, reminders: Sequence[AppointmentReminder] = ()
    ) -> Appointment:
        async with self._session(write=True) as session:
            session.add(AppointmentRow(**column_values(appointment)))
            # Parent row must exist before its reminders under enforced foreign keys.
            await session.flush()
            session.add_all(AppointmentReminderRow(**column_values(r)) for r in reminders)
        return appointment

    async def save_appointment(self, appointment: Appointment) -> Appointment:
        async with self._session(write=True) as session:
            await session.merge(AppointmentRow(**column_values(appointment)))
        return appointment

    async def replace_appointment(
        self,
        original: Appointment,
        replacement: Appointment,
        reminders: Sequence[AppointmentReminder] = (),
    ) -> Appointment:
        async with self._session(write=True) as session:
            flipped = await session.execute(
                sa.update(AppointmentRow)
                .where(
                    AppointmentRow.appointment_id == original.appointment_id,
                    AppointmentRow.status.in_([s.value for s in RESCHEDULABLE_STATUSES]),
                )
                .values(**column_values(original))
            )
            if flipped.rowcount == 0:
                raise ConflictError(
                    "Appointment changed before it could be rescheduled",
                    appointment_id=original.appointment_id,
                )
            session.add(AppointmentRow(**column_values(replacement)))
            await session.flush()
            session.add_all(AppointmentReminderRow(**column_values(r)) for r in reminders)
        return replacement

    async def delete_appointment(self, appointment_id: str) -> bool:
        async with self._session(write=True) as session:
            await session.execute(
                sa.delete(AppointmentReminderRow).where(
                    AppointmentReminderRow.appointment_id == appointment_id
                )
            )
            result = await session.execute(
                sa.delete(AppointmentRow).where(AppointmentRow.appointment_id == appointment_id)
            )
        return bool(result.rowcount)

    async def list_appointments(self, query: AppointmentQuery) -> tuple[list[Appointment], int]:
        clauses = _query_clauses(query)
        column = getattr(AppointmentRow, query.order_field)
        order = column.desc() if query.sort_order == "desc" else column.asc()
        page_stmt = (
            sa.select(AppointmentRow)
            .where(*clauses)
            .order_by(order)
            .offset(query.offset)
            .limit(query.limit)
        )
        count_stmt = sa.select(sa.func.count()).select_from(AppointmentRow).where(*clauses)
        async with self._session() as session:
            total = (await session.execute(count_stmt)).scalar_one()
            rows = (await session.execute(page_stmt)).scalars().all()
        return [Appointment.model_validate(row) for row in rows], total

    async def count_appointments(self, *, scheduled_from: dt.date | None = None) -> int:
        stmt = sa.select(sa.func.count()).select_from(AppointmentRow)
        if scheduled_from is not None:
            stmt = stmt.where(AppointmentRow.scheduled_date >= scheduled_from)
        async with self._session() as session:
            return (await session.execute(stmt)).scalar_one()

    async def count_appointments_by(self, field: GroupField) -> dict[str, int]:
        column = getattr(AppointmentRow, field)
        stmt = sa.select(column, sa.func.count()).group_by(column)
        async with self._session() as session:
            rows = (await session.execute(stmt)).all()
        return {value: count for value, count in rows}

    async def list_reminders(self, appointment_id: str) -> list[AppointmentReminder]:
        stmt = (
            sa.select(AppointmentReminderRow)
            .where(AppointmentReminderRow.appointment_id == appointment_id)
            .order_by(AppointmentReminderRow.scheduled_for)
        )
        async with self._session() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [AppointmentReminder.model_validate(row) for row in rows]

    async def list_due_reminders(self, now: dt.datetime) -> list[AppointmentReminder]:
        stmt = (
            sa.select(AppointmentReminderRow)
            .where(
                AppointmentReminderRow.status == ReminderStatus.PENDING.value,
                AppointmentReminderRow.scheduled_for <= now,
            )
            .order_by(AppointmentReminderRow.scheduled_for)
        )
        async with self._session() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [AppointmentReminder.model_validate(row) for row in rows]

    async def save_reminder(self, reminder: AppointmentReminder) -> AppointmentReminder:
        async with self._session(write=True) as session:
            await session.merge(AppointmentReminderRow(**column_values(reminder)))
        return reminder

    async def close(self) -> None:
        await self._engine.dispose()
        logger.info("Database engine disposed")


def _query_clauses(query: AppointmentQuery) -> list[Any]:
    clauses: list[Any] = []
    if query.client_id is not None:
        clauses.append(AppointmentRow.client_id == query.client_id)
    if query.professional_id is not None:
        clauses.append(AppointmentRow.professional_id == query.professional_id)
    if query.appointment_type is not None:
        clauses.append(AppointmentRow.appointment_type == query.appointment_type.value)
    if query.status is not None:
        clauses.append(AppointmentRow.status == query.status.value)
    if query.priority is not None:
        clauses.append(AppointmentRow.priority == query.priority.value)
    if query.start_date is not None:
        clauses.append(AppointmentRow.scheduled_date >= query.start_date)
    if query.end_date is not None:
        clauses.append(AppointmentRow.scheduled_date <= query.end_date)
    return clauses
