from typing import Callable

from loguru import logger

from agenda.clock import clinic_clock
from agenda.config import AppConfig, StoreAdapter
from agenda.reminders.adapters.log import LogReminderSender
from agenda.reminders.adapters.webhook import WebhookReminderSender
from agenda.reminders.dispatcher import ReminderDispatcher
from agenda.reminders.ports import ReminderSenderProtocol
from agenda.scheduling.adapters.memory import InMemoryAppointmentStore
from agenda.scheduling.adapters.sql import SqlAppointmentStore
from agenda.scheduling.availability import AvailabilityChecker
from agenda.scheduling.ports import AppointmentStoreProtocol
from agenda.scheduling.service import SchedulingService
from agenda.scheduling.slots import SlotGenerator


def _build_memory(config: AppConfig) -> AppointmentStoreProtocol:
    return InMemoryAppointmentStore()


def _build_sql(config: AppConfig) -> AppointmentStoreProtocol:
    return SqlAppointmentStore(config.database.url, echo=config.database.echo)


_BUILDERS: dict[StoreAdapter, Callable[[AppConfig], AppointmentStoreProtocol]] = {
    StoreAdapter.MEMORY: _build_memory,
    StoreAdapter.SQL: _build_sql,
}


def build_store(config: AppConfig) -> AppointmentStoreProtocol:
    """Build the appointment store selected by config."""
    adapter = config.store_adapter
    logger.info("Building appointment store with adapter: {}", adapter.value)
    return _BUILDERS[adapter](config)


def build_scheduling_service(
    config: AppConfig, store: AppointmentStoreProtocol | None = None
) -> SchedulingService:
    store = store or build_store(config)
    checker = AvailabilityChecker(store)
    slots = SlotGenerator(
        store,
        checker,
        work_start=config.scheduling.work_start,
        work_end=config.scheduling.work_end,
        slot_minutes=config.scheduling.slot_minutes,
    )
    return SchedulingService(
        store,
        checker=checker,
        slots=slots,
        clock=clinic_clock(config.clinic_timezone),
        default_actor_id=config.scheduling.default_actor_id,
        default_channels=config.reminders.default_channels,
    )


def build_reminder_sender(config: AppConfig) -> ReminderSenderProtocol:
    """Webhook delivery when a URL is configured, otherwise log-only."""
    if not config.reminders.webhook_url:
        logger.warning("No reminder webhook configured; reminders will only be logged")
        return LogReminderSender()
    return WebhookReminderSender(
        config.reminders.webhook_url,
        token=config.reminders.webhook_token,
        timeout=config.reminders.timeout_seconds,
    )


def build_reminder_dispatcher(
    config: AppConfig,
    store: AppointmentStoreProtocol,
    sender: ReminderSenderProtocol | None = None,
) -> ReminderDispatcher:
    return ReminderDispatcher(
        store,
        sender or build_reminder_sender(config),
        clock=clinic_clock(config.clinic_timezone),
    )
