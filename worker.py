import asyncio
import signal

from loguru import logger

from agenda.config import AppConfig, configure_logging
from agenda.factory import build_reminder_dispatcher, build_reminder_sender, build_store
from agenda.reminders.job import ReminderJob
from agenda.scheduling.adapters.sql import SqlAppointmentStore


async def main() -> None:
    config = AppConfig()
    configure_logging(config.log_level)
    logger.info("Starting agenda reminder worker (timezone={})", config.clinic_timezone)

    store = build_store(config)
    if isinstance(store, SqlAppointmentStore):
        await store.create_schema()
    sender = build_reminder_sender(config)
    job = ReminderJob(
        build_reminder_dispatcher(config, store, sender),
        interval_seconds=config.reminders.interval_seconds,
    )

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    try:
        await job.run_forever(stop)
    finally:
        await sender.close()
        await store.close()


if __name__ == "__main__":
    asyncio.run(main())
